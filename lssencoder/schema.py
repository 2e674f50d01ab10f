import unicodedata
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import jax.numpy as jnp

from lssencoder.config import ROOT_ID

UNK = "<UNK>"


class ParsingToken(NamedTuple):
  """a token addressed by a stable integer id."""

  id: int
  form: Optional[str] = None
  pos: Optional[str] = None

  @property
  def is_punctuation(self) -> bool:
    if self.pos == "PUNCT":
      return True
    return bool(self.form) and all(
      unicodedata.category(c).startswith("P") for c in self.form
    )


class ParsingSentence:
  """an ordered sequence of tokens with id -> index resolution."""

  def __init__(self, tokens: Iterable[ParsingToken]):
    self.tokens: Tuple[ParsingToken, ...] = tuple(tokens)
    self._index_by_id: Dict[int, int] = {}

    for i, token in enumerate(self.tokens):
      if token.id in self._index_by_id:
        raise ValueError(f"duplicate token id {token.id}")
      if token.id == ROOT_ID:
        raise ValueError(f"token id {ROOT_ID} is reserved for the virtual root")
      self._index_by_id[token.id] = i

  def __len__(self) -> int:
    return len(self.tokens)

  def __iter__(self):
    return iter(self.tokens)

  def __repr__(self) -> str:
    return f"ParsingSentence({[t.form for t in self.tokens]})"

  def get_token_index(self, token_id: int) -> int:
    try:
      return self._index_by_id[token_id]
    except KeyError:
      raise ValueError(f"no token with id {token_id} in the sentence") from None


class AnnotatedSentence(NamedTuple):
  """a sentence paired with its gold governors (dependent id -> governor id)."""

  sentence: ParsingSentence
  heads: Dict[int, int]


class ParserVocab(NamedTuple):
  """mappings for form and POS to ID conversions."""

  word2id: Dict[str, int]
  pos2id: Dict[str, int]

  def encode_sentence(self, sentence: ParsingSentence) -> jnp.ndarray:
    """
    returns an (n, 2) int array: column 0 holds word IDs, column 1 POS IDs.
    unknown or missing values map to <UNK>.
    """
    ids = [
      [
        self.word2id.get((t.form or UNK).lower(), self.word2id[UNK]),
        self.pos2id.get(t.pos or UNK, self.pos2id[UNK]),
      ]
      for t in sentence.tokens
    ]
    return jnp.array(ids, dtype=jnp.int32).reshape((len(ids), 2))


@dataclass(frozen=True, eq=False)
class LatentSyntacticStructure:
  """
  the per-token vectors of a sentence produced by one encoding, plus the virtual root.
  all the sequences are index-aligned with the sentence tokens.
  """

  sentence: ParsingSentence
  tokens_encodings: Sequence[jnp.ndarray]
  context_vectors: Sequence[jnp.ndarray]
  latent_heads: Sequence[jnp.ndarray]
  virtual_root: jnp.ndarray

  def __post_init__(self):
    n = len(self.sentence)
    for name in ("tokens_encodings", "context_vectors", "latent_heads"):
      if len(getattr(self, name)) != n:
        raise ValueError(
          f"{name} has {len(getattr(self, name))} vectors for {n} tokens"
        )

  @property
  def size(self) -> int:
    return len(self.sentence)

  @cached_property
  def latent_syntactic_encodings(self) -> List[jnp.ndarray]:
    return [
      jnp.concatenate([context_vector, latent_head])
      for context_vector, latent_head in zip(self.context_vectors, self.latent_heads)
    ]

  def get_token_encoding_by_id(self, token_id: int) -> jnp.ndarray:
    return self.tokens_encodings[self.sentence.get_token_index(token_id)]

  def get_context_vector_by_id(self, token_id: int) -> jnp.ndarray:
    return self.context_vectors[self.sentence.get_token_index(token_id)]

  def get_latent_head_by_id(self, token_id: int) -> jnp.ndarray:
    return self.latent_heads[self.sentence.get_token_index(token_id)]

  def get_ls_encoding_by_id(self, token_id: int) -> jnp.ndarray:
    return self.latent_syntactic_encodings[self.sentence.get_token_index(token_id)]


class ScoredArcs(NamedTuple):
  """scores mapped by dependent id to governor id, the root having id ROOT_ID."""

  scores: Dict[int, Dict[int, float]]

  def get_heads_map(self, dependent_id: int) -> Dict[int, float]:
    return self.scores[dependent_id]

  def find_highest_scoring_head(
    self, dependent_id: int, except_ids: Sequence[int] = ()
  ) -> Optional[Tuple[int, float]]:
    """the best (governor id, score) pair of a dependent, or None if all are excluded."""
    candidates = [
      (governor_id, score)
      for governor_id, score in self.scores[dependent_id].items()
      if governor_id not in except_ids
    ]
    return max(candidates, key=lambda c: c[1]) if candidates else None


class OutputErrors(NamedTuple):
  """
  errors of the encoder outputs. any omitted list is taken as zeros.
  size: the number of error vectors in each list (the sentence length).
  """

  size: int
  tokens_encodings: Optional[Sequence[jnp.ndarray]] = None
  context_vectors: Optional[Sequence[jnp.ndarray]] = None
  latent_heads: Optional[Sequence[jnp.ndarray]] = None


class LSSParameters(NamedTuple):
  """the parameters (or their errors) of the three encoding stages."""

  tokens_encoder_params: Dict
  context_encoder_params: Dict
  heads_encoder_params: Dict
