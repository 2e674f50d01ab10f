import dataclasses
import math
from typing import Dict, Protocol, runtime_checkable

import jax.numpy as jnp
import numpy as np

from lssencoder.config import ROOT_ID
from lssencoder.errors import ScoringError
from lssencoder.schema import LatentSyntacticStructure, ParsingToken, ScoredArcs

HALF_PI = math.pi / 2


@runtime_checkable
class HeadsDecoder(Protocol):
  """scores all the possible governors of each token of an encoded sentence."""

  def decode(self, lss: LatentSyntacticStructure) -> ScoredArcs: ...


def normalize(vector: jnp.ndarray) -> jnp.ndarray:
  """l2-normalized copy of a vector; a zero vector stays zero."""
  norm = jnp.linalg.norm(vector)
  return jnp.where(norm > 0.0, vector / jnp.where(norm > 0.0, norm, 1.0), vector)


def normalize_structure(lss: LatentSyntacticStructure) -> LatentSyntacticStructure:
  """a copy of the structure with unit context vectors, latent heads and root."""
  return dataclasses.replace(
    lss,
    context_vectors=tuple(normalize(v) for v in lss.context_vectors),
    latent_heads=tuple(normalize(v) for v in lss.latent_heads),
    virtual_root=normalize(lss.virtual_root),
  )


def rescale(similarity: float) -> float:
  """maps a cosine similarity to the signed angle pi/2 - arccos(s), in [-pi/2, pi/2]."""
  return HALF_PI - math.acos(min(1.0, max(-1.0, similarity)))


def has_root_score(token: ParsingToken) -> bool:
  # the root shouldn't be a punctuation token
  return bool(token.form) and not token.is_punctuation


class CosineDecoder:
  """
  scores a governor g of a dependent d by the cosine similarity between the
  context vector of g and the latent head of d. the root score of d is the
  similarity between its latent head and the virtual root, except for
  punctuation (and form-less) tokens that get a fixed 0.0.

  scores are rescaled with `rescale`, shifted by pi/2 into [0, pi] and
  normalized into a distribution over the governors of each dependent. a fixed
  root score stays at 0 so it never competes with the governors.
  """

  def decode(self, lss: LatentSyntacticStructure) -> ScoredArcs:
    similarities = self.similarity_scores(lss)

    return ScoredArcs(
      scores={
        dependent.id: self._normalize_to_distribution(dependent, similarities[dependent.id])
        for dependent in lss.sentence.tokens
      }
    )

  def similarity_scores(self, lss: LatentSyntacticStructure) -> Dict[int, Dict[int, float]]:
    """the raw cosine similarities, mapped by dependent to governor (root included)."""
    # the root vector is trained, so it is normalized at each decoding
    lss_norm = normalize_structure(lss)

    latent_heads = jnp.stack(lss_norm.latent_heads)
    # [d, g] = cos(context vector of g, latent head of d)
    heads_similarities = np.clip(
      np.asarray(latent_heads @ jnp.stack(lss_norm.context_vectors).T), -1.0, 1.0
    )
    root_similarities = np.clip(np.asarray(latent_heads @ lss_norm.virtual_root), -1.0, 1.0)

    tokens = lss_norm.sentence.tokens
    similarities: Dict[int, Dict[int, float]] = {}
    for d, dependent in enumerate(tokens):
      scores = {
        governor.id: float(heads_similarities[d, g])
        for g, governor in enumerate(tokens)
        if governor.id != dependent.id
      }
      scores[ROOT_ID] = float(root_similarities[d]) if has_root_score(dependent) else 0.0
      similarities[dependent.id] = scores

    return similarities

  @staticmethod
  def _normalize_to_distribution(
    dependent: ParsingToken, similarities: Dict[int, float]
  ) -> Dict[int, float]:
    rescaled = {
      governor_id: rescale(similarity) + HALF_PI
      for governor_id, similarity in similarities.items()
    }
    if not has_root_score(dependent):
      rescaled[ROOT_ID] = 0.0

    norm_sum = sum(rescaled.values())
    if norm_sum == 0.0:
      raise ScoringError(f"token {dependent.id}: all the governor scores are zero")

    return {governor_id: score / norm_sum for governor_id, score in rescaled.items()}
