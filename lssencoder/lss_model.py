import logging
from typing import Dict, Optional, Tuple

import flax.linen as nn
import jax
import jax.numpy as jnp

from lssencoder.config import LSSConfig, validate_config
from lssencoder.errors import ConfigurationError
from lssencoder.schema import UNK, ParserVocab

logger = logging.getLogger(__name__)

CELLS = {
  "simple": nn.SimpleCell,
  "gru": nn.GRUCell,
  "lstm": nn.OptimizedLSTMCell,
}

ACTIVATION_FNS = {
  "tanh": nn.tanh,
  "relu": nn.relu,
  "sigmoid": nn.sigmoid,
  "identity": lambda x: x,
}


class TokensEncoder(nn.Module):
  """
  flax encoder of the tokens of a sentence from their word and POS IDs.
  """

  word_vocab_size: int
  pos_vocab_size: int
  word_embed_size: int = 50
  pos_embed_size: int = 25
  token_encoding_size: int = 100

  @nn.compact
  def __call__(self, x):
    """
    x: (n_tokens, 2) - word IDs and POS IDs
    """
    word_embeddings = self.param(
      "word_embeddings",
      nn.initializers.uniform(scale=0.1),
      (self.word_vocab_size, self.word_embed_size),
    )
    pos_embeddings = self.param(
      "pos_embeddings",
      nn.initializers.uniform(scale=0.1),
      (self.pos_vocab_size, self.pos_embed_size),
    )

    # (n_tokens, word_embed_size + pos_embed_size)
    x = jnp.concatenate([word_embeddings[x[:, 0]], pos_embeddings[x[:, 1]]], axis=-1)

    x = nn.Dense(
      features=self.token_encoding_size,
      kernel_init=nn.initializers.xavier_uniform(),
    )(x)

    return nn.tanh(x)


class BiRNN(nn.Module):
  """
  bidirectional recurrent layer over a sequence of vectors.
  the forward and backward outputs are concatenated (2 * hidden_size); when
  output_size is given they are merged by a feed-forward layer instead.
  """

  hidden_size: int
  connection_type: str = "simple"
  hidden_activation: str = "tanh"
  output_size: Optional[int] = None

  @nn.compact
  def __call__(self, x):
    """
    x: (n_tokens, input_size)
    """
    cell_cls = CELLS[self.connection_type]
    activation_fn = ACTIVATION_FNS[self.hidden_activation]

    bidirectional = nn.Bidirectional(
      nn.RNN(cell_cls(features=self.hidden_size, activation_fn=activation_fn)),
      nn.RNN(cell_cls(features=self.hidden_size, activation_fn=activation_fn)),
    )
    # the recurrence runs over a batch of one sentence
    y = bidirectional(x[None, ...])[0]

    if self.output_size is not None:
      y = nn.Dense(
        features=self.output_size,
        kernel_init=nn.initializers.xavier_uniform(),
      )(y)
      y = nn.tanh(y)

    return y


class DeepBiRNN(nn.Module):
  """stack of bidirectional layers, each fed with the output of the previous one."""

  hidden_sizes: Tuple[int, ...]
  connection_type: str = "simple"
  hidden_activation: str = "tanh"

  @nn.compact
  def __call__(self, x):
    for hidden_size in self.hidden_sizes:
      x = BiRNN(
        hidden_size=hidden_size,
        connection_type=self.connection_type,
        hidden_activation=self.hidden_activation,
      )(x)
    return x


class LSSModel:
  """
  the architecture of the LSS encoder: the flax modules of the three stages,
  their shared parameters and the virtual root vector.

  all the learned values live in `params`, keyed by stage. pipelines read it on
  every forward, only the optimizers write it.
  """

  def __init__(self, config: LSSConfig, vocab: ParserVocab):
    self.config = validate_config(config)
    self.vocab = vocab

    context_config = config.context_config
    if UNK not in vocab.word2id or UNK not in vocab.pos2id:
      raise ConfigurationError(f"missing required token in vocabulary: {UNK}")

    self.token_encoding_size: int = config.token_encoding_size

    # two layers widen then compress: (tw -> 2tw), (2tw -> 2tw) with hidden size tw
    self.tokens_encoder = TokensEncoder(
      word_vocab_size=len(vocab.word2id),
      pos_vocab_size=len(vocab.pos2id),
      word_embed_size=config.word_embed_size,
      pos_embed_size=config.pos_embed_size,
      token_encoding_size=config.token_encoding_size,
    )
    self.context_encoder = DeepBiRNN(
      hidden_sizes=(config.token_encoding_size,) * context_config.number_of_layers,
      connection_type=context_config.connection_type,
      hidden_activation=context_config.hidden_activation,
    )

    self.context_vectors_size: int = 2 * config.token_encoding_size

    self.heads_encoder = BiRNN(
      hidden_size=self.context_vectors_size,
      connection_type=config.heads_config.connection_type,
      hidden_activation=config.heads_config.hidden_activation,
      output_size=self.context_vectors_size,
    )

    rng = jax.random.PRNGKey(config.seed)
    tokens_rng, context_rng, heads_rng, root_rng = jax.random.split(rng, 4)

    self.params: Dict[str, Dict] = {
      "tokens_encoder": self.tokens_encoder.init(
        tokens_rng, jnp.zeros((1, 2), dtype=jnp.int32)
      )["params"],
      "context_encoder": self.context_encoder.init(
        context_rng, jnp.zeros((1, self.token_encoding_size))
      )["params"],
      "heads_encoder": self.heads_encoder.init(
        heads_rng, jnp.zeros((1, self.context_vectors_size))
      )["params"],
      # glorot bound over a (cvs, 1) column: sqrt(6 / (cvs + 1))
      "root_embedding": nn.initializers.xavier_uniform()(
        root_rng, (self.context_vectors_size, 1)
      ).reshape((self.context_vectors_size,)),
    }

    logger.info(
      "built LSS model: token encodings %d, context vectors %d (%d layer(s)), %d parameters",
      self.token_encoding_size,
      self.context_vectors_size,
      context_config.number_of_layers,
      self.count_params(),
    )

  @property
  def virtual_root(self) -> jnp.ndarray:
    return self.params["root_embedding"]

  def count_params(self) -> int:
    return sum(p.size for p in jax.tree_util.tree_leaves(self.params))
