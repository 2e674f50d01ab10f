from typing import Dict, NamedTuple

import jax
import jax.numpy as jnp
import optax

from lssencoder.config import ROOT_ID
from lssencoder.schema import LatentSyntacticStructure, OutputErrors


class ArcLossOutput(NamedTuple):
  """the loss of a sentence with the errors to propagate back."""

  loss: float
  output_errors: OutputErrors
  root_errors: jnp.ndarray


def l2_normalize(x: jnp.ndarray, eps: float = 1e-12) -> jnp.ndarray:
  # rsqrt of the clamped squared norm keeps the gradient finite on zero vectors
  return x * jax.lax.rsqrt(jnp.maximum(jnp.sum(x * x, axis=-1, keepdims=True), eps))


def arc_logits(
  context_vectors: jnp.ndarray,
  latent_heads: jnp.ndarray,
  virtual_root: jnp.ndarray,
  root_mask: jnp.ndarray,
) -> jnp.ndarray:
  """
  cosine similarities of each dependent (row) with each governor candidate.
  shape (n, n + 1): column 0 is the root, column j + 1 is the token j.
  the root similarity is 0.0 where root_mask is False.
  """
  context_vectors = l2_normalize(context_vectors)
  latent_heads = l2_normalize(latent_heads)
  virtual_root = l2_normalize(virtual_root)

  token_similarities = latent_heads @ context_vectors.T
  root_similarities = jnp.where(root_mask, latent_heads @ virtual_root, 0.0)

  return jnp.concatenate([root_similarities[:, None], token_similarities], axis=1)


def arc_loss(
  context_vectors: jnp.ndarray,
  latent_heads: jnp.ndarray,
  virtual_root: jnp.ndarray,
  gold_indices: jnp.ndarray,
  root_mask: jnp.ndarray,
  temperature: float,
) -> jnp.ndarray:
  """mean cross entropy of the gold governors over the scaled similarities."""
  n = context_vectors.shape[0]
  logits = arc_logits(context_vectors, latent_heads, virtual_root, root_mask) / temperature

  # a token cannot govern itself
  self_arcs = jnp.concatenate(
    [jnp.zeros((n, 1), dtype=bool), jnp.eye(n, dtype=bool)], axis=1
  )
  logits = jnp.where(self_arcs, -1e9, logits)

  return jnp.mean(optax.softmax_cross_entropy_with_integer_labels(logits, gold_indices))


_arc_loss_and_grads = jax.jit(jax.value_and_grad(arc_loss, argnums=(0, 1, 2)))


def gold_indices(lss: LatentSyntacticStructure, heads: Dict[int, int]) -> jnp.ndarray:
  """column of the gold governor of each token in the arc logits."""
  indices = [
    0 if heads[t.id] == ROOT_ID else lss.sentence.get_token_index(heads[t.id]) + 1
    for t in lss.sentence.tokens
  ]
  return jnp.array(indices, dtype=jnp.int32)


def root_mask(lss: LatentSyntacticStructure) -> jnp.ndarray:
  return jnp.array(
    [bool(t.form) and not t.is_punctuation for t in lss.sentence.tokens], dtype=bool
  )


def compute_output_errors(
  lss: LatentSyntacticStructure, heads: Dict[int, int], temperature: float
) -> ArcLossOutput:
  """
  supervises the context vectors, the latent heads and the virtual root of an
  encoded sentence with its gold governors.
  """
  loss, (context_errors, heads_errors, root_errors) = _arc_loss_and_grads(
    jnp.stack(lss.context_vectors),
    jnp.stack(lss.latent_heads),
    lss.virtual_root,
    gold_indices(lss, heads),
    root_mask(lss),
    temperature,
  )

  return ArcLossOutput(
    loss=float(loss),
    output_errors=OutputErrors(
      size=lss.size,
      context_vectors=list(context_errors),
      latent_heads=list(heads_errors),
    ),
    root_errors=root_errors,
  )
