import enum
import logging
from typing import List, Optional, Sequence

import jax.numpy as jnp

from lssencoder.errors import LifecycleError, UnsupportedOperationError
from lssencoder.lss_model import LSSModel
from lssencoder.schema import (
  LatentSyntacticStructure,
  LSSParameters,
  OutputErrors,
  ParsingSentence,
)
from lssencoder.stages import FlaxStage, StageEncoder

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
  IDLE = "idle"
  ENCODED = "encoded"
  PROPAGATED = "propagated"


class LSSEncoder:
  """
  encodes a sentence into its latent syntactic structure through three stages:
  tokens encoder -> context encoder -> heads encoder.

  an encoder holds the activations of one forward at a time, so it must not be
  shared by overlapping encode/propagate cycles. build one encoder per execution
  context from the same model instead; `id` only serves to trace them.
  """

  def __init__(
    self,
    model: LSSModel,
    id: int = 0,
    tokens_encoder: Optional[StageEncoder] = None,
    context_encoder: Optional[StageEncoder] = None,
    heads_encoder: Optional[StageEncoder] = None,
  ):
    self.model = model
    self.id = id

    self.tokens_encoder: StageEncoder = tokens_encoder or FlaxStage(
      model.tokens_encoder,
      model.params,
      "tokens_encoder",
      propagate_to_input=False,
      input_converter=model.vocab.encode_sentence,
    )
    self.context_encoder: StageEncoder = context_encoder or FlaxStage(
      model.context_encoder, model.params, "context_encoder"
    )
    self.heads_encoder: StageEncoder = heads_encoder or FlaxStage(
      model.heads_encoder, model.params, "heads_encoder"
    )

    self._state = PipelineState.IDLE
    self._size: Optional[int] = None

  @property
  def state(self) -> PipelineState:
    return self._state

  def encode(
    self, sentence: ParsingSentence, train: bool = True
  ) -> LatentSyntacticStructure:
    """
    runs the three stages on the sentence, replacing any pending forward.
    with train=False no errors can be propagated afterwards.
    """
    if len(sentence) == 0:
      raise ValueError("cannot encode an empty sentence")

    tokens_encodings = self.tokens_encoder.forward(sentence, train=train)
    context_vectors = self.context_encoder.forward(tokens_encodings, train=train)
    latent_heads = self.heads_encoder.forward(context_vectors, train=train)

    self._state = PipelineState.ENCODED if train else PipelineState.IDLE
    self._size = len(sentence)
    logger.debug("encoder %d: encoded %d tokens", self.id, self._size)

    return LatentSyntacticStructure(
      sentence=sentence,
      tokens_encodings=tuple(tokens_encodings),
      context_vectors=tuple(context_vectors),
      latent_heads=tuple(latent_heads),
      virtual_root=self.model.virtual_root,
    )

  def propagate_errors(self, output_errors: OutputErrors) -> None:
    """
    back-propagates the errors of the last encoding, from the heads encoder to the
    tokens encoder. at each seam the errors given explicitly for an intermediate
    output are summed to the ones coming from the next stage.
    """
    if self._state is not PipelineState.ENCODED:
      raise LifecycleError(
        f"encoder {self.id}: propagate_errors requires a pending encode (state: {self._state.value})"
      )
    if output_errors.size != self._size:
      raise LifecycleError(
        f"encoder {self.id}: errors of size {output_errors.size} given for "
        f"a sentence of {self._size} tokens"
      )

    size = output_errors.size
    context_size = self.model.context_vectors_size
    tokens_size = self.model.token_encoding_size

    latent_heads_errors = self._errors_or_zeros(output_errors.latent_heads, size, context_size)
    context_vectors_errors = self._errors_or_zeros(
      output_errors.context_vectors, size, context_size
    )
    tokens_encodings_errors = self._errors_or_zeros(
      output_errors.tokens_encodings, size, tokens_size
    )

    self.heads_encoder.backward(list(latent_heads_errors))

    context_vectors_errors = context_vectors_errors + jnp.stack(
      self.heads_encoder.get_input_errors(copy=False)
    )
    self.context_encoder.backward(list(context_vectors_errors))

    tokens_encodings_errors = tokens_encodings_errors + jnp.stack(
      self.context_encoder.get_input_errors(copy=False)
    )
    self.tokens_encoder.backward(list(tokens_encodings_errors))

    self._state = PipelineState.PROPAGATED
    logger.debug("encoder %d: propagated errors of %d tokens", self.id, size)

  def collect_parameter_errors(self, copy: bool = True) -> LSSParameters:
    """
    the parameters errors of the last propagation. with copy=False the returned
    values are references, valid until the next call on this encoder.
    """
    if self._state is not PipelineState.PROPAGATED:
      raise LifecycleError(
        f"encoder {self.id}: no errors have been propagated since the last encode"
      )

    return LSSParameters(
      tokens_encoder_params=self.tokens_encoder.get_params_errors(copy=copy),
      context_encoder_params=self.context_encoder.get_params_errors(copy=copy),
      heads_encoder_params=self.heads_encoder.get_params_errors(copy=copy),
    )

  def get_input_errors(self, copy: bool = True) -> List[jnp.ndarray]:
    raise UnsupportedOperationError(
      "the input errors of the LSS encoder cannot be obtained because the input is a sentence"
    )

  @staticmethod
  def _errors_or_zeros(
    errors: Optional[Sequence[jnp.ndarray]], size: int, width: int
  ) -> jnp.ndarray:
    if errors is None:
      return jnp.zeros((size, width))

    if len(errors) != size:
      raise LifecycleError(f"expected {size} error vectors, got {len(errors)}")

    errors = [jnp.asarray(e) for e in errors]
    for i, e in enumerate(errors):
      if e.shape != (width,):
        raise LifecycleError(f"error vector {i} has shape {e.shape}, expected ({width},)")
    return jnp.stack(errors)
