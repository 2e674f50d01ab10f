import logging
from typing import Optional

import jax
import jax.numpy as jnp
import optax

from lssencoder.lss_model import LSSModel
from lssencoder.schema import LSSParameters

logger = logging.getLogger(__name__)


class ParamsOptimizer:
  """
  accumulates the errors of one slot of the model parameters and applies the
  update rule to it. accumulated errors are averaged at update time.
  """

  def __init__(
    self, model: LSSModel, params_key: str, update_method: optax.GradientTransformation
  ):
    self.model = model
    self.params_key = params_key
    self.update_method = update_method

    self._opt_state = update_method.init(model.params[params_key])
    self._errors: Optional[dict] = None
    self._count = 0

  @property
  def accumulated_count(self) -> int:
    return self._count

  def accumulate(self, params_errors, copy: bool = True) -> None:
    """
    copy=False allows to keep a reference to the given errors when they are the
    only ones accumulated before the next update.
    """
    if copy:
      params_errors = jax.tree_util.tree_map(jnp.copy, params_errors)

    if self._errors is None:
      self._errors = params_errors
    else:
      self._errors = jax.tree_util.tree_map(jnp.add, self._errors, params_errors)
    self._count += 1

  def update(self) -> None:
    if self._count == 0:
      logger.debug("%s: no errors accumulated, nothing to update", self.params_key)
      return

    params = self.model.params[self.params_key]
    grads = jax.tree_util.tree_map(lambda e: e / self._count, self._errors)

    updates, self._opt_state = self.update_method.update(grads, self._opt_state, params)
    self.model.params[self.params_key] = optax.apply_updates(params, updates)

    self._errors = None
    self._count = 0


class LSSOptimizer:
  """the optimizer of the three encoding stages of an LSS model."""

  def __init__(self, model: LSSModel, update_method: optax.GradientTransformation):
    self.model = model
    self.update_method = update_method

    self.tokens_encoder_optimizer = ParamsOptimizer(model, "tokens_encoder", update_method)
    self.context_encoder_optimizer = ParamsOptimizer(model, "context_encoder", update_method)
    self.heads_encoder_optimizer = ParamsOptimizer(model, "heads_encoder", update_method)

  def accumulate(self, params_errors: LSSParameters, copy: bool = True) -> None:
    self.tokens_encoder_optimizer.accumulate(params_errors.tokens_encoder_params, copy=copy)
    self.context_encoder_optimizer.accumulate(params_errors.context_encoder_params, copy=copy)
    self.heads_encoder_optimizer.accumulate(params_errors.heads_encoder_params, copy=copy)

  def update(self) -> None:
    self.tokens_encoder_optimizer.update()
    self.context_encoder_optimizer.update()
    self.heads_encoder_optimizer.update()
