from typing import Any, Callable, List, Optional, Protocol, Sequence, runtime_checkable

import flax.linen as nn
import jax
import jax.numpy as jnp

from lssencoder.errors import LifecycleError, UnsupportedOperationError


@runtime_checkable
class StageEncoder(Protocol):
  """
  a stateful transformation of a sequence into a sequence of vectors of the same
  length, able to propagate the errors of its last output.
  """

  def forward(self, input: Any, train: bool = True) -> List[jnp.ndarray]: ...

  def backward(self, output_errors: Sequence[jnp.ndarray]) -> None: ...

  def get_input_errors(self, copy: bool = True) -> List[jnp.ndarray]: ...

  def get_params_errors(self, copy: bool = True) -> Any: ...


def stack_vectors(vectors: Sequence[jnp.ndarray]) -> jnp.ndarray:
  return jnp.stack([jnp.asarray(v) for v in vectors])


def _copy_tree(tree):
  return jax.tree_util.tree_map(jnp.copy, tree)


class FlaxStage:
  """
  a flax module bound to one slot of a shared parameter store.

  forward keeps the pullback of the module w.r.t. its parameters (and its input,
  when propagate_to_input is set) until the next backward. a new forward
  discards the pending one, a forward with train=False keeps none.
  """

  def __init__(
    self,
    module: nn.Module,
    params_store: dict,
    params_key: str,
    propagate_to_input: bool = True,
    input_converter: Callable[[Any], jnp.ndarray] = stack_vectors,
  ):
    self.module = module
    self.params_key = params_key
    self.propagate_to_input = propagate_to_input
    self._params_store = params_store
    self._input_converter = input_converter

    self._pullback: Optional[Callable] = None
    self._input_errors: Optional[jnp.ndarray] = None
    self._params_errors = None

  def forward(self, input: Any, train: bool = True) -> List[jnp.ndarray]:
    params = self._params_store[self.params_key]
    x = self._input_converter(input)

    if not train:
      outputs = self.module.apply({"params": params}, x)
      self._pullback = None
    elif self.propagate_to_input:
      outputs, self._pullback = jax.vjp(
        lambda p, x: self.module.apply({"params": p}, x), params, x
      )
    else:
      outputs, pullback = jax.vjp(lambda p: self.module.apply({"params": p}, x), params)
      self._pullback = lambda errors: (pullback(errors)[0], None)

    self._input_errors = None
    self._params_errors = None

    return list(outputs)

  def backward(self, output_errors: Sequence[jnp.ndarray]) -> None:
    if self._pullback is None:
      raise LifecycleError(f"{self.params_key}: backward called without a pending forward")

    self._params_errors, self._input_errors = self._pullback(stack_vectors(output_errors))
    self._pullback = None

  def get_input_errors(self, copy: bool = True) -> List[jnp.ndarray]:
    if not self.propagate_to_input:
      raise UnsupportedOperationError(
        f"{self.params_key}: the input errors are not propagated by this stage"
      )
    if self._input_errors is None:
      raise LifecycleError(f"{self.params_key}: no backward has been done yet")

    errors = jnp.copy(self._input_errors) if copy else self._input_errors
    return list(errors)

  def get_params_errors(self, copy: bool = True):
    if self._params_errors is None:
      raise LifecycleError(f"{self.params_key}: no backward has been done yet")

    return _copy_tree(self._params_errors) if copy else self._params_errors
