class LSSError(Exception):
  """base class of the errors raised by the LSS encoder."""


class ConfigurationError(LSSError, ValueError):
  """an architecture or update-rule configuration that cannot be built."""


class LifecycleError(LSSError, RuntimeError):
  """a forward/backward call issued out of order."""


class UnsupportedOperationError(LifecycleError):
  """input errors requested from a component whose input is not differentiable."""


class ScoringError(LSSError, ArithmeticError):
  """the arc scores of a dependent cannot be normalized into a distribution."""
