import os
from typing import NamedTuple

import optax
from dotenv import load_dotenv

from lssencoder.errors import ConfigurationError

# the virtual root is addressed with an id no sentence token can take
ROOT_ID = -1

CONNECTION_TYPES = ("simple", "gru", "lstm")
ACTIVATIONS = ("tanh", "relu", "sigmoid", "identity")
UPDATE_METHODS = ("adam", "sgd", "adagrad", "rmsprop")


class RNNConfig(NamedTuple):
  """configuration of a recurrent stage."""

  number_of_layers: int = 1
  connection_type: str = "simple"
  hidden_activation: str = "tanh"


class LSSConfig(NamedTuple):
  """sizes of the encoding stages and training hyper-parameters."""

  word_embed_size: int = 50
  pos_embed_size: int = 25
  token_encoding_size: int = 100
  context_config: RNNConfig = RNNConfig(number_of_layers=2)
  heads_config: RNNConfig = RNNConfig()
  seed: int = 0

  learning_rate: float = 0.001
  update_method: str = "adam"
  arc_loss_temperature: float = 0.1
  batch_size: int = 32
  n_epochs: int = 10
  early_stopping_patience: int = 3


# environment overrides, read only for the fields not given explicitly
_ENV_FIELDS = {
  "word_embed_size": ("LSS_WORD_EMBED_SIZE", int),
  "pos_embed_size": ("LSS_POS_EMBED_SIZE", int),
  "token_encoding_size": ("LSS_TOKEN_ENCODING_SIZE", int),
  "seed": ("LSS_SEED", int),
  "learning_rate": ("LSS_LEARNING_RATE", float),
  "update_method": ("LSS_UPDATE_METHOD", str),
  "arc_loss_temperature": ("LSS_ARC_LOSS_TEMPERATURE", float),
  "batch_size": ("LSS_BATCH_SIZE", int),
  "n_epochs": ("LSS_N_EPOCHS", int),
  "early_stopping_patience": ("LSS_EARLY_STOPPING_PATIENCE", int),
}


def validate_rnn_config(name: str, rnn_config: RNNConfig) -> None:
  if rnn_config.number_of_layers not in (1, 2):
    raise ConfigurationError(
      f"{name}: unsupported number of layers {rnn_config.number_of_layers} "
      "(expected 1 or 2)"
    )
  if rnn_config.connection_type not in CONNECTION_TYPES:
    raise ConfigurationError(
      f"{name}: unknown connection type {rnn_config.connection_type!r}"
    )
  if rnn_config.hidden_activation not in ACTIVATIONS:
    raise ConfigurationError(
      f"{name}: unknown hidden activation {rnn_config.hidden_activation!r}"
    )


def validate_config(config: LSSConfig) -> LSSConfig:
  """checks sizes and recurrent configurations, returning the config unchanged."""
  for field in ("word_embed_size", "pos_embed_size", "token_encoding_size"):
    if getattr(config, field) <= 0:
      raise ConfigurationError(f"{field} must be positive, got {getattr(config, field)}")

  # the heads stage is always a single bidirectional layer
  validate_rnn_config("context_config", config.context_config)
  validate_rnn_config("heads_config", config.heads_config)
  if config.heads_config.number_of_layers != 1:
    raise ConfigurationError("heads_config: the heads encoder has exactly one layer")

  if config.update_method not in UPDATE_METHODS:
    raise ConfigurationError(f"unknown update method {config.update_method!r}")
  if config.learning_rate <= 0.0:
    raise ConfigurationError(f"learning_rate must be positive, got {config.learning_rate}")
  if config.arc_loss_temperature <= 0.0:
    raise ConfigurationError("arc_loss_temperature must be positive")
  if config.batch_size <= 0 or config.n_epochs <= 0:
    raise ConfigurationError("batch_size and n_epochs must be positive")

  return config


def create_config(**overrides) -> LSSConfig:
  """factory function reading LSS_* environment variables for the fields not overridden."""
  load_dotenv()

  unknown = set(overrides) - set(LSSConfig._fields)
  if unknown:
    raise ConfigurationError(f"unknown configuration fields: {sorted(unknown)}")

  values = {}
  for field, (env_name, cast) in _ENV_FIELDS.items():
    raw = os.getenv(env_name)
    if field in overrides or raw is None:
      continue
    try:
      values[field] = cast(raw)
    except ValueError as e:
      raise ConfigurationError(f"invalid value for {env_name}: {raw!r}") from e

  values.update(overrides)
  return validate_config(LSSConfig(**values))


def create_update_method(name: str, learning_rate: float) -> optax.GradientTransformation:
  """builds the update rule shared by all the parameter optimizers."""
  if name == "adam":
    return optax.adam(learning_rate)
  if name == "sgd":
    return optax.sgd(learning_rate)
  if name == "adagrad":
    return optax.adagrad(learning_rate)
  if name == "rmsprop":
    return optax.rmsprop(learning_rate)

  raise ConfigurationError(f"unknown update method {name!r}")
