import pytest

from lssencoder.config import RNNConfig, create_config
from lssencoder.encoder import LSSEncoder
from lssencoder.lss_model import LSSModel
from lssencoder.schema import UNK, ParserVocab, ParsingSentence, ParsingToken


@pytest.fixture
def vocab():
  return ParserVocab(
    word2id={"the": 0, "cat": 1, ",": 2, "sleeps": 3, UNK: 4},
    pos2id={"DET": 0, "NOUN": 1, "PUNCT": 2, "VERB": 3, UNK: 4},
  )


@pytest.fixture
def small_config():
  return create_config(
    word_embed_size=6,
    pos_embed_size=3,
    token_encoding_size=4,
    context_config=RNNConfig(number_of_layers=2),
    heads_config=RNNConfig(),
    seed=42,
  )


@pytest.fixture
def model(small_config, vocab):
  return LSSModel(small_config, vocab)


@pytest.fixture
def encoder(model):
  return LSSEncoder(model, id=1)


@pytest.fixture
def sentence():
  """three tokens with non-contiguous ids, the middle one is punctuation."""
  return ParsingSentence(
    [
      ParsingToken(id=5, form="the", pos="DET"),
      ParsingToken(id=7, form=",", pos="PUNCT"),
      ParsingToken(id=9, form="cat", pos="NOUN"),
    ]
  )
