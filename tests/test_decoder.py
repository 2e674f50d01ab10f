import math

import jax.numpy as jnp
import numpy as np
import pytest

from lssencoder.config import ROOT_ID
from lssencoder.decoder import (
  CosineDecoder,
  HeadsDecoder,
  normalize,
  normalize_structure,
  rescale,
)
from lssencoder.errors import ScoringError
from lssencoder.schema import LatentSyntacticStructure, ParsingSentence, ParsingToken


def _lss(sentence, context_vectors, latent_heads, virtual_root):
  return LatentSyntacticStructure(
    sentence=sentence,
    tokens_encodings=tuple(jnp.zeros(2) for _ in sentence.tokens),
    context_vectors=tuple(jnp.array(v, dtype=jnp.float32) for v in context_vectors),
    latent_heads=tuple(jnp.array(v, dtype=jnp.float32) for v in latent_heads),
    virtual_root=jnp.array(virtual_root, dtype=jnp.float32),
  )


@pytest.fixture
def lss(sentence):
  """
  ids 5, 7 (punctuation), 9 with hand-picked non-negative vectors.
  """
  return _lss(
    sentence,
    context_vectors=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]],
    latent_heads=[[1.0, 1.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]],
    virtual_root=[2.0, 0.0, 0.0],
  )


class TestRescale:
  def test_bounds(self):
    assert rescale(1.0) == pytest.approx(math.pi / 2)
    assert rescale(0.0) == pytest.approx(0.0)
    assert rescale(-1.0) == pytest.approx(-math.pi / 2)

  def test_monotonic(self):
    similarities = np.linspace(-1.0, 1.0, 41)
    rescaled = [rescale(float(s)) for s in similarities]
    assert all(a < b for a, b in zip(rescaled, rescaled[1:]))

  def test_out_of_range_rounding_is_clipped(self):
    assert rescale(1.0000001) == pytest.approx(math.pi / 2)


class TestNormalize:
  def test_unit_length(self):
    assert float(jnp.linalg.norm(normalize(jnp.array([3.0, 4.0])))) == pytest.approx(1.0)

  def test_zero_vector(self):
    assert bool(jnp.all(normalize(jnp.zeros(3)) == 0.0))

  def test_structure_copy_leaves_original(self, lss):
    normalized = normalize_structure(lss)

    assert float(jnp.linalg.norm(normalized.virtual_root)) == pytest.approx(1.0)
    assert float(jnp.linalg.norm(lss.virtual_root)) == pytest.approx(2.0)
    assert normalized.sentence is lss.sentence
    assert normalized.tokens_encodings is lss.tokens_encodings


class TestCosineDecoder:
  def test_is_a_heads_decoder(self):
    assert isinstance(CosineDecoder(), HeadsDecoder)

  def test_distributions(self, lss):
    arcs = CosineDecoder().decode(lss)

    assert set(arcs.scores) == {5, 7, 9}
    for dependent_id, scores in arcs.scores.items():
      assert set(scores) == ({5, 7, 9} - {dependent_id}) | {ROOT_ID}
      assert sum(scores.values()) == pytest.approx(1.0)
      assert all(s >= 0.0 for s in scores.values())

  def test_punctuation_root_score(self, lss):
    similarities = CosineDecoder().similarity_scores(lss)
    assert similarities[7][ROOT_ID] == 0.0

    arcs = CosineDecoder().decode(lss)
    assert arcs.scores[7][ROOT_ID] == 0.0
    # 3pi/4 and 2pi/3 normalized
    assert arcs.scores[7][5] == pytest.approx(9.0 / 17.0, abs=1e-5)
    assert arcs.scores[7][9] == pytest.approx(8.0 / 17.0, abs=1e-5)

  def test_root_score_of_words(self, lss):
    similarities = CosineDecoder().similarity_scores(lss)
    assert similarities[5][ROOT_ID] == pytest.approx(1.0 / math.sqrt(3.0), abs=1e-6)
    assert similarities[9][ROOT_ID] == pytest.approx(0.0, abs=1e-6)

  def test_governor_scores_are_asymmetric(self, lss):
    similarities = CosineDecoder().similarity_scores(lss)
    # context of 9 against the head of 5, and context of 5 against the head of 9
    assert similarities[5][9] == pytest.approx(2.0 / math.sqrt(6.0), abs=1e-6)
    assert similarities[9][5] == pytest.approx(0.0, abs=1e-6)

  def test_formless_token_has_no_root_score(self):
    sentence = ParsingSentence([ParsingToken(id=1, form="cat"), ParsingToken(id=2)])
    lss = _lss(sentence, [[1.0, 0.0], [1.0, 1.0]], [[1.0, 1.0], [1.0, 0.0]], [1.0, 0.0])

    similarities = CosineDecoder().similarity_scores(lss)
    assert similarities[2][ROOT_ID] == 0.0
    assert similarities[1][ROOT_ID] == pytest.approx(1.0 / math.sqrt(2.0), abs=1e-6)

  def test_single_token_sentence(self):
    sentence = ParsingSentence([ParsingToken(id=3, form="sleeps")])
    lss = _lss(sentence, [[1.0, 0.0]], [[1.0, 1.0]], [0.0, 3.0])

    assert CosineDecoder().decode(lss).scores == {3: {ROOT_ID: pytest.approx(1.0)}}

  def test_opposite_governor_gets_no_probability(self):
    sentence = ParsingSentence([ParsingToken(id=1, form="cat"), ParsingToken(id=2, form="runs")])
    lss = _lss(sentence, [[1.0, 0.0], [-1.0, 0.0]], [[1.0, 0.0], [1.0, 0.0]], [1.0, 1.0])

    arcs = CosineDecoder().decode(lss)
    assert arcs.scores[1][2] == pytest.approx(0.0, abs=1e-7)
    assert arcs.scores[1][ROOT_ID] == pytest.approx(1.0)

  def test_degenerate_distribution(self):
    # punctuation with a single governor exactly opposite to its latent head
    sentence = ParsingSentence([ParsingToken(id=1, form="cat"), ParsingToken(id=2, form=".")])
    lss = _lss(sentence, [[-1.0, 0.0], [0.0, 1.0]], [[0.0, 1.0], [1.0, 0.0]], [1.0, 0.0])

    with pytest.raises(ScoringError):
      CosineDecoder().decode(lss)

  def test_lone_punctuation_token(self):
    sentence = ParsingSentence([ParsingToken(id=4, form="!", pos="PUNCT")])
    lss = _lss(sentence, [[1.0, 0.0]], [[1.0, 1.0]], [1.0, 0.0])

    with pytest.raises(ScoringError):
      CosineDecoder().decode(lss)

  def test_similarity_matrix_matches_pairwise_cosines(self, lss):
    similarities = CosineDecoder().similarity_scores(lss)
    lss_norm = normalize_structure(lss)

    for d, dependent in enumerate(lss.sentence.tokens):
      for g, governor in enumerate(lss.sentence.tokens):
        if governor.id == dependent.id:
          continue
        expected = float(jnp.dot(lss_norm.latent_heads[d], lss_norm.context_vectors[g]))
        assert similarities[dependent.id][governor.id] == pytest.approx(expected, abs=1e-6)

  def test_does_not_mutate_the_structure(self, lss):
    root_before = lss.virtual_root
    CosineDecoder().decode(lss)
    assert lss.virtual_root is root_before
    assert float(jnp.linalg.norm(lss.virtual_root)) == pytest.approx(2.0)

  def test_highest_scoring_head(self, lss):
    arcs = CosineDecoder().decode(lss)

    assert arcs.find_highest_scoring_head(9)[0] == 7
    assert arcs.find_highest_scoring_head(7)[0] == 5
    assert arcs.find_highest_scoring_head(7, except_ids=(5, 9, ROOT_ID)) is None
    assert arcs.get_heads_map(5) is arcs.scores[5]


class TestDecodeEncoderOutput:
  def test_scores_of_an_encoded_sentence(self, encoder, sentence):
    arcs = CosineDecoder().decode(encoder.encode(sentence))

    assert set(arcs.scores) == {5, 7, 9}
    assert arcs.scores[7][ROOT_ID] == 0.0
    assert sum(arcs.scores[7].values()) == pytest.approx(1.0, abs=1e-6)
    for dependent_id in (5, 9):
      assert len(arcs.scores[dependent_id]) == 3
      assert sum(arcs.scores[dependent_id].values()) == pytest.approx(1.0, abs=1e-6)
    for scores in arcs.scores.values():
      assert all(s >= 0.0 for s in scores.values())

  def test_negative_similarities_keep_some_probability(self, encoder, sentence):
    lss = encoder.encode(sentence)
    similarities = CosineDecoder().similarity_scores(lss)
    arcs = CosineDecoder().decode(lss)

    for dependent_id, scores in similarities.items():
      for governor_id, similarity in scores.items():
        if governor_id != ROOT_ID and -1.0 < similarity < 0.0:
          assert arcs.scores[dependent_id][governor_id] > 0.0
