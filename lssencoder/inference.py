import logging
from typing import List

from lssencoder.decoder import HeadsDecoder
from lssencoder.encoder import LSSEncoder
from lssencoder.errors import ScoringError
from lssencoder.schema import AnnotatedSentence

logger = logging.getLogger(__name__)


def calculate_uas(
  encoder: LSSEncoder, decoder: HeadsDecoder, sentences: List[AnnotatedSentence]
) -> float:
  """
  unlabeled attachment score of the highest scoring governor of each token.
  no tree is built: every token independently takes its best governor.
  sentences that cannot be scored count as wrong.
  """
  total_correct = 0
  total_tokens = 0

  for example in sentences:
    total_tokens += len(example.sentence)
    lss = encoder.encode(example.sentence, train=False)

    try:
      scored_arcs = decoder.decode(lss)
    except ScoringError as e:
      logger.warning("sentence of %d tokens not scored: %s", len(example.sentence), e)
      continue

    for token in example.sentence.tokens:
      governor_id, _ = scored_arcs.find_highest_scoring_head(token.id)
      total_correct += int(governor_id == example.heads[token.id])

  return float(total_correct) / float(total_tokens) if total_tokens else 0.0
