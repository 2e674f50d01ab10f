import logging
import os
from typing import Dict, List

from dotenv import load_dotenv

from lssencoder.config import ROOT_ID
from lssencoder.schema import UNK, AnnotatedSentence, ParserVocab, ParsingSentence, ParsingToken

load_dotenv()

logger = logging.getLogger(__name__)


def load_conll_data(
  file_name: str, lowercase: bool = True, pos_column: int = 3
) -> List[AnnotatedSentence]:
  """
  robust CoNLL(-U-ish) loader.
  - splits on any whitespace (tabs OR spaces)
  - flushes last sentence even if file doesn't end with a blank line
  - skips comments and multiword tokens like 1-2
  - maps the CoNLL root head (0) to ROOT_ID
  """
  data_path = os.getenv("DATA_PATH", "./data")
  full_path = os.path.join(data_path, file_name)

  examples: List[AnnotatedSentence] = []
  tokens: List[ParsingToken] = []
  heads: Dict[int, int] = {}

  def flush():
    nonlocal tokens, heads
    if tokens:
      examples.append(AnnotatedSentence(ParsingSentence(tokens), heads))
      tokens, heads = [], {}

  with open(full_path, "r", encoding="utf-8") as f:
    for line in f:
      line = line.strip()
      if not line:
        flush()
        continue
      if line.startswith("#"):
        continue

      sp = line.split()  # whitespace-agnostic
      if len(sp) < 8:
        flush()
        continue

      tok_id = sp[0]
      if "-" in tok_id or "." in tok_id:
        continue

      token_id = int(tok_id)
      form = sp[1].lower() if lowercase else sp[1]
      h = int(sp[6])

      tokens.append(ParsingToken(id=token_id, form=form, pos=sp[pos_column]))
      heads[token_id] = ROOT_ID if h == 0 else h

  flush()
  logger.info("loaded %d sentences from %s", len(examples), full_path)
  return examples


def build_vocab(train_data: List[AnnotatedSentence]) -> ParserVocab:
  """
  builds the form and POS vocabularies. IDs are contiguous and stable, <UNK>
  takes the last ID of each table.
  """
  unique_words = sorted(
    set((t.form or UNK).lower() for ex in train_data for t in ex.sentence.tokens) - {UNK}
  )
  word2id = {w: i for i, w in enumerate(unique_words)}
  word2id[UNK] = len(word2id)

  unique_pos = sorted(
    set(t.pos for ex in train_data for t in ex.sentence.tokens if t.pos) - {UNK}
  )
  pos2id = {p: i for i, p in enumerate(unique_pos)}
  pos2id[UNK] = len(pos2id)

  logger.info("vocab: %d words, %d POS tags", len(word2id), len(pos2id))
  return ParserVocab(word2id, pos2id)
