from lssencoder.config import ROOT_ID, LSSConfig, RNNConfig, create_config, create_update_method
from lssencoder.decoder import CosineDecoder, HeadsDecoder
from lssencoder.encoder import LSSEncoder
from lssencoder.lss_model import LSSModel
from lssencoder.optimizer import LSSOptimizer, ParamsOptimizer
from lssencoder.schema import (
  LatentSyntacticStructure,
  LSSParameters,
  OutputErrors,
  ParserVocab,
  ParsingSentence,
  ParsingToken,
  ScoredArcs,
)
