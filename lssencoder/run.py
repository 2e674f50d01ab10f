import logging
import os
import random
from collections import defaultdict

import jax
import jax.numpy as jnp
import numpy as np
from dotenv import load_dotenv

from lssencoder.config import create_config, create_update_method
from lssencoder.data_loader import build_vocab, load_conll_data
from lssencoder.decoder import CosineDecoder
from lssencoder.encoder import LSSEncoder
from lssencoder.inference import calculate_uas
from lssencoder.lss_model import LSSModel
from lssencoder.optimizer import LSSOptimizer, ParamsOptimizer
from lssencoder.training import compute_output_errors

logger = logging.getLogger(__name__)


def train_epoch(encoder, optimizer, root_optimizer, train_sentences, config, rng):
  """
  one pass over the training sentences, updating the model every batch_size
  sentences. returns the mean loss.
  """
  losses = []
  order = list(range(len(train_sentences)))
  rng.shuffle(order)

  for step, idx in enumerate(order, start=1):
    example = train_sentences[idx]

    lss = encoder.encode(example.sentence)
    output = compute_output_errors(lss, example.heads, config.arc_loss_temperature)
    encoder.propagate_errors(output.output_errors)

    # a single accumulation per propagation, references are enough
    optimizer.accumulate(encoder.collect_parameter_errors(copy=False), copy=False)
    root_optimizer.accumulate(output.root_errors, copy=False)
    losses.append(output.loss)

    if step % config.batch_size == 0 or step == len(order):
      optimizer.update()
      root_optimizer.update()

  return float(np.mean(losses)) if losses else float("nan")


def main():
  logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )

  load_dotenv()
  data_path = os.getenv("DATA_PATH", "./data")
  logger.info("loading data from %s...", data_path)

  train_sentences = load_conll_data("train.conll")
  dev_sentences = load_conll_data("dev.conll")
  test_sentences = load_conll_data("test.conll")

  logger.info(
    "train sentences: %d | dev: %d | test: %d",
    len(train_sentences),
    len(dev_sentences),
    len(test_sentences),
  )

  vocab = build_vocab(train_sentences)
  config = create_config()
  model = LSSModel(config, vocab)

  update_method = create_update_method(config.update_method, config.learning_rate)
  encoder = LSSEncoder(model)
  decoder = CosineDecoder()
  optimizer = LSSOptimizer(model, update_method)
  root_optimizer = ParamsOptimizer(model, "root_embedding", update_method)

  metrics = defaultdict(list)
  best_uas = 0.0
  best_params = None
  patience_counter = 0
  rng = random.Random(config.seed)

  for epoch in range(1, config.n_epochs + 1):
    avg_loss = train_epoch(encoder, optimizer, root_optimizer, train_sentences, config, rng)
    current_uas = calculate_uas(encoder, decoder, dev_sentences)

    # track metrics
    metrics["train_loss"].append(avg_loss)
    metrics["dev_uas"].append(current_uas)

    logger.info(
      "epoch %d | loss: %.4f | dev UAS: %.2f%%", epoch, avg_loss, current_uas * 100.0
    )

    if current_uas > best_uas:
      best_uas = current_uas
      best_params = jax.tree_util.tree_map(jnp.copy, model.params)
      logger.info("  -> new best UAS: %.2f%%", best_uas * 100.0)
      patience_counter = 0
    else:
      patience_counter += 1
      if patience_counter >= config.early_stopping_patience:
        logger.info(
          "early stopping triggered after %d epochs without improvement",
          config.early_stopping_patience,
        )
        break

  if best_params is not None:
    logger.info("restoring best parameters for final testing...")
    model.params.update(best_params)

  test_uas = calculate_uas(encoder, decoder, test_sentences)

  logger.info("")
  logger.info("=" * 60)
  logger.info("training summary:")
  logger.info("  best dev UAS: %.2f%%", best_uas * 100.0)
  logger.info("  final test UAS: %.2f%%", test_uas * 100.0)
  logger.info("  total epochs: %d", len(metrics["train_loss"]))
  logger.info("=" * 60)


if __name__ == "__main__":
  main()
