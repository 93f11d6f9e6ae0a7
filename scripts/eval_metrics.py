#!/usr/bin/env python3
"""Compute metric values of a staged model at a range of checkpoints."""

from __future__ import annotations

import argparse
from pathlib import Path

from staged_eval.config import load_eval_config
from staged_eval.evaluate import run_evaluation
from staged_eval.utils.logging import configure_logging, get_logger

logger = get_logger("staged_eval.scripts.eval_metrics")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", type=str, default="configs/default.yaml")
    parser.add_argument("--model", type=str, default=None)
    parser.add_argument("--dataset", type=str, action="append", default=None,
                        help="Dataset part; repeat for several parts")
    parser.add_argument("--metric", type=str, action="append", default=None,
                        help="Metric description, e.g. NDCG:top=5; repeat for several")
    parser.add_argument("--first", type=int, default=None)
    parser.add_argument("--last", type=int, default=None)
    parser.add_argument("--step", type=int, default=None)
    parser.add_argument("--process_iterations_step", type=int, default=None)
    parser.add_argument("--result_dir", type=str, default=None)
    parser.add_argument("--tmp_dir", type=str, default=None)
    parser.add_argument("--thread_count", type=int, default=None)
    parser.add_argument("--save_stats", action="store_true")
    parser.add_argument("--no_tensorboard", action="store_true")
    parser.add_argument("--in_memory", action="store_true", help="Evaluate non-additive metrics in memory")
    parser.add_argument("--progress", action="store_true")
    parser.add_argument("--log_file", type=str, default=None)
    args = parser.parse_args()

    config = load_eval_config(Path(args.config))
    if args.model is not None:
        config.model_path = Path(args.model)
    if args.dataset:
        config.dataset_paths = [Path(p) for p in args.dataset]
    if args.metric:
        config.metrics = list(args.metric)
    for key in ("first", "last", "step", "process_iterations_step", "thread_count"):
        value = getattr(args, key)
        if value is not None:
            setattr(config, key, value)
    if args.result_dir is not None:
        config.result_dir = Path(args.result_dir)
    if args.tmp_dir is not None:
        config.tmp_dir = Path(args.tmp_dir)
    if args.save_stats:
        config.save_stats = True
    if args.no_tensorboard:
        config.tensorboard = False
    if args.in_memory:
        config.non_additive_in_memory = True
    if args.progress:
        config.show_progress = True

    configure_logging(config.log_level, Path(args.log_file) if args.log_file else None)
    scores = run_evaluation(config)
    logger.info("Scores at iteration %d: %s", scores.index[-1], scores.iloc[-1].to_dict())
    print(scores.to_string(float_format=lambda v: f"{v:.6f}"))


if __name__ == "__main__":
    main()
