"""Evaluation runner API."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from staged_eval.config import EvalConfig, load_eval_config
from staged_eval.data.io import load_dataset_parts
from staged_eval.data.schemas import DatasetPart
from staged_eval.metrics.registry import create_metrics
from staged_eval.model.staged import StagedModel, load_model
from staged_eval.plot.calcer import MetricsPlotCalcer, create_metric_calcer
from staged_eval.utils.logging import get_logger
from staged_eval.utils.parallel import LocalExecutor

logger = get_logger(__name__)


def scores_to_frame(calcer: MetricsPlotCalcer) -> pd.DataFrame:
    """Scores as a frame indexed by checkpoint, one column per metric."""
    scores = calcer.get_metrics_score()
    columns = [metric.description for metric in calcer.metrics]
    return pd.DataFrame(
        np.asarray(scores, dtype=np.float64).T,
        index=pd.Index(calcer.checkpoints, name="iteration"),
        columns=columns,
    )


def compute_metric_plots(
    calcer: MetricsPlotCalcer,
    parts: Sequence[DatasetPart],
    non_additive_in_memory: bool = False,
) -> MetricsPlotCalcer:
    """Run the additive pass and the non-additive path over ``parts``."""
    if calcer.has_additive_metrics():
        for part_idx, part in enumerate(parts):
            logger.info("Additive metrics: part %d/%d (%d documents)", part_idx + 1, len(parts), part.doc_count)
            calcer.proceed_dataset_for_additive_metrics(part)

    if calcer.has_non_additive_metrics():
        if non_additive_in_memory:
            logger.info("Non-additive metrics: evaluating %d parts in memory", len(parts))
            calcer.compute_non_additive_metrics(parts)
        else:
            while not calcer.are_all_iterations_processed():
                for part in parts:
                    calcer.proceed_dataset_for_non_additive_metrics(part)
                calcer.finish_proceed_dataset_for_non_additive_metrics()
    return calcer


def evaluate_model(
    model: StagedModel,
    parts: Sequence[DatasetPart],
    metric_descriptions: Sequence[str],
    config: EvalConfig,
) -> pd.DataFrame:
    metrics = create_metrics(metric_descriptions)
    with LocalExecutor(thread_count=config.thread_count) as executor:
        calcer = create_metric_calcer(
            model,
            config.first,
            config.last,
            config.step,
            config.process_iterations_step,
            executor,
            config.tmp_dir,
            metrics,
            delete_tmp_dir_on_exit=config.delete_tmp_dir_on_exit,
            show_progress=config.show_progress,
        )
        try:
            compute_metric_plots(calcer, parts, non_additive_in_memory=config.non_additive_in_memory)
            calcer.save_result(
                config.result_dir,
                config.metrics_file,
                save_metrics=config.save_metrics,
                save_stats=config.save_stats,
                tensorboard=config.tensorboard,
            )
            return scores_to_frame(calcer)
        finally:
            calcer.close()


def run_evaluation(config: EvalConfig, parts: Optional[List[DatasetPart]] = None) -> pd.DataFrame:
    """Evaluate the configured model at every checkpoint.

    Args:
        config: Evaluation settings
        parts: Dataset parts already in memory; loaded from
            ``config.dataset_paths`` when omitted

    Returns:
        Scores indexed by checkpoint iteration, one column per metric
    """
    model = load_model(config.model_path)
    if parts is None:
        parts = load_dataset_parts(config.dataset_paths)
    logger.info(
        "Evaluating %d metrics over %d parts (%d documents)",
        len(config.metrics),
        len(parts),
        sum(part.doc_count for part in parts),
    )
    return evaluate_model(model, parts, config.metrics, config)


def run_from_config(config_path: Path) -> pd.DataFrame:
    return run_evaluation(load_eval_config(config_path))
