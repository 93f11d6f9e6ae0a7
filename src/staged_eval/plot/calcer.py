"""Metric values of a staged model at a sequence of checkpoints.

The calcer walks checkpoints in increasing order and applies the model only to
the stages added since the previous checkpoint, adding that delta into a
running output buffer.

- Additive metrics are evaluated inline on the running buffer and merged into
  a per-checkpoint accumulator, so several dataset parts can be streamed
  through ``proceed_dataset_for_additive_metrics``.
- Non-additive metrics need the full output of a checkpoint over all parts.
  ``proceed_dataset_for_non_additive_metrics`` stores the running buffer of up
  to ``process_iterations_step`` checkpoints on disk, and
  ``finish_proceed_dataset_for_non_additive_metrics`` evaluates them and keeps
  only the last file, which the next batch resumes from.
- ``compute_non_additive_metrics`` evaluates non-additive metrics in one pass
  over parts that are all in memory, without touching disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from staged_eval.constants import EVAL_TOKEN, PARTIAL_STATS_FILE
from staged_eval.data.schemas import (
    DatasetPart,
    get_queries,
    get_start_doc_indices,
    get_target,
    get_weights,
)
from staged_eval.metrics.base import ErrorType, Metric, MetricStats
from staged_eval.metrics.registry import check_metrics, read_loss_function
from staged_eval.model.staged import StagedModel
from staged_eval.plot.approx import append_approx, init_approx_buffer
from staged_eval.plot.checkpoints import build_checkpoints
from staged_eval.plot.report import create_metrics_logger, write_partial_stats
from staged_eval.plot.storage import ApproxReader, ApproxStorage
from staged_eval.utils.logging import get_logger
from staged_eval.utils.parallel import LocalExecutor

logger = get_logger(__name__)


class MetricsPlotCalcer:
    """Incremental per-checkpoint metric evaluator."""

    def __init__(
        self,
        model: StagedModel,
        metrics: Sequence[Metric],
        executor: LocalExecutor,
        tmp_dir: Path,
        first: int,
        last: int,
        step: int,
        process_iterations_step: int = -1,
        delete_tmp_dir_on_exit: bool = True,
        show_progress: bool = False,
    ):
        """Initialize calcer.

        Args:
            model: Staged model to evaluate
            metrics: Metrics in reporting order
            executor: Worker pool for data-parallel loops
            tmp_dir: Directory for stored checkpoint outputs
            first, last, step: Checkpoint range, see ``build_checkpoints``
            process_iterations_step: Checkpoints per non-additive batch,
                non-positive means all checkpoints in one batch
            delete_tmp_dir_on_exit: Remove ``tmp_dir`` on ``close`` if created here
            show_progress: Show a progress bar over checkpoints
        """
        self.model = model
        self.executor = executor
        self.first = first
        self.last = last
        self.step = step
        self.checkpoints: List[int] = build_checkpoints(first, last, step)
        if process_iterations_step <= 0:
            process_iterations_step = len(self.checkpoints)
        self.process_iterations_step = process_iterations_step
        self.processed_iterations_count = 0
        self.show_progress = show_progress

        self.additive_metrics: List[Metric] = []
        self.additive_metric_indices: List[int] = []
        self.non_additive_metrics: List[Metric] = []
        self.non_additive_metric_indices: List[int] = []
        for metric_idx, metric in enumerate(metrics):
            if metric.is_additive:
                self.additive_metrics.append(metric)
                self.additive_metric_indices.append(metric_idx)
            else:
                if metric.error_type != ErrorType.PER_OBJECT:
                    raise ValueError(
                        f"Non-additive querywise and pairwise metrics are not supported: {metric.description}"
                    )
                self.non_additive_metrics.append(metric)
                self.non_additive_metric_indices.append(metric_idx)

        self.additive_metric_plots: List[List[MetricStats]] = [
            [MetricStats() for _ in self.checkpoints] for _ in self.additive_metrics
        ]
        self.non_additive_metric_plots: List[List[MetricStats]] = [
            [MetricStats() for _ in self.checkpoints] for _ in self.non_additive_metrics
        ]

        self._non_additive_targets: List[np.ndarray] = []
        self._non_additive_weights: List[np.ndarray] = []
        self._storage = ApproxStorage(tmp_dir, model.approx_dimension, delete_tmp_dir_on_exit)
        self._last_approx_reader: Optional[ApproxReader] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def metrics(self) -> List[Metric]:
        """All metrics in construction order."""
        ordered: List[Optional[Metric]] = [None] * (len(self.additive_metrics) + len(self.non_additive_metrics))
        for metric, idx in zip(self.additive_metrics, self.additive_metric_indices):
            ordered[idx] = metric
        for metric, idx in zip(self.non_additive_metrics, self.non_additive_metric_indices):
            ordered[idx] = metric
        return ordered

    @property
    def storage(self) -> ApproxStorage:
        return self._storage

    def has_additive_metrics(self) -> bool:
        return bool(self.additive_metrics)

    def has_non_additive_metrics(self) -> bool:
        return bool(self.non_additive_metrics)

    def are_all_iterations_processed(self) -> bool:
        return self.processed_iterations_count == len(self.checkpoints)

    def _next_batch(self) -> Tuple[int, int]:
        begin = self.processed_iterations_count
        end = min(begin + self.process_iterations_step, len(self.checkpoints))
        return begin, end

    # ------------------------------------------------------------------
    # Additive path
    # ------------------------------------------------------------------
    def proceed_dataset_for_additive_metrics(self, part: DatasetPart) -> "MetricsPlotCalcer":
        self._proceed_dataset(part, 0, len(self.checkpoints), is_additive=True)
        return self

    def _compute_additive_metrics(
        self,
        approx: np.ndarray,
        target: np.ndarray,
        weights: np.ndarray,
        queries: Sequence,
        plot_index: int,
    ) -> None:
        doc_count = len(target)
        query_count = len(queries)
        for metric_id, metric in enumerate(self.additive_metrics):
            if metric.error_type == ErrorType.PER_OBJECT:
                result = metric.evaluate(approx, target, weights, queries, 0, doc_count, self.executor)
            else:
                result = metric.evaluate(approx, target, weights, queries, 0, query_count, self.executor)
            slot = self.additive_metric_plots[metric_id]
            slot[plot_index] = metric.merge(slot[plot_index], result)

    # ------------------------------------------------------------------
    # Non-additive path backed by storage
    # ------------------------------------------------------------------
    @property
    def non_additive_target(self) -> np.ndarray:
        if not self._non_additive_targets:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self._non_additive_targets)

    @property
    def non_additive_weights(self) -> np.ndarray:
        if not self._non_additive_weights:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self._non_additive_weights)

    def proceed_dataset_for_non_additive_metrics(self, part: DatasetPart) -> "MetricsPlotCalcer":
        """Store the running outputs of the next batch of checkpoints for ``part``."""
        if self.processed_iterations_count == 0:
            self._non_additive_targets.append(get_target(part))
            self._non_additive_weights.append(get_weights(part))
        begin, end = self._next_batch()
        self._proceed_dataset(part, begin, end, is_additive=False)
        return self

    def finish_proceed_dataset_for_non_additive_metrics(self) -> "MetricsPlotCalcer":
        """Evaluate the stored batch and prepare the next one."""
        if self._last_approx_reader is not None:
            self._last_approx_reader.close()
            self._last_approx_reader = None
        begin, end = self._next_batch()
        self._compute_non_additive_metrics_range(begin, end)
        self.processed_iterations_count = end
        logger.info(
            "Processed non-additive metrics for %d/%d checkpoints",
            self.processed_iterations_count,
            len(self.checkpoints),
        )
        if self.are_all_iterations_processed():
            self._storage.delete(end - 1)
        else:
            self._last_approx_reader = self._storage.open_reader(end - 1)
        return self

    def _compute_non_additive_metrics_range(self, begin: int, end: int) -> None:
        target = self.non_additive_target
        weights = self.non_additive_weights
        doc_count = len(target)
        for idx in range(begin, end):
            approx = self._storage.load(idx, doc_count)
            for metric_id, metric in enumerate(self.non_additive_metrics):
                self.non_additive_metric_plots[metric_id][idx] = metric.evaluate(
                    approx, target, weights, (), 0, doc_count, self.executor
                )
            if idx != 0:
                self._storage.delete(idx - 1)

    # ------------------------------------------------------------------
    # Non-additive path in memory
    # ------------------------------------------------------------------
    def compute_non_additive_metrics(self, parts: Sequence[DatasetPart]) -> "MetricsPlotCalcer":
        """Evaluate non-additive metrics over ``parts`` held in memory, in one pass."""
        target = np.concatenate([get_target(part) for part in parts])
        weights = np.concatenate([get_weights(part) for part in parts])
        doc_count = len(target)
        cur_approx = init_approx_buffer(self.model.approx_dimension, parts, init_baseline_if_available=True)
        start_doc_indices = get_start_doc_indices(parts)

        stage_begin = 0
        for idx in self._progress(range(len(self.checkpoints)), "Non-additive metrics"):
            stage_end = self.checkpoints[idx] + 1
            for part, start_doc in zip(parts, start_doc_indices):
                delta = self.model.apply(part.features, stage_begin, stage_end, self.executor)
                append_approx(delta, cur_approx, start_doc, self.executor)
            for metric_id, metric in enumerate(self.non_additive_metrics):
                self.non_additive_metric_plots[metric_id][idx] = metric.evaluate(
                    cur_approx, target, weights, (), 0, doc_count, self.executor
                )
            stage_begin = stage_end
        self.processed_iterations_count = len(self.checkpoints)
        return self

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------
    def _proceed_dataset(self, part: DatasetPart, begin_index: int, end_index: int, is_additive: bool) -> None:
        if begin_index >= end_index:
            logger.info("No checkpoints left to process in [%d, %d)", begin_index, end_index)
            return
        cur_approx = init_approx_buffer(
            self.model.approx_dimension, [part], init_baseline_if_available=begin_index == 0
        )
        if begin_index == 0:
            stage_begin = 0
        else:
            if self._last_approx_reader is None:
                raise ValueError(
                    f"Cannot resume from checkpoint index {begin_index}: no stored output of the previous batch"
                )
            cur_approx[:, :] = self._last_approx_reader.read(part.doc_count)
            stage_begin = self.checkpoints[begin_index - 1] + 1

        target = get_target(part)
        weights = get_weights(part)
        queries = get_queries(part)
        logger.debug(
            "Accumulating checkpoints [%d, %d) over %d documents (additive=%s)",
            begin_index,
            end_index,
            part.doc_count,
            is_additive,
        )
        for idx in self._progress(range(begin_index, end_index), "Checkpoints"):
            stage_end = self.checkpoints[idx] + 1
            delta = self.model.apply(part.features, stage_begin, stage_end, self.executor)
            append_approx(delta, cur_approx, 0, self.executor)
            if is_additive:
                self._compute_additive_metrics(cur_approx, target, weights, queries, idx)
            else:
                self._storage.save(idx, cur_approx)
            stage_begin = stage_end

    def _progress(self, iterable, desc: str):
        return tqdm(iterable, desc=desc, leave=False, disable=not self.show_progress)

    # ------------------------------------------------------------------
    # Scores and reporting
    # ------------------------------------------------------------------
    def get_metrics_score(self) -> List[List[float]]:
        """Final scores as ``scores[metric_index][checkpoint_index]``."""
        metric_count = len(self.additive_metrics) + len(self.non_additive_metrics)
        scores = [[float("nan")] * len(self.checkpoints) for _ in range(metric_count)]
        for i in range(len(self.checkpoints)):
            for metric_id, metric in enumerate(self.additive_metrics):
                scores[self.additive_metric_indices[metric_id]][i] = metric.finalize(
                    self.additive_metric_plots[metric_id][i]
                )
            for metric_id, metric in enumerate(self.non_additive_metrics):
                scores[self.non_additive_metric_indices[metric_id]][i] = metric.finalize(
                    self.non_additive_metric_plots[metric_id][i]
                )
        return scores

    def partial_stats_header(self) -> List[str]:
        header = ["iter"]
        for metric in self.additive_metrics + self.non_additive_metrics:
            header.extend(metric.stat_descriptions())
        return header

    def partial_stats_rows(self) -> List[List[float]]:
        rows = []
        plots = list(zip(self.additive_metrics, self.additive_metric_plots)) + list(
            zip(self.non_additive_metrics, self.non_additive_metric_plots)
        )
        for i, checkpoint in enumerate(self.checkpoints):
            row: List = [checkpoint]
            for metric, plot in plots:
                stats = plot[i]
                if stats.is_empty:
                    row.extend([float("nan")] * len(metric.stat_names))
                else:
                    row.extend(float(value) for value in stats.stats)
            rows.append(row)
        return rows

    def save_result(
        self,
        result_dir: Path,
        metrics_file: str,
        save_metrics: bool = True,
        save_stats: bool = False,
        tensorboard: bool = True,
        token: str = EVAL_TOKEN,
    ) -> "MetricsPlotCalcer":
        result_dir = Path(result_dir)
        result_dir.mkdir(parents=True, exist_ok=True)

        if save_stats:
            write_partial_stats(result_dir / PARTIAL_STATS_FILE, self.partial_stats_header(), self.partial_stats_rows())

        metrics = self.metrics
        descriptions = [metric.description for metric in metrics]
        results = self.get_metrics_score()
        metrics_logger = create_metrics_logger(
            token,
            result_dir,
            metrics_file,
            len(self.checkpoints),
            save_metrics,
            descriptions,
            tensorboard=tensorboard,
        )
        with metrics_logger:
            for i, checkpoint in enumerate(self.checkpoints):
                values = [(descriptions[m], results[m][i]) for m in range(len(metrics))]
                metrics_logger.log_iteration(token, checkpoint, values)
        logger.info("Saved metric scores for %d checkpoints to %s", len(self.checkpoints), result_dir)
        return self

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Release stored outputs; safe to call more than once."""
        if self._last_approx_reader is not None:
            self._last_approx_reader.close()
            self._last_approx_reader = None
        self._storage.cleanup()

    def __enter__(self) -> "MetricsPlotCalcer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def create_metric_calcer(
    model: StagedModel,
    begin: int,
    end: int,
    eval_period: int,
    process_iterations_step: int,
    executor: LocalExecutor,
    tmp_dir: Path,
    metrics: Sequence[Metric],
    delete_tmp_dir_on_exit: bool = True,
    show_progress: bool = False,
) -> MetricsPlotCalcer:
    """Build a calcer, resolving ``end == 0`` to the model's stage count.

    Metrics are checked against the loss function recorded in ``model.model_info``.
    """
    check_metrics(metrics, read_loss_function(getattr(model, "model_info", {}) or {}))
    if end == 0:
        end = model.stage_count
    else:
        end = min(end, model.stage_count)
    if eval_period > end - begin:
        eval_period = end - begin
    return MetricsPlotCalcer(
        model,
        metrics,
        executor,
        tmp_dir,
        begin,
        end,
        eval_period,
        process_iterations_step,
        delete_tmp_dir_on_exit=delete_tmp_dir_on_exit,
        show_progress=show_progress,
    )
