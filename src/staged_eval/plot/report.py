"""Result reporting for per-checkpoint metric scores.

Backends:
- ErrorFileLoggingBackend: tab-separated metric log, one row per iteration
- JsonLoggingBackend: structured log with a meta block
- TensorBoardLoggingBackend: scalar summaries for dashboards
"""

from __future__ import annotations

import csv
import json
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from staged_eval.constants import JSON_LOG_FILE, LAUNCH_MODE
from staged_eval.utils.logging import get_logger

try:
    from torch.utils.tensorboard import SummaryWriter
    HAS_TENSORBOARD = True
except ImportError:
    HAS_TENSORBOARD = False

logger = get_logger(__name__)

MetricValues = List[Tuple[str, float]]


class LoggingBackend(ABC):
    """Receives the metric values of one iteration at a time."""

    @abstractmethod
    def write_iteration(self, token: str, iteration: int, values: MetricValues) -> None:
        pass

    def close(self) -> None:
        pass


class ErrorFileLoggingBackend(LoggingBackend):
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._header_written = False
        self._file = open(self.path, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file, delimiter="\t")

    def write_iteration(self, token: str, iteration: int, values: MetricValues) -> None:
        if not self._header_written:
            self._writer.writerow(["iter"] + [description for description, _ in values])
            self._header_written = True
        self._writer.writerow([iteration] + [_format_value(value) for _, value in values])

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


class JsonLoggingBackend(LoggingBackend):
    """Collects iterations and writes ``{"meta": ..., "iterations": [...]}`` on ``close``."""

    def __init__(self, path: Path, meta: Dict[str, Any]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.meta = meta
        self.iterations: List[Dict[str, Any]] = []

    def write_iteration(self, token: str, iteration: int, values: MetricValues) -> None:
        self.iterations.append(
            {
                "iteration": iteration,
                token: [None if math.isnan(value) else value for _, value in values],
            }
        )

    def _dump(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"meta": self.meta, "iterations": self.iterations}, f, indent=2)

    def close(self) -> None:
        self._dump()


class TensorBoardLoggingBackend(LoggingBackend):
    def __init__(self, log_dir: Path):
        if not HAS_TENSORBOARD:
            raise ImportError("torch with tensorboard is required for the TensorBoard backend")
        self.log_dir = Path(log_dir)
        self._writer: Optional[SummaryWriter] = SummaryWriter(str(self.log_dir))

    def write_iteration(self, token: str, iteration: int, values: MetricValues) -> None:
        if self._writer is None:
            return
        for description, value in values:
            self._writer.add_scalar(f"{token}/{description}", value, iteration)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.flush()
            self._writer.close()
            self._writer = None


class MetricsLogger:
    """Fans iteration results out to the backends registered for a token."""

    def __init__(self) -> None:
        self._backends: List[Tuple[str, LoggingBackend]] = []

    def add_backend(self, token: str, backend: LoggingBackend) -> None:
        self._backends.append((token, backend))

    @property
    def backends(self) -> List[LoggingBackend]:
        return [backend for _, backend in self._backends]

    def log_iteration(self, token: str, iteration: int, values: MetricValues) -> None:
        for backend_token, backend in self._backends:
            if backend_token == token:
                backend.write_iteration(token, iteration, values)

    def close(self) -> None:
        for _, backend in self._backends:
            backend.close()

    def __enter__(self) -> "MetricsLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_json_meta(iteration_count: int, metric_descriptions: Sequence[str], token: str) -> Dict[str, Any]:
    return {
        "test_sets": [token],
        "learn_sets": [],
        "test_metrics": [{"name": description} for description in metric_descriptions],
        "learn_metrics": [],
        "iteration_count": iteration_count,
        "launch_mode": LAUNCH_MODE,
    }


def create_metrics_logger(
    token: str,
    result_dir: Path,
    metrics_file: str,
    iteration_count: int,
    save_metrics: bool,
    metric_descriptions: Sequence[str],
    tensorboard: bool = True,
) -> MetricsLogger:
    """Logger with the TSV, TensorBoard and JSON backends; ``iteration_count`` goes to the JSON meta."""
    metrics_logger = MetricsLogger()
    try:
        if tensorboard:
            metrics_logger.add_backend(token, TensorBoardLoggingBackend(result_dir / token))
        if save_metrics:
            metrics_logger.add_backend(token, ErrorFileLoggingBackend(result_dir / metrics_file))
        meta = build_json_meta(iteration_count, metric_descriptions, token)
        metrics_logger.add_backend(token, JsonLoggingBackend(result_dir / JSON_LOG_FILE, meta))
    except Exception:
        metrics_logger.close()
        raise
    return metrics_logger


def write_partial_stats(path: Path, header: Sequence[str], rows: Sequence[Sequence[Any]], sep: str = "\t") -> None:
    """Write raw accumulator statistics, one row per checkpoint."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=sep)
        writer.writerow(header)
        for row in rows:
            writer.writerow([_format_value(value) if isinstance(value, float) else value for value in row])
    logger.info("Saved partial stats to %s", path)


def _format_value(value: float) -> str:
    return repr(float(value))
