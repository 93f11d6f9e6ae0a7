"""Evaluation configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from staged_eval.constants import (
    DEFAULT_METRICS_FILE,
    DEFAULT_PROCESS_ITERATIONS_STEP,
    DEFAULT_RESULT_DIR,
    DEFAULT_TMP_DIR,
)


@dataclass
class EvalConfig:
    """Everything needed for one evaluation run."""

    model_path: Path
    dataset_paths: List[Path]
    metrics: List[str]

    # Checkpoints: end == 0 means the model's stage count
    first: int = 0
    last: int = 0
    step: int = 1
    process_iterations_step: int = DEFAULT_PROCESS_ITERATIONS_STEP
    non_additive_in_memory: bool = False

    tmp_dir: Path = Path(DEFAULT_TMP_DIR)
    delete_tmp_dir_on_exit: bool = True

    result_dir: Path = Path(DEFAULT_RESULT_DIR)
    metrics_file: str = DEFAULT_METRICS_FILE
    save_metrics: bool = True
    save_stats: bool = False
    tensorboard: bool = True

    thread_count: int = -1
    show_progress: bool = False
    log_level: str = "INFO"

    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paths": {
                "model": str(self.model_path),
                "datasets": [str(p) for p in self.dataset_paths],
                "tmp_dir": str(self.tmp_dir),
                "result_dir": str(self.result_dir),
            },
            "plot": {
                "first": self.first,
                "last": self.last,
                "step": self.step,
                "process_iterations_step": self.process_iterations_step,
                "non_additive_in_memory": self.non_additive_in_memory,
            },
            "metrics": list(self.metrics),
            "output": {
                "metrics_file": self.metrics_file,
                "save_metrics": self.save_metrics,
                "save_stats": self.save_stats,
                "tensorboard": self.tensorboard,
            },
            "runtime": {
                "thread_count": self.thread_count,
                "delete_tmp_dir_on_exit": self.delete_tmp_dir_on_exit,
                "show_progress": self.show_progress,
                "log_level": self.log_level,
            },
        }


def config_from_dict(cfg: Dict[str, Any]) -> EvalConfig:
    paths = cfg.get("paths") or {}
    if "model" not in paths:
        raise ValueError("config must define paths.model")
    datasets = paths.get("datasets") or []
    if isinstance(datasets, (str, Path)):
        datasets = [datasets]
    if not datasets:
        raise ValueError("config must define at least one path in paths.datasets")
    metrics = cfg.get("metrics") or []
    if isinstance(metrics, str):
        metrics = [metrics]
    if not metrics:
        raise ValueError("config must define at least one metric")

    plot = cfg.get("plot") or {}
    output = cfg.get("output") or {}
    runtime = cfg.get("runtime") or {}
    known = {"paths", "plot", "metrics", "output", "runtime"}
    return EvalConfig(
        model_path=Path(paths["model"]),
        dataset_paths=[Path(p) for p in datasets],
        metrics=[str(m) for m in metrics],
        first=int(plot.get("first", 0)),
        last=int(plot.get("last", 0)),
        step=int(plot.get("step", 1)),
        process_iterations_step=int(plot.get("process_iterations_step", DEFAULT_PROCESS_ITERATIONS_STEP)),
        non_additive_in_memory=bool(plot.get("non_additive_in_memory", False)),
        tmp_dir=Path(paths.get("tmp_dir", DEFAULT_TMP_DIR)),
        delete_tmp_dir_on_exit=bool(runtime.get("delete_tmp_dir_on_exit", True)),
        result_dir=Path(paths.get("result_dir", DEFAULT_RESULT_DIR)),
        metrics_file=str(output.get("metrics_file", DEFAULT_METRICS_FILE)),
        save_metrics=bool(output.get("save_metrics", True)),
        save_stats=bool(output.get("save_stats", False)),
        tensorboard=bool(output.get("tensorboard", True)),
        thread_count=int(runtime.get("thread_count", -1)),
        show_progress=bool(runtime.get("show_progress", False)),
        log_level=str(runtime.get("log_level", "INFO")),
        extra={key: value for key, value in cfg.items() if key not in known},
    )


def load_eval_config(config_path: Path) -> EvalConfig:
    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    return config_from_dict(cfg)
