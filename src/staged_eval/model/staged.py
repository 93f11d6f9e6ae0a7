"""Staged additive models.

A staged model is a sum of weak predictors (stages). ``apply`` evaluates only
the stages ``[stage_begin, stage_end)`` so callers can accumulate output
incrementally.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from staged_eval.utils.logging import get_logger
from staged_eval.utils.parallel import LocalExecutor, resolve_executor

logger = get_logger(__name__)


class StagedModel(ABC):
    """Abstract base class for staged additive models."""

    model_info: Dict[str, Any]

    @property
    @abstractmethod
    def stage_count(self) -> int:
        """Number of stages (trees) in the ensemble."""

    @property
    @abstractmethod
    def approx_dimension(self) -> int:
        """Width of the raw output per document."""

    @abstractmethod
    def apply(
        self,
        features: np.ndarray,
        stage_begin: int,
        stage_end: int,
        executor: Optional[LocalExecutor] = None,
    ) -> np.ndarray:
        """Raw output of stages ``[stage_begin, stage_end)``.

        Returns:
            Array of shape ``(approx_dimension, doc_count)``.
        """

    def _check_stage_range(self, stage_begin: int, stage_end: int) -> None:
        if not 0 <= stage_begin <= stage_end <= self.stage_count:
            raise ValueError(
                f"Invalid stage range [{stage_begin}, {stage_end}) for model with {self.stage_count} stages"
            )


@dataclass(frozen=True)
class Stump:
    """Depth-one split: ``right`` if ``x[feature] > border`` else ``left``."""

    feature: int
    border: float
    left: np.ndarray
    right: np.ndarray


class StumpEnsemble(StagedModel):
    """Ensemble of decision stumps with vector-valued leaves."""

    def __init__(self, stumps: Sequence[Stump], approx_dimension: int = 1, model_info: Optional[Dict[str, Any]] = None):
        for idx, stump in enumerate(stumps):
            if stump.left.shape != (approx_dimension,) or stump.right.shape != (approx_dimension,):
                raise ValueError(f"Stage {idx} leaves must have shape ({approx_dimension},)")
        self.stumps: List[Stump] = list(stumps)
        self._approx_dimension = approx_dimension
        self.model_info = dict(model_info or {})

    @property
    def stage_count(self) -> int:
        return len(self.stumps)

    @property
    def approx_dimension(self) -> int:
        return self._approx_dimension

    def apply(
        self,
        features: np.ndarray,
        stage_begin: int,
        stage_end: int,
        executor: Optional[LocalExecutor] = None,
    ) -> np.ndarray:
        self._check_stage_range(stage_begin, stage_end)
        doc_count = features.shape[0]
        result = np.zeros((self.approx_dimension, doc_count), dtype=np.float64)
        stumps = self.stumps[stage_begin:stage_end]

        def apply_block(block_begin: int, block_end: int) -> None:
            block = features[block_begin:block_end]
            out = result[:, block_begin:block_end]
            for stump in stumps:
                goes_right = block[:, stump.feature] > stump.border
                out += np.where(goes_right, stump.right[:, np.newaxis], stump.left[:, np.newaxis])

        resolve_executor(executor).parallel_for(0, doc_count, apply_block)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approx_dimension": self.approx_dimension,
            "model_info": self.model_info,
            "stages": [
                {
                    "feature": stump.feature,
                    "border": stump.border,
                    "left": stump.left.tolist(),
                    "right": stump.right.tolist(),
                }
                for stump in self.stumps
            ],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StumpEnsemble":
        dim = int(payload.get("approx_dimension", 1))
        stumps = [
            Stump(
                feature=int(stage["feature"]),
                border=float(stage["border"]),
                left=np.asarray(stage["left"], dtype=np.float64).reshape(dim),
                right=np.asarray(stage["right"], dtype=np.float64).reshape(dim),
            )
            for stage in payload["stages"]
        ]
        return cls(stumps, approx_dimension=dim, model_info=payload.get("model_info"))

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)


def load_model(path: Path) -> StumpEnsemble:
    """Load a ``StumpEnsemble`` saved as JSON."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    model = StumpEnsemble.from_dict(payload)
    logger.info("Loaded model with %d stages (dimension=%d) from %s", model.stage_count, model.approx_dimension, path)
    return model
