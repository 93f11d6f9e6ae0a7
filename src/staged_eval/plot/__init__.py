"""Per-checkpoint metric plots for staged models.

Components:
- Checkpoint selection
- Incremental output accumulation and on-disk checkpoint storage
- Metric calcer and result reporting
"""

from staged_eval.plot.calcer import MetricsPlotCalcer, create_metric_calcer
from staged_eval.plot.checkpoints import build_checkpoints
from staged_eval.plot.storage import ApproxStorage

__all__ = [
    "MetricsPlotCalcer",
    "create_metric_calcer",
    "build_checkpoints",
    "ApproxStorage",
]
