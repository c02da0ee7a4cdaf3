"""
Batch execution: one unit of work per parent object on a thread pool,
and the `tile-quant` command line interface.
"""

from .worker import (
    TileTask,
    TaskOutcome,
    Worker,
    run_tasks,
    nuclei_analysis,
    superpixel_analysis,
    feature_analysis,
)

__all__ = [
    "TileTask", "TaskOutcome", "Worker", "run_tasks",
    "nuclei_analysis", "superpixel_analysis", "feature_analysis",
]
