"""
Units of work and a thread pool runner.

Each parent object is processed independently by a TileTask. A task
subscribes its optional tile listener for the duration of the run, always
closes the parent's measurement list, and reports a TaskOutcome instead
of raising. Cancellation is shared through a threading.Event.
"""

from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..addons.measurements import MeasurementList, PathObject
from ..core import (
    CANCELLED,
    DoGSuperpixelSegmenter,
    FeatureParams,
    NucleiParams,
    NucleiWatershedSegmenter,
    StainSet,
    SuperpixelParams,
    measure_tile_features,
)
from ..core.region import ArrayImageServer, RegionStore, TileListener

logger = logging.getLogger(__name__)

COMPLETED = "completed"
SKIPPED = "skipped"
CANCELLED_STATUS = "cancelled"
FAILED = "failed"

# analysis(parent, server, store, cancel_cb) -> objects | MeasurementList | None | CANCELLED
Analysis = Callable[[PathObject, ArrayImageServer, Optional[RegionStore], Callable[[], bool]], object]


@dataclass
class TaskOutcome:
    parent: PathObject
    status: str
    objects: List[PathObject] = field(default_factory=list)
    error: Optional[BaseException] = None


class TileTask:
    """Run one analysis on one parent object."""

    def __init__(
        self,
        parent: PathObject,
        server: ArrayImageServer,
        analysis: Analysis,
        store: Optional[RegionStore] = None,
        listener: Optional[TileListener] = None,
    ) -> None:
        self.parent = parent
        self.server = server
        self.analysis = analysis
        self.store = store
        self.listener = listener

    def run(self, cancel_cb: Optional[Callable[[], bool]] = None) -> TaskOutcome:
        scope = self.store.listening(self.listener, self.server.path) if self.store else nullcontext()
        try:
            with scope:
                result = self.analysis(self.parent, self.server, self.store, cancel_cb)
        except Exception as e:
            logger.exception("Processing failed for %s", self.parent.name or self.parent.roi)
            return TaskOutcome(self.parent, FAILED, error=e)
        finally:
            self.parent.measurements.close()

        if result is CANCELLED:
            return TaskOutcome(self.parent, CANCELLED_STATUS)
        if result is None:
            return TaskOutcome(self.parent, SKIPPED)
        if isinstance(result, MeasurementList):
            return TaskOutcome(self.parent, COMPLETED)
        return TaskOutcome(self.parent, COMPLETED, objects=list(result))


class Worker:
    """Thread pool runner with cooperative cancellation."""

    def __init__(self, max_workers: Optional[int] = None) -> None:
        self.max_workers = max_workers
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def _canceled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, tasks: Sequence[TileTask]) -> List[TaskOutcome]:
        """Run every task; outcomes are returned in task order."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(task.run, self._canceled) for task in tasks]
            outcomes = [f.result() for f in futures]
        n_failed = sum(o.status == FAILED for o in outcomes)
        logger.info("%d tasks finished (%d failed)", len(outcomes), n_failed)
        return outcomes


def run_tasks(tasks: Sequence[TileTask], max_workers: Optional[int] = None) -> List[TaskOutcome]:
    return Worker(max_workers).run(tasks)


# ---- Analyses ----

def nuclei_analysis(params: Optional[NucleiParams] = None, stains: Optional[StainSet] = None) -> Analysis:
    def analysis(parent, server, store, cancel_cb):
        segmenter = NucleiWatershedSegmenter(params)
        result = segmenter.run(server, parent.roi, stains=stains, store=store, cancel_cb=cancel_cb)
        if result is None:
            logger.warning(segmenter.last_result_summary)
        return result
    return analysis


def superpixel_analysis(params: Optional[SuperpixelParams] = None) -> Analysis:
    def analysis(parent, server, store, cancel_cb):
        segmenter = DoGSuperpixelSegmenter(params)
        result = segmenter.run(server, parent.roi, store=store, cancel_cb=cancel_cb)
        if result is None:
            logger.warning(segmenter.last_result_summary)
        return result
    return analysis


def feature_analysis(params: Optional[FeatureParams] = None, stains: Optional[StainSet] = None) -> Analysis:
    params = params or FeatureParams()

    def analysis(parent, server, store, cancel_cb):
        return measure_tile_features(parent, server, params, stains=stains, store=store, cancel_cb=cancel_cb)
    return analysis
