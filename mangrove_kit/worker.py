from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

import numpy as np

from .types import Detection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerConfig:
    """
    - process_every: accept only every Nth submitted frame (1 = all)
    - deadline_s: results older than this (from submit) are dropped, not delivered
    """

    process_every: int = 1
    deadline_s: Optional[float] = None
    thread_name: str = "mangrove-detect"

    def __post_init__(self) -> None:
        if self.process_every < 1:
            raise ValueError("process_every must be >= 1")
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ValueError("deadline_s must be > 0")


@dataclass
class WorkerStats:
    submitted: int = 0
    throttled: int = 0
    superseded: int = 0
    processed: int = 0
    late: int = 0
    failed: int = 0


@dataclass(frozen=True)
class FrameResult:
    frame_id: int
    detections: List[Detection]
    source_size: Tuple[int, int]
    latency_s: float


@dataclass
class _Pending:
    frame_id: int
    frame: np.ndarray
    submitted_at: float


class LatestFrameWorker:
    """
    Runs a detection pipeline on one dedicated thread, keeping only the latest frame.

    `submit()` never blocks: a frame that has not started processing yet is
    replaced by the newer one (counted as superseded). The frame being
    processed always runs to completion. Results are delivered through
    `on_result` on the worker thread; marshal them to a UI thread yourself.

        with LatestFrameWorker(pipeline, show) as worker:
            for frame in frames:
                worker.submit(frame)
    """

    def __init__(
        self,
        pipeline: Callable[[np.ndarray], List[Detection]],
        on_result: Callable[[FrameResult], None],
        cfg: WorkerConfig = WorkerConfig(),
        *,
        on_error: Optional[Callable[[int, BaseException], None]] = None,
    ):
        self._pipeline = pipeline
        self._on_result = on_result
        self._on_error = on_error
        self.cfg = cfg

        self._cond = threading.Condition()
        self._pending: Optional[_Pending] = None
        self._busy = False
        self._stopping = False
        self._thread: Optional[threading.Thread] = None
        self._next_id = 0
        self._stats = WorkerStats()

    @property
    def stats(self) -> WorkerStats:
        with self._cond:
            return replace(self._stats)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "LatestFrameWorker":
        with self._cond:
            if self._thread is not None:
                raise RuntimeError("Worker already started")
            self._stopping = False
            self._thread = threading.Thread(target=self._run, name=self.cfg.thread_name, daemon=True)
            self._thread.start()
        return self

    def submit(self, frame: np.ndarray) -> Optional[int]:
        """
        Queue `frame`, replacing any frame still waiting. Returns its frame id,
        or None if it was skipped by `process_every` or the worker is stopping.
        """

        with self._cond:
            if self._stopping:
                return None
            frame_id = self._next_id
            self._next_id += 1
            self._stats.submitted += 1

            if frame_id % self.cfg.process_every != 0:
                self._stats.throttled += 1
                return None

            if self._pending is not None:
                self._stats.superseded += 1
                logger.debug("Frame %d superseded by %d", self._pending.frame_id, frame_id)
            self._pending = _Pending(frame_id=frame_id, frame=frame, submitted_at=time.monotonic())
            self._cond.notify()
            return frame_id

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is queued or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._busy, timeout=timeout)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop after the in-flight frame; a still-queued frame is discarded."""
        with self._cond:
            self._stopping = True
            if self._pending is not None:
                self._stats.superseded += 1
                self._pending = None
            self._cond.notify_all()
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Worker thread %s did not stop within %s s", thread.name, timeout)
                return
        with self._cond:
            self._thread = None

    def __enter__(self) -> "LatestFrameWorker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending is not None or self._stopping)
                if self._stopping:
                    self._cond.notify_all()
                    return
                item = self._pending
                self._pending = None
                self._busy = True

            try:
                self._process(item)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _process(self, item: _Pending) -> None:
        h, w = item.frame.shape[:2]
        try:
            detections = self._pipeline(item.frame)
        except Exception as exc:
            logger.exception("Detection failed for frame %d", item.frame_id)
            with self._cond:
                self._stats.failed += 1
            if self._on_error is not None:
                self._on_error(item.frame_id, exc)
            return

        latency = time.monotonic() - item.submitted_at
        if self.cfg.deadline_s is not None and latency > self.cfg.deadline_s:
            logger.debug("Frame %d missed deadline (%.3f s > %.3f s)", item.frame_id, latency, self.cfg.deadline_s)
            with self._cond:
                self._stats.late += 1
            return

        with self._cond:
            self._stats.processed += 1
        result = FrameResult(frame_id=item.frame_id, detections=detections, source_size=(int(w), int(h)), latency_s=latency)
        try:
            self._on_result(result)
        except Exception:
            # Keep the worker alive for the next frame.
            logger.exception("Result callback failed for frame %d", item.frame_id)
