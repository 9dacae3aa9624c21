# src/pcfuse/system/worker.py
"""Producer / single-consumer hand-off in front of a RegistrationSession."""

from __future__ import annotations

import queue
import threading
from typing import Callable

from loguru import logger

from .session import RegistrationSession
from ..geom.cloud import KeypointCloud, PointCloud

_STOP = object()


class RegistrationWorker:
    """
    Acquisition threads call submit(); one worker thread runs ingest() in
    submission order and passes every merged snapshot to on_merged.
    """

    def __init__(
        self,
        session: RegistrationSession,
        on_merged: Callable[[PointCloud], None] | None = None,
        max_pending: int = 8,
    ):
        self.session = session
        self.on_merged = on_merged
        self.errors: list[Exception] = []
        self._frames: queue.Queue = queue.Queue(maxsize=max_pending)
        self._thread: threading.Thread | None = None
        self._stopping = False
        self._log = logger.bind(module="pcfuse.worker")

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("worker already started")
        self._thread = threading.Thread(target=self._run, name="pcfuse-registration", daemon=True)
        self._thread.start()

    def submit(self, cloud: PointCloud, keypoints: KeypointCloud, timeout: float | None = None) -> None:
        """Blocks while max_pending frames are waiting."""
        if self._thread is None:
            raise RuntimeError("worker not started")
        self._frames.put((cloud, keypoints), timeout=timeout)

    def stop(self, timeout: float | None = None) -> bool:
        """
        Process everything already submitted, then join the worker thread.
        Returns False if the thread is still busy after timeout; the worker
        then stays started and stop() can be called again.
        """
        if self._thread is None:
            return True
        if not self._stopping:
            try:
                self._frames.put(_STOP, timeout=timeout)
            except queue.Full:
                self._log.warning("worker queue still full after {}s", timeout)
                return False
            self._stopping = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            self._log.warning("worker thread still running after {}s", timeout)
            return False
        self._thread = None
        self._stopping = False
        return True

    def _run(self) -> None:
        while True:
            item = self._frames.get()
            try:
                if item is _STOP:
                    return
                cloud, keypoints = item
                try:
                    merged = self.session.ingest(cloud, keypoints)
                    if self.on_merged is not None:
                        self.on_merged(merged)
                except Exception as exc:
                    self._log.error(f"frame handling failed: {exc!r}")
                    self.errors.append(exc)
            finally:
                self._frames.task_done()
