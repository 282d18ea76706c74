"""Progress reporting and cancellation primitives for one audit run."""

import logging
import queue
import threading
from typing import Iterator, Optional

from .errors import AuditCancelled
from .models import ProgressEvent

logger = logging.getLogger("seo_audit.progress")

DONE_STAGE = "done"


class CancelToken:
    """Cooperative cancellation flag shared by every stage of a run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AuditCancelled("Audit cancelled by caller")


class ProgressStream:
    """Bounded, non-blocking progress channel.

    The producer never waits: when the buffer is full the oldest event is
    dropped. Percent values never decrease and the stream ends with a
    100/"done" event after ``close()``.
    """

    def __init__(self, maxsize: int = 256):
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self._percent = 0
        self._closed = False
        self.latest: Optional[ProgressEvent] = None
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, percent: int, stage: str, detail: str = "") -> None:
        with self._lock:
            if self._closed:
                return
            self._percent = max(self._percent, min(100, max(0, int(percent))))
            self._put(ProgressEvent(self._percent, stage, detail))

    def close(self, detail: str = "") -> None:
        with self._lock:
            if self._closed:
                return
            self._percent = 100
            self._put(ProgressEvent(100, DONE_STAGE, detail))
            self._closed = True

    def _put(self, event: ProgressEvent) -> None:
        self.latest = event
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except queue.Empty:
                pass
            self._queue.put_nowait(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def events(self, timeout: Optional[float] = None) -> Iterator[ProgressEvent]:
        """Yield events until the terminal "done" event (or a timeout gap)."""
        while True:
            event = self.get(timeout=timeout)
            if event is None:
                return
            yield event
            if event.stage == DONE_STAGE:
                return
