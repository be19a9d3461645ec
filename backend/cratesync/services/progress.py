import logging
import threading
from typing import Callable, List

from cratesync.models.progress import ScanEvent, ScanState

logger = logging.getLogger(__name__)

ScanListener = Callable[[ScanEvent], None]


class ProgressStream:
    """
    Fan-out of scan events. Callers either subscribe a listener or poll latest().
    A listener that raises is logged and ignored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[ScanListener] = []
        self._latest = ScanEvent(state=ScanState.IDLE)

    def subscribe(self, listener: ScanListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def latest(self) -> ScanEvent:
        with self._lock:
            return self._latest

    def publish(self, event: ScanEvent) -> None:
        with self._lock:
            self._latest = event
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener {listener!r} failed: {e}")
