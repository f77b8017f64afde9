import threading
from typing import Optional

from ..models import GazeVector


class GazeSample:
    """
    Lock-guarded cell holding the latest published gaze and its receipt time.

    Written only by the owning source's ingestion thread, read by any number
    of host threads. The lock is held for the copy/compare only.
    """

    def __init__(self, staleness_s: float = 1.0):
        if staleness_s <= 0:
            raise ValueError("staleness_s must be positive.")

        self._staleness_s = staleness_s
        self._lock = threading.Lock()
        self._vector: Optional[GazeVector] = None
        self._received_at: Optional[float] = None

    @property
    def staleness_s(self) -> float:
        return self._staleness_s

    @property
    def received_at(self) -> Optional[float]:
        with self._lock:
            return self._received_at

    def publish(self, vector: GazeVector, received_at: float) -> bool:
        """
        Stores a new gaze value.

        Returns False, leaving the cell untouched, when the vector has a NaN or
        infinite component or the timestamp is older than the one already stored.
        """
        if not vector.is_finite():
            return False

        with self._lock:
            if self._received_at is not None and received_at < self._received_at:
                return False
            self._vector = vector
            self._received_at = received_at
        return True

    def _fresh_locked(self, now: float) -> bool:
        return self._received_at is not None and now - self._received_at < self._staleness_s

    def is_available(self, now: float) -> bool:
        with self._lock:
            return self._fresh_locked(now)

    def latest(self, now: float) -> Optional[GazeVector]:
        """Returns the stored vector if it is not stale at `now`, else None."""
        with self._lock:
            if not self._fresh_locked(now):
                return None
            return self._vector
