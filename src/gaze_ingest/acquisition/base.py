import logging
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, MutableSequence, Optional, final

from gaze_ingest.core.protocols import EventSink, GazeEvent, GazeEventKind
from gaze_ingest.core.sample import GazeSample
from gaze_ingest.core.state import BackendState
from gaze_ingest.models import GazeVector

logger = logging.getLogger(__name__)


class SourceType(Enum):
    """Closed set of gaze source variants."""
    TOOLKIT_IPC = "toolkit_ipc"
    VRCHAT_OSC = "vrchat_osc"


class GazeSource(ABC):
    """
    Abstract Base Class for all gaze sources.

    A GazeSource owns a transport, runs one background ingestion thread that
    publishes into a lock-guarded `GazeSample`, and answers non-blocking
    "latest gaze" queries from the host thread.

    Constructing a subclass opens the transport; a subclass constructor that
    cannot do so raises `SourceUnavailable` and no instance is produced.
    """

    def __init__(
        self,
        staleness_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        events: Optional[EventSink] = None,
    ):
        self._sample = GazeSample(staleness_s)
        self._clock = clock
        self._events = events
        self._state = BackendState.CONSTRUCTING
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._release_on_exit = False

    # --- Host-facing interface ---

    @property
    def state(self) -> BackendState:
        return self._state

    @abstractmethod
    def get_type(self) -> SourceType:
        ...

    @final
    def start(self, session: Any = None) -> None:
        """
        Spawns the ingestion thread and returns immediately.

        `session` is the host's opaque session handle; it is accepted for
        interface compatibility and not interpreted here.
        """
        with self._state_lock:
            if self._state is not BackendState.CONNECTED:
                logger.warning("%s.start() ignored in state %s.", type(self).__name__, self._state.name)
                return
            self._state = BackendState.RUNNING

        self._thread = threading.Thread(
            target=self._thread_main,
            name=f"{self.get_type().value}-ingest",
            daemon=True,
        )
        self._thread.start()

    @final
    def stop(self) -> None:
        """
        Requests the ingestion loop to end without waiting for it.

        Safe to call from the thread that will later call `close`.
        """
        with self._state_lock:
            if self._state is BackendState.STOPPED:
                return
            self._state = BackendState.STOPPED

        self._stop_event.set()
        try:
            self._unblock()
        except Exception:
            logger.exception("Failed to unblock the %s ingestion loop.", self.get_type().value)

    def is_gaze_available(self, now: Optional[float] = None) -> bool:
        return self._sample.is_available(self._now(now))

    def get_gaze(
        self,
        now: Optional[float] = None,
        out: Optional[MutableSequence[float]] = None,
    ) -> Optional[GazeVector]:
        """
        Returns the latest gaze, or None if nothing fresh has been published.

        When `out` is given it is filled in place on success and left
        untouched otherwise.
        """
        vector = self._sample.latest(self._now(now))
        if vector is None:
            return None
        if out is not None:
            out[0], out[1], out[2] = vector.x, vector.y, vector.z
        return vector

    @final
    def close(self) -> None:
        """Stops the loop, joins the thread and releases the transport. Never raises."""
        try:
            self.stop()

            thread = self._thread
            if thread is not None:
                if thread is threading.current_thread():
                    # The loop is still using the transport; it releases it on the way out.
                    logger.warning("close() called from the ingestion thread; deferring release.")
                    self._release_on_exit = True
                    return
                thread.join()
                self._thread = None

            self._release()
        except Exception:
            logger.exception("Error while closing %s.", type(self).__name__)

    def __enter__(self) -> "GazeSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Subclass hooks ---

    @abstractmethod
    def _run(self) -> None:
        """
        Body of the ingestion thread.

        Must return promptly once `_stop_event` is set (after `_unblock`).
        """
        raise NotImplementedError

    def _unblock(self) -> None:
        """Interrupts a pending blocking receive. Default: nothing to do."""

    @abstractmethod
    def _release(self) -> None:
        """Closes the transport. Called once the thread has been joined."""
        raise NotImplementedError

    # --- Helpers for subclasses ---

    def _mark_connected(self) -> None:
        with self._state_lock:
            self._state = BackendState.CONNECTED

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def _publish(self, vector: GazeVector) -> bool:
        published = self._sample.publish(vector, self._clock())
        if published:
            self._emit(GazeEventKind.SAMPLE_PUBLISHED, vector=vector.as_tuple())
        return published

    def _emit(self, kind: GazeEventKind, **details: Any) -> None:
        if self._events is None:
            return
        try:
            self._events(GazeEvent(kind=kind, source=self.get_type().value, details=details))
        except Exception:
            logger.exception("Event sink raised while handling %s.", kind.value)

    def _thread_main(self) -> None:
        logger.info("Starting %s ingestion loop...", self.get_type().value)
        self._emit(GazeEventKind.LOOP_STARTED)
        try:
            self._run()
        except Exception:
            logger.exception("The %s ingestion loop crashed.", self.get_type().value)
        finally:
            self._emit(GazeEventKind.LOOP_STOPPED)
            logger.info("%s ingestion loop has stopped.", self.get_type().value)
            if self._release_on_exit:
                try:
                    self._release()
                except Exception:
                    logger.exception("Error while releasing %s.", type(self).__name__)
