import logging
import time
from typing import Callable, Iterable, Optional

from .acquisition import GazeSource, SourceType, ToolkitIpcSource, VRChatOscSource
from .configs import SourceSettings
from .core.protocols import EventSink
from .errors import SourceUnavailable

logger = logging.getLogger(__name__)


def create_gaze_source(
    kind: SourceType,
    settings: Optional[SourceSettings] = None,
    events: Optional[EventSink] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[GazeSource]:
    """
    Opens a gaze source of the given kind.

    Returns None when the source is unavailable (no server, handshake
    rejected, port taken); callers should fall back to another source.
    """
    settings = settings or SourceSettings()
    common = dict(staleness_s=settings.staleness_s, clock=clock, events=events)

    try:
        if kind is SourceType.TOOLKIT_IPC:
            return ToolkitIpcSource(settings.ipc, **common)
        if kind is SourceType.VRCHAT_OSC:
            return VRChatOscSource(settings.osc, **common)
    except SourceUnavailable as e:
        logger.info("Gaze source '%s' unavailable: %s", kind.value, e)
        return None

    raise ValueError(f"Unsupported gaze source: {kind!r}")


def open_first_available(
    kinds: Iterable[SourceType],
    settings: Optional[SourceSettings] = None,
    events: Optional[EventSink] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[GazeSource]:
    """Tries each kind in order of preference and returns the first that opens."""
    for kind in kinds:
        source = create_gaze_source(kind, settings, events, clock)
        if source is not None:
            logger.info("Using gaze source '%s'.", kind.value)
            return source

    logger.warning("No gaze source available.")
    return None
