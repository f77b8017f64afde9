from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class GazeEventKind(Enum):
    HANDSHAKE_FAILED = "handshake_failed"
    SAMPLE_PUBLISHED = "sample_published"
    MALFORMED_MESSAGE = "malformed_message"
    LOOP_STARTED = "loop_started"
    LOOP_STOPPED = "loop_stopped"


@dataclass(slots=True, frozen=True)
class GazeEvent:
    """A structured observability event emitted by a gaze source."""
    kind: GazeEventKind
    source: str
    details: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class EventSink(Protocol):
    """
    Receives observability events from a gaze source.

    Called from the ingestion thread, so implementations must be quick and
    thread-safe. Anything raised here is logged and otherwise ignored.
    """
    def __call__(self, event: GazeEvent) -> None: ...
