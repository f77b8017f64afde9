from .protocols import EventSink, GazeEvent, GazeEventKind
from .sample import GazeSample
from .state import BackendState

__all__ = ["BackendState", "EventSink", "GazeEvent", "GazeEventKind", "GazeSample"]
