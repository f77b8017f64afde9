from .acquisition import GazeSource, SourceType, ToolkitIpcSource, VRChatOscSource
from .configs import SourceSettings
from .core import BackendState, GazeEvent, GazeEventKind
from .errors import ConnectionFailed, HandshakeFailed, MalformedMessage, SourceUnavailable
from .factories import create_gaze_source, open_first_available
from .models import GazeVector

__all__ = [
    "BackendState",
    "ConnectionFailed",
    "GazeEvent",
    "GazeEventKind",
    "GazeSource",
    "GazeVector",
    "HandshakeFailed",
    "MalformedMessage",
    "SourceSettings",
    "SourceType",
    "SourceUnavailable",
    "ToolkitIpcSource",
    "VRChatOscSource",
    "create_gaze_source",
    "open_first_available",
]
