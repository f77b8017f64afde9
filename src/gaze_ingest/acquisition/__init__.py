from .base import GazeSource, SourceType
from .toolkit_ipc import ToolkitIpcSource
from .vrchat_osc import VRChatOscSource

__all__ = ["GazeSource", "SourceType", "ToolkitIpcSource", "VRChatOscSource"]
