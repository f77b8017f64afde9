from .app import IpcSettings, OscSettings, SourceSettings

__all__ = ["IpcSettings", "OscSettings", "SourceSettings"]
