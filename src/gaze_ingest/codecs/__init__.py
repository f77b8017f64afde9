from . import ipc, osc

__all__ = ["ipc", "osc"]
