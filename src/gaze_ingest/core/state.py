from enum import Enum, auto


class BackendState(Enum):
    """
    Lifecycle of a single gaze source instance.

    Transitions only move forward:
    CONSTRUCTING -> CONNECTED -> RUNNING -> STOPPED (CONNECTED -> STOPPED when
    the source is closed without ever being started).
    """
    CONSTRUCTING = auto()  # Transport is being opened, handshake in progress.
    CONNECTED = auto()  # Handshake succeeded, ingestion loop not started yet.
    RUNNING = auto()  # Ingestion loop is publishing samples.
    STOPPED = auto()  # Stop requested or source closed. Terminal.
