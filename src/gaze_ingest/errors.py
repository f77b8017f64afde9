class GazeIngestError(Exception):
    """Base class for every error raised by the ingestion layer."""


class SourceUnavailable(GazeIngestError):
    """
    Raised while constructing a gaze source that cannot be used.

    Never crosses the factory boundary: `create_gaze_source` turns it into a
    `None` result so the host can fall back to another source.
    """


class ConnectionFailed(SourceUnavailable):
    """The transport could not be opened within its retry budget."""


class HandshakeFailed(SourceUnavailable):
    """The peer did not complete the protocol handshake."""


class MalformedMessage(GazeIngestError):
    """A message was truncated, mistyped or carried unusable values."""
