import logging
import os
from typing import Optional

from gaze_ingest.codecs import ipc
from gaze_ingest.configs import IpcSettings
from gaze_ingest.core.protocols import GazeEventKind
from gaze_ingest.errors import HandshakeFailed, MalformedMessage, SourceUnavailable
from gaze_ingest.models import GazeVector, average_directions
from gaze_ingest.transport import TcpSession
from gaze_ingest.utils.logging import ThrottledLogger
from .base import GazeSource, SourceType

logger = logging.getLogger(__name__)


class ToolkitIpcSource(GazeSource):
    """
    A GazeSource that polls a local eye-tracking toolkit over its TCP IPC protocol.

    Construction connects and performs the handshake; the ingestion loop then
    requests one gaze record per iteration.
    """

    def __init__(self, settings: Optional[IpcSettings] = None, **kwargs):
        super().__init__(**kwargs)
        self._settings = settings or IpcSettings()
        self._session = TcpSession(self._settings.host, self._settings.port)
        self._throttled = ThrottledLogger(logger)
        # A request whose reply has not been read yet. Replies are matched to
        # requests by order only, so a late reply must be consumed before asking again.
        self._awaiting_reply = False

        try:
            self._session.connect(self._settings.connect_retries, self._settings.connect_retry_delay_s)
            try:
                self._handshake()
            except OSError as e:
                raise HandshakeFailed(f"Transport error during handshake: {e}") from e
        except SourceUnavailable as e:
            logger.warning("Toolkit IPC source not available: %s", e)
            self._emit(GazeEventKind.HANDSHAKE_FAILED, reason=str(e))
            self._session.close()
            raise

        self._mark_connected()

    def get_type(self) -> SourceType:
        return SourceType.TOOLKIT_IPC

    def _handshake(self) -> None:
        self._session.send(
            ipc.encode_handshake_request(os.getpid(), self._settings.ipc_version),
            self._settings.send_retries,
            self._settings.send_retry_delay_s,
        )

        data, _ = self._session.receive_exact(
            ipc.HANDSHAKE_RESPONSE_SIZE,
            self._settings.handshake_retries,
            self._settings.handshake_retry_delay_s,
        )
        if data is None:
            raise HandshakeFailed("Timed out waiting for the handshake result.")

        try:
            result = ipc.decode_handshake_response(data)
        except MalformedMessage as e:
            raise HandshakeFailed(str(e)) from e

        if result is not ipc.HandshakeResult.SUCCESS:
            raise HandshakeFailed(f"Server rejected the handshake: {result.name}.")

        logger.info("Handshake with toolkit at %s:%d succeeded.", self._settings.host, self._settings.port)

    def _poll_once(self) -> int:
        """
        Runs one request/response exchange.

        Returns how many read retries were left, which drives the pacing.
        A reply that misses the read budget is waited for on the next call
        instead of sending another request.
        """
        if not self._awaiting_reply:
            self._session.send(
                ipc.encode_gaze_request(),
                self._settings.send_retries,
                self._settings.send_retry_delay_s,
            )
            self._awaiting_reply = True

        data, remaining = self._session.receive_exact(
            ipc.GAZE_RESPONSE_SIZE,
            self._settings.read_retries,
            self._settings.read_retry_delay_s,
        )
        if data is None:
            return 0
        self._awaiting_reply = False

        try:
            vector = self._to_gaze_vector(ipc.decode_gaze_response(data))
        except MalformedMessage as e:
            self._throttled.warning("Dropped gaze sample: %s", e)
            self._emit(GazeEventKind.MALFORMED_MESSAGE, reason=str(e))
            return remaining

        if vector is not None:
            self._publish(vector)
        return remaining

    @staticmethod
    def _to_gaze_vector(result: ipc.GazeDataResult) -> Optional[GazeVector]:
        """Averages both eyes; None when an eye is invalid."""
        if not result.both_valid:
            return None

        # The toolkit reports +Z forward and +X left; the host wants -Z forward.
        vector = average_directions(
            result.left.direction, result.right.direction, invert_x=True, invert_z=True
        )
        if not vector.is_finite():
            raise MalformedMessage("Gaze direction contains non-finite components.")
        return vector

    def _run(self) -> None:
        budget = self._settings.read_retries
        while not self._stop_event.is_set():
            try:
                remaining = self._poll_once()
            except OSError as e:
                self._throttled.warning("Toolkit IPC transport error: %s", e)
                remaining = budget

            # Shorter wait when the read already spent part of its budget.
            delay = self._settings.poll_delay_s * remaining / budget
            self._stop_event.wait(max(delay, self._settings.read_retry_delay_s))

    def _release(self) -> None:
        self._session.close()
