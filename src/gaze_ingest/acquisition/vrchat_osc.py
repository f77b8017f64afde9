import logging
import socket
from typing import Optional

from gaze_ingest.codecs import osc
from gaze_ingest.configs import OscSettings
from gaze_ingest.core.protocols import GazeEventKind
from gaze_ingest.errors import ConnectionFailed, MalformedMessage
from gaze_ingest.transport import ExactAddressDispatcher, LoggingOSCUDPServer
from gaze_ingest.utils.logging import ThrottledLogger
from .base import GazeSource, SourceType

logger = logging.getLogger(__name__)


class VRChatOscSource(GazeSource):
    """
    A GazeSource that listens for VRChat-style OSC eye tracking messages.

    Binds a UDP listener at construction. No peer is required: if nothing
    ever sends to the port, no gaze is ever published.
    """

    def __init__(self, settings: Optional[OscSettings] = None, **kwargs):
        super().__init__(**kwargs)
        self._settings = settings or OscSettings()
        self._throttled = ThrottledLogger(logger)

        self._dispatcher = ExactAddressDispatcher()
        self._dispatcher.route(self._settings.address, self._on_pitch_yaw)
        self._dispatcher.set_fallback(self._on_other)

        try:
            self._server = LoggingOSCUDPServer((self._settings.host, self._settings.port), self._dispatcher)
        except OSError as e:
            logger.warning("VRChat OSC source not available: %s", e)
            raise ConnectionFailed(f"Could not bind UDP {self._settings.host}:{self._settings.port}: {e}") from e

        # Backstop in case the break datagram never arrives.
        self._server.timeout = self._settings.receive_timeout_s
        logger.info("Listening for OSC eye tracking on UDP %s:%d.", *self.bound_address)
        self._mark_connected()

    @property
    def bound_address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return host, port

    def get_type(self) -> SourceType:
        return SourceType.VRCHAT_OSC

    def _on_pitch_yaw(self, address: str, *args) -> None:
        try:
            left, right = osc.decode_pitch_yaw(args)
            vector = osc.to_gaze_vector(left, right)
        except MalformedMessage as e:
            self._throttled.warning("Dropped OSC message on %s: %s", address, e)
            self._emit(GazeEventKind.MALFORMED_MESSAGE, address=address, reason=str(e))
            return

        logger.debug("OSC pitch/yaw %s -> %s", args, vector)
        self._publish(vector)

    def _on_other(self, address: str, *args) -> None:
        logger.debug("Ignoring OSC message on %s.", address)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self._server.handle_request()

    def _unblock(self) -> None:
        """Sends an empty datagram to our own port to wake the pending receive."""
        host, port = self.bound_address
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.sendto(b"", (host, port))

    def _release(self) -> None:
        self._server.server_close()
        logger.info("Closed OSC listener.")
