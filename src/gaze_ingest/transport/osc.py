import logging
from typing import Callable, Optional

from pythonosc import osc_packet
from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import BlockingOSCUDPServer

logger = logging.getLogger(__name__)

OscHandler = Callable[..., None]


class ExactAddressDispatcher(Dispatcher):
    """
    Routes OSC messages by exact address string.

    Incoming addresses are never treated as patterns, so a message sent to
    `/tracking/eye/*` does not reach the `/tracking/eye/LeftRightPitchYaw`
    handler. Bundle contents are dispatched as soon as the datagram is read,
    whatever their timetag.
    """

    def __init__(self):
        super().__init__()
        self._routes: dict[str, OscHandler] = {}
        self._fallback: Optional[OscHandler] = None

    def route(self, address: str, handler: OscHandler) -> None:
        self._routes[address] = handler

    def set_fallback(self, handler: OscHandler) -> None:
        self._fallback = handler

    def call_handlers_for_packet(self, data: bytes, client_address: tuple[str, int]) -> list:
        try:
            packet = osc_packet.OscPacket(data)
        except osc_packet.ParseError as e:
            logger.debug("Ignoring unparsable OSC datagram from %s: %s", client_address, e)
            return []

        for timed_msg in packet.messages:
            message = timed_msg.message
            handler = self._routes.get(message.address, self._fallback)
            if handler is not None:
                handler(message.address, *message.params)
        return []


class LoggingOSCUDPServer(BlockingOSCUDPServer):
    """Blocking OSC server that reports handler failures through logging instead of stderr."""

    def handle_error(self, request, client_address) -> None:
        logger.exception("Unhandled error while processing OSC datagram from %s.", client_address)
