import errno
import logging
import socket
import time
from typing import Optional

from ..errors import ConnectionFailed

logger = logging.getLogger(__name__)

# connect_ex codes meaning "connection attempt still under way"
_IN_PROGRESS = {errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK}


class TcpSession:
    """
    Non-blocking TCP stream with bounded, poll-based retries.

    Owns its socket for its entire lifetime. Reads never rely on OS-level
    timeouts: callers give a retry count and a delay between attempts, and
    a read that cannot complete in that budget reports failure instead of
    returning partial data. Bytes of an incomplete read stay buffered so the
    next read continues where the stream left off.
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None
        self._pending = bytearray()

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def _new_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setblocking(False)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return sock

    def connect(self, retries: int, delay_s: float) -> None:
        """
        Connects to (host, port), polling up to `retries` times.

        Raises ConnectionFailed once the budget is exhausted.
        """
        sock = self._new_socket()
        address = (self.host, self.port)

        for attempt in range(1, retries + 1):
            code = sock.connect_ex(address)
            if code in (0, errno.EISCONN):
                self._sock = sock
                logger.info("Connected to %s:%d after %d attempt(s).", self.host, self.port, attempt)
                return

            if code not in _IN_PROGRESS:
                # A refused socket cannot be reused for another attempt.
                logger.debug("Connect attempt %d to %s:%d failed: %s", attempt, self.host, self.port, errno.errorcode.get(code, code))
                sock.close()
                sock = self._new_socket()

            time.sleep(delay_s)

        sock.close()
        raise ConnectionFailed(f"Could not connect to {self.host}:{self.port} after {retries} attempts.")

    def send(self, data: bytes, retries: int, delay_s: float) -> None:
        """
        Sends the whole record, waiting up to `retries` times for buffer space.

        Raises TimeoutError when the peer stops reading long enough to exhaust
        the budget, and OSError if the peer went away.
        """
        if self._sock is None:
            raise OSError(errno.ENOTCONN, "Session is closed.")

        view = memoryview(data)
        remaining = retries
        while view:
            try:
                sent = self._sock.send(view)
            except BlockingIOError:
                if not remaining:
                    raise TimeoutError(
                        f"Peer {self.host}:{self.port} stopped reading; {len(view)} bytes unsent."
                    ) from None
                time.sleep(delay_s)
                remaining -= 1
                continue
            view = view[sent:]

    def receive_exact(self, size: int, retries: int, delay_s: float) -> tuple[Optional[bytes], int]:
        """
        Assembles exactly `size` bytes across partial reads.

        Returns (data, remaining_retries). `data` is None when the budget ran
        out first; the partial bytes are kept for the next call.
        """
        if self._sock is None:
            raise OSError(errno.ENOTCONN, "Session is closed.")

        remaining = retries
        while remaining:
            try:
                chunk = self._sock.recv(size - len(self._pending))
            except BlockingIOError:
                chunk = b""
            if chunk:
                self._pending.extend(chunk)
            if len(self._pending) >= size:
                data = bytes(self._pending[:size])
                del self._pending[:size]
                return data, remaining

            time.sleep(delay_s)
            remaining -= 1

        return None, 0

    def close(self) -> None:
        if self._sock is None:
            return

        sock, self._sock = self._sock, None
        self._pending.clear()
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer may already have dropped the connection.
            pass
        sock.close()
        logger.info("Closed connection to %s:%d.", self.host, self.port)
