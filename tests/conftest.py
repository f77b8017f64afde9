import socket
import socketserver
import threading
import time
from typing import Callable, Optional

import pytest

from gaze_ingest.codecs import ipc
from gaze_ingest.configs import IpcSettings, OscSettings
from gaze_ingest.core.protocols import GazeEvent, GazeEventKind
from gaze_ingest.models import RawEyeSample


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def _recv_exact(sock: socket.socket, size: int) -> Optional[bytes]:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            return None
        data += chunk
    return data


class _ToolkitHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        server: FakeToolkitServer = self.server
        while True:
            raw_header = _recv_exact(self.request, ipc.HEADER.size)
            if raw_header is None:
                return
            header = ipc.decode_header(raw_header)
            payload = _recv_exact(self.request, header.length) if header.length else b""

            if header.type == ipc.MessageType.CLIENT_REQUEST_HANDSHAKE:
                server.handshake_requests.append(ipc.HANDSHAKE_REQUEST.unpack(payload))
                if server.handshake_response is not None:
                    self.request.sendall(server.handshake_response)

            elif header.type == ipc.MessageType.CLIENT_REQUEST_GAZE_DATA:
                server.gaze_requests += 1
                sequence = server.gaze_requests
                delay = server.reply_delays.get(sequence)
                if delay:
                    time.sleep(delay)
                if server.stamp_sequence:
                    # Reply n carries y == n so clients can tell which request it answers.
                    stamped = RawEyeSample(valid=True, direction=(0.0, float(sequence), 1.0))
                    response = ipc.encode_gaze_response(stamped, stamped)
                else:
                    response = server.gaze_response
                if response is None:
                    continue
                if server.split_at:
                    self.request.sendall(response[:server.split_at])
                    time.sleep(server.split_pause_s)
                    self.request.sendall(response[server.split_at:])
                else:
                    self.request.sendall(response)


class FakeToolkitServer(socketserver.ThreadingTCPServer):
    """Speaks the server side of the toolkit IPC protocol on an ephemeral loopback port."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _ToolkitHandler)
        self.handshake_response: Optional[bytes] = ipc.encode_handshake_response(ipc.HandshakeResult.SUCCESS)
        self.handshake_requests: list[tuple[int, int]] = []
        self.gaze_response: Optional[bytes] = None
        self.gaze_requests = 0
        self.split_at = 0
        self.split_pause_s = 0.0
        self.reply_delays: dict[int, float] = {}
        self.stamp_sequence = False
        self._thread = threading.Thread(target=self.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)

    @property
    def port(self) -> int:
        return self.server_address[1]

    def set_eyes(self, left: RawEyeSample, right: RawEyeSample) -> None:
        self.gaze_response = ipc.encode_gaze_response(left, right)

    def __enter__(self) -> "FakeToolkitServer":
        self._thread.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
        self.server_close()
        self._thread.join(timeout=2.0)


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class EventRecorder:
    """Thread-safe EventSink that keeps every event it receives."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[GazeEvent] = []

    def __call__(self, event: GazeEvent) -> None:
        with self._lock:
            self.events.append(event)

    def count(self, kind: GazeEventKind) -> int:
        with self._lock:
            return sum(1 for e in self.events if e.kind is kind)


def free_tcp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def toolkit_server():
    with FakeToolkitServer() as server:
        yield server


@pytest.fixture
def ipc_settings(toolkit_server) -> IpcSettings:
    return IpcSettings(
        port=toolkit_server.port,
        connect_retries=5,
        connect_retry_delay_s=0.02,
        handshake_retries=5,
        handshake_retry_delay_s=0.02,
        read_retries=20,
        read_retry_delay_s=0.002,
        poll_delay_s=0.002,
    )


@pytest.fixture
def osc_settings() -> OscSettings:
    return OscSettings(host="127.0.0.1", port=0, receive_timeout_s=0.2)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()
