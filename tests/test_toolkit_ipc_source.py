import math
import os
import socket
import time

import pytest

from conftest import free_tcp_port, wait_until
from gaze_ingest.acquisition import SourceType, ToolkitIpcSource
from gaze_ingest.codecs import ipc
from gaze_ingest.configs import IpcSettings
from gaze_ingest.core import BackendState, GazeEventKind
from gaze_ingest.errors import ConnectionFailed, HandshakeFailed
from gaze_ingest.models import RawEyeSample
from gaze_ingest.transport import TcpSession


def _eye(x, y, z, valid=True):
    return RawEyeSample(valid=valid, direction=(x, y, z))


def test_handshake_sends_version_and_pid(toolkit_server, ipc_settings):
    with ToolkitIpcSource(ipc_settings) as source:
        assert source.state is BackendState.CONNECTED
        assert source.get_type() is SourceType.TOOLKIT_IPC

    assert toolkit_server.handshake_requests == [(ipc.IPC_VERSION, os.getpid())]
    assert source.state is BackendState.STOPPED


def test_no_server_is_connection_failure():
    settings = IpcSettings(port=free_tcp_port(), connect_retries=3, connect_retry_delay_s=0.01)

    with pytest.raises(ConnectionFailed):
        ToolkitIpcSource(settings)


def test_silent_server_is_handshake_failure(toolkit_server, ipc_settings, events):
    toolkit_server.handshake_response = None

    with pytest.raises(HandshakeFailed, match="Timed out"):
        ToolkitIpcSource(ipc_settings, events=events)

    assert events.count(GazeEventKind.HANDSHAKE_FAILED) == 1


@pytest.mark.parametrize("result", [ipc.HandshakeResult.FAILED, ipc.HandshakeResult.OUTDATED])
def test_rejected_handshake(toolkit_server, ipc_settings, result):
    toolkit_server.handshake_response = ipc.encode_handshake_response(result)

    with pytest.raises(HandshakeFailed, match=result.name):
        ToolkitIpcSource(ipc_settings)


def test_wrong_handshake_message_type(toolkit_server, ipc_settings):
    toolkit_server.handshake_response = ipc.encode_header(ipc.MessageType.SERVER_PONG, 1) + b"\x01"

    with pytest.raises(HandshakeFailed, match="Unexpected message type"):
        ToolkitIpcSource(ipc_settings)


def test_forward_gaze_is_flipped_to_negative_z(toolkit_server, ipc_settings):
    toolkit_server.set_eyes(_eye(0.0, 0.0, 1.0), _eye(0.0, 0.0, 1.0))

    with ToolkitIpcSource(ipc_settings) as source:
        assert not source.is_gaze_available()
        source.start()

        assert wait_until(source.is_gaze_available)
        assert source.get_gaze().as_tuple() == pytest.approx((0.0, 0.0, -1.0))


def test_eyes_are_averaged_with_x_and_z_inverted(toolkit_server, ipc_settings):
    toolkit_server.set_eyes(_eye(0.2, 0.1, 0.9), _eye(0.4, 0.3, 0.7))

    with ToolkitIpcSource(ipc_settings) as source:
        source.start()
        assert wait_until(source.is_gaze_available)

        out = [0.0, 0.0, 0.0]
        vector = source.get_gaze(out=out)

    assert vector.as_tuple() == pytest.approx((-0.3, 0.2, -0.8), abs=1e-6)
    assert out == list(vector.as_tuple())


def test_invalid_eye_is_never_published(toolkit_server, ipc_settings):
    toolkit_server.set_eyes(_eye(0.0, 0.0, 1.0), _eye(0.0, 0.0, 1.0, valid=False))

    with ToolkitIpcSource(ipc_settings) as source:
        source.start()
        assert wait_until(lambda: toolkit_server.gaze_requests >= 5)

        assert not source.is_gaze_available()


def test_nan_direction_is_dropped(toolkit_server, ipc_settings, events):
    toolkit_server.set_eyes(_eye(0.0, 0.0, 1.0), _eye(0.0, 0.0, 1.0))

    with ToolkitIpcSource(ipc_settings, events=events) as source:
        source.start()
        assert wait_until(source.is_gaze_available)

        toolkit_server.set_eyes(_eye(math.nan, 0.0, 1.0), _eye(0.0, 0.0, 1.0))
        assert wait_until(lambda: events.count(GazeEventKind.MALFORMED_MESSAGE) >= 1)
        received_at = source._sample.received_at
        published = events.count(GazeEventKind.SAMPLE_PUBLISHED)
        assert wait_until(lambda: events.count(GazeEventKind.MALFORMED_MESSAGE) >= 3)

        assert events.count(GazeEventKind.SAMPLE_PUBLISHED) == published
        assert source._sample.received_at == received_at
        assert source.get_gaze().as_tuple() == pytest.approx((0.0, 0.0, -1.0))


def test_infinite_direction_is_dropped(toolkit_server, ipc_settings, events):
    toolkit_server.set_eyes(_eye(math.inf, 0.0, 1.0), _eye(0.0, 0.0, 1.0))

    with ToolkitIpcSource(ipc_settings, events=events) as source:
        source.start()
        assert wait_until(lambda: events.count(GazeEventKind.MALFORMED_MESSAGE) >= 2)

        assert not source.is_gaze_available()
        assert events.count(GazeEventKind.SAMPLE_PUBLISHED) == 0


def test_late_reply_is_not_mistaken_for_a_newer_one(toolkit_server, ipc_settings):
    toolkit_server.stamp_sequence = True
    # Each of these replies takes longer than a whole read budget.
    toolkit_server.reply_delays = {2: 0.2, 3: 0.2, 4: 0.2}

    with ToolkitIpcSource(ipc_settings) as source:
        source.start()
        assert wait_until(lambda: toolkit_server.gaze_requests >= 10)

        for _ in range(5):
            requested = toolkit_server.gaze_requests
            assert source.get_gaze().y >= requested - 1
            time.sleep(0.01)


def test_partial_responses_are_reassembled(toolkit_server, ipc_settings):
    toolkit_server.set_eyes(_eye(0.0, 1.0, 0.0), _eye(0.0, 1.0, 0.0))
    toolkit_server.split_at = 10
    toolkit_server.split_pause_s = 0.01

    with ToolkitIpcSource(ipc_settings) as source:
        source.start()
        assert wait_until(source.is_gaze_available)

        assert source.get_gaze().as_tuple() == pytest.approx((0.0, 1.0, 0.0))


def test_stop_then_close_is_bounded(toolkit_server, ipc_settings, events):
    with ToolkitIpcSource(ipc_settings, events=events) as source:
        source.start()
        assert source.state is BackendState.RUNNING
        assert wait_until(lambda: toolkit_server.gaze_requests >= 1)

        started = time.monotonic()
        source.stop()
        source.close()

    assert time.monotonic() - started < 1.0
    assert source.state is BackendState.STOPPED
    assert events.count(GazeEventKind.LOOP_STARTED) == 1
    assert events.count(GazeEventKind.LOOP_STOPPED) == 1


def test_start_twice_spawns_one_loop(toolkit_server, ipc_settings, events):
    with ToolkitIpcSource(ipc_settings, events=events) as source:
        source.start()
        source.start()

    assert events.count(GazeEventKind.LOOP_STARTED) == 1


def test_close_without_start(toolkit_server, ipc_settings):
    source = ToolkitIpcSource(ipc_settings)

    source.close()
    source.close()

    assert source.state is BackendState.STOPPED


def test_session_keeps_partial_bytes_between_reads():
    with socket.create_server(("127.0.0.1", 0)) as listener:
        session = TcpSession("127.0.0.1", listener.getsockname()[1])
        session.connect(retries=10, delay_s=0.01)
        peer, _ = listener.accept()
        try:
            peer.sendall(b"abc")
            data, remaining = session.receive_exact(6, retries=3, delay_s=0.01)
            assert data is None
            assert remaining == 0

            peer.sendall(b"defgh")
            data, remaining = session.receive_exact(6, retries=50, delay_s=0.01)
            assert data == b"abcdef"
            assert remaining > 0
        finally:
            peer.close()
            session.close()

    assert not session.is_open


def test_send_gives_up_when_the_peer_stops_reading():
    with socket.create_server(("127.0.0.1", 0)) as listener:
        session = TcpSession("127.0.0.1", listener.getsockname()[1])
        session.connect(retries=10, delay_s=0.01)
        peer, _ = listener.accept()
        try:
            started = time.monotonic()
            with pytest.raises(TimeoutError, match="stopped reading"):
                session.send(bytes(64 * 1024 * 1024), retries=5, delay_s=0.01)

            assert time.monotonic() - started < 5.0
        finally:
            peer.close()
            session.close()


def test_close_from_the_ingestion_thread_defers_release(toolkit_server, ipc_settings):
    seen = {}

    def close_on_start(event):
        if event.kind is GazeEventKind.LOOP_STARTED:
            source.close()
            seen["open_after_close"] = source._session.is_open

    source = ToolkitIpcSource(ipc_settings, events=close_on_start)
    source.start()

    assert wait_until(lambda: "open_after_close" in seen)
    assert seen["open_after_close"]
    assert wait_until(lambda: not source._session.is_open)
    assert source.state is BackendState.STOPPED

    source.close()
