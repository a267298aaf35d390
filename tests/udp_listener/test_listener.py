"""
Tests for the cue listener.

Verifies that:
1. Packets sent over UDP end up in the shared display state
2. Malformed, unsupported and unrecognized packets never touch the state
3. The loop survives bad packets and processing errors
4. Lifecycle: startup errors, prompt shutdown, port release, terminal stop
"""

import logging
import socket
import time
from unittest.mock import patch

import pytest

from cuedisplay.config import ListenerConfig
from cuedisplay.state.display_state import CueUpdate, SharedDisplayState
from cuedisplay.udp_listener import listener as listener_module
from cuedisplay.udp_listener.listener import CueListener, ListenerState, start, stop
from cuedisplay.udp_listener.osc_builder import (
    build_bundle,
    build_color,
    build_cue,
    build_description,
    build_osc_message,
)
from cuedisplay.udp_listener.osc_parser import RGBAColor
from cuedisplay.udp_listener.packet_source import PacketSource, PacketSourceClosed, StartupError
from cuedisplay.utils.metrics import MetricsCollector


CUE_PACKET = b"/cue\0\0\0\0,s\0\0Act1Scene2\0\0"
POLL_INTERVAL = 0.05


def wait_for(predicate, timeout=2.0):
    """Poll predicate until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def display():
    return SharedDisplayState()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def handle(display, metrics):
    h = start(0, display=display, host="127.0.0.1", metrics=metrics, poll_interval=POLL_INTERVAL)
    yield h
    stop(h)


@pytest.fixture
def sender():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield sock
    sock.close()


def send(sock, handle, *packets):
    for packet in packets:
        sock.sendto(packet, ("127.0.0.1", handle.port))


def received(handle, count):
    return lambda: handle.get_stats()["packets_received"] >= count


class TestEndToEnd:
    """Packets over a real UDP socket."""

    def test_reference_cue_packet(self, handle, display, sender):
        send(sender, handle, CUE_PACKET)
        assert wait_for(lambda: display.snapshot().cue == "Act1Scene2")

    def test_all_three_fields(self, handle, display, sender):
        send(
            sender, handle,
            build_cue("12"),
            build_description("House to half"),
            build_color(RGBAColor(255, 136, 0)),
        )
        assert wait_for(lambda: display.snapshot().version == 3)

        snapshot = display.snapshot()
        assert snapshot.cue == "12"
        assert snapshot.description == "House to half"
        assert snapshot.color == RGBAColor(255, 136, 0)

    def test_updates_applied_in_arrival_order(self, handle, display, sender):
        send(sender, handle, *(build_cue(str(i)) for i in range(50)))
        assert wait_for(received(handle, 50))
        assert display.snapshot().cue == "49"

    def test_long_description_is_applied(self, handle, display, sender):
        """A description well past 4 KB arrives whole."""
        text = "x" * 5000
        send(sender, handle, build_description(text))
        assert wait_for(lambda: display.snapshot().description == text)

        stats = handle.get_stats()
        assert stats["packets_applied"] == 1
        assert stats["malformed"] == 0

    def test_bad_packets_do_not_stop_the_loop(self, handle, display, sender):
        send(
            sender, handle,
            build_cue("A"),
            b"\xde\xad\xbe\xef",
            build_bundle(build_cue("in bundle")),
            build_osc_message("/unrelated", 1),
            build_osc_message("/cue", 42),
            build_cue("B"),
        )
        assert wait_for(received(handle, 6))
        assert display.snapshot().cue == "B"

        stats = handle.get_stats()
        assert stats["packets_applied"] == 2
        assert stats["malformed"] == 1
        assert stats["unsupported"] == 1
        assert stats["mapping_misses"] == 2
        assert handle.state is ListenerState.RUNNING


class TestNoiseLeavesStateUnchanged:
    """Failed decodes and mapping misses never mutate the display."""

    @pytest.mark.parametrize("packet", [
        CUE_PACKET[:3],
        b"/cue\0\0\0\x01,s\0\0Act1Scene2\0\0",
        CUE_PACKET + b"\0\0\0\0",
    ], ids=["truncated", "bad-padding", "trailing"])
    def test_malformed(self, handle, display, metrics, sender, packet):
        before = display.snapshot()
        send(sender, handle, packet)
        assert wait_for(received(handle, 1))

        assert display.snapshot() is before
        assert handle.get_stats()["malformed"] == 1
        assert metrics.get_counter('udp.decode.malformed')['value'] == 1

    def test_bundle_is_unsupported(self, handle, display, metrics, sender):
        before = display.snapshot()
        send(sender, handle, build_bundle(CUE_PACKET))
        assert wait_for(received(handle, 1))

        assert display.snapshot() is before
        assert handle.get_stats()["unsupported"] == 1
        assert metrics.get_counter('udp.decode.unsupported')['value'] == 1

    def test_unrecognized_address(self, handle, display, sender):
        before = display.snapshot()
        send(sender, handle, build_osc_message("/unrelated", "Act1Scene2"))
        assert wait_for(received(handle, 1))

        assert display.snapshot() is before
        assert handle.get_stats()["mapping_misses"] == 1


class TestHandlePacket:
    """Direct tests of the per-packet pipeline, without a socket."""

    def test_returns_applied_update(self, display):
        listener = CueListener(display=display)
        assert listener.handle_packet(CUE_PACKET) == CueUpdate("Act1Scene2")
        assert display.snapshot().cue == "Act1Scene2"

    def test_malformed_never_calls_apply(self, display):
        listener = CueListener(display=display)
        with patch.object(display, "apply") as apply:
            assert listener.handle_packet(CUE_PACKET[:-4]) is None
            assert listener.handle_packet(build_bundle(CUE_PACKET)) is None
            assert listener.handle_packet(build_osc_message("/other", "x")) is None
        apply.assert_not_called()

    def test_records_metrics(self, display, metrics):
        listener = CueListener(display=display, metrics=metrics)
        listener.handle_packet(build_cue("1"))
        listener.handle_packet(build_description("d"))
        listener.handle_packet(build_cue("2"))

        assert metrics.get_counter('udp.packet.received')['value'] == 3
        assert metrics.get_counter('state.update.applied', tags={'field': 'cue'})['value'] == 2
        assert metrics.get_counter('state.update.applied', tags={'field': 'description'})['value'] == 1
        assert metrics.get_timing('packet.processing')['count'] == 3

    def test_applied_updates_log_below_info(self, display, caplog):
        listener = CueListener(display=display)
        with caplog.at_level(logging.DEBUG, logger="cuedisplay.udp_listener.listener"):
            for i in range(5):
                listener.handle_packet(build_cue(str(i)))

        applied = [r for r in caplog.records if r.getMessage().startswith("/cue ->")]
        assert len(applied) == 5
        assert all(r.levelno == logging.DEBUG for r in applied)

    def test_processing_error_is_absorbed(self, handle, display, sender):
        """An unexpected exception for one packet does not kill the loop."""
        with patch.object(
            listener_module, "map_message",
            side_effect=[RuntimeError("boom"), CueUpdate("ok")],
        ):
            send(sender, handle, build_cue("first"), build_cue("ok"))
            assert wait_for(lambda: display.snapshot().cue == "ok")

        stats = handle.get_stats()
        assert stats["processing_errors"] == 1
        assert handle.is_running


class TestLifecycle:
    """Start/stop state machine."""

    def test_start_reports_running_and_port(self, handle):
        assert handle.state is ListenerState.RUNNING
        assert handle.is_running
        assert 0 < handle.port <= 65535
        assert handle.get_stats()["state"] == "running"

    def test_port_in_use_raises_startup_error(self, display):
        with PacketSource(host="127.0.0.1", port=0) as occupied:
            listener = CueListener(display=display, config=ListenerConfig(host="127.0.0.1", port=occupied.port))
            with pytest.raises(StartupError):
                listener.start()
            assert listener.state is ListenerState.STOPPED
            assert isinstance(listener.error, StartupError)

    def test_invalid_port_raises_startup_error(self):
        with pytest.raises(StartupError):
            start(70000, host="127.0.0.1")

    def test_stop_while_blocked_is_prompt_and_releases_port(self, handle):
        """stop() returns within the poll window and the port can be rebound at once."""
        port = handle.port
        time.sleep(0.1)  # let the thread block in receive()

        began = time.monotonic()
        stop(handle)
        elapsed = time.monotonic() - began

        assert elapsed < 0.25
        assert handle.state is ListenerState.STOPPED

        rebound = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            rebound.bind(("127.0.0.1", port))
        finally:
            rebound.close()

    def test_default_poll_interval_meets_shutdown_bound(self, display):
        h = start(0, display=display, host="127.0.0.1")
        time.sleep(0.1)
        began = time.monotonic()
        stop(h)
        assert time.monotonic() - began < 0.5

    def test_stop_is_terminal(self, handle):
        stop(handle)
        stop(handle)
        assert handle.state is ListenerState.STOPPED
        with pytest.raises(RuntimeError):
            handle.start()

    def test_stop_before_start(self):
        listener = CueListener()
        listener.stop()
        assert listener.state is ListenerState.STOPPED
        with pytest.raises(RuntimeError):
            listener.start()

    def test_socket_failure_ends_loop(self, handle):
        """A dead socket surfaces once and the loop terminates without retrying."""
        handle._source.close()
        assert wait_for(lambda: handle.state is ListenerState.STOPPED)
        assert handle.wait(1.0)
        assert isinstance(handle.error, PacketSourceClosed)
