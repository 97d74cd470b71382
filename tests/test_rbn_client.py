"""Tests for the RBN connection manager against a local fake telnet server."""

import asyncio
import gc
import socket
import struct

import pytest

from rbnvfd.rbn_client import (
    ConnectionState,
    DisconnectedEvent,
    RbnClient,
    SpotEvent,
    StatusEvent,
)

PROMPT = b"Welcome to the RBN telnet server\r\n\r\nPlease enter your call: "

SPOT_LINES = (
    b"Hello DL1ABC, this is the RBN\r\n"
    b"DX de W1AW-#:    14025.0  K1ABC          CW    15 dB  25 WPM  CQ      1200Z\r\n"
    b"To ALL de SKIMMER: local time 12:00\r\n"
    b"DX de DK9IP-#:     7012.5  OK1RR          CW    22 dB  28 WPM  CQ      1201Z\r\n"
)


class FakeRbnServer:
    """Local TCP server running one handler coroutine per connection."""

    def __init__(self, handler):
        self.handler = handler
        self.server = None
        self.port = None
        self.connections = 0
        self.closed = 0
        self.connection_closed = asyncio.Event()

    async def __aenter__(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc):
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), timeout=2.0)
        except asyncio.TimeoutError:
            pass

    async def _handle(self, reader, writer):
        self.connections += 1
        try:
            await self.handler(reader, writer)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            self.closed += 1
            self.connection_closed.set()
            writer.close()


async def collect_until(client, predicate, timeout=5.0):
    """Receive events until one satisfies predicate; return all of them."""
    events = []

    async def _collect():
        while True:
            event = await client.recv()
            events.append(event)
            if predicate(event):
                return

    await asyncio.wait_for(_collect(), timeout)
    return events


def is_login_failure(event):
    return isinstance(event, StatusEvent) and event.text.startswith("Login failed")


def status_texts(events):
    return [e.text for e in events if isinstance(e, StatusEvent)]


def unused_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_idle(client, timeout=2.0):
    async def _wait():
        while client.state != ConnectionState.IDLE:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_wait(), timeout)


class TestLoginAndStreaming:
    @pytest.mark.asyncio
    async def test_login_then_spots_then_close(self):
        received = []

        async def handler(reader, writer):
            writer.write(PROMPT)
            await writer.drain()
            received.append(await reader.readline())
            writer.write(SPOT_LINES)
            await writer.drain()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                events = await collect_until(
                    client, lambda e: isinstance(e, DisconnectedEvent)
                )
            finally:
                await client.stop()

        assert received == [b"DL1ABC\r\n"]
        assert status_texts(events) == [
            f"Connecting to 127.0.0.1:{server.port}...",
            "Connected, waiting for login prompt...",
            "Logged in as DL1ABC",
            "Connection closed",
        ]
        spots = [e.spot for e in events if isinstance(e, SpotEvent)]
        assert [(s.spotter, s.callsign, s.frequency_khz) for s in spots] == [
            ("W1AW", "K1ABC", 14025.0),
            ("DK9IP", "OK1RR", 7012.5),
        ]
        assert isinstance(events[-1], DisconnectedEvent)
        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_prompt_split_across_reads(self):
        received = []

        async def handler(reader, writer):
            writer.write(b"Please enter ")
            await writer.drain()
            await asyncio.sleep(0.05)
            writer.write(b"YOUR CALL:\r\n")
            await writer.drain()
            received.append(await reader.readline())
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("dl1abc ")
                events = await collect_until(
                    client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Logged in")
                )
                assert client.state == ConnectionState.STREAMING
                assert client.is_connected
            finally:
                await client.stop()

        assert received == [b"dl1abc\r\n"]
        assert status_texts(events)[-1] == "Logged in as dl1abc"

    @pytest.mark.asyncio
    async def test_disconnect_while_streaming(self):
        async def handler(reader, writer):
            writer.write(PROMPT)
            await writer.drain()
            await reader.readline()
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                await collect_until(
                    client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Logged in")
                )
                await client.disconnect()
                events = await collect_until(client, lambda e: isinstance(e, DisconnectedEvent))
                await asyncio.wait_for(server.connection_closed.wait(), timeout=2.0)
            finally:
                await client.stop()

        assert status_texts(events) == ["Disconnected"]
        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_oversized_line_is_dropped_and_stream_continues(self):
        async def handler(reader, writer):
            writer.write(PROMPT)
            await writer.drain()
            await reader.readline()
            writer.write(b"X" * 70_000 + b"\r\n" + SPOT_LINES)
            await writer.drain()
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                events = await collect_until(client, lambda e: isinstance(e, SpotEvent))
                assert client.state == ConnectionState.STREAMING
            finally:
                await client.stop()

        assert status_texts(events)[-1] == "Logged in as DL1ABC"
        assert not any(isinstance(e, DisconnectedEvent) for e in events)
        assert events[-1].spot.callsign == "K1ABC"

    @pytest.mark.asyncio
    async def test_reset_while_streaming_reports_read_error(self):
        async def handler(reader, writer):
            writer.write(PROMPT)
            await writer.drain()
            await reader.readline()
            # Linger 0 makes the close send RST instead of FIN
            sock = writer.get_extra_info("socket")
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
            writer.transport.abort()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                events = await collect_until(client, lambda e: isinstance(e, DisconnectedEvent))
                await asyncio.sleep(0.2)
                assert client.try_recv() is None
            finally:
                await client.stop()

        texts = status_texts(events)
        assert texts[-2] == "Logged in as DL1ABC"
        assert texts[-1].startswith("Read error: ")
        assert isinstance(events[-2], StatusEvent)
        assert isinstance(events[-1], DisconnectedEvent)
        assert client.state == ConnectionState.IDLE


class TestConnectionFailures:
    @pytest.mark.asyncio
    async def test_connection_refused(self):
        client = RbnClient(host="127.0.0.1", port=unused_port())
        client.start()
        try:
            await client.connect("DL1ABC")
            events = await collect_until(
                client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Connection failed")
            )
            await asyncio.sleep(0.2)
            assert client.try_recv() is None
        finally:
            await client.stop()

        assert len(events) == 2
        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_close_before_prompt_fails_login_without_disconnected(self):
        async def handler(reader, writer):
            writer.write(b"Server busy, try later\r\n")
            await writer.drain()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                events = await collect_until(client, is_login_failure)
                await asyncio.sleep(0.2)
                assert client.try_recv() is None
            finally:
                await client.stop()

        assert status_texts(events)[-1] == "Login failed: Connection closed"
        assert not any(isinstance(e, DisconnectedEvent) for e in events)
        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_recovers_with_new_connect(self):
        attempts = []

        async def handler(reader, writer):
            attempts.append(1)
            if len(attempts) == 1:
                return
            writer.write(PROMPT)
            await writer.drain()
            await reader.readline()
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                await collect_until(client, is_login_failure)
                await client.connect("DL1ABC")
                await collect_until(
                    client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Logged in")
                )
                assert client.state == ConnectionState.STREAMING
            finally:
                await client.stop()

        assert len(attempts) == 2


class TestCommandHandling:
    @pytest.mark.asyncio
    async def test_connect_then_immediate_disconnect(self):
        async def handler(reader, writer):
            # Never sends a prompt; waits until the client goes away
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                await client.disconnect()
                events = await collect_until(client, lambda e: isinstance(e, DisconnectedEvent))
                await asyncio.wait_for(server.connection_closed.wait(), timeout=2.0)
                await wait_idle(client)
            finally:
                await client.stop()

        assert status_texts(events)[-1] == "Disconnected"
        assert server.closed == server.connections == 1

    @pytest.mark.asyncio
    async def test_second_connect_drops_first_socket(self):
        async def handler(reader, writer):
            writer.write(PROMPT)
            await writer.drain()
            await reader.readline()
            await reader.read()

        async with FakeRbnServer(handler) as server:
            client = RbnClient(host="127.0.0.1", port=server.port)
            client.start()
            try:
                await client.connect("DL1ABC")
                await collect_until(
                    client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Logged in")
                )
                await client.connect("DL2XYZ")
                events = await collect_until(
                    client, lambda e: isinstance(e, StatusEvent) and e.text.startswith("Logged in")
                )
                await asyncio.wait_for(server.connection_closed.wait(), timeout=2.0)
            finally:
                await client.stop()

        assert server.connections == 2
        assert server.closed >= 1
        assert not any(isinstance(e, DisconnectedEvent) for e in events)
        assert status_texts(events)[-1] == "Logged in as DL2XYZ"

    @pytest.mark.asyncio
    async def test_disconnect_when_idle(self):
        client = RbnClient(host="127.0.0.1", port=unused_port())
        client.start()
        try:
            await client.disconnect()
            events = await collect_until(client, lambda e: isinstance(e, DisconnectedEvent))
        finally:
            await client.stop()

        assert status_texts(events) == ["Disconnected"]

    @pytest.mark.asyncio
    async def test_try_recv_empty(self):
        client = RbnClient()
        assert client.try_recv() is None

    @pytest.mark.asyncio
    async def test_commands_rejected_after_stop(self):
        client = RbnClient()
        client.start()
        await client.stop()

        with pytest.raises(RuntimeError):
            await client.connect("DL1ABC")
        assert not client.is_running

    @pytest.mark.asyncio
    async def test_discard_collects_failed_read(self):
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            client = RbnClient()
            failed = loop.create_future()
            failed.set_exception(ConnectionResetError("reset by peer"))
            client._read_task = failed

            client._discard_stream()
            del failed
            gc.collect()
        finally:
            loop.set_exception_handler(None)

        assert reported == []
        assert client._read_task is None
        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_discard_cancels_pending_read(self):
        client = RbnClient()
        pending = asyncio.get_running_loop().create_future()
        client._read_task = pending

        client._discard_stream()

        assert pending.cancelled()
