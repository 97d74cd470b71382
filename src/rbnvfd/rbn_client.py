"""
Reverse Beacon Network telnet client.

A single asyncio task owns the socket. The consumer talks to it through two
bounded queues:

    await client.connect("DL1ABC")      # ConnectCommand
    await client.disconnect()           # DisconnectCommand
    event = client.try_recv()           # StatusEvent | SpotEvent | DisconnectedEvent | None

Each loop iteration waits for the next command and, while a socket is open,
the next chunk from that socket; whichever completes first is handled.
There is no connect or read timeout and no automatic reconnect.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from .config_loader import (
    COMMAND_QUEUE_SIZE,
    EVENT_QUEUE_SIZE,
    IDLE_POLL_SECONDS,
    RBN_HOST,
    RBN_PORT,
)
from .logging_setup import get_logger
from .models import RawSpot
from .spot_parser import parse_spot_line

logger = get_logger(__name__)

LOGIN_PROMPT = "please enter your call"
LOGIN_READ_SIZE = 1024
LOGIN_BUFFER_LIMIT = 512


class ConnectionState(Enum):
    """RBN connection states"""
    IDLE = "idle"
    CONNECTING = "connecting"
    LOGGING_IN = "logging_in"
    STREAMING = "streaming"


# --- Commands (consumer -> client) ---

@dataclass(frozen=True)
class ConnectCommand:
    callsign: str


@dataclass(frozen=True)
class DisconnectCommand:
    pass


# --- Events (client -> consumer) ---

@dataclass(frozen=True)
class StatusEvent:
    text: str


@dataclass(frozen=True)
class SpotEvent:
    spot: RawSpot


@dataclass(frozen=True)
class DisconnectedEvent:
    pass


RbnCommand = ConnectCommand | DisconnectCommand
RbnEvent = StatusEvent | SpotEvent | DisconnectedEvent


class RbnClient:
    """Connection manager for the spotting feed."""

    def __init__(
        self,
        host: str = RBN_HOST,
        port: int = RBN_PORT,
        command_queue_size: int = COMMAND_QUEUE_SIZE,
        event_queue_size: int = EVENT_QUEUE_SIZE,
    ):
        self.host = host
        self.port = port
        self._commands: asyncio.Queue[RbnCommand] = asyncio.Queue(maxsize=command_queue_size)
        self._events: asyncio.Queue[RbnEvent] = asyncio.Queue(maxsize=event_queue_size)

        self._state = ConnectionState.IDLE
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._callsign = ""
        self._login_buffer = ""

        self._task: asyncio.Task | None = None
        self._command_task: asyncio.Task | None = None
        self._read_task: asyncio.Task | None = None
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True once logged in and streaming spots."""
        return self._state == ConnectionState.STREAMING

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # --- Lifecycle ---

    def start(self) -> None:
        """Spawn the background task (idempotent)."""
        if self.is_running:
            return
        self._closed = False
        self._task = asyncio.create_task(self._run(), name="rbn-client")
        logger.info("RBN client started for %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Cancel the background task and drop any open socket."""
        self._closed = True
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._discard_stream()
        logger.info("RBN client stopped")

    # --- Consumer API ---

    async def connect(self, callsign: str) -> None:
        """Queue a connect command. Blocks while the command queue is full."""
        await self._send(ConnectCommand(callsign.strip()))

    async def disconnect(self) -> None:
        """Queue a disconnect command. Blocks while the command queue is full."""
        await self._send(DisconnectCommand())

    def try_recv(self) -> RbnEvent | None:
        """Next pending event, or None if there is none (non-blocking)."""
        try:
            return self._events.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def recv(self) -> RbnEvent:
        """Wait for the next event."""
        return await self._events.get()

    async def _send(self, command: RbnCommand) -> None:
        if self._closed:
            raise RuntimeError(f"Failed to send {type(command).__name__}: client stopped")
        await self._commands.put(command)

    # --- Background task ---

    async def _run(self) -> None:
        try:
            while True:
                await self._step()
        finally:
            if self._command_task:
                self._command_task.cancel()
                self._command_task = None
            self._discard_stream()

    async def _step(self) -> None:
        """One loop iteration: handle a command or a socket read, whichever is ready."""
        if self._command_task is None:
            self._command_task = asyncio.ensure_future(self._commands.get())

        if self._reader is None:
            # No stream, just wait for commands
            done, _ = await asyncio.wait({self._command_task}, timeout=IDLE_POLL_SECONDS)
        else:
            if self._read_task is None:
                self._read_task = asyncio.ensure_future(self._next_read(self._reader))
            done, _ = await asyncio.wait(
                {self._command_task, self._read_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

        if self._command_task in done:
            task, self._command_task = self._command_task, None
            await self._handle_command(task.result())
        elif self._read_task is not None and self._read_task in done:
            task, self._read_task = self._read_task, None
            await self._handle_read(task)

    def _next_read(self, reader: asyncio.StreamReader):
        # The login prompt is not newline-terminated on every server
        if self._state == ConnectionState.LOGGING_IN:
            return reader.read(LOGIN_READ_SIZE)
        return reader.readline()

    async def _handle_command(self, command: RbnCommand) -> None:
        if isinstance(command, ConnectCommand):
            await self._open(command.callsign)
        elif isinstance(command, DisconnectCommand):
            self._discard_stream()
            await self._emit(StatusEvent("Disconnected"))
            await self._emit(DisconnectedEvent())

    async def _open(self, callsign: str) -> None:
        # Disconnect existing connection first
        self._discard_stream()

        self._state = ConnectionState.CONNECTING
        await self._emit(StatusEvent(f"Connecting to {self.host}:{self.port}..."))

        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            self._state = ConnectionState.IDLE
            await self._emit(StatusEvent(f"Connection failed: {e}"))
            return

        self._reader = reader
        self._writer = writer
        self._callsign = callsign
        self._login_buffer = ""
        self._state = ConnectionState.LOGGING_IN
        await self._emit(StatusEvent("Connected, waiting for login prompt..."))

    async def _handle_read(self, task: asyncio.Task) -> None:
        try:
            data: bytes = task.result()
        except ValueError as e:
            # Line over the reader limit; the reader has already discarded it
            logger.debug("Dropped oversized feed line: %s", e)
            return
        except OSError as e:
            await self._read_failed(f"Read error: {e}")
            return

        if not data:
            await self._read_failed("Connection closed")
            return

        text = data.decode("utf-8", errors="replace")
        if self._state == ConnectionState.LOGGING_IN:
            await self._login(text)
            return

        spot = parse_spot_line(text)
        if spot is not None:
            await self._emit(SpotEvent(spot))

    async def _read_failed(self, reason: str) -> None:
        """End of stream or read error. Only a logged-in stream reports Disconnected."""
        was_streaming = self._state == ConnectionState.STREAMING
        self._discard_stream()
        if was_streaming:
            await self._emit(StatusEvent(reason))
            await self._emit(DisconnectedEvent())
        else:
            await self._emit(StatusEvent(f"Login failed: {reason}"))

    async def _login(self, text: str) -> None:
        self._login_buffer = (self._login_buffer + text)[-LOGIN_BUFFER_LIMIT:]
        if LOGIN_PROMPT not in self._login_buffer.lower():
            return

        try:
            self._writer.write(f"{self._callsign}\r\n".encode())
            await self._writer.drain()
        except OSError as e:
            self._discard_stream()
            await self._emit(StatusEvent(f"Login failed: Failed to send callsign: {e}"))
            return

        self._login_buffer = ""
        self._state = ConnectionState.STREAMING
        await self._emit(StatusEvent(f"Logged in as {self._callsign}"))

    def _discard_stream(self) -> None:
        """Drop the socket without a graceful close and return to IDLE."""
        if self._read_task:
            if self._read_task.done():
                if not self._read_task.cancelled():
                    self._read_task.exception()
            else:
                self._read_task.cancel()
            self._read_task = None
        if self._writer:
            self._writer.transport.abort()
            logger.debug("🔌 Socket to %s:%d dropped", self.host, self.port)
        self._reader = None
        self._writer = None
        self._login_buffer = ""
        self._state = ConnectionState.IDLE

    async def _emit(self, event: RbnEvent) -> None:
        if isinstance(event, StatusEvent):
            logger.info("📡 RBN: %s", event.text)
        elif isinstance(event, DisconnectedEvent):
            logger.info("📡 RBN: disconnected")
        await self._events.put(event)
