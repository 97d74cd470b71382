"""
rigctld radio controller.

Talks Hamlib's network rig control protocol: one command per line, each
answered with `RPRT <code>` where 0 means success.
"""

import asyncio
import logging

from .base import CommandFailed, ConnectionFailed, NotConnected, RadioController, RadioMode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0
PASSBAND_DEFAULT = 0  # 0 = keep the rig's default filter for the mode


class RigctldController(RadioController):
    """Controller for a running rigctld daemon."""

    def __init__(self, host: str = "127.0.0.1", port: int = 4532, timeout: float = DEFAULT_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def backend_name(self) -> str:
        return "rigctld"

    async def connect(self) -> bool:
        if self.is_connected:
            return True
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectionFailed(f"rigctld at {self.host}:{self.port} unreachable: {e}") from e
        logger.info("📻 Connected to rigctld at %s:%d", self.host, self.port)
        return True

    async def disconnect(self) -> None:
        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError:
                pass
        self._reader = None
        self._writer = None

    async def tune(self, frequency_khz: float, mode: RadioMode) -> bool:
        if not self.is_connected:
            raise NotConnected()

        hz = int(round(frequency_khz * 1000))
        async with self._lock:
            await self._command(f"F {hz}")
            await self._command(f"M {mode.value} {PASSBAND_DEFAULT}")
        logger.info("📻 Tuned to %.1f kHz %s", frequency_khz, mode.value)
        return True

    async def _command(self, line: str) -> None:
        """Send one command and check its RPRT reply."""
        try:
            self._writer.write(f"{line}\n".encode())
            await self._writer.drain()
            reply = await asyncio.wait_for(self._reader.readline(), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            await self.disconnect()
            raise CommandFailed(f"'{line}' failed: {e}") from e

        text = reply.decode(errors="replace").strip()
        if not text:
            await self.disconnect()
            raise CommandFailed(f"'{line}' failed: connection closed")
        if not text.startswith("RPRT"):
            # Unread reply lines would be taken as answers to later commands
            await self.disconnect()
            raise CommandFailed(f"'{line}' unexpected reply: {text}")

        code = text.split()[-1]
        if code != "0":
            raise CommandFailed(f"'{line}' rejected: RPRT {code}")
