"""
Spot monitor: the consumer side of the RBN client.

Drives an RbnClient, moves accepted spots into the shared SpotStore, purges
the store periodically and publishes updates to subscribers (the SSE layer).

Subscribers are async callables receiving dict payloads:
    {"type": "status", "state": ..., "msg": ..., "connected": ...}
    {"type": "disconnected", ...}
    {"type": "spots", "data": [...], "count": ...}
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from .logging_setup import get_logger
from .radio import RadioController, RadioMode
from .radio.disabled import DisabledController
from .rbn_client import DisconnectedEvent, RbnClient, SpotEvent, StatusEvent
from .spot_store import SpotStore

logger = get_logger(__name__)

POLL_INTERVAL = 0.1       # seconds between event queue drains
REFRESH_INTERVAL = 1.0    # minimum seconds between spot snapshots
PURGE_INTERVAL = 60.0     # seconds between store purges

Subscriber = Callable[[dict[str, Any]], Awaitable[None]]


class SpotMonitor:
    """Connects the RBN client, the spot store and the display layer."""

    def __init__(
        self,
        client: RbnClient,
        store: SpotStore,
        callsign: str = "",
        radio: RadioController | None = None,
        poll_interval: float = POLL_INTERVAL,
        refresh_interval: float = REFRESH_INTERVAL,
        purge_interval: float = PURGE_INTERVAL,
    ):
        self.client = client
        self.store = store
        self.callsign = callsign
        self.radio = radio or DisabledController()
        self.poll_interval = poll_interval
        self.refresh_interval = refresh_interval
        self.purge_interval = purge_interval

        self.last_status = "Not connected"
        self.spots_received = 0
        self._subscribers: list[Subscriber] = []
        self._pump_task: asyncio.Task | None = None
        self._dirty = False
        self._last_refresh = 0.0
        self._last_purge = 0.0

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    @property
    def connected(self) -> bool:
        return self.client.is_connected

    # --- Lifecycle ---

    async def start(self) -> None:
        self.client.start()
        if self._pump_task is None or self._pump_task.done():
            self._last_purge = time.monotonic()
            self._pump_task = asyncio.create_task(self._pump(), name="spot-monitor")
        logger.info("Spot monitor started")

    async def stop(self) -> None:
        if self._pump_task:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        await self.client.stop()
        if self.radio.is_connected:
            await self.radio.disconnect()
        logger.info("Spot monitor stopped")

    # --- Commands ---

    async def connect(self, callsign: str | None = None) -> None:
        """Ask the client to (re)connect, using the configured callsign by default."""
        callsign = (callsign or self.callsign).strip().upper()
        if not callsign:
            raise ValueError("No callsign configured")
        self.callsign = callsign
        await self.client.connect(callsign)

    async def disconnect(self) -> None:
        await self.client.disconnect()

    async def tune(self, frequency_khz: float, mode: str) -> bool:
        """Tune the rig to a spot. RadioError propagates to the caller."""
        if not self.radio.is_connected:
            await self.radio.connect()
        radio_mode = RadioMode.from_spot_mode(mode, frequency_khz)
        return await self.radio.tune(frequency_khz, radio_mode)

    def purge(self) -> int:
        removed = self.store.purge()
        self._last_purge = time.monotonic()
        if removed:
            self._dirty = True
        return removed

    # --- Views ---

    def spots_payload(self) -> dict[str, Any]:
        now = self.store.now()
        spots = self.store.query_filtered()
        return {
            "type": "spots",
            "data": [spot.to_dict(now) for spot in spots],
            "count": len(spots),
            "total": self.store.count(),
            "timestamp": int(time.time() * 1000),
        }

    def status(self) -> dict[str, Any]:
        return {
            "type": "status",
            "state": self.client.state.value,
            "connected": self.connected,
            "msg": self.last_status,
            "callsign": self.callsign,
            "spot_count": self.store.count(),
            "spots_received": self.spots_received,
            "radio": self.radio.backend_name,
            "timestamp": int(time.time() * 1000),
        }

    # --- Pump ---

    async def _pump(self) -> None:
        while True:
            await self.drain()

            now = time.monotonic()
            if now - self._last_purge >= self.purge_interval:
                self.purge()
            if self._dirty and now - self._last_refresh >= self.refresh_interval:
                self._dirty = False
                self._last_refresh = now
                await self._publish(self.spots_payload())

            await asyncio.sleep(self.poll_interval)

    async def drain(self) -> int:
        """Handle every pending client event. Returns the number handled."""
        handled = 0
        while True:
            event = self.client.try_recv()
            if event is None:
                return handled
            handled += 1

            if isinstance(event, SpotEvent):
                self.store.insert_or_merge(event.spot)
                self.spots_received += 1
                self._dirty = True
            elif isinstance(event, StatusEvent):
                self.last_status = event.text
                await self._publish(self.status())
            elif isinstance(event, DisconnectedEvent):
                payload = self.status()
                payload["type"] = "disconnected"
                payload["connected"] = False
                await self._publish(payload)

    async def _publish(self, payload: dict[str, Any]) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(payload)
            except Exception as e:
                logger.error("Subscriber %r failed: %s", callback, e)
