#!/usr/bin/env python3
"""
Display API for rbnvfd, served by FastAPI/uvicorn.

`/events` is a Server-Sent Events stream. Every frame is named after the
payload type, so a browser display can subscribe selectively:

    const es = new EventSource("/events");
    es.addEventListener("spots", e => render(JSON.parse(e.data)));
    es.addEventListener("status", e => showStatus(JSON.parse(e.data)));

The JSON endpoints under `/api` query the spot store and drive the monitor.
"""
import asyncio
import itertools
import json
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import __version__
from .logging_setup import get_logger
from .monitor import SpotMonitor
from .radio import RadioError

VERSION = f"v{__version__}"

logger = get_logger(__name__)

KEEPALIVE_SECONDS = 30.0
DISPLAY_BACKLOG = 32
SPOT_ORDERS = ("frequency", "recency")


class ConnectRequest(BaseModel):
    callsign: str | None = None


class TuneRequest(BaseModel):
    frequency_khz: float = Field(gt=0)
    mode: str = "CW"


class DisplayClient:
    """
    One connected `/events` stream.

    The backlog is bounded. When a slow display falls behind, queued spot
    snapshots are dropped first since the next one supersedes them; status
    frames are only dropped when nothing else is left.
    """

    def __init__(self, client_id: str, backlog: int = DISPLAY_BACKLOG):
        self.client_id = client_id
        self.backlog = backlog
        self.connected_at = time.time()
        self.active = True
        self.dropped = 0
        self._pending: deque[dict[str, Any]] = deque()
        self._wakeup = asyncio.Event()

    def offer(self, payload: dict[str, Any]) -> None:
        if not self.active:
            return
        if len(self._pending) >= self.backlog:
            self._drop_one()
        self._pending.append(payload)
        self._wakeup.set()

    def _drop_one(self) -> None:
        for index, queued in enumerate(self._pending):
            if queued.get("type") == "spots":
                del self._pending[index]
                break
        else:
            self._pending.popleft()
        self.dropped += 1

    async def next(self, timeout: float) -> dict[str, Any] | None:
        """Next queued payload, or None if nothing arrived within timeout."""
        if not self._pending:
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                return None
        return self._pending.popleft() if self._pending else None

    def pending(self) -> int:
        return len(self._pending)

    def close(self) -> None:
        self.active = False
        self._pending.clear()
        self._wakeup.set()


def sse_frame(payload: dict[str, Any], event_id: int | None = None) -> str:
    """Encode one payload as an SSE frame named after its type."""
    head = []
    if event_id is not None:
        head.append(f"id: {event_id}")
    if "type" in payload:
        head.append(f"event: {payload['type']}")
    head.append(f"data: {json.dumps(payload, separators=(',', ':'))}")
    return "\n".join(head) + "\n\n"


KEEPALIVE_FRAME = ": keepalive\n\n"


def build_router(server: "DisplayServer") -> APIRouter:
    """JSON endpoints backed by the server's monitor."""
    router = APIRouter(prefix="/api")
    monitor = server.monitor

    def serialize(spots) -> list[dict[str, Any]]:
        now = monitor.store.now()
        return [spot.to_dict(now) for spot in spots]

    @router.get("/spots")
    async def filtered_spots(min_snr: int | None = None, max_age_minutes: float | None = None):
        """Display view: filtered, sorted by frequency. Omitted filters use the store defaults."""
        max_age = None if max_age_minutes is None else max_age_minutes * 60
        spots = monitor.store.query_filtered(min_snr=min_snr, max_age=max_age)
        return {"count": len(spots), "total": monitor.store.count(), "spots": serialize(spots)}

    @router.get("/spots/all")
    async def all_spots(order: str = "frequency"):
        if order not in SPOT_ORDERS:
            raise HTTPException(status_code=400, detail=f"order must be one of {', '.join(SPOT_ORDERS)}")
        if order == "recency":
            spots = monitor.store.query_all_by_recency()
        else:
            spots = monitor.store.query_all_by_frequency()
        return {"count": len(spots), "spots": serialize(spots)}

    @router.post("/connect")
    async def connect(body: ConnectRequest):
        try:
            await monitor.connect(body.callsign)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except RuntimeError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok", "callsign": monitor.callsign}

    @router.post("/disconnect")
    async def disconnect():
        try:
            await monitor.disconnect()
        except RuntimeError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok"}

    @router.post("/purge")
    async def purge():
        removed = monitor.purge()
        return {"status": "ok", "removed": removed, "remaining": monitor.store.count()}

    @router.post("/tune")
    async def tune(body: TuneRequest):
        try:
            accepted = await monitor.tune(body.frequency_khz, body.mode)
        except RadioError as e:
            logger.warning("📻 Tune to %.1f kHz failed: %s", body.frequency_khz, e)
            raise HTTPException(status_code=502, detail=str(e))
        return {"status": "ok" if accepted else "skipped", "radio": monitor.radio.backend_name}

    @router.get("/status")
    async def status():
        summary = monitor.status()
        summary["version"] = VERSION
        summary["clients"] = server.client_count()
        summary["uptime_seconds"] = int(time.time() - server.started_at)
        return summary

    return router


class DisplayServer:
    """
    FastAPI app plus the uvicorn server running it.

    Subscribes to the SpotMonitor on construction and fans every update out
    to the connected `/events` streams.
    """

    def __init__(self, host: str, port: int, monitor: SpotMonitor):
        self.host = host
        self.port = port
        self.monitor = monitor
        self.clients: dict[str, DisplayClient] = {}
        self.started_at = time.time()
        self._event_ids = itertools.count(1)
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self.app = self._build_app()

        monitor.subscribe(self.broadcast)

    def _build_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            self._close_clients()

        app = FastAPI(
            title="rbnvfd",
            version=VERSION,
            description="Aggregated Reverse Beacon Network spots for displays",
            lifespan=lifespan,
        )
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )
        app.include_router(build_router(self))

        @app.get("/events")
        async def events(request: Request):
            client = self._register()
            return StreamingResponse(
                self._stream(client, request),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )

        @app.get("/health")
        async def health():
            return {"status": "ok"}

        return app

    def _register(self) -> DisplayClient:
        client = DisplayClient(uuid.uuid4().hex[:8])
        self.clients[client.client_id] = client
        logger.info("Display %s attached (%d total)", client.client_id, len(self.clients))
        return client

    def _unregister(self, client: DisplayClient) -> None:
        client.close()
        self.clients.pop(client.client_id, None)
        if client.dropped:
            logger.info("Display %s detached, %d frames dropped", client.client_id, client.dropped)
        else:
            logger.info("Display %s detached", client.client_id)

    async def _stream(self, client: DisplayClient, request: Request):
        # Fresh displays get the current state before live updates
        try:
            yield sse_frame(self.monitor.status(), next(self._event_ids))
            yield sse_frame(self.monitor.spots_payload(), next(self._event_ids))
            while client.active and not await request.is_disconnected():
                payload = await client.next(KEEPALIVE_SECONDS)
                if payload is None:
                    yield KEEPALIVE_FRAME
                else:
                    yield sse_frame(payload, next(self._event_ids))
        finally:
            self._unregister(client)

    async def broadcast(self, payload: dict[str, Any]) -> None:
        """Queue a monitor update for every attached display."""
        for client in list(self.clients.values()):
            client.offer(payload)

    def client_count(self) -> int:
        return len(self.clients)

    def _close_clients(self) -> None:
        for client in list(self.clients.values()):
            client.close()
        self.clients.clear()

    async def start(self) -> None:
        self.started_at = time.time()
        self._server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        ))
        self._serve_task = asyncio.create_task(self._serve(), name="display-api")
        logger.info("Display API on http://%s:%d", self.host, self.port)

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Display API stopped unexpectedly: %s", e)

    async def stop(self, timeout: float = 5.0) -> None:
        self.monitor.unsubscribe(self.broadcast)
        self._close_clients()
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            try:
                await asyncio.wait_for(self._serve_task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Display API did not stop within %.0fs", timeout)
            except asyncio.CancelledError:
                pass
            self._serve_task = None
        logger.info("Display API stopped")
