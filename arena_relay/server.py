"""ASGI application exposing the relay over WebSockets."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState

from .broadcast import deliver
from .config import RelayConfig
from .dispatcher import World

logger = logging.getLogger(__name__)

router = APIRouter()

OUTBOUND_QUEUE_LIMIT = 256


class WebSocketConnection:
    """Connection handle backed by a FastAPI websocket.

    Outgoing frames are queued and written by a dedicated task so a slow
    client only ever delays itself.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.closed = False
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=OUTBOUND_QUEUE_LIMIT)
        self._writer: Optional[asyncio.Task[None]] = None

    def __repr__(self) -> str:
        client = self.websocket.client
        return f"<WebSocketConnection {client.host}:{client.port}>" if client else "<WebSocketConnection>"

    def is_open(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, text: str) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            self.closed = True
            logger.error("Outbound queue for %r is full; dropping the connection", self)

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while True:
                text = await self._queue.get()
                if text is None:
                    return
                await self.websocket.send_text(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.closed = True
            logger.error("Send to %r failed: %s", self, exc)

    def halt(self) -> None:
        self.closed = True
        if self._writer is not None:
            self._writer.cancel()

    async def stop(self) -> None:
        self.halt()
        if self._writer is not None:
            await asyncio.gather(self._writer, return_exceptions=True)


async def _receive_frame(websocket: WebSocket):
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes")


@router.get("/health")
async def healthcheck(request: Request) -> JSONResponse:
    """Simple readiness probe for container orchestration."""

    world: World = request.app.state.world
    lobby = world.matchmaker.lobby
    return JSONResponse(
        {
            "status": "ok",
            "sessions": len(world.registry),
            "lobby": lobby.state.value if lobby else None,
        }
    )


@router.websocket("/")
async def websocket_endpoint(websocket: WebSocket) -> None:
    world: World = websocket.app.state.world
    lock: asyncio.Lock = websocket.app.state.lock

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    connection.start()
    logger.info("A new client connected (pending id assignment)")

    reason: Optional[str] = None
    try:
        while True:
            frame = await _receive_frame(websocket)
            async with lock:
                outbound = world.dispatch(connection, frame)
            deliver(outbound)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        reason = "error"
        logger.error("WebSocket error on %r: %s", connection, exc)
    finally:
        # Teardown must not await first: a cancelled handler would skip it.
        connection.halt()
        deliver(world.disconnect(connection, reason))
        await connection.stop()
        if (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        ):
            with contextlib.suppress(RuntimeError, OSError):
                await websocket.close(code=1011 if reason else 1000)


def create_app(config: Optional[RelayConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or RelayConfig.from_env()
    app = FastAPI(title="Dagger Arena Relay", version="0.1.0")
    app.state.config = config
    app.state.world = World(config)
    app.state.lock = asyncio.Lock()
    app.include_router(router)
    return app


__all__ = ["WebSocketConnection", "create_app"]
