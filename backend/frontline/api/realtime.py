"""Realtime WebSocket endpoint.

Frames pushed to the client:
    {"type": "connected", "user_id": ...}
    {"type": "insert", "resource": "messages" | "notifications", "row": {...}}
    {"type": "resync", "resource": ...}   reload that resource, inserts may have been missed
    {"type": "closed", "resource": ..., "reason": ...}   the socket closes after this
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from frontline.api.deps import user_from_token
from frontline.errors import NotAuthenticated
from frontline.services.engine import ActivityEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])

_CLOSE_UNAUTHORIZED = 4401
_CLOSE_CHANNEL_ENDED = 4000


def _authenticate(engine: ActivityEngine, token: str | None) -> str:
    with engine.session_factory() as db:
        return user_from_token(db, token).id


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = None):
    engine: ActivityEngine = websocket.app.state.engine
    try:
        user_id = await run_in_threadpool(_authenticate, engine, token)
    except NotAuthenticated:
        await websocket.close(code=_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()

    def frames_for(resource: str):
        def on_insert(row):
            outbox.put_nowait({"type": "insert", "resource": resource, "row": row})

        def on_resync():
            outbox.put_nowait({"type": "resync", "resource": resource})

        def on_closed(reason):
            outbox.put_nowait({"type": "closed", "resource": resource, "reason": reason})

        return {"on_insert": on_insert, "on_resync": on_resync, "on_closed": on_closed}

    subscriptions = [
        engine.subscribe_to_messages(user_id, **frames_for("messages")),
        engine.subscribe_to_notifications(user_id, **frames_for("notifications")),
    ]

    async def send_frames():
        await websocket.send_json({"type": "connected", "user_id": user_id})
        while True:
            frame = await outbox.get()
            await websocket.send_json(frame)
            if frame["type"] == "closed":
                await websocket.close(code=_CLOSE_CHANNEL_ENDED)
                return

    async def drain_client():
        # Client frames are ignored; reading notices the disconnect
        while True:
            await websocket.receive_text()

    sender = asyncio.create_task(send_frames())
    receiver = asyncio.create_task(drain_client())
    try:
        done, _pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Realtime socket for %s ended with error: %r", user_id, exc)
    finally:
        for subscription in subscriptions:
            subscription.unsubscribe()
        for task in (sender, receiver):
            task.cancel()
        await asyncio.gather(sender, receiver, return_exceptions=True)
        logger.info("Realtime socket for %s closed", user_id)
