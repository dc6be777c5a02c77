"""
Live metadata updates over a WebSocket.

Client → server:
  {"action": "subscribe", "namespace": "team-a"}
  {"action": "unsubscribe", "namespace": "team-a"}

Server → client:
  {"event": "subscribed", "namespace": "team-a"}
  {"event": "unsubscribed", "namespace": "team-a"}
  {"event": "metadata-update", "namespace": "team-a", "metadata": {...}}
  {"event": "error", "error": "<message>"}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from native_secrets.events.notifier import ChangeNotifier, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _forward(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        event = await sub.queue.get()
        await websocket.send_json(event.to_message())


# Close tasks scheduled from done-callbacks, held until they finish.
_closing: set[asyncio.Task] = set()


async def _close_quietly(websocket: WebSocket, code: int) -> None:
    # The client may already be gone.
    with contextlib.suppress(RuntimeError, WebSocketDisconnect):
        await websocket.close(code=code)


def _start_forwarding(websocket: WebSocket, sub: Subscription, user: str) -> asyncio.Task:
    """Forward queued changes to the client; a failed send closes the socket with 1011."""
    sender = asyncio.create_task(_forward(websocket, sub))

    def on_done(task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.warning("Live update delivery to %s failed: %s", user, task.exception())
        closing = asyncio.create_task(
            _close_quietly(websocket, status.WS_1011_INTERNAL_ERROR)
        )
        _closing.add(closing)
        closing.add_done_callback(_closing.discard)

    sender.add_done_callback(on_done)
    return sender


@router.websocket("/api/socket")
async def metadata_socket(websocket: WebSocket):
    header = websocket.app.state.config.identity_header
    user = (websocket.headers.get(header) or "").strip()
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    notifier: ChangeNotifier = websocket.app.state.notifier
    sub = notifier.open()
    sender = _start_forwarding(websocket, sub, user)
    logger.info("Live client connected: %s", user)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "error": "invalid JSON"})
                continue

            action = message.get("action") if isinstance(message, dict) else None
            namespace = message.get("namespace") if isinstance(message, dict) else None
            if action not in ("subscribe", "unsubscribe") or not namespace:
                await websocket.send_json(
                    {"event": "error", "error": "action and namespace are required"}
                )
                continue

            if action == "subscribe":
                notifier.subscribe(sub, namespace)
            else:
                notifier.unsubscribe(sub, namespace)
            await websocket.send_json({"event": f"{action}d", "namespace": namespace})
    except WebSocketDisconnect:
        logger.info("Live client disconnected: %s", user)
    finally:
        sender.cancel()
        notifier.close(sub)
