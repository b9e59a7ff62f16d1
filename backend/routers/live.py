import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from backend.realtime import LiveHub, Subscription

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(event.to_message())


@router.websocket("/ws")
@router.websocket("/api/live")
async def live_feed(websocket: WebSocket):
    hub: LiveHub = websocket.app.state.context.hub

    # Register before accepting so no scan committed after the handshake is missed.
    with hub.subscribe() as subscription:
        await websocket.accept()
        logger.info("Live session %s connected", subscription.id)
        sender = asyncio.create_task(_forward_events(websocket, subscription))
        try:
            # Client frames, text or binary, carry nothing; reading only detects the close.
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await sender
        logger.info("Live session %s disconnected", subscription.id)
