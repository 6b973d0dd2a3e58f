from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from listing_chat.api.v1.gateway import RealtimeGateway
from listing_chat.config import settings
from listing_chat.infrastructure.ws.manager import Connection
from listing_chat.infrastructure.ws.protocol import ServerEvent

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


def _bearer_token(websocket: WebSocket) -> str | None:
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    return value if scheme.lower() == "bearer" and value else None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    gateway: RealtimeGateway = websocket.app.state.gateway
    conn = await gateway.connect(websocket, token or _bearer_token(websocket))
    if conn is None:
        return

    heartbeat_task = asyncio.create_task(
        _heartbeat(gateway, conn), name=f"ws-heartbeat-{conn.id}",
    )
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            await gateway.handle(conn, message.get("text"))
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", conn.user_id)
    finally:
        heartbeat_task.cancel()
        await gateway.disconnect(conn)


async def _heartbeat(gateway: RealtimeGateway, conn: Connection) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await gateway.manager.send_to_connection(conn.id, ServerEvent.PONG, {})
    except asyncio.CancelledError:
        pass
