"""
Direct Socket Gateway
WebSocket transport: one dedicated socket per client, responses streamed
as marker-wrapped envelopes followed by one final response frame.
"""

import json
import uuid
from datetime import datetime
from typing import Dict, Optional, Set

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from loguru import logger
from pydantic import ValidationError

from ..llm.streaming import UNDECODABLE_REPLY
from ..schemas import GatewayMessage

router = APIRouter(prefix="/api/gateway", tags=["Gateway"])


class ConnectionManager:
    """
    Tracks gateway sockets.

    Sends to a closed or unknown connection are dropped and logged,
    never raised, so a disconnect cannot break an in-flight turn.
    """

    def __init__(self):
        # {connection_id: WebSocket}
        self.active_connections: Dict[str, WebSocket] = {}
        # {user_id: set of connection_ids}
        self.user_connections: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, connection_id: str, user_id: str):
        await websocket.accept()
        self.active_connections[connection_id] = websocket
        self.user_connections.setdefault(user_id, set()).add(connection_id)
        logger.info(f"[Gateway] Connected: connection={connection_id}, user={user_id}")

    def disconnect(self, connection_id: str, user_id: str):
        self.active_connections.pop(connection_id, None)
        if user_id in self.user_connections:
            self.user_connections[user_id].discard(connection_id)
            if not self.user_connections[user_id]:
                del self.user_connections[user_id]
        logger.info(f"[Gateway] Disconnected: connection={connection_id}, user={user_id}")

    def is_connected(self, connection_id: str) -> bool:
        websocket = self.active_connections.get(connection_id)
        return websocket is not None and websocket.client_state == WebSocketState.CONNECTED

    async def send_message(self, connection_id: str, message: dict) -> bool:
        """Send JSON to one connection; False if it is gone"""
        if not self.is_connected(connection_id):
            logger.debug(f"[Gateway] Dropping send to closed connection {connection_id}")
            return False
        try:
            await self.active_connections[connection_id].send_json(message)
            return True
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"[Gateway] Send failed on {connection_id}: {e}")
            return False

    def get_connection_count(self) -> int:
        return len(self.active_connections)


# Global connection manager
manager = ConnectionManager()


def _response_frame(user_id: str, text: Optional[str] = None, error: Optional[str] = None) -> dict:
    frame = {"type": "response", "userId": user_id}
    if error is not None:
        frame["error"] = error
    else:
        frame["text"] = text or ""
    return frame


async def run_gateway_turn(agent, connection_id: str, user_id: str, text: str):
    """Run one turn and stream it to the socket"""
    try:
        transform = await agent.start_turn(user_id, text)
    except Exception as e:
        logger.error(f"[Gateway] Turn failed for {user_id}: {e}")
        await manager.send_message(connection_id, _response_frame(user_id, error=str(e) or "Failed to process message"))
        return

    connected = True
    async for envelope in transform.envelopes(user_id):
        if connected:
            connected = await manager.send_message(connection_id, envelope.to_wire())
    # The drain continues after a disconnect so the reply is still committed

    if transform.undecodable:
        final = _response_frame(user_id, error=UNDECODABLE_REPLY)
    else:
        final = _response_frame(user_id, text=transform.accumulated)
    await manager.send_message(connection_id, final)


@router.websocket("/ws")
async def gateway_ws(
    websocket: WebSocket,
    userId: Optional[str] = Query(None, description="Identity the conversation is scoped to")
):
    """
    Connect: ws://localhost:8787/api/gateway/ws?userId=alice

    Send:
        {"type": "message", "text": "Find hotels in Paris"}
        {"type": "ping"}

    Receive:
        {"type": "agent_response", "streaming": true, "text": ""}
        {"type": "agent_response", "chunk": true, "text": "..."}
        {"type": "agent_response", "complete": true, "text": "<full>"}
        {"type": "response", "text": "<full>", "userId": "alice"}
        {"type": "response", "error": "...", "userId": "alice"}
    """
    agent = websocket.app.state.agent
    user_id = userId or f"ws_{datetime.now().strftime('%Y%m%d%H%M%S')}"
    connection_id = uuid.uuid4().hex

    await manager.connect(websocket, connection_id, user_id)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                message = GatewayMessage.model_validate(json.loads(raw))
            except (ValueError, ValidationError):
                await manager.send_message(connection_id, _response_frame(user_id, error="Invalid message format"))
                continue

            if message.type == "ping":
                await manager.send_message(connection_id, {
                    "type": "pong",
                    "timestamp": datetime.now().isoformat()
                })
            elif message.type == "message":
                if not message.text or not message.text.strip():
                    await manager.send_message(connection_id, _response_frame(user_id, error="Message text is required"))
                    continue
                await run_gateway_turn(agent, connection_id, user_id, message.text)
            else:
                await manager.send_message(
                    connection_id,
                    _response_frame(user_id, error=f"Unsupported message type: {message.type}")
                )

    except WebSocketDisconnect:
        logger.info(f"[Gateway] Client left: user={user_id}")
    finally:
        manager.disconnect(connection_id, user_id)


@router.get("/status")
async def gateway_status():
    return {
        "active_connections": manager.get_connection_count(),
        "timestamp": datetime.now().isoformat()
    }
