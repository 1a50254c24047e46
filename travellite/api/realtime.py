# api/realtime.py
"""
Realtime Relay Webhook
Inbound events from the realtime service; replies are streamed back to
the room through the relay publisher after the webhook is acknowledged.
"""

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from ..schemas import ErrorResponse, RealtimeWebhookEvent

router = APIRouter(prefix="/api/realtime", tags=["Realtime"])


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content=ErrorResponse(error=error).model_dump())


@router.post("/webhook")
async def realtime_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Body:
        {"type": "message", "room": "room-1", "userId": "alice",
         "message": {"text": "Find hotels in Paris"}, "timestamp": 1700000000000}

    Returns immediately; streaming happens in the background.
    """
    try:
        event = RealtimeWebhookEvent.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"[Relay] Malformed webhook payload: {e}")
        return _bad_request("Invalid webhook payload")

    if event.type != "message":
        logger.debug(f"[Relay] Ignoring webhook event type: {event.type}")
        return {"success": True, "message": f"Ignored event type {event.type}"}

    text = event.extract_text()
    if not text:
        return _bad_request("Message text is required")
    if not event.room:
        return _bad_request("Room is required")

    agent = request.app.state.agent
    background_tasks.add_task(agent.handle_message_streaming, text, event.room, event.userId)

    logger.info(f"[Relay] Accepted message for room={event.room} user={event.userId}")
    return {"success": True, "message": "Processing", "room": event.room}
