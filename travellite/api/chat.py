# api/chat.py
"""
Chat API Endpoint
HTTP bindings of the turn pipeline plus state inspection and seeding.

POST /api/chat          - request/response reply
POST /api/chat/stream   - plain-text deltas as they are generated
GET  /api/state/{id}    - persisted conversation state
POST /api/seed-rag      - add one base knowledge document
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from ..agents import InvalidMessageError
from ..interfaces import StateStoreError
from ..llm import GenerationError
from ..schemas import ChatRequest, ChatResponse, ConversationState, SeedDocumentRequest

router = APIRouter(prefix="/api", tags=["Chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request):
    """
    Example:
        {"userId": "alice", "text": "Recommend activities in Paris"}
    """
    agent = request.app.state.agent
    logger.info(f"[Chat] Request: user={body.userId}, text={body.text[:50]!r}")

    try:
        text = await agent.handle_message_text(body.userId, body.text)
    except InvalidMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GenerationError as e:
        logger.error(f"[Chat] Generation failed for {body.userId}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except StateStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return ChatResponse(userId=body.userId, text=text)


@router.post("/chat/stream")
async def chat_stream(body: ChatRequest, request: Request):
    agent = request.app.state.agent

    try:
        deltas = await agent.handle_message(body.userId, body.text)
    except InvalidMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GenerationError as e:
        logger.error(f"[Chat] Generation failed for {body.userId}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except StateStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return StreamingResponse(deltas, media_type="text/plain; charset=utf-8")


@router.get("/state/{identity}", response_model=ConversationState)
async def get_state(identity: str, request: Request):
    try:
        return await request.app.state.agent.get_state(identity)
    except StateStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/seed-rag")
async def seed_rag(body: SeedDocumentRequest, request: Request):
    knowledge_base = request.app.state.agent.knowledge_base
    if knowledge_base is None:
        raise HTTPException(status_code=503, detail="Knowledge base not available")

    try:
        status = await knowledge_base.seed_document(body.fileName, body.content)
    except Exception as e:
        logger.error(f"[RAG] Seeding {body.fileName} failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to seed {body.fileName}: {e}")

    return {"success": True, "fileName": body.fileName, "status": status}
