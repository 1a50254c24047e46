# schemas/travel_schemas.py
"""
Pydantic v2 schemas for the Travellite assistant
Covers persisted conversation state, stage outputs and transport envelopes
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============================================
# Enums
# ============================================

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ResultType(str, Enum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    ACTIVITY = "activity"
    TRANSFER = "transfer"
    LOCATION = "location"
    GENERAL = "general"


# Result types whose items are folded back into the vector index
INGESTIBLE_TYPES = {ResultType.FLIGHT, ResultType.HOTEL, ResultType.ACTIVITY}


def now_ms() -> int:
    """Epoch milliseconds, the timestamp unit used on the wire"""
    return int(datetime.now().timestamp() * 1000)


# ============================================
# Conversation State (persisted)
# ============================================

class TripBasics(BaseModel):
    """Basic trip information. Every field is set at most once."""
    destination: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    budget: Optional[float] = None


class ChatMessage(BaseModel):
    """Single conversation turn"""
    role: MessageRole
    content: str

    def to_llm(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationState(BaseModel):
    """
    Durable per-identity record.

    Field names are the persisted format and must not change:
    basics / preferences / recentMessages / currentItinerary
    """
    basics: TripBasics = Field(default_factory=TripBasics)
    preferences: List[str] = Field(default_factory=list)
    recentMessages: List[ChatMessage] = Field(default_factory=list)
    currentItinerary: Optional[Any] = None

    def recent_history(self, window: int = 5) -> List[ChatMessage]:
        return self.recentMessages[-window:] if window > 0 else []


# ============================================
# Stage outputs
# ============================================

class RetrievedContextItem(BaseModel):
    """Transient retrieval match, never persisted"""
    text: str
    source: str = "travel knowledge base"
    type: str = "general"
    topic: str = ""
    score: Optional[float] = None


class VectorMatch(BaseModel):
    """Raw match returned by the vector index"""
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ApiCall(BaseModel):
    """Routing decision for the external travel API"""
    apiName: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ApiCallResult(BaseModel):
    """Standardized response: {success, data} or {success, error}"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


# ============================================
# Transport envelopes
# ============================================

class GatewayMessage(BaseModel):
    """Inbound payload on the direct socket gateway"""
    type: str = "message"
    text: Optional[str] = None


class RealtimeMessageBody(BaseModel):
    text: Optional[str] = None


class RealtimeWebhookEvent(BaseModel):
    """Inbound webhook event from the realtime relay"""
    type: str = "message"
    room: Optional[str] = None
    userId: Optional[str] = None
    message: Optional[RealtimeMessageBody] = None
    text: Optional[str] = None
    timestamp: Optional[int] = None

    def extract_text(self) -> str:
        if self.message and self.message.text:
            return self.message.text.strip()
        return (self.text or "").strip()


class RelayMessage(BaseModel):
    """
    Outbound message published to a relay channel.

    Start marker: streaming=True, text=""
    Per-delta:    chunk=True, text=<delta>
    End marker:   complete=True, text=<full accumulated text>
    """
    type: str = "agent_response"
    text: str = ""
    userId: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)
    chunk: Optional[bool] = None
    complete: Optional[bool] = None
    streaming: Optional[bool] = None
    isError: Optional[bool] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChatRequest(BaseModel):
    """Request/response binding of a turn"""
    userId: str = Field(..., min_length=1, description="Identity the turn belongs to")
    text: str = Field(..., description="User utterance")


class ChatResponse(BaseModel):
    userId: str
    text: str
    timestamp: int = Field(default_factory=now_ms)


class RpcRequest(BaseModel):
    type: Literal["rpc"] = "rpc"
    id: str
    method: str
    args: List[Any] = Field(default_factory=list)


class RpcResponse(BaseModel):
    type: Literal["rpc"] = "rpc"
    id: str
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None


class SeedDocumentRequest(BaseModel):
    fileName: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
