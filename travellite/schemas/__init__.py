"""
Schemas Package
Pydantic models for persisted state, stage results and transport envelopes
"""

from .travel_schemas import (
    MessageRole,
    ResultType,
    INGESTIBLE_TYPES,
    now_ms,
    TripBasics,
    ChatMessage,
    ConversationState,
    RetrievedContextItem,
    VectorMatch,
    ApiCall,
    ApiCallResult,
    GatewayMessage,
    RealtimeWebhookEvent,
    RelayMessage,
    ChatRequest,
    ChatResponse,
    RpcRequest,
    RpcResponse,
    SeedDocumentRequest,
    ErrorResponse,
)

__all__ = [
    "MessageRole",
    "ResultType",
    "INGESTIBLE_TYPES",
    "now_ms",
    "TripBasics",
    "ChatMessage",
    "ConversationState",
    "RetrievedContextItem",
    "VectorMatch",
    "ApiCall",
    "ApiCallResult",
    "GatewayMessage",
    "RealtimeWebhookEvent",
    "RelayMessage",
    "ChatRequest",
    "ChatResponse",
    "RpcRequest",
    "RpcResponse",
    "SeedDocumentRequest",
    "ErrorResponse",
]
