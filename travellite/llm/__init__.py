# llm/__init__.py
"""
LLM Components Package

- intent_parser: lexical stage triggers and trip info extraction
- prompts: router and generation prompts
- chat_client: OpenAI / Ollama chat invocation
- stream_decoder: SSE and NDJSON framing decoders
- streaming: stream fan-out / state-sync transform
"""

from .intent_parser import (
    ParsedTripInfo,
    parse_trip_info,
    should_invoke_tools,
    should_retrieve,
)
from .chat_client import ChatModelClient, GenerationError
from .stream_decoder import NDJSONStreamDecoder, SSEStreamDecoder, StreamDecoder
from .streaming import StreamTransform, accumulate

__all__ = [
    "ParsedTripInfo",
    "parse_trip_info",
    "should_invoke_tools",
    "should_retrieve",
    "ChatModelClient",
    "GenerationError",
    "NDJSONStreamDecoder",
    "SSEStreamDecoder",
    "StreamDecoder",
    "StreamTransform",
    "accumulate",
]
