# agents/__init__.py
"""
Agents Package

- TravelAgent: per-turn orchestration and streaming bindings
- RetrievalStage: vector search context
- ToolCallStage: external API routing and result summaries
- ResultIngestor: tool results back into the vector index
- KnowledgeBase: base document seeding
"""

from .ingestion import ResultIngestor
from .knowledge_base import KnowledgeBase
from .retrieval import RetrievalStage
from .tool_router import (
    ToolCallStage,
    classify_result_type,
    lexical_fallback,
    normalize_results,
    parse_routing_response,
)
from .travel_agent import InvalidMessageError, TravelAgent, build_travel_agent

__all__ = [
    "ResultIngestor",
    "KnowledgeBase",
    "RetrievalStage",
    "ToolCallStage",
    "classify_result_type",
    "lexical_fallback",
    "normalize_results",
    "parse_routing_response",
    "InvalidMessageError",
    "TravelAgent",
    "build_travel_agent",
]
