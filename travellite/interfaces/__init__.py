# interfaces/__init__.py
"""
Interfaces Package

Storage capabilities used by the pipeline:
- state_store: per-identity ConversationState
- kv_store: ingestion dedup markers
- vector_index: embedded knowledge summaries
"""

from .state_store import ConversationStateStore, StateHandle, StateStoreError
from .kv_store import KVStore
from .vector_index import VectorIndex

__all__ = [
    "ConversationStateStore",
    "StateHandle",
    "StateStoreError",
    "KVStore",
    "VectorIndex",
]
