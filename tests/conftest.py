import hashlib
import json
from typing import Any, Dict, List, Optional

import pytest

from travellite.agents import KnowledgeBase, ResultIngestor, RetrievalStage, ToolCallStage, TravelAgent
from travellite.interfaces import ConversationStateStore, KVStore, VectorIndex
from travellite.llm import GenerationError, SSEStreamDecoder
from travellite.schemas import ApiCallResult


# ============================================
# Fakes
# ============================================

class FakeEmbedder:
    """Deterministic: the same text always maps to the same vector"""

    def __init__(self, dim: int = 16, fail: bool = False):
        self.dim = dim
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend down")
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 + 0.01 for b in digest[:self.dim]]


def sse_frames(chunks) -> List[bytes]:
    frames = [
        f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}\n\n".encode("utf-8")
        for c in chunks
    ]
    frames.append(b"data: [DONE]\n\n")
    return frames


async def iterate(items, error: Optional[Exception] = None):
    for item in items:
        yield item
    if error is not None:
        raise error


class FakeChatClient:
    provider = "fake"

    def __init__(
        self,
        reply_chunks=("Hello", " there"),
        routing_reply: Any = '{"apiName": null}',
        fail_generation: bool = False,
        stream_error: Optional[Exception] = None
    ):
        self.reply_chunks = list(reply_chunks)
        self.routing_reply = routing_reply
        self.fail_generation = fail_generation
        self.stream_error = stream_error
        self.routing_calls: List[List[Dict[str, str]]] = []
        self.generation_calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages, max_tokens=None) -> str:
        self.routing_calls.append(messages)
        if isinstance(self.routing_reply, Exception):
            raise self.routing_reply
        return self.routing_reply

    async def generate_chat(self, messages, streaming=True, max_tokens=None):
        self.generation_calls.append(messages)
        if self.fail_generation:
            raise GenerationError("model offline")
        return iterate(sse_frames(self.reply_chunks), self.stream_error)

    def stream_decoder(self):
        return SSEStreamDecoder()

    async def close(self):
        pass


class FakeTravelAPI:
    is_configured = False

    def __init__(self, results: Optional[Dict[str, ApiCallResult]] = None):
        self.results = results or {}
        self.calls: List[tuple] = []

    async def call(self, name, params=None) -> ApiCallResult:
        self.calls.append((name, dict(params or {})))
        if name not in self.results:
            return ApiCallResult(success=False, error=f"Unknown API: {name}")
        return self.results[name]

    async def close(self):
        pass


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def vector_index():
    return VectorIndex(use_redis=False)


@pytest.fixture
def kv_store():
    return KVStore(use_redis=False)


@pytest.fixture
def state_store():
    return ConversationStateStore(use_redis=False)


@pytest.fixture
def make_agent():
    def _make(chat_client=None, travel_api=None, relay=None, embedder=None):
        embedder = embedder or FakeEmbedder()
        vector_index = VectorIndex(use_redis=False)
        kv_store = KVStore(use_redis=False)
        chat_client = chat_client or FakeChatClient()
        travel_api = travel_api or FakeTravelAPI()
        ingestor = ResultIngestor(embedder, vector_index, kv_store, provider="amadeus")

        return TravelAgent(
            state_store=ConversationStateStore(use_redis=False),
            retrieval=RetrievalStage(embedder, vector_index),
            tools=ToolCallStage(chat_client, travel_api, ingestor),
            chat_client=chat_client,
            relay=relay,
            knowledge_base=KnowledgeBase(embedder, vector_index, kv_store),
        )
    return _make
