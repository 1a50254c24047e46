# agents/travel_agent.py
"""
Travel Agent (message orchestration)

One turn:
1. append the user turn to state
2. extract trip info (first-write-wins merge)
3. optional retrieval and tool stages, chosen by the intent classifier
4. streaming generation through the fan-out transform
5. the transform appends the assistant turn once the stream drains

Bindings:
- handle_message: streaming, yields plain-text deltas
- handle_message_text: request/response, returns the full reply
- handle_message_streaming: relay, publishes marker-wrapped envelopes
"""

from typing import Any, AsyncIterator, Dict, List, Optional

from loguru import logger

from ..cache.embeddings import EmbeddingService
from ..config import settings
from ..interfaces import ConversationStateStore, KVStore, StateHandle, VectorIndex
from ..kafka_client import RelayPublisher
from ..llm import (
    ChatModelClient,
    GenerationError,
    StreamTransform,
    accumulate,
    parse_trip_info,
    should_invoke_tools,
    should_retrieve,
)
from ..llm.prompts import build_generation_system_prompt
from ..providers import TravelAPIClient
from ..schemas import ApiCallResult, ConversationState, MessageRole, RelayMessage
from .ingestion import ResultIngestor
from .knowledge_base import KnowledgeBase
from .retrieval import RetrievalStage
from .tool_router import ToolCallStage


class InvalidMessageError(ValueError):
    """Inbound message rejected before any stage runs"""


class TravelAgent:
    """
    Orchestrates retrieval, tools and generation for one identity at a time.
    State is reached only through an identity-scoped StateHandle.
    """

    def __init__(
        self,
        state_store: ConversationStateStore,
        retrieval: RetrievalStage,
        tools: ToolCallStage,
        chat_client: ChatModelClient,
        relay: Optional[RelayPublisher] = None,
        knowledge_base: Optional[KnowledgeBase] = None,
        history_window: Optional[int] = None
    ):
        self.state_store = state_store
        self.retrieval = retrieval
        self.tools = tools
        self.chat_client = chat_client
        self.relay = relay
        self.knowledge_base = knowledge_base
        self.history_window = history_window or settings.HISTORY_WINDOW

    # ============================================
    # Generation
    # ============================================

    def build_messages(self, state: ConversationState, context: str, tool_results: str) -> List[Dict[str, str]]:
        """System prompt plus the last few turns; the current utterance is already last"""
        system_prompt = build_generation_system_prompt(state, context, tool_results)
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(m.to_llm() for m in state.recent_history(self.history_window))
        return messages

    async def generate(self, state: ConversationState, context: str, tool_results: str) -> AsyncIterator[bytes]:
        """
        Invoke the chat model in streaming mode.

        Raises:
            GenerationError: invocation failed or returned something other than a stream
        """
        messages = self.build_messages(state, context, tool_results)
        logger.debug(f"[TravelAgent] Generating with {len(messages)} messages")

        try:
            stream = await self.chat_client.generate_chat(messages, streaming=True)
        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"[TravelAgent] Error calling chat model: {e}")
            raise GenerationError(f"Chat model invocation failed: {e}") from e

        if stream is None or not hasattr(stream, "__aiter__"):
            raise GenerationError(f"Chat model did not return a stream, got: {type(stream).__name__}")
        return stream

    # ============================================
    # Turn pipeline
    # ============================================

    async def start_turn(self, identity: str, text: str) -> StreamTransform:
        """
        Run everything up to generation and return the armed transform.
        Consuming the transform forwards deltas and commits the reply.
        """
        if not identity:
            raise InvalidMessageError("Identity is required")
        if not text or not text.strip():
            raise InvalidMessageError("Message text is required")

        handle = self.state_store.handle(identity)
        logger.info(f"[TravelAgent] handleMessage for {identity}: {text[:50]!r}")

        await handle.append_message(MessageRole.USER, text)
        state = await handle.merge_trip_info(parse_trip_info(text))

        context = ""
        if should_retrieve(text):
            context = await self.retrieval.retrieve(text, state)
            logger.info(f"[TravelAgent] RAG context length: {len(context)}")

        tool_results = ""
        if should_invoke_tools(text):
            tool_results = await self.tools.invoke_tools(text, state)
            logger.info(f"[TravelAgent] Tool results: {tool_results or '(none)'}")

        source = await self.generate(state, context, tool_results)
        return StreamTransform(
            source,
            self.chat_client.stream_decoder(),
            on_complete=self._committer(handle),
            label="TravelAgent"
        )

    @staticmethod
    def _committer(handle: StateHandle):
        async def commit(full_text: str):
            await handle.append_message(MessageRole.ASSISTANT, full_text)
        return commit

    async def handle_message(self, identity: str, text: str) -> AsyncIterator[str]:
        """Streaming binding: plain-text deltas"""
        transform = await self.start_turn(identity, text)
        return transform.deltas()

    async def handle_message_text(self, identity: str, text: str) -> str:
        """Request/response binding: the accumulated reply"""
        return await accumulate(await self.handle_message(identity, text))

    async def handle_message_streaming(
        self,
        text: str,
        room_id: str,
        user_id: Optional[str] = None,
        identity: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Relay binding: publish start / chunk / complete envelopes to a room.
        Without a usable relay the stream is drained, committed and logged.

        State is scoped to ``identity``, defaulting to the user, then the room.
        """
        identity = identity or user_id or room_id

        try:
            transform = await self.start_turn(identity, text)
        except Exception as e:
            logger.error(f"[TravelAgent] handleMessageStreaming: {e}")
            await self._publish_error(room_id, user_id, str(e) or "Failed to process message")
            return {"success": False, "error": str(e) or "Failed to process message"}

        if self.relay is None or not self.relay.available:
            logger.warning("[TravelAgent] Relay not available, accumulating response for logging")
            full_text = await accumulate(transform.deltas())
            logger.info(f"[TravelAgent] Accumulated response (relay unavailable): {full_text[:200]}")
            return {"success": True, "message": "Relay unavailable; response accumulated"}

        failed_publishes = 0
        try:
            async for envelope in transform.envelopes(user_id):
                if not await self.relay.publish(room_id, envelope.to_wire()):
                    failed_publishes += 1
        except Exception as e:
            logger.error(f"[TravelAgent] Error streaming to relay: {e}")
            await self._publish_error(room_id, user_id, str(e) or "Streaming error")
            return {"success": False, "error": str(e) or "Streaming error"}

        if failed_publishes:
            logger.warning(f"[TravelAgent] {failed_publishes} relay publish(es) failed for room {room_id}")
        logger.info(
            f"[TravelAgent] Stream complete for room {room_id}: "
            f"{transform.chunk_count} chunks, {len(transform.accumulated)} chars"
        )
        return {"success": True, "message": "Streaming completed"}

    async def _publish_error(self, room_id: str, user_id: Optional[str], message: str):
        if self.relay is None or not self.relay.available:
            return
        envelope = RelayMessage(text=message, userId=user_id, isError=True)
        if not await self.relay.publish(room_id, envelope.to_wire()):
            logger.error(f"[TravelAgent] Failed to publish error message to room {room_id}")

    # ============================================
    # RPC helpers
    # ============================================

    async def call_travel_api(self, name: str, params: Optional[Dict[str, Any]] = None) -> ApiCallResult:
        return await self.tools.travel_api.call(name, params or {})

    async def get_state(self, identity: str) -> ConversationState:
        return await self.state_store.get_state(identity)


def build_travel_agent(
    relay: Optional[RelayPublisher] = None,
    use_redis: Optional[bool] = None
) -> TravelAgent:
    """Wire the default stack from settings"""
    embedder = EmbeddingService()
    vector_index = VectorIndex(use_redis=use_redis)
    kv_store = KVStore(use_redis=use_redis)
    chat_client = ChatModelClient()

    ingestor = ResultIngestor(embedder, vector_index, kv_store)
    return TravelAgent(
        state_store=ConversationStateStore(use_redis=use_redis),
        retrieval=RetrievalStage(embedder, vector_index),
        tools=ToolCallStage(chat_client, TravelAPIClient(), ingestor),
        chat_client=chat_client,
        relay=relay,
        knowledge_base=KnowledgeBase(embedder, vector_index, kv_store),
    )
