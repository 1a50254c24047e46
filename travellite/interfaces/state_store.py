# interfaces/state_store.py
"""
Conversation State Management
One durable ConversationState per identity (user or session id).

Merge rules:
- basics are first-write-wins per field
- preferences only grow
- recentMessages is append-only

A state is created only when the store positively reports no record.
Read and write errors raise StateStoreError instead of starting over.
"""

import json
from typing import Dict, Optional

from loguru import logger

from ..cache.redis_client import connect_redis
from ..config import settings
from ..llm.intent_parser import ParsedTripInfo
from ..schemas import ChatMessage, ConversationState, MessageRole


class StateStoreError(RuntimeError):
    """Conversation state could not be read or written"""


class ConversationStateStore:
    """
    Stores ConversationState keyed by identity.

    Uses Redis when available; falls back to an in-memory dict
    if Redis is disabled or unreachable at connect time.
    """

    def __init__(self, use_redis: Optional[bool] = None, ttl_hours: Optional[int] = None, redis_client=None):
        self.use_redis = settings.USE_REDIS if use_redis is None else use_redis
        ttl_hours = settings.STATE_TTL_HOURS if ttl_hours is None else ttl_hours
        self.ttl_seconds = ttl_hours * 3600 if ttl_hours > 0 else None
        self.redis_client = redis_client
        self._memory_store: Dict[str, str] = {}
        self._initialized = redis_client is not None

    async def _ensure_connected(self):
        """Ensure Redis connection is established"""
        if self._initialized:
            return
        if self.use_redis:
            self.redis_client = await connect_redis()
        if self.redis_client is None:
            logger.info("ConversationStateStore using in-memory storage")
        self._initialized = True

    def _get_key(self, identity: str) -> str:
        return f"state:{identity}"

    async def _load(self, identity: str) -> Optional[str]:
        if self.redis_client is None:
            return self._memory_store.get(identity)
        try:
            data = await self.redis_client.get(self._get_key(identity))
        except Exception as e:
            logger.error(f"Redis get error for {identity}: {e}")
            raise StateStoreError(f"Failed to load state for {identity}: {e}") from e
        if data is None:
            return None
        return data.decode("utf-8") if isinstance(data, bytes) else data

    async def save_state(self, identity: str, state: ConversationState):
        """Persist the full state document"""
        await self._ensure_connected()
        payload = state.model_dump_json()

        if self.redis_client is None:
            self._memory_store[identity] = payload
            return
        try:
            key = self._get_key(identity)
            if self.ttl_seconds:
                await self.redis_client.setex(key, self.ttl_seconds, payload)
            else:
                await self.redis_client.set(key, payload)
        except Exception as e:
            logger.error(f"Redis save error for {identity}: {e}")
            raise StateStoreError(f"Failed to save state for {identity}: {e}") from e

    async def get_state(self, identity: str) -> ConversationState:
        """
        Get the state for an identity, creating it on first contact.

        Raises:
            StateStoreError: the record could not be read or does not parse
        """
        await self._ensure_connected()
        raw = await self._load(identity)

        if raw is not None:
            try:
                return ConversationState.model_validate(json.loads(raw))
            except (ValueError, TypeError) as e:
                # Left in place for inspection
                logger.error(f"Corrupt state for {identity}: {e}")
                raise StateStoreError(f"Corrupt state for {identity}") from e

        state = ConversationState()
        await self.save_state(identity, state)
        logger.info(f"Created conversation state for: {identity}")
        return state

    async def append_message(self, identity: str, role: MessageRole, content: str) -> ConversationState:
        """Append one turn to recentMessages"""
        state = await self.get_state(identity)
        state.recentMessages.append(ChatMessage(role=role, content=content))
        await self.save_state(identity, state)
        logger.debug(f"Appended {role.value} turn for {identity} ({len(state.recentMessages)} total)")
        return state

    async def merge_trip_info(self, identity: str, info: ParsedTripInfo) -> ConversationState:
        """
        Merge extracted trip info into the state.
        Only unset basics are filled; preferences are unioned.
        """
        state = await self.get_state(identity)
        changed = False

        basics = state.basics
        for field in ("destination", "startDate", "endDate", "budget"):
            value = getattr(info, field)
            if value is not None and getattr(basics, field) is None:
                setattr(basics, field, value)
                changed = True

        new_prefs = [p for p in info.preferences if p not in state.preferences]
        if new_prefs:
            state.preferences.extend(new_prefs)
            changed = True

        if changed:
            await self.save_state(identity, state)
            logger.info(f"Updated trip basics for {identity}: {basics.model_dump(exclude_none=True)}")
        return state

    async def delete_state(self, identity: str):
        await self._ensure_connected()
        if self.redis_client:
            try:
                await self.redis_client.delete(self._get_key(identity))
            except Exception as e:
                logger.error(f"Redis delete error: {e}")
        self._memory_store.pop(identity, None)

    def handle(self, identity: str) -> "StateHandle":
        """Get a handle scoped to one identity"""
        return StateHandle(self, identity)


class StateHandle:
    """
    Identity-scoped view of the store handed to one pipeline invocation.
    """

    def __init__(self, store: ConversationStateStore, identity: str):
        self.store = store
        self.identity = identity

    async def get(self) -> ConversationState:
        return await self.store.get_state(self.identity)

    async def append_message(self, role: MessageRole, content: str) -> ConversationState:
        return await self.store.append_message(self.identity, role, content)

    async def merge_trip_info(self, info: ParsedTripInfo) -> ConversationState:
        return await self.store.merge_trip_info(self.identity, info)
