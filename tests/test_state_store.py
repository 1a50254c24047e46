import asyncio

import pytest

from travellite.interfaces import ConversationStateStore, StateStoreError
from travellite.llm import parse_trip_info
from travellite.schemas import MessageRole


class FlakyRedis:
    """Dict-backed stand-in for the async Redis client that can fail reads"""

    def __init__(self):
        self.data = {}
        self.fail_reads = False

    async def get(self, key):
        if self.fail_reads:
            raise ConnectionError("Connection reset by peer")
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value.encode("utf-8")

    async def setex(self, key, ttl, value):
        await self.set(key, value)

    async def delete(self, key):
        self.data.pop(key, None)


def test_state_is_created_on_first_contact(state_store):
    state = asyncio.run(state_store.get_state("alice"))
    assert state.basics.destination is None
    assert state.preferences == []
    assert state.recentMessages == []


def test_first_write_wins(state_store):
    async def run():
        await state_store.merge_trip_info("alice", parse_trip_info("I want to travel to Tokyo"))
        return await state_store.merge_trip_info("alice", parse_trip_info("Actually let's visit Osaka from 2025-04-02"))

    state = asyncio.run(run())
    assert state.basics.destination == "Tokyo"
    # Unset field still fills in from the later message
    assert state.basics.startDate == "2025-04-02"


def test_preferences_are_unioned(state_store):
    async def run():
        await state_store.merge_trip_info("alice", parse_trip_info("I like beach and food"))
        return await state_store.merge_trip_info("alice", parse_trip_info("food and nightlife please"))

    state = asyncio.run(run())
    assert state.preferences == ["beach", "food", "nightlife"]


def test_identities_are_isolated(state_store):
    async def run():
        await state_store.handle("alice").append_message(MessageRole.USER, "hi")
        return await state_store.handle("bob").get()

    assert asyncio.run(run()).recentMessages == []


def test_append_and_persist_round_trip(state_store):
    async def run():
        handle = state_store.handle("alice")
        await handle.append_message(MessageRole.USER, "Where should I go?")
        await handle.append_message(MessageRole.ASSISTANT, "Lisbon is lovely in May.")
        return await state_store.get_state("alice")

    state = asyncio.run(run())
    assert [m.role for m in state.recentMessages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert state.recent_history(1)[0].content == "Lisbon is lovely in May."


def test_delete_state(state_store):
    async def run():
        await state_store.merge_trip_info("alice", parse_trip_info("trip to Rome"))
        await state_store.delete_state("alice")
        return await state_store.get_state("alice")

    assert asyncio.run(run()).basics.destination is None


def test_read_error_keeps_saved_conversation():
    redis = FlakyRedis()
    store = ConversationStateStore(redis_client=redis)
    handle = store.handle("alice")

    async def run():
        await handle.merge_trip_info(parse_trip_info("Trip to Paris"))
        await handle.append_message(MessageRole.USER, "Trip to Paris")
        await handle.append_message(MessageRole.ASSISTANT, "Great choice")

        redis.fail_reads = True
        with pytest.raises(StateStoreError):
            await handle.append_message(MessageRole.USER, "Find hotels")

        redis.fail_reads = False
        await handle.append_message(MessageRole.USER, "Find hotels")
        return await handle.get()

    state = asyncio.run(run())
    assert [m.content for m in state.recentMessages] == ["Trip to Paris", "Great choice", "Find hotels"]
    assert state.basics.destination == "Paris"


def test_corrupt_record_is_not_overwritten():
    redis = FlakyRedis()
    redis.data["state:alice"] = b"{not json"
    store = ConversationStateStore(redis_client=redis)

    with pytest.raises(StateStoreError, match="Corrupt"):
        asyncio.run(store.get_state("alice"))
    assert redis.data["state:alice"] == b"{not json"


def test_missing_record_is_created_in_redis():
    redis = FlakyRedis()
    store = ConversationStateStore(redis_client=redis)

    assert asyncio.run(store.get_state("bob")).recentMessages == []
    assert "state:bob" in redis.data
