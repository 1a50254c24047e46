import asyncio

import pytest

from conftest import FakeChatClient, FakeTravelAPI
from travellite.agents import InvalidMessageError
from travellite.kafka_client import KafkaRelayPublisher, MemoryRelay
from travellite.llm import GenerationError
from travellite.schemas import ApiCallResult, MessageRole


def _system_prompt(chat):
    return chat.generation_calls[-1][0]["content"]


def test_turn_appends_both_sides(make_agent):
    agent = make_agent()

    text = asyncio.run(agent.handle_message_text("alice", "Hello there"))
    state = asyncio.run(agent.get_state("alice"))

    assert text == "Hello there"
    assert [(m.role, m.content) for m in state.recentMessages] == [
        (MessageRole.USER, "Hello there"),
        (MessageRole.ASSISTANT, "Hello there"),
    ]


def test_classifier_miss_runs_no_stage(make_agent):
    chat = FakeChatClient()
    agent = make_agent(chat_client=chat)

    asyncio.run(agent.handle_message_text("alice", "Hello, how are you?"))

    prompt = _system_prompt(chat)
    assert "Relevant context:" not in prompt
    assert "Tool results:" not in prompt
    assert chat.routing_calls == []
    assert agent.retrieval.embedder.calls == []


def test_recommend_activities_with_empty_index(make_agent):
    chat = FakeChatClient()
    api = FakeTravelAPI()
    agent = make_agent(chat_client=chat, travel_api=api)

    asyncio.run(agent.handle_message_text("alice", "Recommend activities in Paris"))

    assert "Relevant context:" not in _system_prompt(chat)
    assert api.calls == []
    assert chat.routing_calls == []


def test_recommend_activities_uses_unfiltered_context(make_agent):
    chat = FakeChatClient()
    agent = make_agent(chat_client=chat)

    async def run():
        # Seeded documents carry no city, so any match proves the query was unfiltered
        await agent.knowledge_base.seed_document("paris_activities.txt", "Recommend activities in Paris")
        await agent.handle_message_text("alice", "Recommend activities in Paris")

    asyncio.run(run())

    prompt = _system_prompt(chat)
    assert "Relevant context: [1] Recommend activities in Paris (Source: base-rag-file, Score: 1.000)" in prompt
    assert asyncio.run(agent.get_state("alice")).basics.destination is None


def test_history_window_and_prompt_fields(make_agent):
    chat = FakeChatClient()
    agent = make_agent(chat_client=chat)

    async def run():
        for i in range(4):
            await agent.handle_message_text("alice", f"message {i}: trip to Lisbon, budget $900")

    asyncio.run(run())

    messages = chat.generation_calls[-1]
    assert len(messages) == 1 + 5
    assert messages[-1] == {"role": "user", "content": "message 3: trip to Lisbon, budget $900"}
    prompt = messages[0]["content"]
    assert "- Destination: Lisbon\n" in prompt
    assert "- Budget: $900" in prompt
    assert "- Dates: Not specified to Not specified" in prompt
    assert "- Preferences: None specified" in prompt


def test_tool_results_reach_the_prompt(make_agent):
    chat = FakeChatClient(routing_reply='{"apiName": "searchHotelOffers", "params": {"cityCode": "PAR"}}')
    api = FakeTravelAPI({"searchHotelOffers": ApiCallResult(success=False, error="rate limited")})
    agent = make_agent(chat_client=chat, travel_api=api)

    text = asyncio.run(agent.handle_message_text("alice", "hotels in Paris please"))

    assert text == "Hello there"
    assert "Tool results: [Tool Results: API call error (searchHotelOffers): rate limited]" in _system_prompt(chat)


def test_blank_message_is_rejected(make_agent):
    agent = make_agent()
    with pytest.raises(InvalidMessageError):
        asyncio.run(agent.handle_message_text("alice", "   "))


def test_generation_failure_is_fatal(make_agent):
    agent = make_agent(chat_client=FakeChatClient(fail_generation=True))
    with pytest.raises(GenerationError):
        asyncio.run(agent.handle_message_text("alice", "Hello"))
    # The user turn was recorded before generation
    assert len(asyncio.run(agent.get_state("alice")).recentMessages) == 1


def test_non_stream_return_is_generation_error(make_agent):
    class TextOnlyChat(FakeChatClient):
        async def generate_chat(self, messages, streaming=True, max_tokens=None):
            return "not a stream"

    agent = make_agent(chat_client=TextOnlyChat())
    with pytest.raises(GenerationError):
        asyncio.run(agent.handle_message_text("alice", "Hello"))


def test_streaming_binding_yields_deltas(make_agent):
    agent = make_agent(chat_client=FakeChatClient(reply_chunks=["a", "b", "c"]))

    async def run():
        return [d async for d in await agent.handle_message("alice", "Hello")]

    assert asyncio.run(run()) == ["a", "b", "c"]


# ============================================
# Relay binding
# ============================================

def test_relay_receives_marker_wrapped_stream(make_agent):
    relay = MemoryRelay()
    agent = make_agent(relay=relay)

    result = asyncio.run(agent.handle_message_streaming("Hello", "room-1", "alice"))

    assert result["success"] is True
    messages = relay.messages("room-1")
    assert messages[0]["streaming"] is True
    assert [m["text"] for m in messages if m.get("chunk")] == ["Hello", " there"]
    assert messages[-1]["complete"] is True and messages[-1]["text"] == "Hello there"
    state = asyncio.run(agent.get_state("alice"))
    assert state.recentMessages[-1].content == "Hello there"


@pytest.mark.parametrize("relay", [None, MemoryRelay(enabled=False), KafkaRelayPublisher()])
def test_relay_unavailable_still_commits(make_agent, relay):
    agent = make_agent(relay=relay)

    result = asyncio.run(agent.handle_message_streaming("Hello", "room-1", "alice"))

    assert result["success"] is True
    state = asyncio.run(agent.get_state("alice"))
    assert [m.role for m in state.recentMessages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert state.recentMessages[-1].content == "Hello there"


def test_room_is_identity_without_user(make_agent):
    agent = make_agent(relay=MemoryRelay())
    asyncio.run(agent.handle_message_streaming("Hello", "room-9"))
    assert len(asyncio.run(agent.get_state("room-9")).recentMessages) == 2


def test_relay_generation_failure_publishes_error(make_agent):
    relay = MemoryRelay()
    agent = make_agent(chat_client=FakeChatClient(fail_generation=True), relay=relay)

    result = asyncio.run(agent.handle_message_streaming("Hello", "room-1", "alice"))

    assert result == {"success": False, "error": "model offline"}
    messages = relay.messages("room-1")
    assert len(messages) == 1
    assert messages[0]["isError"] is True
    assert messages[0]["text"] == "model offline"
    assert messages[0]["userId"] == "alice"


def test_relay_source_error_sends_partial_complete(make_agent):
    relay = MemoryRelay()
    chat = FakeChatClient(reply_chunks=["Half"], stream_error=RuntimeError("reset"))
    agent = make_agent(chat_client=chat, relay=relay)

    asyncio.run(agent.handle_message_streaming("Hello", "room-1", "alice"))

    assert relay.messages("room-1")[-1]["text"] == "Half"
    # Nothing is committed for a broken stream
    assert len(asyncio.run(agent.get_state("alice")).recentMessages) == 1


def test_call_travel_api_passthrough(make_agent):
    api = FakeTravelAPI({"searchCities": ApiCallResult(success=True, data={"data": []})})
    agent = make_agent(travel_api=api)

    result = asyncio.run(agent.call_travel_api("searchCities", {"keyword": "PAR"}))

    assert result.success
    assert api.calls == [("searchCities", {"keyword": "PAR"})]
