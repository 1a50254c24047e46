import asyncio

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from conftest import FakeChatClient, iterate
from travellite.api import gateway_manager
from travellite.api.gateway_websocket import run_gateway_turn
from travellite.interfaces import ConversationStateStore
from travellite.kafka_client import MemoryRelay
from travellite.llm.streaming import UNDECODABLE_REPLY
from travellite.main import create_app
from travellite.schemas import MessageRole


@pytest.fixture
def relay():
    return MemoryRelay()


@pytest.fixture
def agent(make_agent, relay):
    return make_agent(relay=relay)


@pytest.fixture
def client(agent):
    return TestClient(create_app(agent=agent))


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["components"]["relay"] == "ready"
    assert health["components"]["travel_api"] == "not configured"


# ============================================
# HTTP chat
# ============================================

def test_chat_round_trip(client):
    response = client.post("/api/chat", json={"userId": "alice", "text": "Hello"})
    assert response.status_code == 200
    assert response.json()["text"] == "Hello there"

    state = client.get("/api/state/alice").json()
    assert [m["role"] for m in state["recentMessages"]] == ["user", "assistant"]


def test_chat_rejects_blank_text(client):
    response = client.post("/api/chat", json={"userId": "alice", "text": "   "})
    assert response.status_code == 400


def test_chat_generation_failure(make_agent):
    client = TestClient(create_app(agent=make_agent(chat_client=FakeChatClient(fail_generation=True))))
    response = client.post("/api/chat", json={"userId": "alice", "text": "Hello"})
    assert response.status_code == 502


def test_chat_state_store_failure(make_agent):
    class UnreachableRedis:
        async def get(self, key):
            raise ConnectionError("Connection refused")

    agent = make_agent()
    agent.state_store = ConversationStateStore(redis_client=UnreachableRedis())
    client = TestClient(create_app(agent=agent))

    assert client.post("/api/chat", json={"userId": "alice", "text": "Hello"}).status_code == 503
    assert client.get("/api/state/alice").status_code == 503


def test_chat_stream(client):
    response = client.post("/api/chat/stream", json={"userId": "alice", "text": "Hello"})
    assert response.status_code == 200
    assert response.text == "Hello there"


def test_seed_rag(client):
    body = {"fileName": "rome_food.txt", "content": "Supplì from Trastevere bakeries"}
    assert client.post("/api/seed-rag", json=body).json()["status"] == "ingested"
    assert client.post("/api/seed-rag", json=body).json()["status"] == "skipped"


# ============================================
# Gateway
# ============================================

def test_gateway_streams_then_sends_response(client):
    with client.websocket_connect("/api/gateway/ws?userId=alice") as ws:
        ws.send_json({"type": "message", "text": "Hello"})
        frames = [ws.receive_json() for _ in range(5)]

    assert frames[0]["type"] == "agent_response"
    assert frames[0]["streaming"] is True and frames[0]["text"] == ""
    assert [f["text"] for f in frames[1:3]] == ["Hello", " there"]
    assert frames[3]["complete"] is True and frames[3]["text"] == "Hello there"
    assert frames[4] == {"type": "response", "userId": "alice", "text": "Hello there"}


def test_gateway_ping_and_errors(client):
    with client.websocket_connect("/api/gateway/ws?userId=bob") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "response", "userId": "bob", "error": "Invalid message format"}

        ws.send_json({"type": "message", "text": " "})
        assert ws.receive_json()["error"] == "Message text is required"

        ws.send_json({"type": "typing"})
        assert "Unsupported" in ws.receive_json()["error"]


def test_gateway_generation_failure_is_an_envelope(make_agent):
    client = TestClient(create_app(agent=make_agent(chat_client=FakeChatClient(fail_generation=True))))
    with client.websocket_connect("/api/gateway/ws?userId=alice") as ws:
        ws.send_json({"type": "message", "text": "Hello"})
        assert ws.receive_json() == {"type": "response", "userId": "alice", "error": "model offline"}


class DroppingSocket:
    """Accepts a fixed number of sends, then behaves like a closed socket"""

    def __init__(self, sends_before_drop: int):
        self.client_state = WebSocketState.CONNECTED
        self.remaining = sends_before_drop
        self.sent = []

    async def send_json(self, message):
        if self.remaining == 0:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(code=1001)
        self.remaining -= 1
        self.sent.append(message)


def _turns(agent, identity):
    state = asyncio.run(agent.get_state(identity))
    return [(m.role, m.content) for m in state.recentMessages]


def test_gateway_turn_on_unknown_connection_still_commits(agent):
    asyncio.run(run_gateway_turn(agent, "gone-connection", "alice", "Hello there"))

    assert _turns(agent, "alice") == [
        (MessageRole.USER, "Hello there"),
        (MessageRole.ASSISTANT, "Hello there"),
    ]


def test_gateway_disconnect_mid_stream_stops_sends_and_commits(agent):
    socket = DroppingSocket(sends_before_drop=2)
    gateway_manager.active_connections["dropping"] = socket
    try:
        asyncio.run(run_gateway_turn(agent, "dropping", "alice", "Hello"))
    finally:
        gateway_manager.active_connections.pop("dropping", None)

    assert [f.get("text") for f in socket.sent] == ["", "Hello"]
    assert _turns(agent, "alice")[-1] == (MessageRole.ASSISTANT, "Hello there")


def test_gateway_reports_undecodable_reply(make_agent):
    class GarbledChat(FakeChatClient):
        async def generate_chat(self, messages, streaming=True, max_tokens=None):
            return iterate([b"data: {oops\n\n"])

    client = TestClient(create_app(agent=make_agent(chat_client=GarbledChat())))
    with client.websocket_connect("/api/gateway/ws?userId=alice") as ws:
        ws.send_json({"type": "message", "text": "Hello"})
        frames = [ws.receive_json() for _ in range(4)]

    assert frames[1]["complete"] is True and frames[1]["text"] == ""
    assert frames[2]["isError"] is True
    assert frames[3] == {"type": "response", "userId": "alice", "error": UNDECODABLE_REPLY}


# ============================================
# Realtime webhook
# ============================================

def test_webhook_streams_to_room(client, relay):
    response = client.post("/api/realtime/webhook", json={
        "type": "message",
        "room": "room-1",
        "userId": "alice",
        "message": {"text": "Hello"},
        "timestamp": 1700000000000,
    })

    assert response.json() == {"success": True, "message": "Processing", "room": "room-1"}
    # Background tasks finish before TestClient returns
    messages = relay.messages("room-1")
    assert messages[-1]["complete"] is True
    assert messages[-1]["text"] == "Hello there"


def test_webhook_accepts_top_level_text(client, relay):
    client.post("/api/realtime/webhook", json={"type": "message", "room": "room-2", "text": "Hello"})
    assert relay.messages("room-2")[-1]["text"] == "Hello there"


@pytest.mark.parametrize("body, error", [
    ({"type": "message", "room": "room-1", "message": {"text": ""}}, "Message text is required"),
    ({"type": "message", "message": {"text": "Hello"}}, "Room is required"),
])
def test_webhook_validation(client, body, error):
    response = client.post("/api/realtime/webhook", json=body)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": error}


def test_webhook_malformed_body(client):
    response = client.post("/api/realtime/webhook", content=b"{nope", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_webhook_ignores_other_events(client, relay):
    response = client.post("/api/realtime/webhook", json={"type": "presence", "room": "room-1"})
    assert response.status_code == 200
    assert relay.messages("room-1") == []


def test_webhook_without_relay_still_commits(make_agent):
    agent = make_agent(relay=None)
    client = TestClient(create_app(agent=agent))

    response = client.post("/api/realtime/webhook", json={"room": "room-1", "userId": "carol", "text": "Hello"})

    assert response.status_code == 200
    state = client.get("/api/state/carol").json()
    assert state["recentMessages"][-1]["content"] == "Hello there"


# ============================================
# RPC
# ============================================

def _rpc(client, method, *args, session="s1"):
    return client.post(f"/agents/TravelAgent/{session}", json={"type": "rpc", "id": "r1", "method": method, "args": list(args)})


def test_rpc_unknown_method(client):
    response = _rpc(client, "dropDatabase")
    assert response.status_code == 404
    assert response.json()["error"] == "Method dropDatabase not found"


def test_rpc_handle_message_and_state(client):
    response = _rpc(client, "handleMessage", "Hello")
    assert response.json() == {"type": "rpc", "id": "r1", "success": True, "result": "Hello there", "error": None}

    state = _rpc(client, "getState").json()["result"]
    assert len(state["recentMessages"]) == 2


def test_rpc_handle_message_streaming_uses_session_state(client, relay):
    response = _rpc(client, "handleMessageStreaming", "Hello", "room-5", "dave", session="s2")
    assert response.json()["result"]["success"] is True
    assert relay.messages("room-5")[-1]["complete"] is True
    assert len(_rpc(client, "getState", session="s2").json()["result"]["recentMessages"]) == 2


def test_rpc_call_travel_api(client):
    result = _rpc(client, "callTravelAPI", "searchCities", {"keyword": "PAR"}).json()["result"]
    assert result["success"] is False
    assert "Unknown API" in result["error"]


def test_rpc_handler_error(client):
    response = _rpc(client, "handleMessage")
    assert response.status_code == 500
    assert response.json()["success"] is False


def test_rpc_invalid_envelope(client):
    response = client.post("/agents/TravelAgent/s1", json={"type": "rpc", "method": "getState"})
    assert response.status_code == 400
