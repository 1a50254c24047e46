# travellite/__init__.py
"""
Travellite Assistant Package

A conversational travel assistant with:
- Per-identity conversation state (Redis or in-memory)
- Knowledge retrieval from a vector index
- External travel API tools with result ingestion
- Streaming replies over a socket gateway or a realtime relay
"""

__version__ = "1.0.0"

# Package structure:
# travellite/
# ├── __init__.py           <- This file
# ├── main.py               <- FastAPI application entry
# ├── config.py             <- Configuration settings
# │
# ├── agents/               <- Turn pipeline
# │   ├── travel_agent.py   <- Orchestration and bindings
# │   ├── retrieval.py      <- Retrieval stage
# │   ├── tool_router.py    <- Tool-call stage
# │   ├── ingestion.py      <- Tool results into the index
# │   └── knowledge_base.py <- Base document seeding
# │
# ├── api/                  <- FastAPI Routers
# │   ├── chat.py           <- /api/chat, /api/state, /api/seed-rag
# │   ├── gateway_websocket.py <- /api/gateway/ws
# │   ├── realtime.py       <- /api/realtime/webhook
# │   └── rpc.py            <- /agents/TravelAgent/{session}
# │
# ├── llm/                  <- Classifier, prompts, chat client, streaming
# ├── providers/            <- External travel API client
# ├── interfaces/           <- State, KV and vector stores
# ├── cache/                <- Redis connection, embeddings
# ├── kafka_client/         <- Relay publisher
# └── schemas/              <- Pydantic models
