"""
Travellite Assistant Service - FastAPI Application
LLM Provider:
- If OPENAI_API_KEY is set: use OpenAI (or any compatible endpoint)
- If no OPENAI_API_KEY: use Ollama

Transports:
- WS   /api/gateway/ws           direct socket gateway
- POST /api/realtime/webhook     realtime relay (replies published via Kafka)
- POST /agents/TravelAgent/{id}  agent RPC
- POST /api/chat                 request/response chat
"""

import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from . import __version__
from .agents import TravelAgent, build_travel_agent
from .api import chat_router, gateway_manager, gateway_router, realtime_router, rpc_router
from .cache import check_redis_health, close_redis
from .config import settings
from .kafka_client import KafkaRelayPublisher

# Configure logging
logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


# ============================================
# Application Lifespan
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the default agent unless one was injected, then tear it down"""
    logger.info("=" * 50)
    logger.info("Starting Travellite Assistant")
    logger.info("=" * 50)
    logger.info(f"Environment: {settings.API_ENV}")

    owns_agent = getattr(app.state, "agent", None) is None
    if owns_agent:
        relay = None
        if settings.RELAY_ENABLED:
            relay = KafkaRelayPublisher()
            await relay.start()
        app.state.agent = build_travel_agent(relay=relay)

    agent: TravelAgent = app.state.agent

    if owns_agent:
        await agent.retrieval.embedder.verify_setup()
        if settings.RAG_FILES_DIR and agent.knowledge_base is not None:
            await agent.knowledge_base.seed_directory(settings.RAG_FILES_DIR)

    components = {
        "llm": agent.chat_client.provider,
        "relay": agent.relay is not None and agent.relay.available,
        "travel_api": agent.tools.travel_api.is_configured,
    }
    for name, status in components.items():
        logger.info(f"  {'✓' if status else '✗'} {name}: {status}")

    yield

    if owns_agent:
        if agent.relay is not None:
            await agent.relay.stop()
        await agent.chat_client.close()
        await agent.tools.travel_api.close()
        await close_redis()

    logger.info("Travellite Assistant shutdown complete")


# ============================================
# FastAPI Application
# ============================================

def create_app(agent: Optional[TravelAgent] = None) -> FastAPI:
    """Application factory; tests inject a pre-wired agent"""
    app = FastAPI(
        title="Travellite Assistant",
        description="Conversational travel assistant with retrieval, travel API tools and streaming replies.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.agent = agent

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(gateway_router)
    app.include_router(realtime_router)
    app.include_router(rpc_router)

    @app.get("/")
    async def root():
        return {
            "service": "Travellite Assistant",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "endpoints": [
                "/api/health",
                "/api/chat",
                "/api/chat/stream",
                "/api/state/{identity}",
                "/api/seed-rag",
                "/api/gateway/ws",
                "/api/realtime/webhook",
                "/agents/TravelAgent/{session}"
            ]
        }

    @app.get("/api/health")
    async def health_check():
        """Detailed health check"""
        current: TravelAgent = app.state.agent
        redis_status = "connected" if settings.USE_REDIS and await check_redis_health() else "in-memory"

        return {
            "status": "healthy",
            "service": "travellite-assistant",
            "version": __version__,
            "components": {
                "llm": current.chat_client.provider,
                "redis": redis_status,
                "relay": "ready" if current.relay is not None and current.relay.available else "unavailable",
                "travel_api": "configured" if current.tools.travel_api.is_configured else "not configured",
                "gateway_connections": gateway_manager.get_connection_count()
            },
            "timestamp": datetime.now().isoformat()
        }

    return app


app = create_app()


# ============================================
# Main
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "travellite.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_ENV == "development"
    )
