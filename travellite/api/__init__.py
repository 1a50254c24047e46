# api/__init__.py
"""
API Endpoints Package

FastAPI routers for the assistant:
- chat: HTTP chat, state inspection, knowledge seeding
- gateway_websocket: direct socket transport
- realtime: relay webhook
- rpc: agent method dispatch
"""

from .chat import router as chat_router
from .gateway_websocket import manager as gateway_manager
from .gateway_websocket import router as gateway_router
from .realtime import router as realtime_router
from .rpc import RPC_METHODS
from .rpc import router as rpc_router

__all__ = [
    "chat_router",
    "gateway_router",
    "gateway_manager",
    "realtime_router",
    "rpc_router",
    "RPC_METHODS",
]
