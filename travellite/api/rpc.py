# api/rpc.py
"""
Agent RPC
POST /agents/TravelAgent/{session} with {"type": "rpc", "id", "method", "args"}.

Only methods listed in RPC_METHODS are callable. The session path
segment is the identity whose state the call operates on.
"""

from typing import Any, Awaitable, Callable, Dict, List

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from ..agents import TravelAgent
from ..schemas import ErrorResponse, RpcRequest, RpcResponse

router = APIRouter(prefix="/agents/TravelAgent", tags=["RPC"])


RpcHandler = Callable[[TravelAgent, str, List[Any]], Awaitable[Any]]


def _arg(args: List[Any], index: int, method: str, name: str) -> Any:
    if len(args) <= index or args[index] is None:
        raise ValueError(f"{method} requires argument '{name}' at position {index}")
    return args[index]


async def _handle_message(agent: TravelAgent, session: str, args: List[Any]) -> str:
    # Streams are accumulated for RPC callers
    return await agent.handle_message_text(session, str(_arg(args, 0, "handleMessage", "input")))


async def _handle_message_streaming(agent: TravelAgent, session: str, args: List[Any]) -> Dict[str, Any]:
    text = str(_arg(args, 0, "handleMessageStreaming", "input"))
    room_id = str(_arg(args, 1, "handleMessageStreaming", "roomId"))
    user_id = args[2] if len(args) > 2 else None
    return await agent.handle_message_streaming(text, room_id, user_id, identity=session)


async def _call_travel_api(agent: TravelAgent, session: str, args: List[Any]) -> Dict[str, Any]:
    name = str(_arg(args, 0, "callTravelAPI", "apiName"))
    params = args[1] if len(args) > 1 and isinstance(args[1], dict) else {}
    result = await agent.call_travel_api(name, params)
    return result.model_dump(exclude_none=True)


async def _get_state(agent: TravelAgent, session: str, args: List[Any]) -> Dict[str, Any]:
    state = await agent.get_state(session)
    return state.model_dump(mode="json")


RPC_METHODS: Dict[str, RpcHandler] = {
    "handleMessage": _handle_message,
    "handleMessageStreaming": _handle_message_streaming,
    "callTravelAPI": _call_travel_api,
    "getState": _get_state,
}


@router.post("/{session}")
async def agent_rpc(session: str, request: Request):
    try:
        rpc = RpcRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"[TravelAgent] Invalid RPC envelope: {e}")
        return JSONResponse(status_code=400, content=ErrorResponse(error="Invalid RPC request").model_dump())

    handler = RPC_METHODS.get(rpc.method)
    if handler is None:
        return JSONResponse(
            status_code=404,
            content=RpcResponse(id=rpc.id, success=False, error=f"Method {rpc.method} not found").model_dump()
        )

    logger.info(f"[TravelAgent] RPC call received: {rpc.method} (session={session})")
    try:
        result = await handler(request.app.state.agent, session, rpc.args)
    except Exception as e:
        logger.error(f"[TravelAgent] RPC {rpc.method} failed: {e}")
        return JSONResponse(
            status_code=500,
            content=RpcResponse(id=rpc.id, success=False, error=str(e) or "RPC call failed").model_dump()
        )

    return RpcResponse(id=rpc.id, success=True, result=result).model_dump()
