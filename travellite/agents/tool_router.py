# agents/tool_router.py
"""
Tool-Call Stage
Decides which external travel API to call, calls it, ingests the top
results and returns a compact summary for the generation prompt.

Routing is single-pass:
1. model-assisted: the chat model answers {"apiName": ..., "params": {...}}
2. lexical fallback: flight / hotel / activity keyword rules
3. otherwise no tool call
"""

import json
from typing import Any, List, Optional

from loguru import logger

from ..config import settings
from ..llm.prompts import ROUTER_SYSTEM_PROMPT, build_router_prompt
from ..schemas import INGESTIBLE_TYPES, ApiCall, ConversationState, ResultType


# ============================================
# Pure helpers
# ============================================

# Checked in order against the lowercased API name
_TYPE_MARKERS = (
    (ResultType.FLIGHT, ("flight",)),
    (ResultType.HOTEL, ("hotel",)),
    (ResultType.ACTIVITY, ("activit",)),
    (ResultType.TRANSFER, ("transfer",)),
    (ResultType.LOCATION, ("location", "city", "cities")),
)


def classify_result_type(api_name: str) -> ResultType:
    """flight / hotel / activity / transfer / location / general by substring"""
    lowered = (api_name or "").lower()
    for result_type, markers in _TYPE_MARKERS:
        if any(marker in lowered for marker in markers):
            return result_type
    return ResultType.GENERAL


def normalize_results(data: Any) -> List[Any]:
    """
    Coerce an API payload to a list:
        {"data": [...]}  -> [...]
        {"data": {...}}  -> [{...}]
        [...]            -> [...]
        {...}            -> [{...}]
    """
    if data is None:
        return []
    if isinstance(data, dict):
        inner = data.get("data")
        if isinstance(inner, list):
            return list(inner)
        if isinstance(inner, dict):
            return [inner]
        return [data] if data else []
    if isinstance(data, list):
        return list(data)
    return [data]


def parse_routing_response(text: str) -> Optional[ApiCall]:
    """
    Parse the first JSON object in the model's reply.
    Parse failure or a null apiName means no routing decision.
    """
    if not text:
        return None

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(text, start)
        except ValueError:
            start = text.find("{", start + 1)
            continue

        if not isinstance(parsed, dict):
            return None
        api_name = parsed.get("apiName")
        if not isinstance(api_name, str) or not api_name or api_name == "null":
            return None
        params = parsed.get("params")
        return ApiCall(apiName=api_name, params=params if isinstance(params, dict) else {})

    return None


def lexical_fallback(utterance: str, state: ConversationState) -> Optional[ApiCall]:
    """Hardcoded keyword routing used when the model gives no decision"""
    lowered = (utterance or "").lower()
    basics = state.basics

    if "flight" in lowered and basics.destination and basics.startDate:
        return ApiCall(
            apiName="searchFlightOffers",
            params={
                "origin": settings.DEFAULT_ORIGIN,
                "destination": basics.destination,
                "departureDate": basics.startDate,
                "returnDate": basics.endDate,
            }
        )

    if ("hotel" in lowered or "accommodation" in lowered) and basics.destination:
        return ApiCall(
            apiName="searchHotelOffers",
            params={
                "cityCode": basics.destination,
                "checkInDate": basics.startDate,
                "checkOutDate": basics.endDate,
                "adults": 2,
            }
        )

    if "activity" in lowered or "tour" in lowered or "things to do" in lowered:
        return ApiCall(
            apiName="searchActivities",
            params={
                "latitude": settings.DEFAULT_ACTIVITY_LAT,
                "longitude": settings.DEFAULT_ACTIVITY_LON,
                "radius": 5,
                "pageLimit": 10,
            }
        )

    return None


# ============================================
# Stage
# ============================================

class ToolCallStage:
    """
    Usage:
        stage = ToolCallStage(chat_client, travel_api, ingestor)
        summary = await stage.invoke_tools("Find hotels in Paris", state)
        # "[Tool Results: Found 5 result(s) from searchHotelOffers]"
    """

    def __init__(self, chat_client, travel_api, ingestor, max_ingest: Optional[int] = None):
        self.chat_client = chat_client
        self.travel_api = travel_api
        self.ingestor = ingestor
        self.max_ingest = max_ingest or settings.INGEST_MAX_ITEMS

    async def route(self, utterance: str, state: ConversationState) -> Optional[ApiCall]:
        """Model-assisted routing; any failure means no decision"""
        messages = [
            {"role": "system", "content": ROUTER_SYSTEM_PROMPT},
            {"role": "user", "content": build_router_prompt(utterance, state.basics)},
        ]
        try:
            reply = await self.chat_client.complete(messages, max_tokens=settings.ROUTER_MAX_TOKENS)
        except Exception as e:
            logger.error(f"[TravelAgent] Error determining API call: {e}")
            return None

        api_call = parse_routing_response(reply)
        if api_call:
            logger.info(f"[TravelAgent] Model routed to {api_call.apiName} with {api_call.params}")
        return api_call

    async def execute(self, api_call: ApiCall, city: Optional[str]) -> str:
        """Call the API, ingest top results and summarize"""
        name = api_call.apiName
        result = await self.travel_api.call(name, api_call.params)

        if not result.success:
            return f"API call error ({name}): {result.error or 'Failed to call API'}"

        result_type = classify_result_type(name)
        results = normalize_results(result.data)

        if results and result_type in INGESTIBLE_TYPES:
            # Sequential on purpose: one embed + write at a time
            for item in results[:self.max_ingest]:
                await self.ingestor.ingest(item, result_type, city)

        if results:
            return f"Found {len(results)} result(s) from {name}"
        return f"API call to {name} succeeded but returned no results"

    async def invoke_tools(self, utterance: str, state: ConversationState) -> str:
        try:
            api_call = await self.route(utterance, state)
            if api_call is None:
                api_call = lexical_fallback(utterance, state)
            if api_call is None:
                logger.debug("[TravelAgent] No tool call for this message")
                return ""

            summary = await self.execute(api_call, state.basics.destination)
            return f"[Tool Results: {summary}]"

        except Exception as e:
            logger.error(f"[TravelAgent] Tool execution error: {e}")
            return f"[Tool Error: {str(e) or 'Unknown error'}]"
