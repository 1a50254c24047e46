# llm/intent_parser.py
"""
Intent Classifier and Trip Info Parser
Lexical signals deciding which optional stages run for an utterance:
- should_retrieve: recommendation / attraction style phrasing
- should_invoke_tools: flight / hotel / activity / booking / price phrasing
- parse_trip_info: destination, dates, budget and preference tags

Matching is plain case-insensitive substring search. An utterance with
no trigger words runs neither stage.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger


# Retrieval triggers
RETRIEVAL_KEYWORDS = (
    "recommend",
    "suggest",
    "what to do",
    "attractions",
    "places to visit",
    "activities",
    "things to see",
)

# Tool triggers. Discovery phrasing ("recommend", "activities") belongs to retrieval only
TOOL_KEYWORDS = (
    # Flight
    "flight", "flights", "airline", "airport", "departure", "arrival",
    # Hotel
    "hotel", "hotels", "accommodation", "accommodations", "stay", "lodging",
    # Activity
    "activity", "tour", "tours", "things to do",
    # Booking / price
    "book", "booking", "search", "price", "cost", "availability", "options",
    # Location / transfer
    "destination", "route", "transfer", "car rental", "rental car",
)

PREFERENCE_KEYWORDS = (
    "nightlife",
    "coffee",
    "walkable",
    "beach",
    "museums",
    "hiking",
    "food",
    "shopping",
    "culture",
    "nature",
)

_DATE = r"(\d{4}-\d{2}-\d{2}|\w+\s+\d{1,2})"

DESTINATION_PATTERN = re.compile(
    r"(?:going to|visit|travel to|destination|trip to)\s+([A-Z][a-zA-Z\s]+)",
    re.IGNORECASE,
)
START_DATE_PATTERN = re.compile(r"(?:from|depart|start|leaving)\s+" + _DATE, re.IGNORECASE)
END_DATE_PATTERN = re.compile(r"(?:until|return|end|coming back)\s+" + _DATE, re.IGNORECASE)
BUDGET_PATTERN = re.compile(r"\$?(\d+(?:,\d{3})*(?:\.\d{2})?)")
DOLLAR_PATTERN = re.compile(r"\$(\d+(?:,\d{3})*(?:\.\d{2})?)")


def _contains_any(text: str, keywords) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def should_retrieve(utterance: str) -> bool:
    """True when the utterance asks for recommendations or things to do"""
    return _contains_any(utterance or "", RETRIEVAL_KEYWORDS)


def should_invoke_tools(utterance: str) -> bool:
    """True when the utterance needs live flight/hotel/activity data"""
    return _contains_any(utterance or "", TOOL_KEYWORDS)


@dataclass
class ParsedTripInfo:
    """Trip details found in a single message"""
    destination: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    budget: Optional[float] = None
    preferences: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            self.destination is None
            and self.startDate is None
            and self.endDate is None
            and self.budget is None
            and not self.preferences
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": self.destination,
            "startDate": self.startDate,
            "endDate": self.endDate,
            "budget": self.budget,
            "preferences": list(self.preferences),
        }


def _parse_budget(message: str) -> Optional[float]:
    # A dollar-prefixed amount beats the first bare number
    match = DOLLAR_PATTERN.search(message) or BUDGET_PATTERN.search(message)
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def parse_trip_info(message: str) -> ParsedTripInfo:
    """
    Extract trip details from a user message.

    Dates are kept as free text ("2025-06-01" or "June 3"); nothing is
    validated. Merging into state is left to the state store.
    """
    info = ParsedTripInfo()
    if not message:
        return info

    match = DESTINATION_PATTERN.search(message)
    if match:
        destination = match.group(1).strip()
        if destination:
            info.destination = destination

    match = START_DATE_PATTERN.search(message)
    if match:
        info.startDate = match.group(1).strip()

    match = END_DATE_PATTERN.search(message)
    if match:
        info.endDate = match.group(1).strip()

    info.budget = _parse_budget(message)

    lowered = message.lower()
    info.preferences = [p for p in PREFERENCE_KEYWORDS if p in lowered]

    if not info.is_empty():
        logger.debug(f"Parsed trip info: {info.to_dict()}")
    return info
