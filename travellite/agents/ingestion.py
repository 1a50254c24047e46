# agents/ingestion.py
"""
Result Ingestion (feedback loop)
Folds external API results back into the vector index so later turns
can retrieve them without another API call.

At most one ingestion per (type, external id): a dedup marker
"<provider>:<type>:<id>" is checked first and written only after the
upsert succeeded. Check-then-write is not atomic; two concurrent turns
ingesting the same id may both upsert (same vector id, so the index
still holds one record).
"""

import json
import math
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from ..config import settings
from ..schemas import ResultType, now_ms


ID_FIELDS = ("id", "hotelId", "activityId", "poiId")


def resolve_external_id(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    for key in ID_FIELDS:
        value = item.get(key)
        if value is not None and value != "":
            return str(value)
    hotel = item.get("hotel")
    if isinstance(hotel, dict) and hotel.get("hotelId"):
        return str(hotel["hotelId"])
    return None


def _to_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _price_text(price: Any, *fields: str) -> str:
    if isinstance(price, dict):
        for name in fields:
            if price.get(name):
                return str(price[name])
        return ""
    return str(price) if price else ""


# ============================================
# Summaries
# ============================================

def summarize_hotel(hotel: Dict[str, Any]) -> str:
    # Hotel offers nest the property under "hotel" and prices under "offers"
    details = dict(hotel.get("hotel") or {})
    details.update({k: v for k, v in hotel.items() if k != "hotel"})
    offers = details.get("offers") or []
    price_source = details.get("price")
    if not price_source and offers and isinstance(offers[0], dict):
        price_source = offers[0].get("price")

    name = details.get("name") or details.get("hotelName") or "Hotel"
    address = details.get("address") or {}
    city = address.get("cityName") or details.get("cityCode") or ""
    price = _price_text(price_source, "total", "base")
    rating = details.get("rating") or details.get("starRating") or ""
    amenities = details.get("amenities") or []

    summary = f"{name}"
    if city:
        summary += f" in {city}"
    if rating:
        summary += f" ({rating}-star)"
    if price:
        summary += f", typically {price}"
    if amenities:
        summary += f". Features: {', '.join(str(a) for a in amenities[:3])}"
    return summary


def _flight_route(flight: Dict[str, Any]) -> Tuple[str, str, str, Optional[int]]:
    origin = (flight.get("origin") or {}).get("iataCode") or flight.get("originLocationCode") or ""
    destination = (flight.get("destination") or {}).get("iataCode") or flight.get("destinationLocationCode") or ""
    duration = flight.get("duration") or ""
    segment_count = None

    itineraries = flight.get("itineraries") or []
    if itineraries and isinstance(itineraries[0], dict):
        first = itineraries[0]
        duration = duration or first.get("duration") or ""
        segments = first.get("segments") or []
        if segments:
            segment_count = len(segments)
            origin = origin or segments[0].get("departure", {}).get("iataCode", "")
            destination = destination or segments[-1].get("arrival", {}).get("iataCode", "")

    return origin, destination, duration, segment_count


def summarize_flight(flight: Dict[str, Any]) -> str:
    origin, destination, duration, segment_count = _flight_route(flight)
    price = _price_text(flight.get("price"), "total", "grandTotal")

    if segment_count is not None:
        stops = "non-stop" if segment_count == 1 else "with stops"
    else:
        stops = "non-stop" if "numberOfBookableSeats" in flight else "with stops"

    summary = f"Flight from {origin} to {destination}"
    if price:
        summary += f" for {price}"
    if duration:
        summary += f", duration {duration}"
    summary += f" ({stops})"
    return summary


def summarize_activity(activity: Dict[str, Any]) -> str:
    name = activity.get("name") or activity.get("title") or "Activity"
    city = (activity.get("geoCode") or {}).get("cityName") or ""
    price = _price_text(activity.get("price"), "amount")
    category = activity.get("category") or ""

    summary = f"{name}"
    if city:
        summary += f" in {city}"
    if category:
        summary += f" ({category})"
    if price:
        summary += f", priced at {price}"
    return summary


def price_band(price: float) -> str:
    if price < 300:
        return "budget"
    if price < 800:
        return "midrange"
    return "premium"


def build_summary_and_tags(item: Dict[str, Any], result_type: str) -> Tuple[str, List[str]]:
    """Type-specific summary text plus comma-joinable tags"""
    tags: List[str] = []

    if result_type == ResultType.HOTEL.value:
        summary = summarize_hotel(item)
        tags.append("hotel")
        rating = _to_float(item.get("rating") or (item.get("hotel") or {}).get("rating"))
        if rating is not None:
            tags.append(f"rating-{math.floor(rating)}")

    elif result_type == ResultType.FLIGHT.value:
        summary = summarize_flight(item)
        tags.append("flight")
        price = item.get("price")
        amount = _to_float(price.get("total") or price.get("grandTotal")) if isinstance(price, dict) else _to_float(price)
        if amount is not None:
            tags.append(price_band(amount))

    elif result_type == ResultType.ACTIVITY.value:
        summary = summarize_activity(item)
        tags.append("activity")
        if item.get("category"):
            tags.append(str(item["category"]).lower())

    else:
        summary = json.dumps(item, default=str)[:500]
        tags.append(result_type)

    return summary, tags


class ResultIngestor:
    """
    Usage:
        ingestor = ResultIngestor(embedder, vector_index, kv_store)
        await ingestor.ingest(flight_offer, ResultType.FLIGHT, "Paris")
    """

    def __init__(self, embedder, vector_index, kv_store, provider: Optional[str] = None):
        self.embedder = embedder
        self.vector_index = vector_index
        self.kv_store = kv_store
        self.provider = provider or settings.TRAVEL_API_PROVIDER
        self.min_summary_length = settings.MIN_SUMMARY_LENGTH

    def marker_key(self, result_type: str, external_id: str) -> str:
        return f"{self.provider}:{result_type}:{external_id}"

    def vector_id(self, result_type: str, external_id: str) -> str:
        return f"{self.provider}-{result_type}-{external_id}"

    async def ingest(self, item: Any, result_type: Union[ResultType, str], city: Optional[str] = None) -> bool:
        """
        Ingest one result item. Never raises.

        Returns:
            True if a new record was written
        """
        result_type = result_type.value if isinstance(result_type, ResultType) else str(result_type)

        try:
            external_id = resolve_external_id(item)
            if not external_id:
                logger.warning("Cannot ingest result without ID")
                return False

            marker = self.marker_key(result_type, external_id)
            if await self.kv_store.get(marker) is not None:
                logger.debug(f"Skipping duplicate: {marker}")
                return False

            summary, tags = build_summary_and_tags(item, result_type)
            if not summary or len(summary) < self.min_summary_length:
                logger.warning(f"Summary too short, skipping ingestion of {marker}")
                return False

            embedding = await self.embedder.embed(summary)

            metadata = {
                "externalId": external_id,
                "city": city or "unknown",
                "type": result_type,
                "tags": ",".join(tags),
                "createdAt": now_ms(),
                "source": "external-api",
                "text": summary
            }
            await self.vector_index.upsert(self.vector_id(result_type, external_id), embedding, metadata)

            await self.kv_store.put(marker, {
                "ingestedAt": now_ms(),
                "type": result_type,
                "city": city
            })

            logger.info(f"Ingested {result_type} {external_id} into vector index")
            return True

        except Exception as e:
            logger.error(f"Error ingesting {result_type} result: {e}")
            return False
