"""
Amadeus Self-Service API Client
Async httpx client for the flight, hotel, destination experience,
transfer and recommendation APIs.

Every endpoint is described once in ENDPOINTS; ``call(name, params)``
is the single dispatch point and always returns an ApiCallResult.
Always targets the sandbox host unless TRAVEL_API_BASE_URL says otherwise.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from loguru import logger

from ..config import settings
from ..schemas import ApiCallResult


# Refresh the OAuth token this many seconds before it expires
TOKEN_REFRESH_BUFFER = 300


class TravelAPIError(RuntimeError):
    """Raised for auth failures, bad parameters and non-2xx responses"""


def _offer_from(params: Dict[str, Any]) -> Dict[str, Any]:
    return params.get("flightOffer") or params


@dataclass
class Endpoint:
    """Declarative description of one API operation"""
    label: str
    path: str
    method: str = "GET"
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()
    defaults: Dict[str, Any] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    body: Optional[Callable[[Dict[str, Any]], Any]] = None


# ============================================
# Endpoint catalogue
# ============================================

ENDPOINTS: Dict[str, Endpoint] = {
    # Flights
    "searchFlightOffers": Endpoint(
        label="Flight Offers Search",
        path="/v2/shopping/flight-offers",
        required=("originLocationCode", "destinationLocationCode", "departureDate"),
        optional=("returnDate", "adults", "children", "infants", "travelClass", "nonStop", "max"),
        defaults={"adults": 1, "max": 5},
        aliases={"origin": "originLocationCode", "destination": "destinationLocationCode"},
    ),
    "getFlightOfferPrice": Endpoint(
        label="Flight Offer Price",
        path="/v1/shopping/flight-offers/pricing",
        method="POST",
        body=lambda p: {"data": {"type": "flight-offers-pricing", "flightOffers": [_offer_from(p)]}},
    ),
    "searchFlightDestinations": Endpoint(
        label="Flight Inspiration Search",
        path="/v1/shopping/flight-destinations",
        required=("origin",),
        optional=("departureDate", "oneWay", "duration", "nonStop", "maxPrice", "viewBy"),
    ),
    "searchCheapestFlightDates": Endpoint(
        label="Cheapest Flight Dates",
        path="/v1/shopping/flight-dates",
        required=("origin", "destination"),
        optional=("departureDate", "duration", "oneWay", "nonStop", "viewBy"),
    ),
    "getMostTraveledDestinations": Endpoint(
        label="Most Traveled Destinations",
        path="/v1/travel/analytics/air-traffic/traveled",
        required=("originCityCode",),
        optional=("period",),
    ),
    "getMostBookedDestinations": Endpoint(
        label="Most Booked Destinations",
        path="/v1/travel/analytics/air-traffic/booked",
        required=("originCityCode",),
        optional=("period",),
    ),
    "getBusiestPeriod": Endpoint(
        label="Busiest Period",
        path="/v1/travel/analytics/air-traffic/busiest-period",
        required=("cityCode",),
        optional=("period", "direction"),
    ),
    "getFlightAvailabilities": Endpoint(
        label="Flight Availabilities",
        path="/v1/shopping/availability/flight-availabilities",
        method="POST",
        body=lambda p: p,
    ),
    "getSeatmap": Endpoint(
        label="Seatmap Display",
        path="/v1/shopping/seatmaps",
        method="POST",
        body=lambda p: {"data": {"type": "seatmap", "flightOfferId": _offer_from(p).get("id")}},
    ),
    "getFlightStatus": Endpoint(
        label="Flight Status",
        path="/v2/schedule/flights",
        required=("carrierCode", "flightNumber", "scheduledDepartureDate"),
    ),
    "searchAirlines": Endpoint(
        label="Airline Code Lookup",
        path="/v1/reference-data/airlines",
        optional=("airlineCodes",),
    ),
    "getAirlineRoutes": Endpoint(
        label="Airline Routes",
        path="/v1/airport/direct-destinations",
        required=("departureAirportCode",),
        optional=("max",),
    ),
    "searchLocations": Endpoint(
        label="Airport & City Search",
        path="/v1/reference-data/locations",
        required=("subType",),
        optional=("keyword", "countryCode", "page", "pageLimit"),
    ),
    "getAirportNearestRelevant": Endpoint(
        label="Airport Nearest Relevant",
        path="/v1/reference-data/locations/airports",
        required=("latitude", "longitude"),
        optional=("radius", "pageLimit"),
    ),
    "getAirportRoutes": Endpoint(
        label="Airport Routes",
        path="/v1/airport/direct-destinations",
        required=("departureAirportCode",),
        optional=("max",),
    ),
    "getBrandedFaresUpsell": Endpoint(
        label="Branded Fares Upsell",
        path="/v1/shopping/flight-offers/upselling",
        method="POST",
        body=lambda p: {"data": {"type": "flight-offers-upselling", "flightOffers": [_offer_from(p)]}},
    ),
    "getFlightCheckinLinks": Endpoint(
        label="Flight Check-in Links",
        path="/v1/reference-data/urls/checkin-links",
        required=("airlineCode",),
    ),
    "getAirportOnTimePerformance": Endpoint(
        label="Airport On-Time Performance",
        path="/v1/airport/predictions/on-time",
        required=("airportCode", "date"),
    ),
    "searchCities": Endpoint(
        label="City Search",
        path="/v1/reference-data/locations/cities",
        optional=("keyword", "countryCode", "max"),
    ),

    # Hotels
    "searchHotelsByGeocode": Endpoint(
        label="Hotel List",
        path="/v3/reference-data/locations/hotels/by-geocode",
        required=("latitude", "longitude"),
        optional=("radius", "radiusUnit", "hotelSource"),
    ),
    "searchHotelsByCity": Endpoint(
        label="Hotel List by City",
        path="/v3/reference-data/locations/hotels/by-city",
        required=("cityCode",),
        optional=("hotelSource",),
    ),
    "searchHotelOffers": Endpoint(
        label="Hotel Search",
        path="/v3/shopping/hotel-offers",
        optional=(
            "hotelIds", "cityCode", "latitude", "longitude", "radius", "radiusUnit",
            "checkInDate", "checkOutDate", "adults", "roomQuantity", "priceRange",
            "currency", "paymentPolicy", "boardType", "view",
        ),
    ),
    "searchHotelNameAutocomplete": Endpoint(
        label="Hotel Name Autocomplete",
        path="/v1/reference-data/locations/hotels/by-keyword",
        required=("keyword",),
        optional=("hotelSource", "max"),
    ),
    "getHotelRatings": Endpoint(
        label="Hotel Ratings",
        path="/v2/e-reputation/hotel-sentiments",
        required=("hotelIds",),
    ),

    # Destination experience
    "searchActivities": Endpoint(
        label="Tours and Activities",
        path="/v1/shopping/activities",
        optional=("latitude", "longitude", "radius", "category", "subcategory", "currency", "lang"),
    ),
    "getActivity": Endpoint(
        label="Get Activity",
        path="/v1/shopping/activities/{activityId}",
        required=("activityId",),
        optional=("lang",),
        aliases={"id": "activityId"},
    ),

    # Transfers
    "searchTransfers": Endpoint(
        label="Transfer Search",
        path="/v1/shopping/transfer-offers",
        required=("originLocationCode", "destinationLocationCode", "departureDateTime"),
        optional=("adults", "children", "vehicleType"),
        aliases={"origin": "originLocationCode", "destination": "destinationLocationCode"},
    ),

    # Other
    "getRecommendedLocations": Endpoint(
        label="Travel Recommendations",
        path="/v1/reference-data/recommended-locations",
        optional=("cityCodes", "travelerCountryCode"),
    ),
}


def _render(value: Any) -> Optional[str]:
    """Query-string rendering; None/empty/False mean 'not set'"""
    if value is None or value == "" or value is False:
        return None
    if value is True:
        return "true"
    return str(value)


def build_query(endpoint: Endpoint, params: Dict[str, Any]) -> Dict[str, str]:
    """
    Resolve aliases and defaults, check required parameters and render
    the query string values.

    Raises:
        TravelAPIError: a required parameter is missing
    """
    resolved = dict(endpoint.defaults)
    for key, value in params.items():
        name = endpoint.aliases.get(key, key)
        if value is not None and value != "":
            resolved[name] = value

    missing = [name for name in endpoint.required if _render(resolved.get(name)) is None]
    if missing:
        raise TravelAPIError(f"{endpoint.label} failed: missing required parameter(s): {', '.join(missing)}")

    query = {}
    for name in endpoint.required + endpoint.optional:
        rendered = _render(resolved.get(name))
        if rendered is not None:
            query[name] = rendered
    return query


class TravelAPIClient:
    """
    Usage:
        client = TravelAPIClient()
        result = await client.call("searchHotelOffers", {"cityCode": "PAR"})
        if result.success: ...
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key if api_key is not None else settings.TRAVEL_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.TRAVEL_API_SECRET
        self.base_url = (base_url or settings.TRAVEL_API_BASE_URL).rstrip("/")
        self.provider = settings.TRAVEL_API_PROVIDER
        self._http = http_client or httpx.AsyncClient(timeout=settings.TRAVEL_API_TIMEOUT)

        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    @property
    def available_apis(self):
        return list(ENDPOINTS.keys())

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    async def get_access_token(self) -> str:
        """Get or refresh the OAuth2 client-credentials token"""
        if self._access_token and time.time() < self._token_expiry - TOKEN_REFRESH_BUFFER:
            return self._access_token

        if not self.is_configured:
            raise TravelAPIError("Travel API credentials are not configured")

        response = await self._http.post(
            f"{self.base_url}/v1/security/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.api_secret
            }
        )
        if response.status_code != 200:
            raise TravelAPIError(f"Failed to get access token: {response.text}")

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expiry = time.time() + int(data.get("expires_in", 0))
        logger.info(f"Travel API token refreshed (expires in {data.get('expires_in')}s)")
        return self._access_token

    async def request(self, endpoint: Endpoint, params: Dict[str, Any]) -> Any:
        """Perform one authenticated call and return the decoded JSON body"""
        path = endpoint.path
        query: Dict[str, str] = {}
        json_body = None

        if endpoint.body is not None:
            json_body = endpoint.body(params)
        else:
            query = build_query(endpoint, params)
            if "{" in path:
                path_values = {k: query.pop(k) for k in list(query) if "{" + k + "}" in path}
                path = path.format(**path_values)

        token = await self.get_access_token()
        response = await self._http.request(
            endpoint.method,
            f"{self.base_url}{path}",
            params=query or None,
            json=json_body,
            headers={"Authorization": f"Bearer {token}"}
        )

        if response.status_code == 401:
            # Token revoked early; next call fetches a new one
            self._access_token = None

        if not response.is_success:
            raise TravelAPIError(f"{endpoint.label} failed: {response.text}")

        return response.json()

    async def call(self, name: str, params: Optional[Dict[str, Any]] = None) -> ApiCallResult:
        """
        Call an API by name.

        Returns:
            ApiCallResult(success=True, data=...) or
            ApiCallResult(success=False, error=...); never raises
        """
        endpoint = ENDPOINTS.get(name)
        if endpoint is None:
            return ApiCallResult(
                success=False,
                error=f"Unknown API: {name}. Available APIs: {', '.join(self.available_apis)}"
            )

        params = params if isinstance(params, dict) else {}
        try:
            data = await self.request(endpoint, params)
            logger.info(f"Travel API {name} succeeded")
            return ApiCallResult(success=True, data=data)
        except TravelAPIError as e:
            logger.warning(f"Travel API {name} failed: {e}")
            return ApiCallResult(success=False, error=str(e))
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Travel API {name} error: {e}")
            return ApiCallResult(success=False, error=str(e) or f"Failed to call {name}")

    async def close(self):
        await self._http.aclose()
