"""
Providers Package
External travel data APIs
"""

from .amadeus_client import ENDPOINTS, Endpoint, TravelAPIClient, TravelAPIError, build_query

__all__ = [
    "ENDPOINTS",
    "Endpoint",
    "TravelAPIClient",
    "TravelAPIError",
    "build_query",
]
