"""
Prompt Templates
Defines prompts for tool routing and response generation
"""

from langchain_core.prompts import PromptTemplate

# ============================================
# Tool Router Prompt
# ============================================

ROUTER_SYSTEM_PROMPT = "You are a travel API routing assistant. Respond with only valid JSON."

ROUTER_PROMPT = PromptTemplate(
    input_variables=["user_query", "destination", "start_date", "end_date", "budget"],
    template="""Analyze this travel query and determine which travel API to call. Available APIs:
- Flight APIs: searchFlightOffers, searchFlightDestinations, searchCheapestFlightDates, getMostTraveledDestinations, getMostBookedDestinations, getFlightStatus, getFlightAvailabilities, getSeatmap, getAirlineRoutes, getAirportRoutes, getAirportNearestRelevant, getFlightCheckinLinks, getAirportOnTimePerformance
- Hotel APIs: searchHotelOffers, searchHotelsByGeocode, searchHotelsByCity, searchHotelNameAutocomplete, getHotelRatings
- Activity APIs: searchActivities, getActivity
- Transfer APIs: searchTransfers
- Location APIs: searchLocations, searchCities, getRecommendedLocations
- Other: getBusiestPeriod, getBrandedFaresUpsell

User query: "{user_query}"

Current trip state:
- Destination: {destination}
- Dates: {start_date} to {end_date}
- Budget: {budget}

Respond with ONLY a JSON object: {{ "apiName": "api_name", "params": {{ ... }} }} or {{ "apiName": null }} if no API call is needed.
Extract relevant parameters from the query and trip state."""
)

# ============================================
# Generation Prompt
# ============================================

GENERATION_SYSTEM_PROMPT = PromptTemplate(
    input_variables=["destination", "start_date", "end_date", "budget", "preferences", "extra_blocks"],
    template="""You are a helpful travel assistant. You help users plan trips, find flights, and discover destinations.

Current trip information:
- Destination: {destination}
- Dates: {start_date} to {end_date}
- Budget: {budget}
- Preferences: {preferences}
{extra_blocks}
Provide helpful, personalized travel advice based on the user's query and the information available."""
)

CONTEXT_BLOCK = "\nRelevant context: {context}\n"
TOOL_RESULTS_BLOCK = "\nTool results: {tool_results}\n"


def _format_budget(budget) -> str:
    if budget is None:
        return "Not specified"
    if float(budget).is_integer():
        return f"${int(budget)}"
    return f"${budget}"


def build_router_prompt(user_query: str, basics) -> str:
    """Fill the router prompt from the current TripBasics"""
    return ROUTER_PROMPT.format(
        user_query=user_query,
        destination=basics.destination or "not specified",
        start_date=basics.startDate or "not specified",
        end_date=basics.endDate or "not specified",
        budget=basics.budget if basics.budget is not None else "not specified",
    )


def build_generation_system_prompt(state, context: str = "", tool_results: str = "") -> str:
    """
    System prompt for the generation stage.
    The context and tool blocks appear only when non-empty.
    """
    basics = state.basics
    extra_blocks = ""
    if context:
        extra_blocks += CONTEXT_BLOCK.format(context=context)
    if tool_results:
        extra_blocks += TOOL_RESULTS_BLOCK.format(tool_results=tool_results)

    return GENERATION_SYSTEM_PROMPT.format(
        destination=basics.destination or "Not specified",
        start_date=basics.startDate or "Not specified",
        end_date=basics.endDate or "Not specified",
        budget=_format_budget(basics.budget),
        preferences=", ".join(state.preferences) or "None specified",
        extra_blocks=extra_blocks,
    )
