"""
Keyhost Flights - Search Session Initiator
Opens a search session on the hub for a validated SearchIntent
"""

from typing import Any, Dict, Optional

from loguru import logger

from app.core.config import settings
from app.core.constants import CabinClass, TRIP_TYPE_HUB_NAMES, TripType
from app.core.exceptions import ProviderError, SessionCreationError
from app.models.flight import SearchIntent, SearchSession
from integrations.flight_hub import FlightHubClient, flight_hub


TOKEN_KEYS = ("folder", "session_id", "sessionId")


def build_session_query(intent: SearchIntent, fare_type: Optional[str] = None) -> Dict[str, Any]:
    """Flatten an intent into the hub's session query"""
    passengers = intent.passengers
    query: Dict[str, Any] = {
        "trip_type": TRIP_TYPE_HUB_NAMES[intent.trip_type],
        "from": intent.origin,
        "to": intent.destination,
        "depart": intent.departure_date.isoformat(),
        "return": intent.return_date.isoformat() if intent.return_date else None,
        "adults": passengers.adults,
        "children": passengers.children,
        "kids": passengers.juniors,
        "infants": passengers.infants,
        "class": "" if intent.cabin_class == CabinClass.ANY else intent.cabin_class.value,
        "fare_type": fare_type or settings.DEFAULT_FARE_TYPE,
    }
    if intent.trip_type == TripType.MULTI_CITY:
        query["segments"] = [
            {
                "from": leg.origin,
                "to": leg.destination,
                "depart": leg.departure_date.isoformat(),
            }
            for leg in intent.legs
        ]
    return query


def extract_session_token(body: Any) -> Optional[str]:
    """Find the session token in the hub's response"""
    if not isinstance(body, dict):
        return None
    for container in (body, body.get("data")):
        if not isinstance(container, dict):
            continue
        for key in TOKEN_KEYS:
            value = container.get(key)
            if value not in (None, ""):
                return str(value)
    return None


class SearchSessionInitiator:
    """
    Single call to the hub's session endpoint.

    No retries here; a failure is fatal for the whole search because no
    provider can be queried without a session token.
    """

    def __init__(self, hub: Optional[FlightHubClient] = None):
        self.hub = hub or flight_hub

    async def initiate(self, intent: SearchIntent) -> SearchSession:
        query = build_session_query(intent)

        try:
            body = await self.hub.create_session(query)
        except ProviderError as e:
            logger.error(f"Search session could not be created: {e.message}")
            raise SessionCreationError(details={"cause": e.error_code, **e.details})

        token = extract_session_token(body)
        if not token:
            logger.error("Search hub response carried no session token")
            raise SessionCreationError(
                message="search could not start (no session token)",
                details={"cause": "MISSING_TOKEN"},
            )

        logger.info(
            f"Search session {token} opened: {intent.trip_type.value} "
            f"{intent.origin}->{intent.destination} {intent.departure_date}"
        )
        return SearchSession(token=token, intent=intent)


# Singleton instance
session_initiator = SearchSessionInitiator()
