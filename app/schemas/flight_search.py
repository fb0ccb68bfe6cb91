"""
Keyhost Flights - Flight Search Schemas
Request and response bodies of the flight search API
"""

from typing import Any, Dict, List, Optional

from pydantic import Field

from app.models.flight import Offer, SearchIntent
from app.schemas.base import BaseSchema
from app.services.offer_aggregator import ProviderOutcome
from app.services.offer_projector import FilterOptions, FilterState


# === Request Schemas ===

class FlightSearchRequest(BaseSchema):
    """
    Raw search form input.

    Form fields (`from`, `to`, `depart`, `return`, `class`, ...) are passed
    through untouched to the intent builder; only `channel` is read here.
    """
    channel: Optional[str] = Field(None, max_length=128)

    class Config:
        extra = "allow"
        json_schema_extra = {
            "example": {
                "trip_type": "oneWay",
                "from": "Dhaka (DAC)",
                "to": "Cox's Bazar (CXB)",
                "depart": "2026-02-15",
                "adults": 1,
                "children": 0,
                "kids": 0,
                "infants": 0,
                "class": "economy",
            }
        }

    def search_input(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class SearchResultsRequest(FilterState):
    """Filters plus paging for a results page"""
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)

    def filters(self) -> FilterState:
        return FilterState(**self.model_dump(exclude={"limit", "offset"}))


# === Response Schemas ===

class SearchStartedResponse(BaseSchema):
    success: bool = True
    session_token: str
    channel: str
    intent: SearchIntent
    providers: List[str]


class SearchStatusResponse(BaseSchema):
    success: bool = True
    session_token: str
    version: int
    is_complete: bool
    responded_count: int
    provider_count: int
    summary: str
    offer_count: int
    providers: Dict[str, ProviderOutcome]
    filter_options: FilterOptions


class SearchResultsResponse(BaseSchema):
    success: bool = True
    session_token: str
    version: int
    is_complete: bool
    total: int
    offers: List[Offer]


class OfferDetailResponse(BaseSchema):
    success: bool = True
    session_token: str
    offer: Offer


class ProvidersResponse(BaseSchema):
    success: bool = True
    providers: List[str]
    hub_configured: bool
    hub_base_url: Optional[str] = None
