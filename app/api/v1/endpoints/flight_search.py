"""
Keyhost Flights - Flight Search Endpoints
Start searches, read live results, filter and sort them
"""

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.deps import get_client_ip, get_flight_search_service
from app.core.config import settings
from app.schemas.base import ErrorResponse, SuccessResponse
from app.schemas.flight_search import (
    FlightSearchRequest,
    OfferDetailResponse,
    ProvidersResponse,
    SearchResultsRequest,
    SearchResultsResponse,
    SearchStartedResponse,
    SearchStatusResponse,
)
from app.services.flight_search_service import FlightSearchService
from app.services.offer_projector import derive_filter_options, project
from integrations.flight_hub import flight_hub

router = APIRouter()


# ================================================================
# SEARCH
# ================================================================

@router.post(
    "/search",
    response_model=SearchStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a flight search",
    description="Validates the search, opens a hub session and queries every enabled provider",
    responses={
        409: {"model": ErrorResponse, "description": "Superseded by a newer search on the channel"},
        422: {"model": ErrorResponse, "description": "Invalid search"},
        502: {"model": ErrorResponse, "description": "Search session could not be opened"},
    },
)
async def start_search(
    data: FlightSearchRequest,
    request: Request,
    service: FlightSearchService = Depends(get_flight_search_service),
):
    """
    Start a search on the caller's channel.

    A previous search on the same channel is abandoned. Results are read
    with `GET /search/{token}` and `POST /search/{token}/results`.
    """
    channel = data.channel or get_client_ip(request)
    session = await service.start_search(data.search_input(), channel)

    return SearchStartedResponse(
        session_token=session.token,
        channel=channel,
        intent=session.intent,
        providers=service.provider_names,
    )


@router.get(
    "/search/{token}",
    response_model=SearchStatusResponse,
    summary="Search progress",
)
async def get_search(
    token: str,
    wait: float = Query(0, ge=0, le=60, description="Seconds to wait for all providers"),
    service: FlightSearchService = Depends(get_flight_search_service),
):
    """Provider statuses, offer count and filter options of a search"""
    if wait:
        snapshot = await service.wait_for_completion(token, timeout=wait)
    else:
        snapshot = service.get_snapshot(token)

    return SearchStatusResponse(
        session_token=snapshot.session_token,
        version=snapshot.version,
        is_complete=snapshot.is_complete,
        responded_count=snapshot.responded_count,
        provider_count=snapshot.provider_count,
        summary=snapshot.summary,
        offer_count=len(snapshot.offers),
        providers=snapshot.providers,
        filter_options=derive_filter_options(snapshot),
    )


@router.post(
    "/search/{token}/results",
    response_model=SearchResultsResponse,
    response_model_exclude={"offers": {"__all__": {"raw"}}},
    summary="Filtered, sorted results",
)
async def get_results(
    token: str,
    data: SearchResultsRequest,
    service: FlightSearchService = Depends(get_flight_search_service),
):
    snapshot = service.get_snapshot(token)
    offers = project(snapshot, data.filters())

    return SearchResultsResponse(
        session_token=snapshot.session_token,
        version=snapshot.version,
        is_complete=snapshot.is_complete,
        total=len(offers),
        offers=offers[data.offset:data.offset + data.limit],
    )


@router.get(
    "/search/{token}/offers/{offer_id}",
    response_model=OfferDetailResponse,
    summary="Offer details",
    description="Full offer including the provider record, for detail views and booking handoff",
)
async def get_offer(
    token: str,
    offer_id: str,
    service: FlightSearchService = Depends(get_flight_search_service),
):
    offer = service.get_offer(token, offer_id)
    return OfferDetailResponse(session_token=token, offer=offer)


@router.delete(
    "/search/channels/{channel}",
    response_model=SuccessResponse,
    summary="Abandon a channel's search",
)
async def cancel_search(
    channel: str,
    service: FlightSearchService = Depends(get_flight_search_service),
):
    cancelled = service.cancel(channel)
    return SuccessResponse(
        message="Search cancelled" if cancelled else "No active search on channel",
    )


# ================================================================
# PROVIDERS
# ================================================================

@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="Enabled flight providers",
)
async def get_providers(
    service: FlightSearchService = Depends(get_flight_search_service),
):
    return ProvidersResponse(
        providers=service.provider_names,
        hub_configured=flight_hub.is_configured(),
        hub_base_url=flight_hub.base_url if settings.is_development else None,
    )
