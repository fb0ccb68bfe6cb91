"""
Tests for opening hub search sessions.
"""
from datetime import date

import httpx
import pytest

from app.core.constants import CabinClass, TripType
from app.core.exceptions import SessionCreationError
from app.models.flight import LegQuery, SearchIntent
from app.services.session_initiator import (
    SearchSessionInitiator,
    build_session_query,
    extract_session_token,
)


class TestBuildSessionQuery:

    def test_round_trip_query(self, round_trip_intent):
        query = build_session_query(round_trip_intent, fare_type="regular")

        assert query == {
            "trip_type": "roundTrip",
            "from": "DAC",
            "to": "DXB",
            "depart": "2026-03-01",
            "return": "2026-03-10",
            "adults": 2,
            "children": 1,
            "kids": 0,
            "infants": 0,
            "class": "",
            "fare_type": "regular",
        }

    def test_multi_city_query_lists_segments(self):
        legs = (
            LegQuery(origin="DAC", destination="CGP", departure_date=date(2026, 4, 1)),
            LegQuery(origin="CGP", destination="CXB", departure_date=date(2026, 4, 3)),
        )
        intent = SearchIntent(
            trip_type=TripType.MULTI_CITY,
            origin="DAC",
            destination="CGP",
            departure_date=date(2026, 4, 1),
            legs=legs,
            cabin_class=CabinClass.BUSINESS,
        )

        query = build_session_query(intent)

        assert query["trip_type"] == "multiCity"
        assert query["class"] == "business"
        assert query["segments"] == [
            {"from": "DAC", "to": "CGP", "depart": "2026-04-01"},
            {"from": "CGP", "to": "CXB", "depart": "2026-04-03"},
        ]


class TestExtractSessionToken:

    def test_folder_at_top_level(self):
        assert extract_session_token({"folder": "abc123"}) == "abc123"

    def test_nested_under_data(self):
        assert extract_session_token({"success": True, "data": {"session_id": 42}}) == "42"

    def test_missing(self):
        assert extract_session_token({"success": True}) is None
        assert extract_session_token(["folder"]) is None


class TestSearchSessionInitiator:

    @pytest.mark.asyncio
    async def test_initiate_returns_session(self, hub, hub_stub, one_way_intent):
        hub_stub.respond("/search", {"success": True, "folder": "f-100"})

        session = await SearchSessionInitiator(hub=hub).initiate(one_way_intent)

        assert session.token == "f-100"
        assert session.intent is one_way_intent
        path, payload = hub_stub.calls[0]
        assert path == "/search"
        assert payload["trip_type"] == "oneWay"
        assert payload["from"] == "DAC"
        await hub.close()

    @pytest.mark.asyncio
    async def test_http_error_is_fatal(self, hub, hub_stub, one_way_intent):
        hub_stub.respond("/search", {"message": "down"}, status_code=503)

        with pytest.raises(SessionCreationError) as exc_info:
            await SearchSessionInitiator(hub=hub).initiate(one_way_intent)

        assert exc_info.value.error_code == "SESSION_CREATION_FAILED"
        assert exc_info.value.details["cause"] == "PROVIDER_REJECTED"
        assert exc_info.value.details["upstream_status"] == 503
        assert len(hub_stub.calls) == 1
        await hub.close()

    @pytest.mark.asyncio
    async def test_timeout_is_fatal(self, hub, hub_stub, one_way_intent):
        def slow(payload):
            raise httpx.ReadTimeout("timed out")

        hub_stub.on("/search", slow)

        with pytest.raises(SessionCreationError) as exc_info:
            await SearchSessionInitiator(hub=hub).initiate(one_way_intent)

        assert exc_info.value.details["cause"] == "PROVIDER_TIMEOUT"
        await hub.close()

    @pytest.mark.asyncio
    async def test_response_without_token(self, hub, hub_stub, one_way_intent):
        hub_stub.respond("/search", {"success": True, "data": {}})

        with pytest.raises(SessionCreationError) as exc_info:
            await SearchSessionInitiator(hub=hub).initiate(one_way_intent)

        assert exc_info.value.details["cause"] == "MISSING_TOKEN"
        await hub.close()

    @pytest.mark.asyncio
    async def test_non_json_body(self, hub, hub_stub, one_way_intent):
        hub_stub.on("/search", lambda payload: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(SessionCreationError) as exc_info:
            await SearchSessionInitiator(hub=hub).initiate(one_way_intent)

        assert exc_info.value.details["cause"] == "PROVIDER_MALFORMED_RESPONSE"
        await hub.close()
