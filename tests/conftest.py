"""
Shared fixtures: offer factories, provider sample records and a fake hub.
"""
import json
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from app.core.constants import TripType
from app.models.flight import (
    Fare,
    Leg,
    Offer,
    PassengerCounts,
    SearchIntent,
    SearchSession,
    Segment,
    Stopover,
)
from integrations.flight_hub import FlightHubClient


HUB_URL = "http://hub.test/api"


def make_offer(
    provider: str = "amadeus",
    carrier: str = "BG",
    price: float = 100.0,
    origin: str = "DAC",
    destination: str = "CXB",
    departure: str = "2026-02-15T08:00:00",
    arrival: str = "2026-02-15T09:05:00",
    stops: int = 0,
    layover_minutes: int = 60,
    offer_id: Optional[str] = None,
    carrier_name: Optional[str] = None,
) -> Offer:
    """One-leg offer; `stops` adds connection airports with the given layover"""
    dep = datetime.fromisoformat(departure)
    arr = datetime.fromisoformat(arrival)
    points = [origin] + [f"X{i}{carrier[:1]}" for i in range(stops)] + [destination]

    span = (arr - dep) / (len(points) - 1)
    segments = []
    for index in range(len(points) - 1):
        seg_dep = dep + span * index
        seg_arr = dep + span * (index + 1)
        segments.append(Segment(
            departure_airport=points[index],
            arrival_airport=points[index + 1],
            departure_time=seg_dep,
            arrival_time=seg_arr,
            carrier_code=carrier,
            flight_number=str(100 + index),
        ))
    stopovers = tuple(Stopover(airport=p, layover_minutes=layover_minutes) for p in points[1:-1])

    return Offer(
        id=offer_id or f"{provider}-{carrier}-{price:g}-{departure}",
        provider=provider,
        carrier_code=carrier,
        carrier_name=carrier_name,
        legs=(Leg(segments=tuple(segments), stopovers=stopovers),),
        fare=Fare(total_price=price, currency="BDT"),
    )


@pytest.fixture
def offer_factory() -> Callable[..., Offer]:
    return make_offer


@pytest.fixture
def one_way_intent() -> SearchIntent:
    return SearchIntent(
        trip_type=TripType.ONE_WAY,
        origin="DAC",
        destination="CXB",
        departure_date=date(2026, 2, 15),
        passengers=PassengerCounts(adults=1),
    )


@pytest.fixture
def round_trip_intent() -> SearchIntent:
    return SearchIntent(
        trip_type=TripType.ROUND_TRIP,
        origin="DAC",
        destination="DXB",
        departure_date=date(2026, 3, 1),
        return_date=date(2026, 3, 10),
        passengers=PassengerCounts(adults=2, children=1),
    )


@pytest.fixture
def session(one_way_intent) -> SearchSession:
    return SearchSession(token="folder-1", intent=one_way_intent)


# === Provider sample records ===

def amadeus_record(
    carrier: str = "EK",
    price: str = "452.30",
    departure: str = "2026-03-01T10:15:00",
    connection: bool = True,
) -> Dict[str, Any]:
    first_arrival = "2026-03-01T14:40:00" if connection else "2026-03-01T16:30:00"
    segments = [
        {
            "id": "1",
            "departure": {"iataCode": "DAC", "terminal": "1", "at": departure},
            "arrival": {"iataCode": "CCU" if connection else "DXB", "at": first_arrival},
            "carrierCode": carrier,
            "number": "583",
            "aircraft": {"code": "77W"},
            "operating": {"carrierCode": carrier},
            "duration": "PT4H25M",
            "numberOfStops": 0,
        }
    ]
    if connection:
        segments.append({
            "id": "2",
            "departure": {"iataCode": "CCU", "at": "2026-03-01T17:10:00"},
            "arrival": {"iataCode": "DXB", "terminal": "3", "at": "2026-03-01T20:45:00"},
            "carrierCode": carrier,
            "number": "571",
            "aircraft": {"code": "388"},
            "duration": "PT3H35M",
            "numberOfStops": 0,
        })
    return {
        "type": "flight-offer",
        "id": "1",
        "source": "GDS",
        "itineraries": [{"duration": "PT10H30M", "segments": segments}],
        "price": {"currency": "USD", "total": price, "base": "400.00", "grandTotal": price},
        "pricingOptions": {"fareType": ["PUBLISHED"], "refundableFare": False},
        "validatingAirlineCodes": [carrier],
        "travelerPricings": [
            {
                "travelerId": "1",
                "travelerType": "ADULT",
                "price": {"currency": "USD", "total": "301.00", "base": "270.00"},
                "fareDetailsBySegment": [
                    {"segmentId": "1", "cabin": "ECONOMY", "class": "Y"},
                    {"segmentId": "2", "cabin": "ECONOMY", "class": "Y"},
                ],
            },
            {
                "travelerId": "2",
                "travelerType": "HELD_INFANT",
                "price": {"currency": "USD", "total": "151.30", "base": "130.00"},
            },
        ],
        "fareRules": {
            "rules": [
                {"category": "EXCHANGE", "maxPenaltyAmount": "50.00"},
                {"category": "REFUND", "notApplicable": True},
            ]
        },
        "dictionaries": {"carriers": {carrier: "EMIRATES"}},
    }


def sabre_record(
    carrier: str = "BS",
    price: int = 5200,
    dep_time: str = "08:00:00+06:00",
    arr_time: str = "09:05:00+06:00",
) -> Dict[str, Any]:
    return {
        "carrierCode": carrier,
        "airlineName": "US-Bangla Airlines",
        "gds": "sabre",
        "refundStatus": "Partially-Refundable",
        "brandedFare": {"name": "Economy Saver", "cabin": "Economy"},
        "fare": {"totalPrice": price, "basePrice": 4500, "tax": 700, "currency": "BDT"},
        "passengerFareSummary": {
            "ADT": {
                "passengerType": "ADT",
                "passengerNumberByType": 1,
                "passengerBaseFare": 4500,
                "passengerTax": 700,
                "passengerTotalFare": 5200,
            },
            "totalPassenger": 1,
        },
        "legs": {
            "leg1": {
                "departure": {"airport": "DAC", "date": "2026-02-15", "time": dep_time},
                "arrival": {"airport": "CXB", "date": "2026-02-15", "time": arr_time},
                "elapsedTime": 65,
                "stopovers": [],
                "transits": [],
                "schedules": [
                    {
                        "departure": {"airport": "DAC", "time": dep_time, "terminal": "D"},
                        "arrival": {"airport": "CXB", "time": arr_time},
                        "carrier": {
                            "marketing": carrier,
                            "marketingFlightNumber": 141,
                            "operating": carrier,
                            "operatingName": "US-Bangla Airlines",
                            "equipment": "DH8",
                        },
                        "elapsedTime": 65,
                        "cabinTypeName": "Economy",
                        "bookingCode": "V",
                        "seatsAvailable": 9,
                    }
                ],
            }
        },
    }


@pytest.fixture
def amadeus_sample() -> Dict[str, Any]:
    return amadeus_record()


@pytest.fixture
def sabre_sample() -> Dict[str, Any]:
    return sabre_record()


# === Fake hub ===

class HubStub:
    """
    Routes hub requests to per-endpoint handlers.

    A handler receives the decoded JSON payload and returns an
    httpx.Response (or raises an httpx exception).
    """

    def __init__(self):
        self.handlers: Dict[str, Callable[[Dict[str, Any]], httpx.Response]] = {}
        self.calls: List[tuple] = []

    def on(self, path: str, handler: Callable[[Dict[str, Any]], httpx.Response]):
        self.handlers[path] = handler

    def respond(self, path: str, body: Any, status_code: int = 200):
        self.on(path, lambda payload: httpx.Response(status_code, json=body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/api", "", 1)
        payload = json.loads(request.content or b"{}")
        self.calls.append((path, payload))
        handler = self.handlers.get(path)
        if handler is None:
            return httpx.Response(404, json={"message": "not found"})
        return handler(payload)


@pytest.fixture
def hub_stub() -> HubStub:
    return HubStub()


@pytest.fixture
def hub(hub_stub) -> FlightHubClient:
    return FlightHubClient(base_url=HUB_URL, api_key="test-key", transport=httpx.MockTransport(hub_stub))
