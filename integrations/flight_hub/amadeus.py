"""
Keyhost Flights - Amadeus Adapter
Maps Amadeus flight-offers records (relayed by the search hub) to Offers
"""

from collections import OrderedDict
from typing import Any, Dict, List, Optional

from loguru import logger

from app.core.config import settings
from app.core.constants import PROVIDER_AMADEUS, PassengerType, SkipReason
from app.core.exceptions import ProviderMalformedResponse
from app.models.flight import (
    Fare,
    FarePolicy,
    Leg,
    Offer,
    PassengerFare,
    SearchSession,
    Segment,
    Stopover,
)
from integrations.flight_hub.base import (
    ProviderAdapter,
    RecordSkipped,
    minutes_between,
    new_offer_id,
    parse_amount,
    parse_duration_minutes,
    parse_timestamp,
    require_price,
)


# Amadeus traveler types -> fare passenger types
TRAVELER_TYPES: Dict[str, PassengerType] = {
    "ADULT": PassengerType.ADULT,
    "SENIOR": PassengerType.ADULT,
    "CHILD": PassengerType.CHILD,
    "YOUNG": PassengerType.JUNIOR,
    "STUDENT": PassengerType.JUNIOR,
    "HELD_INFANT": PassengerType.INFANT,
    "SEATED_INFANT": PassengerType.INFANT,
}


def _airport(point: Dict[str, Any]) -> str:
    code = (point or {}).get("iataCode")
    if not code:
        raise RecordSkipped(SkipReason.MISSING_AIRPORT)
    return str(code).upper()


def _segment_cabins(offer: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """segmentId -> fareDetailsBySegment entry of the first traveler"""
    pricings = offer.get("travelerPricings") or []
    if not pricings:
        return {}
    details = pricings[0].get("fareDetailsBySegment") or []
    return {str(d.get("segmentId")): d for d in details if isinstance(d, dict)}


def _build_segment(seg: Dict[str, Any], cabins: Dict[str, Dict[str, Any]]) -> Segment:
    dep = seg.get("departure") or {}
    arr = seg.get("arrival") or {}
    carrier_code = seg.get("carrierCode")
    if not carrier_code:
        raise RecordSkipped(SkipReason.MISSING_CARRIER)

    operating = seg.get("operating") or {}
    aircraft = seg.get("aircraft") or {}
    cabin = cabins.get(str(seg.get("id"))) or {}

    return Segment(
        departure_airport=_airport(dep),
        arrival_airport=_airport(arr),
        departure_time=parse_timestamp(dep.get("at")),
        arrival_time=parse_timestamp(arr.get("at")),
        carrier_code=str(carrier_code).upper(),
        flight_number=str(seg["number"]) if seg.get("number") is not None else None,
        operating_carrier_code=operating.get("carrierCode"),
        aircraft=aircraft.get("code"),
        cabin=cabin.get("cabin"),
        booking_code=cabin.get("class"),
        duration_minutes=parse_duration_minutes(seg.get("duration")),
        departure_terminal=dep.get("terminal"),
        arrival_terminal=arr.get("terminal"),
    )


def _build_leg(itinerary: Dict[str, Any], cabins: Dict[str, Dict[str, Any]]) -> Leg:
    raw_segments = itinerary.get("segments") or []
    if not raw_segments:
        raise RecordSkipped(SkipReason.MISSING_SEGMENTS)

    segments: List[Segment] = []
    stopovers: List[Stopover] = []
    for raw in raw_segments:
        segment = _build_segment(raw, cabins)
        if segments:
            previous = segments[-1]
            stopovers.append(Stopover(
                airport=previous.arrival_airport,
                layover_minutes=minutes_between(previous.arrival_time, segment.departure_time),
            ))
        # technical stops inside a single flight number
        for stop in raw.get("stops") or []:
            if isinstance(stop, dict) and stop.get("iataCode"):
                stopovers.append(Stopover(
                    airport=str(stop["iataCode"]).upper(),
                    layover_minutes=parse_duration_minutes(stop.get("duration")),
                ))
        segments.append(segment)

    return Leg(
        segments=tuple(segments),
        stopovers=tuple(stopovers),
        duration_minutes=parse_duration_minutes(itinerary.get("duration")),
    )


def _passenger_breakdown(offer: Dict[str, Any]) -> List[PassengerFare]:
    """Collapse per-traveler pricings into one line per passenger type"""
    grouped: "OrderedDict[PassengerType, Dict[str, Any]]" = OrderedDict()
    for pricing in offer.get("travelerPricings") or []:
        if not isinstance(pricing, dict):
            continue
        passenger_type = TRAVELER_TYPES.get(str(pricing.get("travelerType", "")).upper())
        if passenger_type is None:
            continue
        price = pricing.get("price") or {}
        total = parse_amount(price.get("total"))
        base = parse_amount(price.get("base"))
        line = grouped.setdefault(passenger_type, {"quantity": 0, "base": 0.0, "total": 0.0})
        line["quantity"] += 1
        line["base"] += base or 0.0
        line["total"] += total or 0.0

    return [
        PassengerFare(
            passenger_type=passenger_type,
            quantity=line["quantity"],
            base_fare=round(line["base"], 2),
            tax=round(line["total"] - line["base"], 2),
            total_fare=round(line["total"], 2),
        )
        for passenger_type, line in grouped.items()
    ]


def _fare_policy(offer: Dict[str, Any]) -> FarePolicy:
    options = offer.get("pricingOptions") or {}
    refundable = options.get("refundableFare")
    cancellation_penalty = change_penalty = None
    changeable = None

    for rule in (offer.get("fareRules") or {}).get("rules") or []:
        if not isinstance(rule, dict):
            continue
        category = str(rule.get("category", "")).upper()
        not_applicable = bool(rule.get("notApplicable"))
        penalty = parse_amount(rule.get("maxPenaltyAmount"))
        if category == "REFUND":
            if refundable is None:
                refundable = not not_applicable
            cancellation_penalty = penalty
        elif category == "EXCHANGE":
            changeable = not not_applicable
            change_penalty = penalty

    refund_status = None
    if refundable is True:
        refund_status = "Refundable"
    elif refundable is False:
        refund_status = "Non-Refundable"

    return FarePolicy(
        refundable=refundable,
        refund_status=refund_status,
        changeable=changeable,
        cancellation_penalty=cancellation_penalty,
        change_penalty=change_penalty,
    )


class AmadeusAdapter(ProviderAdapter):
    """
    Amadeus offers via the hub.

    The hub pages large Amadeus answers; pages are followed through
    `meta.next_page` up to AMADEUS_MAX_PAGES.
    """

    name = PROVIDER_AMADEUS

    def __init__(self, *args, max_pages: Optional[int] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_pages = max_pages or settings.AMADEUS_MAX_PAGES

    async def _fetch_records(self, session: SearchSession) -> List[Any]:
        records: List[Any] = []
        page = 1
        while True:
            body = await self.hub.fetch_amadeus(session.token, page=page)
            records.extend(self.unwrap_records(body, self.name))

            next_page = self._next_page(body)
            if next_page is None:
                break
            if next_page <= page:
                raise ProviderMalformedResponse(self.name, f"page cursor went backwards ({next_page})")
            if next_page > self.max_pages:
                logger.info(f"amadeus: stopping at page {page} of session {session.token}")
                break
            page = next_page
        return records

    @staticmethod
    def _next_page(body: Any) -> Optional[int]:
        if not isinstance(body, dict):
            return None
        value = (body.get("meta") or {}).get("next_page")
        if value in (None, "", False):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ProviderMalformedResponse(PROVIDER_AMADEUS, f"invalid page cursor {value!r}")

    def parse_record(self, record: Dict[str, Any], session: SearchSession) -> Offer:
        itineraries = record.get("itineraries") or []
        if not itineraries:
            raise RecordSkipped(SkipReason.MISSING_LEGS)

        price = record.get("price")
        if not isinstance(price, dict):
            raise RecordSkipped(SkipReason.MISSING_FARE)
        total = require_price(price.get("grandTotal") or price.get("total"))
        base = parse_amount(price.get("base"))

        cabins = _segment_cabins(record)
        legs = tuple(_build_leg(itinerary, cabins) for itinerary in itineraries)

        validating = record.get("validatingAirlineCodes") or []
        carrier_code = str(validating[0]).upper() if validating else legs[0].first_segment.carrier_code

        carriers = ((record.get("dictionaries") or {}).get("carriers") or {})

        return Offer(
            id=new_offer_id(self.name),
            provider=self.name,
            carrier_code=carrier_code,
            carrier_name=carriers.get(carrier_code),
            legs=legs,
            fare=Fare(
                total_price=total,
                currency=str(price.get("currency") or settings.DEFAULT_CURRENCY),
                base_price=base,
                tax=round(total - base, 2) if base is not None else None,
                breakdown=tuple(_passenger_breakdown(record)),
                policy=_fare_policy(record),
            ),
            raw=record,
        )
