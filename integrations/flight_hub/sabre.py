"""
Keyhost Flights - Sabre Adapter
Maps the hub's flattened Sabre itineraries to Offers
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.constants import (
    PROVIDER_SABRE,
    TRIP_TYPE_HUB_NAMES,
    PassengerType,
    SkipReason,
)
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


PASSENGER_TYPES: Dict[str, PassengerType] = {
    "ADT": PassengerType.ADULT,
    "CHD": PassengerType.CHILD,
    "CNN": PassengerType.CHILD,
    "C11": PassengerType.JUNIOR,
    "JUN": PassengerType.JUNIOR,
    "INF": PassengerType.INFANT,
}

NON_REFUNDABLE = "non-refundable"


def _leg_order(key: str) -> int:
    digits = "".join(ch for ch in str(key) if ch.isdigit())
    return int(digits) if digits else 0


def _ordered_legs(record: Dict[str, Any]) -> List[Dict[str, Any]]:
    """`legs` is a mapping leg1..legN (a plain list is tolerated)"""
    legs = record.get("legs")
    if isinstance(legs, dict):
        return [legs[key] for key in sorted(legs, key=_leg_order)]
    if isinstance(legs, list):
        return legs
    return []


def _code(point: Dict[str, Any]) -> str:
    code = point.get("airport") or point.get("airportCode")
    if not code:
        raise RecordSkipped(SkipReason.MISSING_AIRPORT)
    return str(code).upper()


def _moment(point: Dict[str, Any], fallback_date: Any) -> datetime:
    """Schedules carry date and time separately"""
    on_date = point.get("date") or fallback_date
    adjustment = point.get("dateAdjustment")
    moment = parse_timestamp(point.get("time"), on_date=on_date)
    if adjustment and not point.get("date"):
        moment += timedelta(days=int(adjustment))
    return moment


def _equipment(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("code")
    return str(value) if value else None


def _build_segment(schedule: Dict[str, Any], leg_date: Any) -> Segment:
    dep = schedule.get("departure") or {}
    arr = schedule.get("arrival") or {}
    carrier = schedule.get("carrier") or {}

    marketing = carrier.get("marketing")
    if not marketing:
        raise RecordSkipped(SkipReason.MISSING_CARRIER)

    departure_time = _moment(dep, leg_date)
    arrival_time = _moment(arr, dep.get("date") or leg_date)

    flight_number = carrier.get("marketingFlightNumber")
    seats = schedule.get("seatsAvailable")

    return Segment(
        departure_airport=_code(dep),
        arrival_airport=_code(arr),
        departure_time=departure_time,
        arrival_time=arrival_time,
        carrier_code=str(marketing).upper(),
        flight_number=str(flight_number) if flight_number is not None else None,
        operating_carrier_code=carrier.get("operating"),
        aircraft=_equipment(carrier.get("equipment")),
        cabin=schedule.get("cabinTypeName") or schedule.get("cabin"),
        booking_code=schedule.get("bookingCode"),
        seats_available=int(seats) if seats not in (None, "") else None,
        duration_minutes=parse_duration_minutes(schedule.get("elapsedTime")),
        departure_terminal=dep.get("terminal"),
        arrival_terminal=arr.get("terminal"),
    )


def _build_stopovers(leg: Dict[str, Any], segments: List[Segment]) -> List[Stopover]:
    transits = [t for t in leg.get("transits") or [] if isinstance(t, dict)]
    if transits:
        return [
            Stopover(
                airport=str(t.get("stopoverAirport") or "").upper(),
                layover_minutes=parse_duration_minutes(t.get("transitTime")),
            )
            for t in transits
        ]

    # no transit details: derive from connecting schedules
    stopovers = [
        Stopover(
            airport=previous.arrival_airport,
            layover_minutes=minutes_between(previous.arrival_time, current.departure_time),
        )
        for previous, current in zip(segments, segments[1:])
    ]
    if not stopovers:
        # a bare stopover list marks technical stops without connection
        stopovers = [
            Stopover(airport=str(code).upper())
            for code in leg.get("stopovers") or []
            if isinstance(code, str) and code
        ]
    return stopovers


def _build_leg(leg: Dict[str, Any]) -> Leg:
    if not isinstance(leg, dict):
        raise RecordSkipped(SkipReason.MISSING_LEGS)
    schedules = [s for s in leg.get("schedules") or [] if isinstance(s, dict)]
    if not schedules:
        raise RecordSkipped(SkipReason.MISSING_SEGMENTS)

    leg_date = (leg.get("departure") or {}).get("date")
    segments = [_build_segment(schedule, leg_date) for schedule in schedules]

    return Leg(
        segments=tuple(segments),
        stopovers=tuple(_build_stopovers(leg, segments)),
        duration_minutes=parse_duration_minutes(leg.get("elapsedTime")),
    )


def _passenger_breakdown(record: Dict[str, Any]) -> List[PassengerFare]:
    summary = record.get("passengerFareSummary") or {}
    lines: List[PassengerFare] = []
    for entry in summary.values():
        if not isinstance(entry, dict) or not entry.get("passengerType"):
            continue
        passenger_type = PASSENGER_TYPES.get(str(entry["passengerType"]).upper())
        if passenger_type is None:
            continue
        lines.append(PassengerFare(
            passenger_type=passenger_type,
            quantity=int(entry.get("passengerNumberByType") or 1),
            base_fare=parse_amount(entry.get("passengerBaseFare")),
            tax=parse_amount(entry.get("passengerTax")),
            total_fare=parse_amount(entry.get("passengerTotalFare")),
        ))
    return lines


def _fare_policy(source: Dict[str, Any]) -> FarePolicy:
    status = source.get("refundStatus")
    refundable = None
    if status:
        normalized = "-".join(str(status).strip().lower().replace("_", " ").split())
        refundable = normalized != NON_REFUNDABLE

    penalties = source.get("penalties")
    if not isinstance(penalties, dict):
        penalties = {}
    change_entries = [
        p.get("change") for p in penalties.values()
        if isinstance(p, dict) and isinstance(p.get("change"), dict)
    ]

    return FarePolicy(
        refundable=refundable,
        refund_status=status,
        changeable=True if change_entries else None,
        cancellation_penalty=_penalty(penalties, "refund"),
        change_penalty=_penalty(penalties, "change"),
    )


def _penalty(penalties: Dict[str, Any], kind: str) -> Optional[float]:
    """Adult `<kind>.before` amount, else the highest across passenger types"""
    amounts: Dict[str, float] = {}
    for passenger_type, entry in penalties.items():
        rule = entry.get(kind) if isinstance(entry, dict) else None
        if not isinstance(rule, dict):
            continue
        amount = parse_amount(rule.get("before"))
        if amount is not None:
            amounts[str(passenger_type).upper()] = amount
    if not amounts:
        return None
    return amounts.get("ADT", max(amounts.values()))


def _cheapest_fare_option(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Record fields with the cheapest priced `fares[]` option laid over them.

    Records without fare options (or with none priced) are returned as is.
    Equal prices keep the first listed option.
    """
    priced = []
    for option in record.get("fares") or []:
        if not isinstance(option, dict) or not isinstance(option.get("fare"), dict):
            continue
        price = parse_amount(option["fare"].get("totalPrice"))
        if price is not None and price >= 0:
            priced.append((price, option))
    if not priced:
        return record
    cheapest = min(priced, key=lambda item: item[0])[1]
    return {**record, **cheapest}


class SabreAdapter(ProviderAdapter):
    """Sabre offers via the hub; the hub needs the trip type spelled its way"""

    name = PROVIDER_SABRE

    async def _fetch_records(self, session: SearchSession) -> List[Any]:
        flight_type = TRIP_TYPE_HUB_NAMES[session.intent.trip_type]
        body = await self.hub.fetch_sabre(session.token, flight_type)
        return self.unwrap_records(body, self.name)

    def parse_record(self, record: Dict[str, Any], session: SearchSession) -> Offer:
        raw_legs = _ordered_legs(record)
        if not raw_legs:
            raise RecordSkipped(SkipReason.MISSING_LEGS)

        source = _cheapest_fare_option(record)
        fare = source.get("fare")
        if not isinstance(fare, dict):
            raise RecordSkipped(SkipReason.MISSING_FARE)
        total = require_price(fare.get("totalPrice"))

        legs = tuple(_build_leg(leg) for leg in raw_legs)
        carrier_code = record.get("carrierCode") or legs[0].first_segment.carrier_code

        branded = source.get("brandedFare")
        branded_name: Optional[str] = None
        if isinstance(branded, dict):
            branded_name = branded.get("name")
        elif isinstance(branded, str):
            branded_name = branded

        return Offer(
            id=new_offer_id(self.name),
            provider=self.name,
            carrier_code=str(carrier_code).upper(),
            carrier_name=record.get("airlineName"),
            legs=legs,
            fare=Fare(
                total_price=total,
                currency=str(fare.get("currency") or settings.DEFAULT_CURRENCY),
                base_price=parse_amount(fare.get("basePrice")),
                tax=parse_amount(fare.get("tax")),
                breakdown=tuple(_passenger_breakdown(source)),
                policy=_fare_policy(source),
            ),
            branded_fare=branded_name,
            raw=record,
        )
