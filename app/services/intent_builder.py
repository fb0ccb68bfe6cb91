"""
Keyhost Flights - Search Intent Builder
Turns raw search-form input into a validated, immutable SearchIntent
"""

import json
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.core.config import settings
from app.core.constants import CabinClass, TripType
from app.core.exceptions import ValidationError
from app.models.flight import LegQuery, PassengerCounts, SearchIntent


IATA_IN_LABEL_RE = re.compile(r"\(([^)]*)\)")

TRIP_TYPE_ALIASES: Dict[str, TripType] = {
    "oneway": TripType.ONE_WAY,
    "one_way": TripType.ONE_WAY,
    "one-way": TripType.ONE_WAY,
    "roundtrip": TripType.ROUND_TRIP,
    "round_trip": TripType.ROUND_TRIP,
    "round-trip": TripType.ROUND_TRIP,
    "multicity": TripType.MULTI_CITY,
    "multi_city": TripType.MULTI_CITY,
    "multi-city": TripType.MULTI_CITY,
}


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present and not blank"""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def extract_location_code(value: Any) -> Optional[str]:
    """'Dhaka (DAC)' -> 'DAC'; plain codes are upper-cased"""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    match = IATA_IN_LABEL_RE.search(text)
    if match and match.group(1).strip():
        text = match.group(1)
    return text.strip().upper()


def parse_search_date(value: Any) -> Optional[date]:
    """Accept date objects, ISO dates and ISO datetimes (date part is used)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


class SearchIntentBuilder:
    """
    Validates raw search input and produces a SearchIntent.

    Field names follow the search form (`from`, `to`, `depart`, `return`,
    `segments`, `kids`, `class`) with snake-case aliases accepted as well.
    All problems are collected and raised together as one ValidationError.
    """

    def __init__(self, max_passengers: Optional[int] = None):
        self.max_passengers = max_passengers or settings.MAX_PASSENGERS

    def build(self, raw: Mapping[str, Any]) -> SearchIntent:
        errors: List[Dict[str, str]] = []

        def fail(field: str, message: str) -> None:
            errors.append({"field": field, "message": message})

        trip_type = self._trip_type(_first(raw, "trip_type", "tripType"), fail)
        passengers = self._passengers(raw, fail)
        cabin_class = self._cabin_class(_first(raw, "class", "cabin_class", "cabin"), fail)

        origin = destination = None
        departure_date = return_date = None
        legs: Tuple[LegQuery, ...] = ()

        if trip_type == TripType.MULTI_CITY:
            legs = self._multi_city_legs(_first(raw, "segments", "legs"), fail)
            if legs:
                origin = legs[0].origin
                destination = legs[0].destination
                departure_date = legs[0].departure_date
        elif trip_type is not None:
            origin, destination = self._route(
                _first(raw, "from", "origin"),
                _first(raw, "to", "destination"),
                "",
                fail,
            )
            departure_date = self._date(
                _first(raw, "depart", "departure_date"), "depart", fail
            )
            if trip_type == TripType.ROUND_TRIP:
                return_date = self._return_date(
                    _first(raw, "return", "return_date"), departure_date, fail
                )

        if errors:
            raise ValidationError(message="Invalid flight search", errors=errors)

        return SearchIntent(
            trip_type=trip_type,
            origin=origin,
            destination=destination,
            departure_date=departure_date,
            return_date=return_date,
            legs=legs,
            passengers=passengers,
            cabin_class=cabin_class,
        )

    # ================================================================
    # FIELD HELPERS
    # ================================================================

    def _trip_type(self, value: Any, fail) -> Optional[TripType]:
        if value is None:
            return TripType.ONE_WAY
        if isinstance(value, TripType):
            return value
        trip_type = TRIP_TYPE_ALIASES.get(str(value).strip().lower())
        if trip_type is None:
            fail("trip_type", f"Unknown trip type '{value}'")
        return trip_type

    def _cabin_class(self, value: Any, fail) -> CabinClass:
        if value is None:
            return CabinClass.ANY
        if isinstance(value, CabinClass):
            return value
        normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return CabinClass(normalized)
        except ValueError:
            fail("class", f"Unknown cabin class '{value}'")
            return CabinClass.ANY

    def _passengers(self, raw: Mapping[str, Any], fail) -> PassengerCounts:
        counts: Dict[str, int] = {}
        sources = {
            "adults": ("adults",),
            "children": ("children",),
            "juniors": ("kids", "juniors"),
            "infants": ("infants",),
        }
        for name, keys in sources.items():
            value = _first(raw, *keys)
            if value is None:
                continue
            try:
                count = int(value)
            except (TypeError, ValueError):
                fail(name, f"{name} must be a whole number")
                continue
            if count < 0:
                fail(name, f"{name} cannot be negative")
                continue
            counts[name] = count

        if counts.get("adults", 1) < 1:
            fail("adults", "At least one adult is required")
            counts.pop("adults")

        passengers = PassengerCounts(**counts)
        if passengers.total > self.max_passengers:
            fail("passengers", f"No more than {self.max_passengers} passengers per booking")
        return passengers

    def _route(
        self,
        raw_origin: Any,
        raw_destination: Any,
        prefix: str,
        fail
    ) -> Tuple[Optional[str], Optional[str]]:
        origin = extract_location_code(raw_origin)
        destination = extract_location_code(raw_destination)
        if not origin:
            fail(f"{prefix}from", "Origin is required")
        if not destination:
            fail(f"{prefix}to", "Destination is required")
        if origin and destination and origin == destination:
            fail(f"{prefix}to", "Origin and destination must differ")
        return origin, destination

    def _date(self, value: Any, field: str, fail) -> Optional[date]:
        if value is None:
            fail(field, "Departure date is required")
            return None
        parsed = parse_search_date(value)
        if parsed is None:
            fail(field, f"Invalid date '{value}'")
        return parsed

    def _return_date(self, value: Any, departure_date: Optional[date], fail) -> Optional[date]:
        if value is None:
            fail("return", "Return date is required for round trips")
            return None
        parsed = parse_search_date(value)
        if parsed is None:
            fail("return", f"Invalid date '{value}'")
            return None
        if departure_date and parsed < departure_date:
            fail("return", "Return date cannot be before departure date")
        return parsed

    def _multi_city_legs(self, value: Any, fail) -> Tuple[LegQuery, ...]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                fail("segments", "Segments must be a JSON list")
                return ()
        if not isinstance(value, (list, tuple)) or len(value) < 2:
            fail("segments", "Multi-city search needs at least two legs")
            return ()

        legs: List[LegQuery] = []
        complete = True
        for index, item in enumerate(value):
            prefix = f"segments[{index}]."
            if isinstance(item, LegQuery):
                legs.append(item)
                continue
            if not isinstance(item, Mapping):
                fail(f"segments[{index}]", "Leg must be an object")
                complete = False
                continue
            origin, destination = self._route(
                _first(item, "from", "origin"),
                _first(item, "to", "destination"),
                prefix,
                fail,
            )
            departure_date = self._date(
                _first(item, "depart", "departure_date"), f"{prefix}depart", fail
            )
            if origin and destination and origin != destination and departure_date:
                legs.append(LegQuery(
                    origin=origin,
                    destination=destination,
                    departure_date=departure_date,
                ))
            else:
                complete = False

        if complete:
            for index in range(1, len(legs)):
                if legs[index].departure_date < legs[index - 1].departure_date:
                    fail(
                        f"segments[{index}].depart",
                        "Leg departs before the previous leg",
                    )
        return tuple(legs)


# Singleton instance
intent_builder = SearchIntentBuilder()
