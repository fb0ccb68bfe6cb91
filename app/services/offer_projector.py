"""
Keyhost Flights - Offer Projector
Pure filter/sort projection of a result snapshot, plus filter option derivation
"""

from typing import Callable, Dict, FrozenSet, List, Optional

from pydantic import Field, field_validator, model_validator

from app.core.constants import (
    DEPARTURE_WINDOW_HOURS,
    DepartureWindow,
    LayoverWindow,
    SortOption,
    StopBucket,
)
from app.models.flight import FrozenModel, Offer
from app.services.offer_aggregator import ResultSnapshot


class FilterState(FrozenModel):
    """
    User-selected result filters.

    Every dimension is conjunctive with the others; an empty selection
    leaves that dimension unrestricted.
    """
    airlines: FrozenSet[str] = frozenset()
    stops: FrozenSet[StopBucket] = frozenset()
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    departure_windows: FrozenSet[DepartureWindow] = frozenset()
    layover_windows: FrozenSet[LayoverWindow] = frozenset()
    sort: SortOption = SortOption.CHEAPEST

    @field_validator("airlines", mode="before")
    @classmethod
    def normalize_airlines(cls, v):
        if isinstance(v, str):
            v = [v]
        return frozenset(str(code).strip().upper() for code in v or () if str(code).strip())

    @model_validator(mode="after")
    def check_price_range(self):
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            raise ValueError("price_min must not exceed price_max")
        return self


class AirlineOption(FrozenModel):
    code: str
    name: Optional[str] = None
    offer_count: int
    cheapest_price: float


class FilterOptions(FrozenModel):
    """What the current result set can be filtered by"""
    airlines: List[AirlineOption] = Field(default_factory=list)
    stops: Dict[StopBucket, int] = Field(default_factory=dict)
    departure_windows: Dict[DepartureWindow, int] = Field(default_factory=dict)
    layover_windows: Dict[LayoverWindow, int] = Field(default_factory=dict)
    price_min: Optional[float] = None
    price_max: Optional[float] = None


# ================================================================
# BUCKETS
# ================================================================

def stop_bucket(offer: Offer) -> StopBucket:
    """Bucket by the first leg's stop count"""
    stops = offer.first_leg.stop_count
    if stops == 0:
        return StopBucket.NON_STOP
    if stops == 1:
        return StopBucket.ONE_STOP
    return StopBucket.TWO_PLUS


def departure_window(offer: Offer) -> DepartureWindow:
    hour = offer.first_departure.hour
    for window, (start, end) in DEPARTURE_WINDOW_HOURS.items():
        if start <= hour < end:
            return window
    return DepartureWindow.EVENING


def layover_window(offer: Offer) -> LayoverWindow:
    """Bucket by the longest layover on the first leg; non-stop is 0h"""
    hours = offer.first_leg.longest_layover_minutes / 60
    if hours < 5:
        return LayoverWindow.UP_TO_5H
    if hours < 10:
        return LayoverWindow.UP_TO_10H
    if hours < 15:
        return LayoverWindow.UP_TO_15H
    return LayoverWindow.OVER_15H


def matches(offer: Offer, filters: FilterState) -> bool:
    if filters.airlines and offer.carrier_code.upper() not in filters.airlines:
        return False
    if filters.stops and stop_bucket(offer) not in filters.stops:
        return False
    price = offer.fare.total_price
    if filters.price_min is not None and price < filters.price_min:
        return False
    if filters.price_max is not None and price > filters.price_max:
        return False
    if filters.departure_windows and departure_window(offer) not in filters.departure_windows:
        return False
    if filters.layover_windows and layover_window(offer) not in filters.layover_windows:
        return False
    return True


SORT_KEYS: Dict[SortOption, Callable[[Offer], object]] = {
    SortOption.CHEAPEST: lambda offer: offer.fare.total_price,
    SortOption.FASTEST: lambda offer: offer.total_duration_minutes,
    # wall clock; providers mix naive and offset-aware timestamps
    SortOption.EARLIEST: lambda offer: offer.first_departure.replace(tzinfo=None),
}


# ================================================================
# PROJECTION
# ================================================================

def project(snapshot: ResultSnapshot, filters: Optional[FilterState] = None) -> List[Offer]:
    """
    Filter and order a snapshot's offers.

    Sorting is stable, so ties keep the order in which their itineraries
    were first seen. The snapshot is never modified.
    """
    filters = filters or FilterState()
    selected = [offer for offer in snapshot.offers if matches(offer, filters)]
    return sorted(selected, key=SORT_KEYS[filters.sort])


def derive_filter_options(snapshot: ResultSnapshot) -> FilterOptions:
    airlines: Dict[str, dict] = {}
    stops = {bucket: 0 for bucket in StopBucket}
    windows = {window: 0 for window in DepartureWindow}
    layovers = {window: 0 for window in LayoverWindow}
    prices = []

    for offer in snapshot.offers:
        price = offer.fare.total_price
        prices.append(price)

        entry = airlines.setdefault(offer.carrier_code, {
            "code": offer.carrier_code,
            "name": offer.carrier_name,
            "offer_count": 0,
            "cheapest_price": price,
        })
        entry["offer_count"] += 1
        entry["cheapest_price"] = min(entry["cheapest_price"], price)
        if not entry["name"] and offer.carrier_name:
            entry["name"] = offer.carrier_name

        stops[stop_bucket(offer)] += 1
        windows[departure_window(offer)] += 1
        layovers[layover_window(offer)] += 1

    ordered_airlines = sorted(airlines.values(), key=lambda a: (a["cheapest_price"], a["code"]))

    return FilterOptions(
        airlines=[AirlineOption(**a) for a in ordered_airlines],
        stops=stops,
        departure_windows=windows,
        layover_windows=layovers,
        price_min=min(prices) if prices else None,
        price_max=max(prices) if prices else None,
    )
