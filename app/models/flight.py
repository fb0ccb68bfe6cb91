"""
Keyhost Flights - Flight Domain Models
Immutable value objects shared by the intent builder, provider adapters,
aggregation engine and projector
"""

from datetime import date, datetime
from typing import Any, Dict, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.core.constants import CabinClass, PassengerType, TripType


class FrozenModel(BaseModel):
    """Base for immutable domain values"""

    model_config = ConfigDict(frozen=True)


# ================================================================
# SEARCH INTENT
# ================================================================

class PassengerCounts(FrozenModel):
    """Passengers by category"""
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    juniors: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)

    @property
    def total(self) -> int:
        return self.adults + self.children + self.juniors + self.infants


class LegQuery(FrozenModel):
    """One requested leg of a multi-city search"""
    origin: str
    destination: str
    departure_date: date


class SearchIntent(FrozenModel):
    """
    Normalized description of one search submission.

    For multi-city searches `legs` holds the ordered legs and the top-level
    origin/destination/departure_date mirror the first leg.
    """
    trip_type: TripType
    origin: str
    destination: str
    departure_date: date
    return_date: Optional[date] = None
    legs: Tuple[LegQuery, ...] = ()
    passengers: PassengerCounts = PassengerCounts()
    cabin_class: CabinClass = CabinClass.ANY

    def itinerary_legs(self) -> Tuple[LegQuery, ...]:
        """Requested legs for every trip type"""
        if self.trip_type == TripType.MULTI_CITY:
            return self.legs
        outbound = LegQuery(
            origin=self.origin,
            destination=self.destination,
            departure_date=self.departure_date,
        )
        if self.trip_type == TripType.ROUND_TRIP and self.return_date:
            inbound = LegQuery(
                origin=self.destination,
                destination=self.origin,
                departure_date=self.return_date,
            )
            return (outbound, inbound)
        return (outbound,)


class SearchSession(FrozenModel):
    """Correlation token binding one search to all provider calls"""
    token: str
    intent: SearchIntent
    created_at: datetime = Field(default_factory=datetime.utcnow)


# ================================================================
# OFFER
# ================================================================

class Stopover(FrozenModel):
    """Intermediate stop inside a leg"""
    airport: str
    layover_minutes: Optional[int] = None


class Segment(FrozenModel):
    """A single physical flight"""
    departure_airport: str
    arrival_airport: str
    departure_time: datetime
    arrival_time: datetime
    carrier_code: str
    flight_number: Optional[str] = None
    operating_carrier_code: Optional[str] = None
    aircraft: Optional[str] = None
    cabin: Optional[str] = None
    booking_code: Optional[str] = None
    seats_available: Optional[int] = None
    duration_minutes: Optional[int] = None
    departure_terminal: Optional[str] = None
    arrival_terminal: Optional[str] = None


class Leg(FrozenModel):
    """One directional portion of a trip"""
    segments: Tuple[Segment, ...] = Field(..., min_length=1)
    stopovers: Tuple[Stopover, ...] = ()
    duration_minutes: Optional[int] = None

    @property
    def first_segment(self) -> Segment:
        return self.segments[0]

    @property
    def last_segment(self) -> Segment:
        return self.segments[-1]

    @property
    def stop_count(self) -> int:
        return len(self.stopovers)

    @property
    def elapsed_minutes(self) -> int:
        """Quoted duration, or departure-to-arrival span when not quoted"""
        if self.duration_minutes is not None:
            return self.duration_minutes
        start = self.first_segment.departure_time
        end = self.last_segment.arrival_time
        if (start.tzinfo is None) != (end.tzinfo is None):
            # one side carries no offset: compare wall-clock times
            start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
        return max(int((end - start).total_seconds() // 60), 0)

    @property
    def longest_layover_minutes(self) -> int:
        layovers = [s.layover_minutes for s in self.stopovers if s.layover_minutes is not None]
        return max(layovers) if layovers else 0


class PassengerFare(FrozenModel):
    """Fare for all passengers of one type"""
    passenger_type: PassengerType
    quantity: int = 1
    base_fare: Optional[float] = None
    tax: Optional[float] = None
    total_fare: Optional[float] = None


class FarePolicy(FrozenModel):
    """Refund and change conditions"""
    refundable: Optional[bool] = None
    refund_status: Optional[str] = None
    changeable: Optional[bool] = None
    cancellation_penalty: Optional[float] = None
    change_penalty: Optional[float] = None


class Fare(FrozenModel):
    """Price of an offer"""
    total_price: float = Field(..., ge=0)
    currency: str
    base_price: Optional[float] = None
    tax: Optional[float] = None
    breakdown: Tuple[PassengerFare, ...] = ()
    policy: FarePolicy = FarePolicy()


class Offer(FrozenModel):
    """Canonical, provider-independent flight offer"""
    id: str
    provider: str
    carrier_code: str
    carrier_name: Optional[str] = None
    legs: Tuple[Leg, ...] = Field(..., min_length=1)
    fare: Fare
    branded_fare: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def first_leg(self) -> Leg:
        return self.legs[0]

    @property
    def last_leg(self) -> Leg:
        return self.legs[-1]

    @computed_field
    @property
    def total_duration_minutes(self) -> int:
        return sum(leg.elapsed_minutes for leg in self.legs)

    @property
    def first_departure(self) -> datetime:
        return self.first_leg.first_segment.departure_time

    @property
    def signature(self) -> "DeduplicationSignature":
        return compute_signature(self)


# ================================================================
# DEDUPLICATION SIGNATURE
# ================================================================

class DeduplicationSignature(NamedTuple):
    """Identity of a physical itinerary across providers"""
    carrier: str
    departure_airport: str
    departure_time: str
    arrival_airport: str
    arrival_time: str
    stops_per_leg: Tuple[int, ...]


def _wall_clock(value: datetime) -> str:
    # Providers disagree on whether they send offsets; compare local times
    return value.replace(tzinfo=None, second=0, microsecond=0).isoformat(timespec="minutes")


def compute_signature(offer: Offer) -> DeduplicationSignature:
    first = offer.first_leg.first_segment
    last = offer.last_leg.last_segment
    return DeduplicationSignature(
        carrier=offer.carrier_code.upper(),
        departure_airport=first.departure_airport.upper(),
        departure_time=_wall_clock(first.departure_time),
        arrival_airport=last.arrival_airport.upper(),
        arrival_time=_wall_clock(last.arrival_time),
        stops_per_leg=tuple(leg.stop_count for leg in offer.legs),
    )
