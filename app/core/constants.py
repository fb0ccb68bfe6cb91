"""
Keyhost Flights - Application Constants
Centralized constants used throughout the application
"""

from enum import Enum
from typing import Dict, Tuple


# === Trip Types ===
class TripType(str, Enum):
    """Shape of a flight search"""
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"
    MULTI_CITY = "multi_city"


# Spelling used by the search form and the search hub
TRIP_TYPE_HUB_NAMES: Dict[TripType, str] = {
    TripType.ONE_WAY: "oneWay",
    TripType.ROUND_TRIP: "roundTrip",
    TripType.MULTI_CITY: "multiCity",
}


# === Cabin Classes ===
class CabinClass(str, Enum):
    """Requested cabin; ANY means no preference"""
    ANY = "any"
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


# === Passenger Types ===
class PassengerType(str, Enum):
    """Fare passenger categories"""
    ADULT = "ADT"
    CHILD = "CHD"
    JUNIOR = "JUN"
    INFANT = "INF"


# === Provider Status ===
class ProviderStatus(str, Enum):
    """Per-provider state inside one aggregation run"""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


# === Skip Reasons ===
class SkipReason(str, Enum):
    """Why an individual provider record was not turned into an offer"""
    NOT_AN_OBJECT = "not_an_object"
    MISSING_LEGS = "missing_legs"
    MISSING_SEGMENTS = "missing_segments"
    MISSING_FARE = "missing_fare"
    INVALID_PRICE = "invalid_price"
    INVALID_TIMESTAMP = "invalid_timestamp"
    MISSING_AIRPORT = "missing_airport"
    MISSING_CARRIER = "missing_carrier"
    MALFORMED_RECORD = "malformed_record"


# === Result Filters ===
class StopBucket(str, Enum):
    """Stop-count filter buckets"""
    NON_STOP = "Non-Stop"
    ONE_STOP = "1 Stop"
    TWO_PLUS = "2 Stops or more"


class DepartureWindow(str, Enum):
    """Departure time-of-day buckets"""
    NIGHT = "00-06"
    MORNING = "06-12"
    AFTERNOON = "12-18"
    EVENING = "18-00"


# Hour ranges [start, end) for each departure window
DEPARTURE_WINDOW_HOURS: Dict[DepartureWindow, Tuple[int, int]] = {
    DepartureWindow.NIGHT: (0, 6),
    DepartureWindow.MORNING: (6, 12),
    DepartureWindow.AFTERNOON: (12, 18),
    DepartureWindow.EVENING: (18, 24),
}


class LayoverWindow(str, Enum):
    """Longest-layover buckets"""
    UP_TO_5H = "0h-5h"
    UP_TO_10H = "5h-10h"
    UP_TO_15H = "10h-15h"
    OVER_15H = "15h+"


class SortOption(str, Enum):
    """Result ordering"""
    CHEAPEST = "cheapest"
    FASTEST = "fastest"
    EARLIEST = "earliest"


# === Providers ===
PROVIDER_AMADEUS = "amadeus"
PROVIDER_SABRE = "sabre"
