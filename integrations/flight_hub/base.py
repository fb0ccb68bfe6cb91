"""
Keyhost Flights - Provider Adapter Base
Common contract and parsing helpers for flight inventory adapters
"""

import asyncio
import re
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from loguru import logger
from pydantic import Field

from app.core.config import settings
from app.core.constants import SkipReason
from app.core.exceptions import (
    ProviderError,
    ProviderMalformedResponse,
    ProviderRejected,
    ProviderTimeout,
)
from app.models.flight import FrozenModel, Offer, SearchSession
from integrations.flight_hub.client import FlightHubClient, flight_hub


ISO_DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:\d+(?:\.\d+)?S)?)?$")
TEXT_DURATION_RE = re.compile(r"^\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m(?:in)?)?\s*$", re.IGNORECASE)


class RecordSkipped(Exception):
    """Raised inside a record mapper; turned into a SkipReason"""

    def __init__(self, reason: SkipReason):
        self.reason = reason
        super().__init__(reason.value)


class OfferParseResult(FrozenModel):
    """Outcome of mapping one raw record: an offer or the reason it was skipped"""
    offer: Optional[Offer] = None
    skip_reason: Optional[SkipReason] = None

    @property
    def ok(self) -> bool:
        return self.offer is not None

    @classmethod
    def parsed(cls, offer: Offer) -> "OfferParseResult":
        return cls(offer=offer)

    @classmethod
    def skipped(cls, reason: SkipReason) -> "OfferParseResult":
        return cls(skip_reason=reason)


class AdapterReport(FrozenModel):
    """What a successful provider fetch produced"""
    provider: str
    offers: Tuple[Offer, ...] = ()
    skipped: Dict[SkipReason, int] = Field(default_factory=dict)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


# ================================================================
# PARSING HELPERS
# ================================================================

def parse_timestamp(value: Any, on_date: Any = None) -> datetime:
    """
    Parse provider timestamps.

    Accepts full ISO datetimes ('2026-02-15T08:00:00', '...Z', '...+06:00')
    or a bare time ('08:00:00+06:00') combined with a separate date.
    """
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        raise RecordSkipped(SkipReason.INVALID_TIMESTAMP)
    text = value.strip().replace("Z", "+00:00")
    try:
        if len(text) >= 10 and text[4] == "-" and text[7] == "-":
            return datetime.fromisoformat(text)
        if on_date is None:
            raise RecordSkipped(SkipReason.INVALID_TIMESTAMP)
        day = on_date if isinstance(on_date, date) else date.fromisoformat(str(on_date)[:10])
        return datetime.fromisoformat(f"{day.isoformat()}T{text}")
    except ValueError:
        raise RecordSkipped(SkipReason.INVALID_TIMESTAMP)


def parse_duration_minutes(value: Any) -> Optional[int]:
    """Minutes from 'PT6H30M', '6h 30m', '45m' or a plain number of minutes"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    match = ISO_DURATION_RE.match(text.upper())
    if match and any(match.groups()):
        days, hours, minutes = (int(g or 0) for g in match.groups())
        return days * 1440 + hours * 60 + minutes
    match = TEXT_DURATION_RE.match(text)
    if match and any(match.groups()):
        hours, minutes = (int(g or 0) for g in match.groups())
        return hours * 60 + minutes
    return None


def parse_amount(value: Any) -> Optional[float]:
    """Money amounts arrive as numbers or strings like '1,250.00'"""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def require_price(value: Any) -> float:
    price = parse_amount(value)
    if price is None or price < 0:
        raise RecordSkipped(SkipReason.INVALID_PRICE)
    return price


def minutes_between(start: datetime, end: datetime) -> Optional[int]:
    try:
        return max(int((end - start).total_seconds() // 60), 0)
    except TypeError:
        # naive vs aware timestamps inside one record
        return None


def new_offer_id(provider: str) -> str:
    return f"{provider}-{uuid.uuid4().hex[:12]}"


# ================================================================
# ADAPTER CONTRACT
# ================================================================

class ProviderAdapter(ABC):
    """
    One upstream flight inventory source.

    Subclasses implement `_fetch_records` (the provider-specific request
    sequence) and `parse_record` (raw record -> Offer). `fetch` enforces the
    latency bound, classifies every failure as a ProviderError and maps
    records best-effort: unusable records are counted, never fatal.
    """

    name: str = "provider"

    def __init__(
        self,
        hub: Optional[FlightHubClient] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.hub = hub or flight_hub
        self.timeout_seconds = timeout_seconds or settings.PROVIDER_TIMEOUT_SECONDS

    @abstractmethod
    async def _fetch_records(self, session: SearchSession) -> List[Any]:
        """Issue the provider request(s) and return the raw records"""

    @abstractmethod
    def parse_record(self, record: Dict[str, Any], session: SearchSession) -> Offer:
        """Map one raw record; raise RecordSkipped when it is unusable"""

    def map_record(self, record: Any, session: SearchSession) -> OfferParseResult:
        if not isinstance(record, dict):
            return OfferParseResult.skipped(SkipReason.NOT_AN_OBJECT)
        try:
            return OfferParseResult.parsed(self.parse_record(record, session))
        except RecordSkipped as e:
            return OfferParseResult.skipped(e.reason)
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
            # pydantic ValidationError is a ValueError
            logger.debug(f"{self.name}: unusable record ({type(e).__name__}: {e})")
            return OfferParseResult.skipped(SkipReason.MALFORMED_RECORD)

    def map_records(self, records: Iterable[Any], session: SearchSession) -> AdapterReport:
        offers: List[Offer] = []
        skipped: Counter = Counter()
        for record in records:
            result = self.map_record(record, session)
            if result.ok:
                offers.append(result.offer)
            else:
                skipped[result.skip_reason] += 1
        if skipped:
            logger.debug(f"{self.name}: skipped records {dict(skipped)}")
        return AdapterReport(provider=self.name, offers=tuple(offers), skipped=dict(skipped))

    async def fetch(self, session: SearchSession) -> AdapterReport:
        """
        Fetch and normalize this provider's offers for a session.

        Raises:
            ProviderTimeout, ProviderRejected, ProviderMalformedResponse
        """
        try:
            records = await asyncio.wait_for(
                self._fetch_records(session),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeout(self.name, f"no response within {self.timeout_seconds:g}s")
        except ProviderError:
            raise
        except httpx.TimeoutException:
            raise ProviderTimeout(self.name)
        except httpx.HTTPError as e:
            raise ProviderRejected(self.name, f"transport error: {e}")

        return self.map_records(records, session)

    @staticmethod
    def unwrap_records(body: Any, provider: str) -> List[Any]:
        """Accept a bare list or an object carrying the list under 'data'"""
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            data = body.get("data")
            if isinstance(data, list):
                return data
            if isinstance(data, dict) and isinstance(data.get("flights"), list):
                return data["flights"]
            if isinstance(body.get("flights"), list):
                return body["flights"]
        raise ProviderMalformedResponse(provider, "expected a list of offers")
