"""
Keyhost Flights - Offer Aggregation Engine
Merges adapter results into one deduplicated, live result set per session
"""

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger
from pydantic import Field

from app.core.constants import ProviderStatus, SkipReason
from app.core.exceptions import ProviderError
from app.models.flight import DeduplicationSignature, FrozenModel, Offer


class ProviderOutcome(FrozenModel):
    """State of one provider inside an aggregation run"""
    provider: str
    status: ProviderStatus = ProviderStatus.PENDING
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    offer_count: int = 0
    skipped: Dict[SkipReason, int] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status != ProviderStatus.PENDING


class ResultSnapshot(FrozenModel):
    """Immutable view of the aggregated result set at one version"""
    session_token: str
    version: int
    offers: Tuple[Offer, ...] = ()
    providers: Dict[str, ProviderOutcome] = Field(default_factory=dict)
    responded_count: int = 0
    provider_count: int = 0
    is_complete: bool = False

    @property
    def summary(self) -> str:
        return f"{self.responded_count} of {self.provider_count} providers responded"

    def find_offer(self, offer_id: str) -> Optional[Offer]:
        for offer in self.offers:
            if offer.id == offer_id:
                return offer
        return None


SnapshotCallback = Callable[[ResultSnapshot], None]


class AggregationEngine:
    """
    Live result set for one search session.

    Mutated only through `on_adapter_offers` / `on_adapter_error`; read
    through `snapshot()`. Duplicate itineraries collapse to the cheapest
    instance, and a signature keeps the position where it was first seen.
    """

    def __init__(self, session_token: str, providers: Iterable[str]):
        self.session_token = session_token
        self.version = 0
        self.retired = False
        self._offers: Dict[DeduplicationSignature, Offer] = {}
        self._providers: Dict[str, ProviderOutcome] = {
            name: ProviderOutcome(provider=name) for name in providers
        }
        self._subscribers: List[SnapshotCallback] = []

    # ================================================================
    # EVENTS
    # ================================================================

    def on_adapter_offers(
        self,
        provider: str,
        offers: Iterable[Offer],
        session_token: str,
        skipped: Optional[Dict[SkipReason, int]] = None,
    ) -> bool:
        """Merge one provider's offers. Returns False when the event was discarded."""
        if not self._accepts(provider, session_token):
            return False

        offers = list(offers)
        added = replaced = 0
        for offer in offers:
            signature = offer.signature
            current = self._offers.get(signature)
            if current is None:
                self._offers[signature] = offer
                added += 1
            elif offer.fare.total_price < current.fare.total_price:
                # dict assignment keeps the existing key position
                self._offers[signature] = offer
                replaced += 1

        self._providers[provider] = self._providers[provider].model_copy(update={
            "status": ProviderStatus.SUCCESS,
            "offer_count": len(offers),
            "skipped": dict(skipped or {}),
        })
        logger.info(
            f"{provider}: {len(offers)} offers for session {session_token} "
            f"({added} new, {replaced} cheaper, {sum((skipped or {}).values())} skipped)"
        )
        self._changed()
        return True

    def on_adapter_error(self, provider: str, error: Exception, session_token: str) -> bool:
        """Record a provider failure. Returns False when the event was discarded."""
        if not self._accepts(provider, session_token):
            return False

        if isinstance(error, ProviderError):
            error_code, message = error.error_code, error.message
        else:
            error_code, message = "PROVIDER_ERROR", str(error) or type(error).__name__

        self._providers[provider] = self._providers[provider].model_copy(update={
            "status": ProviderStatus.ERROR,
            "error_type": type(error).__name__,
            "error_code": error_code,
            "error_message": message,
        })
        logger.warning(f"{provider}: failed for session {session_token} ({error_code}: {message})")
        self._changed()
        return True

    def _accepts(self, provider: str, session_token: str) -> bool:
        if self.retired:
            logger.debug(f"{provider}: session {self.session_token} retired, result discarded")
            return False
        if session_token != self.session_token:
            logger.debug(
                f"{provider}: stale result for session {session_token} "
                f"(active {self.session_token}) discarded"
            )
            return False
        outcome = self._providers.get(provider)
        if outcome is None:
            logger.warning(f"{provider}: not part of session {self.session_token}, result ignored")
            return False
        if outcome.is_terminal:
            logger.debug(f"{provider}: already {outcome.status.value}, duplicate result ignored")
            return False
        return True

    # ================================================================
    # READ SIDE
    # ================================================================

    @property
    def responded_count(self) -> int:
        return sum(1 for outcome in self._providers.values() if outcome.is_terminal)

    @property
    def is_complete(self) -> bool:
        return self.responded_count == len(self._providers)

    def snapshot(self) -> ResultSnapshot:
        return ResultSnapshot(
            session_token=self.session_token,
            version=self.version,
            offers=tuple(self._offers.values()),
            providers=dict(self._providers),
            responded_count=self.responded_count,
            provider_count=len(self._providers),
            is_complete=self.is_complete,
        )

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe function"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def retire(self):
        """Superseded by a newer search: drop listeners, ignore further events"""
        self.retired = True
        self._subscribers.clear()

    def _changed(self):
        self.version += 1
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Result subscriber failed for session {self.session_token}")
