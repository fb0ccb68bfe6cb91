"""
Keyhost Flights - Flight Search Service
Runs searches end to end: intent, session, concurrent adapters, live results
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from app.core.config import settings
from app.core.exceptions import (
    OfferNotFoundError,
    ProviderError,
    SearchNotFoundError,
    SearchSupersededError,
)
from app.models.flight import Offer, SearchSession
from app.services.intent_builder import SearchIntentBuilder, intent_builder
from app.services.offer_aggregator import AggregationEngine, ResultSnapshot
from app.services.offer_projector import (
    FilterOptions,
    FilterState,
    derive_filter_options,
    project,
)
from app.services.session_initiator import SearchSessionInitiator, session_initiator
from integrations.flight_hub import ProviderAdapter, build_adapters


ChannelCallback = Callable[[ResultSnapshot, FilterOptions], None]


class SearchChannel:
    """
    Per-client slot holding at most one active search.

    Owns the active session, its engine and adapter tasks, and the
    listeners that receive every result change together with fresh
    filter options.
    """

    def __init__(self, channel_id: str, clock: Callable[[], float] = time.monotonic):
        self.channel_id = channel_id
        self.session: Optional[SearchSession] = None
        self.engine: Optional[AggregationEngine] = None
        self.tasks: List[asyncio.Task] = []
        self.generation = 0
        self._subscribers: List[ChannelCallback] = []
        self._clock = clock
        self.last_access = clock()

    def touch(self):
        self.last_access = self._clock()

    def begin(self) -> int:
        """Supersede whatever is running and reserve a new generation"""
        self.supersede()
        self.generation += 1
        return self.generation

    def supersede(self):
        for task in self.tasks:
            if not task.done():
                task.cancel()
        self.tasks = []
        if self.engine is not None:
            self.engine.retire()
        self.engine = None
        self.session = None

    def activate(self, session: SearchSession, engine: AggregationEngine):
        self.session = session
        self.engine = engine
        engine.subscribe(self._publish)
        self.touch()

    def subscribe(self, callback: ChannelCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, snapshot: ResultSnapshot):
        if not self._subscribers:
            return
        options = derive_filter_options(snapshot)
        for callback in list(self._subscribers):
            try:
                callback(snapshot, options)
            except Exception:
                logger.exception(f"Channel {self.channel_id} subscriber failed")


class FlightSearchService:
    """
    Flight search orchestration.

    One channel per client; starting a search on a channel supersedes its
    previous search (tasks cancelled, engine retired, token forgotten).
    Adapters run concurrently as asyncio tasks and report into the engine
    as they finish.
    """

    def __init__(
        self,
        builder: Optional[SearchIntentBuilder] = None,
        initiator: Optional[SearchSessionInitiator] = None,
        adapters: Optional[Sequence[ProviderAdapter]] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.builder = builder or intent_builder
        self.initiator = initiator or session_initiator
        self.adapters = list(adapters) if adapters is not None \
            else build_adapters(settings.ENABLED_FLIGHT_PROVIDERS)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SEARCH_SESSION_TTL_SECONDS
        self._clock = clock
        self._channels: Dict[str, SearchChannel] = {}
        self._sessions: Dict[str, SearchChannel] = {}

    @property
    def provider_names(self) -> List[str]:
        return [adapter.name for adapter in self.adapters]

    # ================================================================
    # SEARCH LIFECYCLE
    # ================================================================

    async def start_search(self, raw_input: Mapping[str, Any], channel_id: str) -> SearchSession:
        """
        Validate input, open a hub session and fire every adapter.

        Returns as soon as the adapter tasks are scheduled; results arrive
        through the channel's engine.

        Raises:
            ValidationError: input rejected, nothing was started
            SessionCreationError: hub refused the session
            SearchSupersededError: a newer search on the channel won the race
        """
        self._evict_expired()
        intent = self.builder.build(raw_input)

        channel = self._channel(channel_id)
        self._forget(channel)
        generation = channel.begin()

        session = await self.initiator.initiate(intent)

        if channel.generation != generation or self._channels.get(channel_id) is not channel:
            logger.info(f"Session {session.token} discarded: channel {channel_id} moved on")
            raise SearchSupersededError(channel_id)

        engine = AggregationEngine(session.token, self.provider_names)
        channel.activate(session, engine)
        self._sessions[session.token] = channel

        for adapter in self.adapters:
            task = asyncio.create_task(
                self._run_adapter(adapter, session, engine),
                name=f"{adapter.name}:{session.token}",
            )
            channel.tasks.append(task)

        logger.info(
            f"Search {session.token} started on channel {channel_id} "
            f"with providers {', '.join(self.provider_names) or '(none)'}"
        )
        return session

    async def _run_adapter(self, adapter: ProviderAdapter, session: SearchSession, engine: AggregationEngine):
        try:
            report = await adapter.fetch(session)
        except asyncio.CancelledError:
            logger.debug(f"{adapter.name}: cancelled for session {session.token}")
            raise
        except ProviderError as e:
            engine.on_adapter_error(adapter.name, e, session.token)
            return
        except Exception as e:
            logger.exception(f"{adapter.name}: unexpected failure for session {session.token}")
            engine.on_adapter_error(adapter.name, e, session.token)
            return

        engine.on_adapter_offers(adapter.name, report.offers, session.token, report.skipped)

    async def wait_for_completion(self, token: str, timeout: Optional[float] = None) -> ResultSnapshot:
        """Wait until every provider has answered (or the timeout passes)"""
        channel = self._lookup(token)
        engine = channel.engine
        pending = [task for task in channel.tasks if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        return engine.snapshot()

    def cancel(self, channel_id: str) -> bool:
        """Abandon the channel's active search. Returns False for unknown channels."""
        channel = self._channels.pop(channel_id, None)
        if channel is None:
            return False
        self._forget(channel)
        channel.supersede()
        channel.generation += 1
        logger.info(f"Channel {channel_id} cancelled")
        return True

    def subscribe(self, channel_id: str, callback: ChannelCallback) -> Callable[[], None]:
        """Listen to result changes of whatever search the channel runs"""
        return self._channel(channel_id).subscribe(callback)

    async def close(self):
        """Cancel every running search"""
        tasks = [task for channel in self._channels.values() for task in channel.tasks]
        for channel_id in list(self._channels):
            self.cancel(channel_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ================================================================
    # RESULTS
    # ================================================================

    def get_snapshot(self, token: str) -> ResultSnapshot:
        return self._lookup(token).engine.snapshot()

    def get_filter_options(self, token: str) -> FilterOptions:
        return derive_filter_options(self.get_snapshot(token))

    def project(self, token: str, filters: Optional[FilterState] = None) -> List[Offer]:
        return project(self.get_snapshot(token), filters)

    def get_offer(self, token: str, offer_id: str) -> Offer:
        offer = self.get_snapshot(token).find_offer(offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        return offer

    # ================================================================
    # CHANNELS
    # ================================================================

    def _channel(self, channel_id: str) -> SearchChannel:
        channel = self._channels.get(channel_id)
        if channel is None:
            channel = SearchChannel(channel_id, clock=self._clock)
            self._channels[channel_id] = channel
        channel.touch()
        return channel

    def _lookup(self, token: str) -> SearchChannel:
        self._evict_expired()
        channel = self._sessions.get(token)
        if channel is None or channel.engine is None or channel.session is None \
                or channel.session.token != token:
            raise SearchNotFoundError(token)
        channel.touch()
        return channel

    def _forget(self, channel: SearchChannel):
        if channel.session is not None:
            self._sessions.pop(channel.session.token, None)

    def _evict_expired(self):
        if self.ttl_seconds <= 0:
            return
        now = self._clock()
        expired = [
            channel_id for channel_id, channel in self._channels.items()
            if now - channel.last_access > self.ttl_seconds
        ]
        for channel_id in expired:
            logger.info(f"Channel {channel_id} idle for over {self.ttl_seconds:g}s, evicted")
            self.cancel(channel_id)


# Singleton instance
flight_search_service = FlightSearchService()
