"""
Tests for search orchestration: concurrency, superseding, cancellation and expiry.
"""
import asyncio

import pytest

from app.core.constants import ProviderStatus
from app.core.exceptions import (
    OfferNotFoundError,
    ProviderRejected,
    SearchNotFoundError,
    SearchSupersededError,
    SessionCreationError,
    ValidationError,
)
from app.models.flight import SearchSession
from app.services.flight_search_service import FlightSearchService
from app.services.intent_builder import SearchIntentBuilder
from app.services.offer_projector import FilterState
from app.services.session_initiator import SearchSessionInitiator
from integrations.flight_hub import AdapterReport, ProviderAdapter, build_adapters

from conftest import amadeus_record, make_offer, sabre_record


ONE_WAY = {"trip_type": "oneWay", "from": "Dhaka (DAC)", "to": "Cox's Bazar (CXB)", "depart": "2026-02-15"}


class FakeInitiator:
    """Hands out folder-1, folder-2, ...; optional per-call gates hold a call open"""

    def __init__(self, gates=None, error=None):
        self.calls = 0
        self.gates = list(gates or [])
        self.error = error

    async def initiate(self, intent):
        self.calls += 1
        number = self.calls
        if self.error:
            raise self.error
        if self.gates:
            gate = self.gates.pop(0)
            if gate is not None:
                await gate.wait()
        return SearchSession(token=f"folder-{number}", intent=intent)


class FakeAdapter:
    def __init__(self, name, offers=(), error=None, gate=None):
        self.name = name
        self.offers = list(offers)
        self.error = error
        self.gate = gate
        self.sessions = []
        self.cancelled = []

    async def fetch(self, session):
        self.sessions.append(session.token)
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled.append(session.token)
            raise
        if self.error:
            raise self.error
        return AdapterReport(provider=self.name, offers=tuple(self.offers))


class SleepyAdapter(ProviderAdapter):
    """Never answers within its timeout"""

    name = "sabre"

    async def _fetch_records(self, session):
        await asyncio.sleep(5)
        return []

    def parse_record(self, record, session):
        raise NotImplementedError


def make_service(adapters, initiator=None, **kwargs):
    kwargs.setdefault("ttl_seconds", 0)
    return FlightSearchService(
        builder=SearchIntentBuilder(),
        initiator=initiator or FakeInitiator(),
        adapters=adapters,
        **kwargs,
    )


class TestStartSearch:

    @pytest.mark.asyncio
    async def test_timeout_of_one_provider_keeps_the_others(self):
        offers = [make_offer("amadeus", price=100 + i, departure=f"2026-02-15T0{6 + i}:00:00") for i in range(3)]
        service = make_service([
            FakeAdapter("amadeus", offers=offers),
            SleepyAdapter(timeout_seconds=0.05),
        ])

        session = await service.start_search(ONE_WAY, "c1")
        snapshot = await service.wait_for_completion(session.token)

        assert [o.id for o in snapshot.offers] == [o.id for o in offers]
        assert snapshot.providers["amadeus"].status == ProviderStatus.SUCCESS
        assert snapshot.providers["sabre"].status == ProviderStatus.ERROR
        assert snapshot.providers["sabre"].error_type == "ProviderTimeout"
        assert snapshot.is_complete

    @pytest.mark.asyncio
    async def test_out_of_order_multi_city_never_opens_a_session(self):
        initiator = FakeInitiator()
        adapter = FakeAdapter("amadeus")
        service = make_service([adapter], initiator=initiator)

        with pytest.raises(ValidationError):
            await service.start_search({
                "trip_type": "multiCity",
                "segments": [
                    {"from": "DAC", "to": "CGP", "depart": "2026-04-05"},
                    {"from": "CGP", "to": "CXB", "depart": "2026-04-01"},
                ],
            }, "c1")

        assert initiator.calls == 0
        assert adapter.sessions == []

    @pytest.mark.asyncio
    async def test_session_failure_is_fatal(self):
        adapter = FakeAdapter("amadeus")
        service = make_service([adapter], initiator=FakeInitiator(error=SessionCreationError()))

        with pytest.raises(SessionCreationError):
            await service.start_search(ONE_WAY, "c1")

        assert adapter.sessions == []

    @pytest.mark.asyncio
    async def test_provider_errors_become_status(self):
        service = make_service([
            FakeAdapter("amadeus", error=ProviderRejected("amadeus", upstream_status=502)),
            FakeAdapter("sabre", error=RuntimeError("adapter bug")),
        ])

        session = await service.start_search(ONE_WAY, "c1")
        snapshot = await service.wait_for_completion(session.token)

        assert snapshot.offers == ()
        assert snapshot.providers["amadeus"].error_code == "PROVIDER_REJECTED"
        assert snapshot.providers["sabre"].error_type == "RuntimeError"

    @pytest.mark.asyncio
    async def test_start_returns_before_providers_answer(self):
        gate = asyncio.Event()
        service = make_service([FakeAdapter("amadeus", offers=[make_offer()], gate=gate)])

        session = await service.start_search(ONE_WAY, "c1")
        pending = service.get_snapshot(session.token)

        assert pending.offers == ()
        assert not pending.is_complete

        gate.set()
        done = await service.wait_for_completion(session.token)
        assert len(done.offers) == 1


class TestSuperseding:

    @pytest.mark.asyncio
    async def test_new_search_replaces_the_old_one(self):
        gate = asyncio.Event()
        adapter = FakeAdapter("amadeus", offers=[make_offer()], gate=gate)
        service = make_service([adapter])

        first = await service.start_search(ONE_WAY, "c1")
        await asyncio.sleep(0.01)
        second = await service.start_search(ONE_WAY, "c1")
        await asyncio.sleep(0.01)

        assert adapter.cancelled == [first.token]
        with pytest.raises(SearchNotFoundError):
            service.get_snapshot(first.token)

        gate.set()
        snapshot = await service.wait_for_completion(second.token)
        assert snapshot.session_token == "folder-2"
        assert len(snapshot.offers) == 1

    @pytest.mark.asyncio
    async def test_channels_are_independent(self):
        service = make_service([FakeAdapter("amadeus", offers=[make_offer()])])

        first = await service.start_search(ONE_WAY, "c1")
        second = await service.start_search(ONE_WAY, "c2")

        assert len((await service.wait_for_completion(first.token)).offers) == 1
        assert len((await service.wait_for_completion(second.token)).offers) == 1

    @pytest.mark.asyncio
    async def test_late_session_is_discarded(self):
        slow_gate = asyncio.Event()
        initiator = FakeInitiator(gates=[slow_gate, None])
        adapter = FakeAdapter("amadeus", offers=[make_offer()])
        service = make_service([adapter], initiator=initiator)

        slow = asyncio.create_task(service.start_search(ONE_WAY, "c1"))
        await asyncio.sleep(0.01)
        fast = await service.start_search(ONE_WAY, "c1")
        slow_gate.set()

        with pytest.raises(SearchSupersededError):
            await slow

        snapshot = await service.wait_for_completion(fast.token)
        assert adapter.sessions == [fast.token]
        assert len(snapshot.offers) == 1
        with pytest.raises(SearchNotFoundError):
            service.get_snapshot("folder-1")

    @pytest.mark.asyncio
    async def test_cancel_abandons_channel(self):
        gate = asyncio.Event()
        adapter = FakeAdapter("amadeus", offers=[make_offer()], gate=gate)
        service = make_service([adapter])

        session = await service.start_search(ONE_WAY, "c1")
        await asyncio.sleep(0.01)

        assert service.cancel("c1") is True
        await asyncio.sleep(0.01)
        assert adapter.cancelled == [session.token]
        with pytest.raises(SearchNotFoundError):
            service.get_snapshot(session.token)
        assert service.cancel("c1") is False


class TestResults:

    @pytest.mark.asyncio
    async def test_subscribers_get_snapshots_and_options(self):
        events = []
        service = make_service([
            FakeAdapter("amadeus", offers=[make_offer(price=300)]),
            FakeAdapter("sabre", offers=[make_offer("sabre", price=250, stops=1)]),
        ])
        service.subscribe("c1", lambda snapshot, options: events.append((snapshot, options)))

        session = await service.start_search(ONE_WAY, "c1")
        await service.wait_for_completion(session.token)

        assert [snapshot.version for snapshot, _ in events] == [1, 2]
        last_snapshot, last_options = events[-1]
        assert last_snapshot.is_complete
        assert last_options.price_min == 250
        assert last_options.price_max == 300

    @pytest.mark.asyncio
    async def test_projection_and_offer_lookup(self):
        cheap = make_offer(price=90, stops=1, offer_id="cheap")
        direct = make_offer(price=120, offer_id="direct")
        service = make_service([FakeAdapter("amadeus", offers=[direct, cheap])])

        session = await service.start_search(ONE_WAY, "c1")
        await service.wait_for_completion(session.token)

        assert [o.id for o in service.project(session.token)] == ["cheap", "direct"]
        assert [o.id for o in service.project(session.token, FilterState(stops={"Non-Stop"}))] == ["direct"]
        assert service.get_offer(session.token, "direct") == direct
        assert service.get_filter_options(session.token).price_min == 90
        with pytest.raises(OfferNotFoundError):
            service.get_offer(session.token, "nope")

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        service = make_service([])

        with pytest.raises(SearchNotFoundError) as exc_info:
            service.get_snapshot("folder-404")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_idle_sessions_expire(self):
        now = [0.0]
        service = make_service(
            [FakeAdapter("amadeus", offers=[make_offer()])],
            ttl_seconds=10,
            clock=lambda: now[0],
        )

        session = await service.start_search(ONE_WAY, "c1")
        await service.wait_for_completion(session.token)

        now[0] = 8.0
        service.get_snapshot(session.token)
        now[0] = 17.0
        service.get_snapshot(session.token)
        now[0] = 28.0

        with pytest.raises(SearchNotFoundError):
            service.get_snapshot(session.token)


class TestAgainstHub:

    @pytest.mark.asyncio
    async def test_full_search_through_hub(self, hub, hub_stub):
        hub_stub.respond("/search", {"success": True, "folder": "f-77"})
        hub_stub.respond("/search/amadeus", {"data": [amadeus_record()], "meta": {}})
        hub_stub.respond("/search/sabre", [sabre_record()])
        service = FlightSearchService(
            builder=SearchIntentBuilder(),
            initiator=SearchSessionInitiator(hub=hub),
            adapters=build_adapters(["amadeus", "sabre"], hub=hub),
            ttl_seconds=0,
        )

        session = await service.start_search(ONE_WAY, "c1")
        snapshot = await service.wait_for_completion(session.token)

        assert session.token == "f-77"
        assert {o.provider for o in snapshot.offers} == {"amadeus", "sabre"}
        assert snapshot.summary == "2 of 2 providers responded"
        sabre_call = [payload for path, payload in hub_stub.calls if path == "/search/sabre"]
        assert sabre_call == [{"folder": "f-77", "flight_type": "oneWay"}]

        await service.close()
        await hub.close()
