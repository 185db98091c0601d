"""
Tests for the price ingestor: success path, validation and fallback policy.
"""

import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError

from aze_price.api.schemas import PriceOrigin, SourcePrices
from aze_price.providers.base import InvalidValueError, MalformedResponseError, NetworkError
from aze_price.services.ingestor import IngestionStage, PriceIngestor, parse_price
from aze_price.services.store import PersistenceError

from .conftest import FakeQuoteProvider, make_observation

FALLBACK = SourcePrices(btc_brl=550000.0, btc_usd=95000.0, usd_brl=5.5)


def make_ingestor(provider, store, observer, clock, divisor=1000.0):
    return PriceIngestor(provider, store, divisor, FALLBACK, observer=observer, clock=clock)


class FailingAppendStore:
    """Delegates reads to a real store but fails every append."""

    def __init__(self, store):
        self._store = store
        self.append_calls = 0

    def append(self, observation):
        self.append_calls += 1
        raise PersistenceError("disk full", "append")

    def latest(self):
        return self._store.latest()


@pytest.mark.asyncio
async def test_successful_cycle_persists_derived_price(provider, store, observer, clock):
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert result.succeeded
    assert result.stage == IngestionStage.DONE
    saved = store.latest()
    assert saved.origin == PriceOrigin.EXTERNAL
    assert saved.timestamp == clock.now
    assert saved.btc_brl == 550000.0
    assert saved.aze_brl == 550.0
    assert saved.aze_usd == 100.0
    assert saved.usd_brl == 5.5
    assert len(observer.events["cycle_succeeded"]) == 1
    assert observer.events["cycle_failed"] == []


@pytest.mark.asyncio
async def test_derived_prices_equal_source_over_divisor(store, observer, clock):
    provider = FakeQuoteProvider(bids={"BTCBRL": "612345.67", "BTCUSD": "111111.11", "USDBRL": "5.51"})
    ingestor = make_ingestor(provider, store, observer, clock, divisor=1000.0)

    await ingestor.run()

    saved = store.latest()
    assert saved.aze_brl == saved.btc_brl / 1000.0
    assert saved.aze_usd == saved.btc_usd / 1000.0


@pytest.mark.asyncio
async def test_network_error_on_empty_store_writes_one_fallback(store, observer, clock):
    provider = FakeQuoteProvider(error=NetworkError("timeout", "awesome_api"))
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert not result.succeeded
    assert result.stage == IngestionStage.RECOVERING
    assert result.failed_stage == IngestionStage.FETCHING
    assert result.error_kind == "network"
    assert result.fallback_used
    assert store.count() == 1
    saved = store.latest()
    assert saved.origin == PriceOrigin.FALLBACK
    assert saved.btc_brl == 550000.0
    assert saved.aze_brl == 550.0
    assert saved.btc_usd == 95000.0
    assert saved.aze_usd == 95.0
    assert saved.usd_brl == 5.5
    assert len(observer.events["fallback_used"]) == 1


@pytest.mark.asyncio
async def test_failure_with_old_observation_writes_nothing(store, observer, clock):
    store.append(make_observation(clock.now - timedelta(days=10)))
    provider = FakeQuoteProvider(error=NetworkError("connection refused", "awesome_api"))
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert not result.fallback_used
    assert result.observation is None
    assert store.count() == 1
    assert observer.events["fallback_used"] == []
    assert len(observer.events["cycle_failed"]) == 1


@pytest.mark.asyncio
async def test_fallback_only_bootstraps_the_series(store, observer, clock):
    provider = FakeQuoteProvider(error=MalformedResponseError("missing BTCBRL", "awesome_api"))
    ingestor = make_ingestor(provider, store, observer, clock)

    for _ in range(3):
        await ingestor.run()
        clock.advance(seconds=30)

    assert store.count() == 1
    assert len(observer.events["fallback_used"]) == 1
    assert ingestor.consecutive_failures == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_bid", ["abc", "", "0", "-1.5", "NaN", "inf"])
async def test_invalid_bid_fails_validation(bad_bid, store, observer, clock):
    store.append(make_observation(clock.now - timedelta(minutes=1)))
    provider = FakeQuoteProvider(bids={"BTCBRL": "550000", "BTCUSD": bad_bid, "USDBRL": "5.5"})
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert result.failed_stage == IngestionStage.VALIDATING
    assert result.error_kind == "invalid_value"
    assert store.count() == 1
    assert observer.events["cycle_failed"][0].stage == "validating"


@pytest.mark.asyncio
async def test_missing_pair_in_quote_set_is_malformed(store, observer, clock):
    provider = FakeQuoteProvider(bids={"BTCBRL": "550000", "BTCUSD": "100000"})
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert result.error_kind == "malformed_response"
    assert result.fallback_used


@pytest.mark.asyncio
async def test_persistence_error_is_reported_not_raised(store, observer, clock, provider):
    failing = FailingAppendStore(store)
    ingestor = make_ingestor(provider, failing, observer, clock)

    result = await ingestor.run()

    assert result.failed_stage == IngestionStage.PERSISTING
    assert result.error_kind == "persistence"
    assert not result.fallback_used
    # the external append and the fallback append both failed
    assert failing.append_calls == 2
    assert [event.stage for event in observer.events["cycle_failed"]] == ["persisting", "recovering"]


@pytest.mark.asyncio
async def test_unexpected_error_is_contained(store, observer, clock):
    provider = FakeQuoteProvider(error=RuntimeError("boom"))
    ingestor = make_ingestor(provider, store, observer, clock)

    result = await ingestor.run()

    assert result.error_kind == "unexpected"
    assert result.fallback_used


@pytest.mark.asyncio
async def test_success_resets_failure_counter(store, observer, clock):
    provider = FakeQuoteProvider(error=NetworkError("timeout"))
    ingestor = make_ingestor(provider, store, observer, clock)

    await ingestor.run()
    provider.error = None
    clock.advance(seconds=30)
    await ingestor.run()

    status = ingestor.get_status()
    assert status["total_cycles"] == 2
    assert status["consecutive_failures"] == 0
    assert status["last_success_at"] == clock.now


def test_parse_price_accepts_decimal_strings():
    assert parse_price("btc_brl", "550000.00") == 550000.0


def test_parse_price_rejects_non_positive():
    with pytest.raises(InvalidValueError) as exc_info:
        parse_price("usd_brl", "0")

    assert exc_info.value.field == "usd_brl"
    assert exc_info.value.value == "0"


@pytest.mark.parametrize("divisor", [0, float("inf")])
def test_non_positive_or_non_finite_divisor_is_rejected(divisor, provider, store):
    with pytest.raises(ValueError):
        PriceIngestor(provider, store, divisor, FALLBACK)


@pytest.mark.parametrize("field", ["btc_brl", "btc_usd", "usd_brl"])
def test_fallback_prices_must_be_finite(field):
    values = FALLBACK.model_dump()
    values[field] = float("inf")

    with pytest.raises(ValidationError):
        SourcePrices(**values)


class ThreadRecordingStore:
    """Delegates to a real store and records which thread each call ran on."""

    def __init__(self, store):
        self._store = store
        self.threads = []

    def append(self, observation):
        self.threads.append(threading.get_ident())
        return self._store.append(observation)

    def latest(self):
        self.threads.append(threading.get_ident())
        return self._store.latest()


@pytest.mark.asyncio
async def test_store_calls_run_off_the_event_loop_thread(store, observer, clock):
    recording = ThreadRecordingStore(store)
    ingestor = make_ingestor(FakeQuoteProvider(error=NetworkError("down", "fake")), recording, observer, clock)

    result = await ingestor.run()
    await make_ingestor(FakeQuoteProvider(), recording, observer, clock).run()

    assert result.fallback_used
    assert len(recording.threads) == 3
    assert threading.get_ident() not in recording.threads
