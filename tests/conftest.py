"""
Shared fixtures for AZE Price Service tests.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from aze_price.api.schemas import CurrencyQuote, DataProvider, PriceObservation, PriceOrigin, QuoteSet
from aze_price.core.config import Settings
from aze_price.database import create_db_engine, create_session_factory, init_db
from aze_price.providers.base import BaseQuoteProvider
from aze_price.services.events import PriceEventObserver
from aze_price.services.store import PriceHistoryStore


NOW = datetime(2026, 10, 19, 12, 0, 0)

DEFAULT_BIDS = {
    "BTCBRL": "550000.00",
    "BTCUSD": "100000.00",
    "USDBRL": "5.50",
}


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeQuoteProvider(BaseQuoteProvider):
    """Quote provider serving canned bids or raising a configured error."""

    def __init__(self, bids: Optional[Dict[str, str]] = None, error: Optional[Exception] = None):
        super().__init__(name="fake", base_url="http://quotes.test")
        self.bids = dict(DEFAULT_BIDS if bids is None else bids)
        self.error = error
        self.calls = 0

    def get_provider_name(self) -> DataProvider:
        return DataProvider.AWESOME_API

    async def fetch(self) -> QuoteSet:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return QuoteSet(
            provider=self.get_provider_name(),
            quotes={
                pair: CurrencyQuote(code=pair[:3], codein=pair[3:], bid=bid)
                for pair, bid in self.bids.items()
            },
        )


class RecordingObserver(PriceEventObserver):
    """Collects events by hook name."""

    def __init__(self):
        self.events: Dict[str, List] = {
            "cycle_succeeded": [],
            "cycle_failed": [],
            "fallback_used": [],
            "cleanup_completed": [],
            "cleanup_failed": [],
        }

    def cycle_succeeded(self, event):
        self.events["cycle_succeeded"].append(event)

    def cycle_failed(self, event):
        self.events["cycle_failed"].append(event)

    def fallback_used(self, event):
        self.events["fallback_used"].append(event)

    def cleanup_completed(self, event):
        self.events["cleanup_completed"].append(event)

    def cleanup_failed(self, event):
        self.events["cleanup_failed"].append(event)


def make_observation(
    timestamp: datetime,
    aze_brl: float = 550.0,
    divisor: float = 1000.0,
    btc_usd: float = 100000.0,
    usd_brl: float = 5.5,
    origin: PriceOrigin = PriceOrigin.EXTERNAL,
) -> PriceObservation:
    """Observation whose BRL prices are driven by aze_brl."""
    return PriceObservation(
        timestamp=timestamp,
        btc_brl=aze_brl * divisor,
        aze_brl=aze_brl,
        btc_usd=btc_usd,
        aze_usd=btc_usd / divisor,
        usd_brl=usd_brl,
        origin=origin,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine):
    return PriceHistoryStore(create_session_factory(db_engine))


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def provider():
    return FakeQuoteProvider()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        polling_interval_ms=600000,
        btc_divisor=1000,
        fallback_btc_brl=550000,
        fallback_btc_usd=95000,
        fallback_usd_brl=5.5,
        stale_threshold_seconds=120,
        awesome_api_token=None,
    )
