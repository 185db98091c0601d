"""
Tests for the price history store.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from aze_price.api.schemas import PriceOrigin
from aze_price.services.store import PersistenceError, PriceHistoryStore

from .conftest import NOW, make_observation


def test_latest_on_empty_store_is_none(store):
    assert store.latest() is None
    assert store.count() == 0


def test_append_assigns_id_and_round_trips_fields(store):
    saved = store.append(make_observation(NOW, aze_brl=550.0, origin=PriceOrigin.FALLBACK))

    assert saved.id is not None
    assert saved.timestamp == NOW
    assert saved.btc_brl == 550000.0
    assert saved.aze_brl == 550.0
    assert saved.origin == PriceOrigin.FALLBACK


def test_latest_returns_most_recent_by_timestamp(store):
    store.append(make_observation(NOW, aze_brl=3.0))
    store.append(make_observation(NOW - timedelta(hours=1), aze_brl=1.0))
    store.append(make_observation(NOW - timedelta(minutes=30), aze_brl=2.0))

    assert store.latest().aze_brl == 3.0


def test_range_from_is_inclusive_and_ascending(store):
    for minutes, value in [(10, 1.0), (5, 2.0), (20, 0.5), (0, 3.0)]:
        store.append(make_observation(NOW - timedelta(minutes=minutes), aze_brl=value))

    result = store.range_from(NOW - timedelta(minutes=10))

    assert [obs.aze_brl for obs in result] == [1.0, 2.0, 3.0]
    assert [obs.timestamp for obs in result] == sorted(obs.timestamp for obs in result)


def test_range_from_without_matches_is_empty(store):
    store.append(make_observation(NOW - timedelta(days=1)))

    assert store.range_from(NOW - timedelta(hours=1)) == []


def test_delete_before_is_strict_and_idempotent(store):
    cutoff = NOW - timedelta(days=7)
    store.append(make_observation(cutoff - timedelta(seconds=1)))
    store.append(make_observation(cutoff - timedelta(days=3)))
    store.append(make_observation(cutoff))
    store.append(make_observation(NOW))

    assert store.delete_before(cutoff) == 2
    assert store.delete_before(cutoff) == 0
    assert store.count() == 2
    assert store.range_from(cutoff)[0].timestamp == cutoff


def test_storage_failures_raise_persistence_error():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    store = PriceHistoryStore(lambda: session)

    with pytest.raises(PersistenceError) as exc_info:
        store.latest()

    assert exc_info.value.operation == "read latest"
    session.rollback.assert_called_once()
    session.close.assert_called_once()
