"""
Window aggregation service for AZE Price Service.
Computes current/first/min/max/avg per price field over a trailing window.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from ..api.schemas import BrlStats, FieldStats, PriceObservation, UsdStats, WindowStats
from ..core.logging_config import create_logger
from .store import PriceHistoryStore

logger = create_logger(__name__)

# Window tokens exposed on the REST surface, in minutes
WINDOW_MINUTES: Dict[str, int] = {
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "24h": 1440,
    "7d": 10080,
}


def parse_window(token: Optional[str]) -> Optional[timedelta]:
    """Map a window token (5m, 15m, 30m, 1h, 24h, 7d) to a duration; None if unrecognized."""
    if not token:
        return None
    minutes = WINDOW_MINUTES.get(token.strip())
    if minutes is None:
        return None
    return timedelta(minutes=minutes)


def window_label(window: timedelta) -> str:
    """Label a window by its length in minutes, e.g. 60m."""
    minutes = window.total_seconds() / 60
    if minutes.is_integer():
        return f"{int(minutes)}m"
    return f"{minutes:g}m"


def compute_field_stats(values: Sequence[float]) -> FieldStats:
    """Statistics for one field over values in ascending time order."""
    if not values:
        raise ValueError("cannot compute statistics over an empty series")
    return FieldStats(
        current=values[-1],
        first=values[0],
        min=min(values),
        max=max(values),
        avg=sum(values) / len(values),
    )


class PriceAggregator:
    """Answers windowed statistics queries against the price store."""

    def __init__(self, store: PriceHistoryStore, clock: Callable[[], datetime] = datetime.utcnow):
        self._store = store
        self._clock = clock

    def query(self, window: timedelta) -> Optional[WindowStats]:
        """
        Aggregate every observation newer than now - window.

        Args:
            window: Trailing window length, must be positive

        Returns:
            WindowStats, or None when the window holds no observations

        Raises:
            ValueError: If window is not positive
            PersistenceError: If the store cannot be read
        """
        if window <= timedelta(0):
            raise ValueError(f"window must be positive, got {window}")

        start = self._clock() - window
        observations = self._store.range_from(start)

        if not observations:
            logger.debug("No observations in window", extra={
                "window": window_label(window),
                "start": start.isoformat()
            })
            return None

        return build_window_stats(window_label(window), observations)


def build_window_stats(label: str, observations: List[PriceObservation]) -> WindowStats:
    """Bundle per-field statistics for observations in ascending time order."""

    def stats(field: str) -> FieldStats:
        return compute_field_stats([getattr(obs, field) for obs in observations])

    return WindowStats(
        window=label,
        count=len(observations),
        start_time=observations[0].timestamp,
        end_time=observations[-1].timestamp,
        brl=BrlStats(aze=stats("aze_brl"), btc=stats("btc_brl")),
        usd=UsdStats(aze=stats("aze_usd"), btc=stats("btc_usd"), to_brl=stats("usd_brl")),
        prices=observations,
    )
