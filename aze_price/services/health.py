"""
Health monitor for AZE Price Service.
Classifies the price series as healthy or degraded by the age of its latest observation.
"""

import math
from datetime import datetime, timedelta
from typing import Callable

from ..api.schemas import HealthState, HealthStatus
from ..core.logging_config import create_logger
from .store import PersistenceError, PriceHistoryStore

logger = create_logger(__name__)


class HealthMonitor:
    """Healthy iff the latest observation is younger than the stale threshold."""

    def __init__(
        self,
        store: PriceHistoryStore,
        stale_threshold: timedelta = timedelta(seconds=120),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._stale_threshold = stale_threshold
        self._clock = clock

    def check(self) -> HealthStatus:
        try:
            latest = self._store.latest()
        except PersistenceError as e:
            logger.warning("Health check could not read the price store", extra={"error": str(e)})
            return HealthStatus(status=HealthState.DEGRADED, store_available=False)

        if latest is None:
            return HealthStatus(status=HealthState.DEGRADED)

        age = self._clock() - latest.timestamp
        status = HealthState.HEALTHY if age < self._stale_threshold else HealthState.DEGRADED

        return HealthStatus(
            status=status,
            age_seconds=math.floor(age.total_seconds()),
            last_update=latest.timestamp,
            last_origin=latest.origin,
        )
