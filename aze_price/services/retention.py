"""
Retention manager for AZE Price Service.
Deletes observations older than the retention horizon.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel

from ..core.config import RETENTION_DAYS
from ..core.logging_config import create_logger
from .events import CleanupCompleted, CleanupFailed, LoggingObserver, PriceEventObserver
from .store import PersistenceError, PriceHistoryStore

logger = create_logger(__name__)

# Rough size of one price_history row, used for the space estimate
AVG_RECORD_BYTES = 200


class CleanupResult(BaseModel):
    """Outcome of one retention run."""
    cutoff: datetime
    deleted: int = 0
    count_before: Optional[int] = None
    count_after: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def estimated_bytes_freed(self) -> int:
        return self.deleted * AVG_RECORD_BYTES


class RetentionManager:
    """Removes price history older than the horizon. Safe to run repeatedly."""

    def __init__(
        self,
        store: PriceHistoryStore,
        horizon: timedelta = timedelta(days=RETENTION_DAYS),
        observer: Optional[PriceEventObserver] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._horizon = horizon
        self._observer = observer or LoggingObserver()
        self._clock = clock

    @property
    def horizon(self) -> timedelta:
        return self._horizon

    def run(self) -> CleanupResult:
        """Delete everything older than now - horizon. Store failures are reported, not raised."""
        cutoff = self._clock() - self._horizon

        count_before = self._count("before")

        try:
            deleted = self._store.delete_before(cutoff)
        except PersistenceError as e:
            self._observer.cleanup_failed(CleanupFailed(cutoff=cutoff, message=str(e)))
            return CleanupResult(cutoff=cutoff, count_before=count_before, error=str(e))

        count_after = self._count("after")

        self._observer.cleanup_completed(CleanupCompleted(
            cutoff=cutoff,
            deleted=deleted,
            count_before=count_before,
            count_after=count_after,
        ))
        return CleanupResult(
            cutoff=cutoff,
            deleted=deleted,
            count_before=count_before,
            count_after=count_after,
        )

    def _count(self, when: str) -> Optional[int]:
        """Row count for reporting only; a failed count does not fail the run."""
        try:
            return self._store.count()
        except PersistenceError as e:
            logger.warning("Could not count price history", extra={"when": when, "error": str(e)})
            return None
