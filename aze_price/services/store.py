"""
Time-series store for AZE Price Service.
Append-only SQL log of price observations with range, latest and cutoff-deletion queries.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..api.schemas import PriceObservation
from ..core.logging_config import create_logger
from ..models import PriceHistory

logger = create_logger(__name__)


class PersistenceError(Exception):
    """Raised when the store cannot read or write observations."""

    kind = "persistence"

    def __init__(self, message: str, operation: str):
        self.message = message
        self.operation = operation
        super().__init__(self.message)


class PriceHistoryStore:
    """Repository over the price_history table.

    Every operation runs in its own session; appends commit a single row so
    concurrent readers never observe a partial record.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Price store operation failed", extra={
                "operation": operation,
                "error": str(e)
            })
            raise PersistenceError(f"Failed to {operation} price history: {str(e)}", operation) from e
        finally:
            session.close()

    def append(self, observation: PriceObservation) -> PriceObservation:
        """Persist one observation and return it with its assigned id."""
        with self._session("append") as session:
            row = PriceHistory(
                timestamp=observation.timestamp,
                btc_brl=observation.btc_brl,
                aze_brl=observation.aze_brl,
                btc_usd=observation.btc_usd,
                aze_usd=observation.aze_usd,
                usd_brl=observation.usd_brl,
                origin=observation.origin.value,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return PriceObservation.model_validate(row)

    def latest(self) -> Optional[PriceObservation]:
        """Most recent observation by timestamp, or None when empty."""
        with self._session("read latest") as session:
            row = session.query(PriceHistory).order_by(
                desc(PriceHistory.timestamp), desc(PriceHistory.id)
            ).first()
            return PriceObservation.model_validate(row) if row is not None else None

    def range_from(self, start: datetime) -> List[PriceObservation]:
        """All observations with timestamp >= start, oldest first."""
        with self._session("read range") as session:
            rows = session.query(PriceHistory).filter(
                PriceHistory.timestamp >= start
            ).order_by(PriceHistory.timestamp, PriceHistory.id).all()
            return [PriceObservation.model_validate(row) for row in rows]

    def delete_before(self, cutoff: datetime) -> int:
        """Delete every observation strictly older than cutoff; returns the number removed."""
        with self._session("delete") as session:
            deleted = session.query(PriceHistory).filter(
                PriceHistory.timestamp < cutoff
            ).delete(synchronize_session=False)
            session.commit()
            return deleted

    def count(self) -> int:
        """Number of stored observations."""
        with self._session("count") as session:
            return session.query(PriceHistory).count()
