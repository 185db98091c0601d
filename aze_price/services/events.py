"""
Engine events for AZE Price Service.
Ingestion and retention report what happened through an observer instead of logging inline.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..api.schemas import PriceObservation
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class CycleSucceeded(BaseModel):
    observation: PriceObservation


class CycleFailed(BaseModel):
    stage: str = Field(..., description="Ingestion stage that failed")
    error_kind: str = Field(..., description="network, malformed_response, invalid_value, persistence or unexpected")
    message: str
    status_code: Optional[int] = Field(None, description="Upstream HTTP status, when there was one")


class FallbackUsed(BaseModel):
    observation: PriceObservation


class CleanupCompleted(BaseModel):
    cutoff: datetime
    deleted: int
    count_before: Optional[int] = None
    count_after: Optional[int] = None


class CleanupFailed(BaseModel):
    cutoff: datetime
    message: str


class PriceEventObserver:
    """Receives engine events. Every hook is a no-op by default."""

    def cycle_succeeded(self, event: CycleSucceeded) -> None:
        pass

    def cycle_failed(self, event: CycleFailed) -> None:
        pass

    def fallback_used(self, event: FallbackUsed) -> None:
        pass

    def cleanup_completed(self, event: CleanupCompleted) -> None:
        pass

    def cleanup_failed(self, event: CleanupFailed) -> None:
        pass


class LoggingObserver(PriceEventObserver):
    """Default observer: writes every event to the service log."""

    def cycle_succeeded(self, event: CycleSucceeded) -> None:
        obs = event.observation
        logger.info("Price saved", extra={
            "btc_brl": obs.btc_brl,
            "btc_usd": obs.btc_usd,
            "usd_brl": obs.usd_brl,
            "aze_brl": obs.aze_brl,
            "aze_usd": obs.aze_usd,
            "timestamp": obs.timestamp.isoformat()
        })

    def cycle_failed(self, event: CycleFailed) -> None:
        logger.error("Price fetch cycle failed", extra={
            "stage": event.stage,
            "error_kind": event.error_kind,
            "error": event.message,
            "status_code": event.status_code
        })

    def fallback_used(self, event: FallbackUsed) -> None:
        obs = event.observation
        logger.warning("Using fallback price", extra={
            "btc_brl": obs.btc_brl,
            "btc_usd": obs.btc_usd,
            "usd_brl": obs.usd_brl,
            "aze_brl": obs.aze_brl
        })

    def cleanup_completed(self, event: CleanupCompleted) -> None:
        logger.info("Cleanup completed", extra={
            "cutoff": event.cutoff.isoformat(),
            "deleted": event.deleted,
            "count_before": event.count_before,
            "count_after": event.count_after
        })

    def cleanup_failed(self, event: CleanupFailed) -> None:
        logger.error("Cleanup failed", extra={
            "cutoff": event.cutoff.isoformat(),
            "error": event.message
        })
