"""
FastAPI endpoints for AZE Price Service.
Serves the latest price, windowed history and staleness health from the price store.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..api.schemas import HealthState, LatestPriceData
from ..core.logging_config import create_logger
from ..services.aggregator import WINDOW_MINUTES, parse_window
from ..services.pricing import PricingEngine
from ..services.store import PersistenceError

logger = create_logger(__name__)

# Store reads block, so routes are plain functions run in the threadpool
router = APIRouter(prefix="/price")


def get_pricing(request: Request) -> PricingEngine:
    """Pricing engine attached to the application at startup."""
    return request.app.state.pricing


@router.get("/latest")
def get_latest(pricing: PricingEngine = Depends(get_pricing)) -> Dict[str, Any]:
    """
    Latest recorded price.

    Returns:
        BRL and USD prices of BTC and AZE, the USD/BRL rate, source and timestamp
    """
    try:
        price = pricing.latest()
    except PersistenceError as e:
        logger.error("Failed to read latest price", extra={"error": str(e)})
        return {"success": False, "message": "Price store unavailable"}

    if price is None:
        return {"success": False, "message": "No price available"}

    return {
        "success": True,
        "data": LatestPriceData.from_observation(price).model_dump(mode="json", by_alias=True),
    }


@router.get("/history")
def get_history(
    window: Optional[str] = Query(
        None,
        description="Time window: " + ", ".join(WINDOW_MINUTES),
        examples=["1h"]
    ),
    pricing: PricingEngine = Depends(get_pricing),
) -> Dict[str, Any]:
    """
    Price history and statistics for a trailing window.

    Args:
        window: One of 5m, 15m, 30m, 1h, 24h, 7d

    Returns:
        Window statistics per price field plus the raw series
    """
    if not window:
        raise HTTPException(status_code=400, detail='Parameter "window" is required')

    duration = parse_window(window)
    if duration is None:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid window. Use: {', '.join(WINDOW_MINUTES)}"
        )

    try:
        history = pricing.history(duration)
    except PersistenceError as e:
        logger.error("Failed to read price history", extra={"window": window, "error": str(e)})
        return {"success": False, "message": "Price store unavailable"}

    if history is None:
        return {"success": False, "message": "No data available for this window"}

    logger.info("Price history retrieved", extra={"window": window, "count": history.count})

    return {
        "success": True,
        "data": history.model_dump(mode="json", by_alias=True),
    }


@router.get("/health")
def get_health(pricing: PricingEngine = Depends(get_pricing)) -> Dict[str, Any]:
    """
    Staleness health of the price series.
    Healthy while the latest price is younger than the stale threshold.
    """
    health = pricing.check_health()

    if not health.store_available:
        return {
            "status": HealthState.DEGRADED.value,
            "message": "Price store unavailable",
        }

    if health.last_update is None:
        return {
            "status": HealthState.DEGRADED.value,
            "message": "No price available",
        }

    return {
        "status": health.status.value,
        "lastUpdate": health.last_update.isoformat(),
        "ageSeconds": health.age_seconds,
        "source": health.last_origin.value if health.last_origin else None,
    }
