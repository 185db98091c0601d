"""
Pricing engine for AZE Price Service.
Assembles provider, store, ingestor, aggregator, retention and health from settings
and exposes the entry points used by the periodic trigger and the REST layer.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.engine import Engine

from ..api.schemas import HealthStatus, PriceObservation, SourcePrices, WindowStats
from ..core.config import RETENTION_DAYS, Settings
from ..core.logging_config import create_logger
from ..database import create_db_engine, create_session_factory, init_db
from ..providers.awesome_api_provider import AwesomeAPIProvider
from ..providers.base import BaseQuoteProvider
from .aggregator import PriceAggregator
from .events import PriceEventObserver
from .health import HealthMonitor
from .ingestor import CycleResult, PriceIngestor
from .retention import CleanupResult, RetentionManager
from .scheduler import PeriodicTrigger
from .store import PriceHistoryStore

logger = create_logger(__name__)


class PricingEngine:
    """The collaborators of the price service, wired together."""

    def __init__(
        self,
        store: PriceHistoryStore,
        provider: BaseQuoteProvider,
        ingestor: PriceIngestor,
        aggregator: PriceAggregator,
        retention: RetentionManager,
        health: HealthMonitor,
        db_engine: Optional[Engine] = None,
    ):
        self.store = store
        self.provider = provider
        self.ingestor = ingestor
        self.aggregator = aggregator
        self.retention = retention
        self.health = health
        self.db_engine = db_engine
        self._ingest_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        db_engine: Optional[Engine] = None,
        provider: Optional[BaseQuoteProvider] = None,
        observer: Optional[PriceEventObserver] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PricingEngine":
        db_engine = db_engine or create_db_engine(settings.database_url, settings.database_echo)
        store = PriceHistoryStore(create_session_factory(db_engine))
        provider = provider or AwesomeAPIProvider(
            base_url=settings.awesome_api_url,
            token=settings.awesome_api_token or "",
            timeout=settings.fetch_timeout_seconds,
            transport=transport,
        )
        fallback = SourcePrices(
            btc_brl=settings.fallback_btc_brl,
            btc_usd=settings.fallback_btc_usd,
            usd_brl=settings.fallback_usd_brl,
        )

        return cls(
            store=store,
            provider=provider,
            ingestor=PriceIngestor(
                provider, store, settings.btc_divisor, fallback, observer=observer, clock=clock
            ),
            aggregator=PriceAggregator(store, clock=clock),
            retention=RetentionManager(
                store, horizon=timedelta(days=RETENTION_DAYS), observer=observer, clock=clock
            ),
            health=HealthMonitor(
                store, stale_threshold=timedelta(seconds=settings.stale_threshold_seconds), clock=clock
            ),
            db_engine=db_engine,
        )

    async def initialize(self) -> None:
        """Create tables and open the provider connection."""
        if self.db_engine is not None:
            init_db(self.db_engine)
        await self.provider.connect()
        logger.info("Pricing engine initialized", extra={"provider": self.provider.name})

    async def shutdown(self) -> None:
        """Close the provider connection and release database connections."""
        try:
            await self.provider.disconnect()
        except Exception as e:
            logger.warning("Error disconnecting provider", extra={
                "provider": self.provider.name,
                "error": str(e)
            })
        if self.db_engine is not None:
            self.db_engine.dispose()
        logger.info("Pricing engine shutdown complete")

    async def ingest(self) -> CycleResult:
        """Run one ingestion cycle; concurrent calls are serialized."""
        async with self._ingest_lock:
            return await self.ingestor.run()

    async def cleanup(self) -> CleanupResult:
        """Run one retention pass in the default thread pool."""
        return await asyncio.get_running_loop().run_in_executor(None, self.retention.run)

    def latest(self) -> Optional[PriceObservation]:
        return self.store.latest()

    def history(self, window: timedelta) -> Optional[WindowStats]:
        return self.aggregator.query(window)

    def check_health(self) -> HealthStatus:
        return self.health.check()

    def build_trigger(
        self,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> PeriodicTrigger:
        """Register ingestion on the polling interval and retention at the daily cleanup time."""
        trigger = PeriodicTrigger(clock=clock)
        trigger.every("price_fetch", settings.polling_interval_seconds, self.ingest)
        trigger.daily_at("price_cleanup", settings.cleanup_hour, settings.cleanup_minute, self.cleanup)
        logger.info("Price polling configured", extra={
            "interval_seconds": settings.polling_interval_seconds,
            "cleanup_time": f"{settings.cleanup_hour:02d}:{settings.cleanup_minute:02d}"
        })
        return trigger
