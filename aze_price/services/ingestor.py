"""
Price ingestor for AZE Price Service.
Runs one fetch -> validate -> derive -> persist cycle per invocation and applies
the fallback policy when the cycle fails.
"""

import asyncio
import math
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from ..api.schemas import PriceObservation, PriceOrigin, QuoteSet, SourcePrices
from ..core.logging_config import create_logger
from ..providers.base import BaseQuoteProvider, InvalidValueError, MalformedResponseError
from .derivation import derive_prices
from .events import CycleFailed, CycleSucceeded, FallbackUsed, LoggingObserver, PriceEventObserver
from .store import PersistenceError, PriceHistoryStore

logger = create_logger(__name__)

# Quote pair -> SourcePrices field
SOURCE_PAIRS = {
    "BTCBRL": "btc_brl",
    "BTCUSD": "btc_usd",
    "USDBRL": "usd_brl",
}


class IngestionStage(str, Enum):
    FETCHING = "fetching"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    DONE = "done"
    RECOVERING = "recovering"


class CycleResult(BaseModel):
    """Outcome of one ingestion cycle."""
    stage: IngestionStage
    observation: Optional[PriceObservation] = None
    fallback_used: bool = False
    failed_stage: Optional[IngestionStage] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.stage == IngestionStage.DONE


def parse_price(field: str, raw: Any) -> float:
    """Parse a decimal string into a finite, strictly positive price."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidValueError(f"Price {field} is not numeric: {raw!r}", field=field, value=raw)

    if not math.isfinite(value) or value <= 0:
        raise InvalidValueError(f"Price {field} must be finite and positive: {raw!r}", field=field, value=raw)

    return value


def validate_quotes(quote_set: QuoteSet) -> SourcePrices:
    """Extract and validate every required source price from a quote set."""
    prices = {}
    for pair, field in SOURCE_PAIRS.items():
        quote = quote_set.quotes.get(pair)
        if quote is None:
            raise MalformedResponseError(f"Quote set has no {pair} quote", quote_set.provider.value)
        try:
            prices[field] = parse_price(field, quote.bid)
        except InvalidValueError as e:
            e.provider = quote_set.provider.value
            raise
    return SourcePrices(**prices)


class PriceIngestor:
    """Orchestrates quote provider, derivation and store for each ingestion cycle.

    Errors never leave run(): a failed cycle is reported to the observer and,
    only when the store holds no observation at all, a fallback observation is
    written from the configured constants. Once any observation exists, however
    old, failed cycles leave a gap in the series.

    Cycles must not overlap; the caller serializes invocations of run().
    Store calls run in the default thread pool so a cycle never blocks the
    event loop.
    """

    def __init__(
        self,
        provider: BaseQuoteProvider,
        store: PriceHistoryStore,
        divisor: float,
        fallback_prices: SourcePrices,
        observer: Optional[PriceEventObserver] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if not math.isfinite(divisor) or divisor <= 0:
            raise ValueError(f"divisor must be finite and greater than zero, got {divisor}")
        self._provider = provider
        self._store = store
        self._divisor = divisor
        self._fallback_prices = fallback_prices
        self._observer = observer or LoggingObserver()
        self._clock = clock

        self.total_cycles = 0
        self.consecutive_failures = 0
        self.last_success_at: Optional[datetime] = None
        self.last_failure_at: Optional[datetime] = None

    async def run(self) -> CycleResult:
        """Run one ingestion cycle."""
        self.total_cycles += 1
        stage = IngestionStage.FETCHING
        logger.debug("Fetching BTC quote", extra={"provider": self._provider.name})

        try:
            quote_set = await self._provider.fetch()

            stage = IngestionStage.VALIDATING
            source = validate_quotes(quote_set)

            stage = IngestionStage.PERSISTING
            observation = await self._in_executor(
                self._store.append, self._build_observation(source, PriceOrigin.EXTERNAL)
            )

        except Exception as e:
            return await self._recover(stage, e)

        self.consecutive_failures = 0
        self.last_success_at = observation.timestamp
        self._observer.cycle_succeeded(CycleSucceeded(observation=observation))
        return CycleResult(stage=IngestionStage.DONE, observation=observation)

    async def _in_executor(self, func, *args):
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _build_observation(self, source: SourcePrices, origin: PriceOrigin) -> PriceObservation:
        derived = derive_prices(source.btc_brl, source.btc_usd, self._divisor)
        return PriceObservation(
            timestamp=self._clock(),
            btc_brl=source.btc_brl,
            btc_usd=source.btc_usd,
            usd_brl=source.usd_brl,
            aze_brl=derived.aze_brl,
            aze_usd=derived.aze_usd,
            origin=origin,
        )

    async def _recover(self, failed_stage: IngestionStage, error: Exception) -> CycleResult:
        self.consecutive_failures += 1
        self.last_failure_at = self._clock()
        error_kind = getattr(error, "kind", "unexpected")

        self._observer.cycle_failed(CycleFailed(
            stage=failed_stage.value,
            error_kind=error_kind,
            message=str(error),
            status_code=getattr(error, "status_code", None),
        ))

        result = CycleResult(
            stage=IngestionStage.RECOVERING,
            failed_stage=failed_stage,
            error_kind=error_kind,
            error=str(error),
        )

        try:
            latest = await self._in_executor(self._store.latest)
            if latest is not None:
                return result

            observation = await self._in_executor(
                self._store.append, self._build_observation(self._fallback_prices, PriceOrigin.FALLBACK)
            )
        except PersistenceError as e:
            self._observer.cycle_failed(CycleFailed(
                stage=IngestionStage.RECOVERING.value,
                error_kind=e.kind,
                message=str(e),
            ))
            return result

        self._observer.fallback_used(FallbackUsed(observation=observation))
        result.observation = observation
        result.fallback_used = True
        return result

    def get_status(self) -> Dict[str, Any]:
        """Counters exposed on the /info endpoint."""
        return {
            "total_cycles": self.total_cycles,
            "consecutive_failures": self.consecutive_failures,
            "last_success_at": self.last_success_at,
            "last_failure_at": self.last_failure_at,
        }
