"""
Pydantic schemas for AZE Price Service.
Shared by the quote provider, the pricing services and the REST layer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PriceOrigin(str, Enum):
    """Where a persisted observation came from."""
    EXTERNAL = "external"
    FALLBACK = "fallback"


class DataProvider(str, Enum):
    """Supported quote providers."""
    AWESOME_API = "awesome_api"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Upstream quote models

class CurrencyQuote(BaseModel):
    """One currency-pair quote as returned by the upstream API."""
    code: str = Field(..., description="Base currency code")
    codein: str = Field(..., description="Quote currency code")
    bid: str = Field(..., description="Bid price as a decimal string")
    ask: Optional[str] = Field(None, description="Ask price as a decimal string")
    high: Optional[str] = Field(None, description="Session high")
    low: Optional[str] = Field(None, description="Session low")
    timestamp: Optional[str] = Field(None, description="Upstream quote timestamp (epoch seconds)")

    @property
    def pair(self) -> str:
        return f"{self.code}{self.codein}"


class QuoteSet(BaseModel):
    """Quotes fetched in a single upstream call, keyed by pair code (e.g. BTCBRL)."""
    provider: DataProvider = Field(..., description="Provider that served the quotes")
    quotes: Dict[str, CurrencyQuote] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    def bid(self, pair: str) -> str:
        return self.quotes[pair].bid


# Price models

class SourcePrices(BaseModel):
    """Validated market prices used as derivation input."""
    btc_brl: float = Field(..., gt=0, allow_inf_nan=False)
    btc_usd: float = Field(..., gt=0, allow_inf_nan=False)
    usd_brl: float = Field(..., gt=0, allow_inf_nan=False)


class DerivedPrices(BaseModel):
    """AZE prices derived from BTC prices."""
    aze_brl: float
    aze_usd: float


class PriceObservation(CamelModel):
    """A persisted price record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: Optional[int] = None
    timestamp: datetime
    btc_brl: float
    aze_brl: float
    btc_usd: float
    aze_usd: float
    usd_brl: float
    origin: PriceOrigin = Field(..., serialization_alias="source")


# Aggregation models

class FieldStats(BaseModel):
    """Window statistics for one price field."""
    current: float
    min: float
    max: float
    avg: float
    first: float


class BrlStats(BaseModel):
    aze: FieldStats
    btc: FieldStats


class UsdStats(CamelModel):
    aze: FieldStats
    btc: FieldStats
    to_brl: FieldStats


class WindowStats(CamelModel):
    """Aggregate statistics over a trailing window."""
    window: str = Field(..., description="Window label in minutes, e.g. 60m")
    count: int = Field(..., ge=1)
    start_time: datetime = Field(..., description="Timestamp of the first observation found")
    end_time: datetime = Field(..., description="Timestamp of the last observation found")
    brl: BrlStats
    usd: UsdStats
    prices: List[PriceObservation] = Field(default_factory=list)


# Health models

class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class HealthStatus(BaseModel):
    """Staleness-based health of the price series."""
    status: HealthState
    age_seconds: Optional[int] = None
    last_update: Optional[datetime] = None
    last_origin: Optional[PriceOrigin] = None
    store_available: bool = True


# REST response models

class LatestPriceBrl(BaseModel):
    btc: float
    aze: float


class LatestPriceUsd(CamelModel):
    btc: float
    aze: float
    to_brl: float


class LatestPriceData(BaseModel):
    brl: LatestPriceBrl
    usd: LatestPriceUsd
    source: PriceOrigin
    timestamp: datetime

    @classmethod
    def from_observation(cls, observation: PriceObservation) -> "LatestPriceData":
        return cls(
            brl=LatestPriceBrl(btc=observation.btc_brl, aze=observation.aze_brl),
            usd=LatestPriceUsd(
                btc=observation.btc_usd,
                aze=observation.aze_usd,
                to_brl=observation.usd_brl,
            ),
            source=observation.origin,
            timestamp=observation.timestamp,
        )


class ErrorResponse(BaseModel):
    """Model for error responses."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
