"""
AwesomeAPI quote provider implementation.
Provides BTC/BRL, BTC/USD and USD/BRL quotes from economia.awesomeapi.com.br.
"""

from datetime import datetime
from typing import Dict, Optional, Tuple

import httpx
from pydantic import ValidationError

from .base import BaseQuoteProvider, MalformedResponseError
from ..api.schemas import CurrencyQuote, DataProvider, QuoteSet
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

# Pair codes the ingestion cycle needs from every response
REQUIRED_PAIRS: Tuple[str, ...] = ("BTCBRL", "BTCUSD", "USDBRL")


class AwesomeAPIProvider(BaseQuoteProvider):
    """AwesomeAPI provider for the BTC and USD/BRL quotes."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            name="awesome_api",
            base_url=base_url or settings.awesome_api_url,
            timeout=timeout if timeout is not None else settings.fetch_timeout_seconds,
            transport=transport
        )
        self.token = token if token is not None else settings.awesome_api_token

    def get_provider_name(self) -> DataProvider:
        """Get provider enum value."""
        return DataProvider.AWESOME_API

    def _get_params(self) -> Optional[Dict[str, str]]:
        """The API token is passed as a query parameter when configured."""
        if self.token:
            return {"token": self.token}
        return None

    async def fetch(self) -> QuoteSet:
        """Fetch the last quotes for every required pair."""
        data = await self._make_request(self.base_url, params=self._get_params())

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Expected a JSON object from {self.name}, got {type(data).__name__}",
                self.name
            )

        missing = [pair for pair in REQUIRED_PAIRS if not isinstance(data.get(pair), dict)]
        if missing:
            logger.error("Invalid response from AwesomeAPI", extra={
                "provider": self.name,
                "missing_pairs": missing,
                "received_keys": list(data.keys())
            })
            raise MalformedResponseError(
                f"Missing pairs in {self.name} response: {', '.join(missing)}",
                self.name
            )

        quotes = {}
        for pair in REQUIRED_PAIRS:
            raw = data[pair]
            if raw.get("bid") is None:
                raise MalformedResponseError(
                    f"Missing bid for {pair} in {self.name} response",
                    self.name
                )
            try:
                quotes[pair] = CurrencyQuote(
                    code=raw.get("code") or pair[:3],
                    codein=raw.get("codein") or pair[3:],
                    bid=str(raw["bid"]),
                    ask=_optional_str(raw.get("ask")),
                    high=_optional_str(raw.get("high")),
                    low=_optional_str(raw.get("low")),
                    timestamp=_optional_str(raw.get("timestamp")),
                )
            except ValidationError as e:
                raise MalformedResponseError(
                    f"Unexpected {pair} payload from {self.name}: {str(e)}",
                    self.name
                ) from e

        logger.debug("Retrieved quotes from AwesomeAPI", extra={
            "provider": self.name,
            "pairs": list(quotes.keys())
        })

        return QuoteSet(
            provider=self.get_provider_name(),
            quotes=quotes,
            fetched_at=datetime.utcnow()
        )


def _optional_str(value) -> Optional[str]:
    return None if value is None else str(value)
