"""
Abstract base class for quote providers in AZE Price Service.
Defines the interface that quote providers must implement and the fetch error taxonomy.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import httpx

from ..api.schemas import DataProvider, QuoteSet
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class FetchError(Exception):
    """Base exception for failures while obtaining source prices."""

    kind = "fetch"

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(self.message)


class NetworkError(FetchError):
    """Transport failure, timeout or non-success HTTP status."""

    kind = "network"

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider)
        self.status_code = status_code


class MalformedResponseError(FetchError):
    """Response body is not what the provider expects (bad JSON, missing fields)."""

    kind = "malformed_response"


class InvalidValueError(FetchError):
    """A price is non-numeric, non-finite or not strictly positive."""

    kind = "invalid_value"

    def __init__(self, message: str, provider: Optional[str] = None,
                 field: Optional[str] = None, value: Any = None):
        super().__init__(message, provider)
        self.field = field
        self.value = value


class BaseQuoteProvider(ABC):
    """Abstract base class for market quote providers.

    Providers make a single request per fetch. Retrying is left to the next
    scheduled ingestion cycle.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize HTTP client connection."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._get_default_headers(),
                follow_redirects=True,
                transport=self._transport
            )

            logger.debug("Connected to provider", extra={"provider": self.name})

    async def disconnect(self) -> None:
        """Close HTTP client connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.debug("Disconnected from provider", extra={"provider": self.name})

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers for requests."""
        return {
            'User-Agent': 'AZE-Price-Service/1.0.0',
            'Accept': 'application/json',
        }

    async def _make_request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a single GET request and decode the JSON body."""

        if not self.client:
            await self.connect()

        logger.debug("Making request to provider", extra={
            "provider": self.name,
            "url": url
        })

        try:
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {self.name} after {self.timeout}s",
                self.name
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"HTTP error for {self.name}: {str(e)}",
                self.name
            ) from e

        if response.is_error:
            logger.warning("Provider returned error status", extra={
                "provider": self.name,
                "status_code": response.status_code,
                "body": response.text[:500]
            })
            raise NetworkError(
                f"{self.name} responded with HTTP {response.status_code}",
                self.name,
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Invalid JSON response from {self.name}: {str(e)}",
                self.name
            ) from e

        logger.debug("Received response from provider", extra={
            "provider": self.name,
            "status_code": response.status_code,
            "response_size": len(response.content)
        })
        return data

    @abstractmethod
    async def fetch(self) -> QuoteSet:
        """
        Fetch the current quote set.

        Returns:
            QuoteSet with every pair the provider is expected to serve

        Raises:
            NetworkError: On transport failure, timeout or error status
            MalformedResponseError: When expected fields are absent
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> DataProvider:
        """Get the provider enum value."""
        pass
