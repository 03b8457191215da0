"""Pluggable price provider interface.

Providers are thin network clients. Their only contract with the engine is
value + timestamp + source currency; validation, caching and fallback are
handled by the pricing service.
"""
import json
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from zakat_engine.errors import UpstreamUnavailable
from zakat_engine.services.config import get_fetch_timeout_seconds, get_user_agent


@dataclass
class FXRate:
    """FX rate data point."""
    currency: str       # ISO 4217 code
    rate_to_usd: float  # 1 USD = X currency
    source: str


@dataclass
class MetalPrice:
    """Metal price data point."""
    metal: str                  # gold, silver
    price_per_gram: float
    currency: str
    source: str
    timestamp: Optional[float] = None


@dataclass
class CryptoPrice:
    """Cryptocurrency price data point."""
    symbol: str
    price: float
    currency: str
    source: str
    timestamp: Optional[float] = None


@dataclass
class StockQuote:
    """Stock quote data point."""
    symbol: str
    price: float
    currency: str
    source: str
    timestamp: Optional[float] = None


class ProviderError(UpstreamUnavailable):
    """Base exception for provider errors."""
    pass


class RateLimitError(ProviderError):
    """API rate limit exceeded."""
    pass


class AuthenticationError(ProviderError):
    """API key invalid or missing."""
    pass


class NetworkError(ProviderError):
    """Network connectivity issue or timeout."""
    pass


def fetch_json(url: str, headers: dict | None = None):
    """GET a URL and decode its JSON body.

    Raises:
        RateLimitError: On HTTP 429.
        AuthenticationError: On HTTP 401/403.
        NetworkError: On connection failure or timeout.
        ProviderError: On other HTTP errors or invalid JSON.
    """
    request_headers = {'User-Agent': get_user_agent(), 'Accept': 'application/json'}
    request_headers.update(headers or {})
    try:
        req = urllib.request.Request(url, headers=request_headers)
        with urllib.request.urlopen(req, timeout=get_fetch_timeout_seconds()) as response:
            return json.loads(response.read().decode('utf-8'))
    except urllib.error.HTTPError as e:
        if e.code == 429:
            raise RateLimitError("Rate limit exceeded")
        if e.code in (401, 403):
            raise AuthenticationError(f"Authentication failed: HTTP {e.code}")
        raise ProviderError(f"HTTP error: {e.code}")
    except urllib.error.URLError as e:
        raise NetworkError(f"Network error: {e.reason}")
    except TimeoutError:
        raise NetworkError("Request timed out")
    except json.JSONDecodeError:
        raise ProviderError("Invalid JSON response")


class FXProvider(ABC):
    """Abstract base for FX rate providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    @property
    @abstractmethod
    def requires_api_key(self) -> bool:
        """Whether this provider needs an API key."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is properly configured (API key set if required)."""
        pass

    @abstractmethod
    def get_rates(self) -> list[FXRate]:
        """Fetch the latest USD-based FX rates.

        Returns:
            List of FXRate objects

        Raises:
            ProviderError: If fetch fails
        """
        pass


class MetalProvider(ABC):
    """Abstract base for metal price providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    @property
    @abstractmethod
    def requires_api_key(self) -> bool:
        """Whether this provider needs an API key."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is properly configured."""
        pass

    @abstractmethod
    def get_prices(self, currency: str = 'USD') -> list[MetalPrice]:
        """Fetch latest gold and silver prices per gram.

        Providers may answer in USD regardless of the requested currency;
        the returned MetalPrice.currency says which.
        """
        pass


class CryptoProvider(ABC):
    """Abstract base for cryptocurrency price providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    @abstractmethod
    def get_prices(self, symbols: list[str], currency: str = 'USD') -> list[CryptoPrice]:
        """Fetch latest prices for the given coin symbols."""
        pass


class StockProvider(ABC):
    """Abstract base for stock quote providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    @abstractmethod
    def get_quote(self, symbol: str) -> StockQuote:
        """Fetch the latest quote for a ticker, in its listing currency."""
        pass
