"""FX rate provider implementations."""
from typing import Optional

from zakat_engine.services.config import get_openexchangerates_key
from . import FXProvider, FXRate, ProviderError, fetch_json


def _parse_rates(rates_blob: dict, source: str) -> list[FXRate]:
    rates = []
    for currency, rate in rates_blob.items():
        try:
            rate_value = float(rate)
        except (TypeError, ValueError):
            continue
        if rate_value > 0:
            rates.append(FXRate(currency=str(currency).upper(), rate_to_usd=rate_value, source=source))
    if not any(r.currency == 'USD' for r in rates):
        rates.append(FXRate(currency='USD', rate_to_usd=1.0, source=source))
    return rates


class ExchangeRateAPIProvider(FXProvider):
    """ExchangeRate-API open endpoint - no API key, latest rates only."""

    BASE_URL = "https://open.er-api.com/v6"

    @property
    def name(self) -> str:
        return "exchangerate-api"

    @property
    def requires_api_key(self) -> bool:
        return False

    def is_configured(self) -> bool:
        return True

    def get_rates(self) -> list[FXRate]:
        data = fetch_json(f"{self.BASE_URL}/latest/USD")
        if data.get('result') != 'success':
            raise ProviderError(f"API error: {data.get('error-type', 'unknown')}")
        return _parse_rates(data.get('rates', {}), self.name)


class FawazExchangeAPIProvider(FXProvider):
    """fawazahmed0/exchange-api provider (Cloudflare pages with jsDelivr fallback).

    Lowercase currency keys, USD base, no API key.
    """

    ENDPOINTS = [
        "https://latest.currency-api.pages.dev/v1/currencies/usd.min.json",
        "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.min.json",
    ]

    @property
    def name(self) -> str:
        return "fawaz-exchange-api"

    @property
    def requires_api_key(self) -> bool:
        return False

    def is_configured(self) -> bool:
        return True

    def get_rates(self) -> list[FXRate]:
        last_error = None
        for url in self.ENDPOINTS:
            try:
                data = fetch_json(url)
            except ProviderError as e:
                last_error = e
                continue
            rates_blob = data.get('usd')
            if not isinstance(rates_blob, dict):
                last_error = ProviderError("Unexpected response format")
                continue
            return _parse_rates(rates_blob, self.name)
        raise ProviderError(f"Failed to fetch rates: {last_error}")


class OpenExchangeRatesProvider(FXProvider):
    """Open Exchange Rates provider - requires API key."""

    BASE_URL = "https://openexchangerates.org/api"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key or get_openexchangerates_key()

    @property
    def name(self) -> str:
        return "openexchangerates"

    @property
    def requires_api_key(self) -> bool:
        return True

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def get_rates(self) -> list[FXRate]:
        if not self._api_key:
            raise ProviderError("API key not configured")
        data = fetch_json(f"{self.BASE_URL}/latest.json?app_id={self._api_key}")
        if 'error' in data:
            raise ProviderError(f"API error: {data.get('message', 'unknown')}")
        return _parse_rates(data.get('rates', {}), self.name)


class ChainedFXProvider(FXProvider):
    """Try a primary provider, then fall back on failure or an empty result."""

    def __init__(self, primary: FXProvider, fallback: FXProvider):
        self._primary = primary
        self._fallback = fallback
        self._last_provider = primary

    @property
    def name(self) -> str:
        return self._last_provider.name

    @property
    def requires_api_key(self) -> bool:
        return self._primary.requires_api_key and self._fallback.requires_api_key

    def is_configured(self) -> bool:
        return self._primary.is_configured() or self._fallback.is_configured()

    def get_rates(self) -> list[FXRate]:
        primary_error = None
        try:
            rates = self._primary.get_rates()
            if rates:
                self._last_provider = self._primary
                return rates
        except ProviderError as exc:
            primary_error = exc

        rates = self._fallback.get_rates()
        if rates:
            self._last_provider = self._fallback
            return rates

        if primary_error:
            raise ProviderError(f"Primary provider failed: {primary_error}")
        raise ProviderError("No rates returned from providers")
