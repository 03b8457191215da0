"""Metal price provider implementations."""
from typing import Optional

from zakat_engine.services.config import get_goldapi_key
from zakat_engine.services.time_provider import get_now
from . import MetalPrice, MetalProvider, ProviderError, fetch_json

# Conversion constant: troy ounce to grams
TROY_OZ_TO_GRAMS = 31.1035


class GoldPriceOrgProvider(MetalProvider):
    """goldprice.org public rates feed - no API key, quotes per troy ounce.

    The feed accepts a currency in its path and answers in that currency.
    """

    BASE_URL = "https://data-asg.goldprice.org/dbXRates"

    @property
    def name(self) -> str:
        return "goldprice"

    @property
    def requires_api_key(self) -> bool:
        return False

    def is_configured(self) -> bool:
        return True

    def get_prices(self, currency: str = 'USD') -> list[MetalPrice]:
        data = fetch_json(f"{self.BASE_URL}/{currency.upper()}")
        items = data.get('items') or []
        if not items:
            raise ProviderError("Unexpected response format")

        item = items[0]
        quote_currency = str(item.get('curr', currency)).upper()
        prices = []
        for key, metal in (('xauPrice', 'gold'), ('xagPrice', 'silver')):
            price_per_oz = item.get(key)
            if price_per_oz is None:
                continue
            prices.append(MetalPrice(
                metal=metal,
                price_per_gram=round(float(price_per_oz) / TROY_OZ_TO_GRAMS, 4),
                currency=quote_currency,
                source=self.name,
                timestamp=get_now(),
            ))
        return prices


class GoldAPIProvider(MetalProvider):
    """GoldAPI.io provider - requires API key, USD quotes per troy ounce."""

    BASE_URL = "https://www.goldapi.io/api"
    SYMBOLS = {'XAU': 'gold', 'XAG': 'silver'}

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key or get_goldapi_key()

    @property
    def name(self) -> str:
        return "goldapi"

    @property
    def requires_api_key(self) -> bool:
        return True

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def get_prices(self, currency: str = 'USD') -> list[MetalPrice]:
        if not self._api_key:
            raise ProviderError("API key not configured")

        prices = []
        for symbol, metal in self.SYMBOLS.items():
            data = fetch_json(f"{self.BASE_URL}/{symbol}/USD", headers={'x-access-token': self._api_key})
            price_per_oz = data.get('price')
            if price_per_oz is None:
                continue
            timestamp = data.get('timestamp')
            prices.append(MetalPrice(
                metal=metal,
                price_per_gram=round(float(price_per_oz) / TROY_OZ_TO_GRAMS, 4),
                currency='USD',
                source=self.name,
                timestamp=float(timestamp) if timestamp else get_now(),
            ))
        return prices
