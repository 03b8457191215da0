"""Provider registry and selection logic."""
from zakat_engine.services.config import get_goldapi_key, get_openexchangerates_key
from . import CryptoProvider, FXProvider, MetalProvider, StockProvider
from .fx_providers import (
    ChainedFXProvider,
    ExchangeRateAPIProvider,
    FawazExchangeAPIProvider,
    OpenExchangeRatesProvider,
)
from .market_providers import CoinGeckoProvider, YahooFinanceProvider
from .metal_providers import GoldAPIProvider, GoldPriceOrgProvider


def get_fx_provider() -> FXProvider:
    """Get configured FX provider.

    Priority:
    1. OpenExchangeRates (if key configured)
    2. ExchangeRateAPI (no key), falling back to Fawaz Exchange API
    """
    if get_openexchangerates_key():
        return OpenExchangeRatesProvider()
    return ChainedFXProvider(
        primary=ExchangeRateAPIProvider(),
        fallback=FawazExchangeAPIProvider(),
    )


def get_metal_provider() -> MetalProvider:
    """Get configured metal provider.

    Priority:
    1. GoldAPI (if key configured)
    2. goldprice.org (no key)
    """
    if get_goldapi_key():
        return GoldAPIProvider()
    return GoldPriceOrgProvider()


def get_crypto_provider() -> CryptoProvider:
    return CoinGeckoProvider()


def get_stock_provider() -> StockProvider:
    return YahooFinanceProvider()


def get_provider_status() -> dict:
    """Return status of all configured providers."""
    fx = get_fx_provider()
    metal = get_metal_provider()

    return {
        'fx': {
            'provider': fx.name,
            'requires_key': fx.requires_api_key,
            'configured': fx.is_configured(),
        },
        'metals': {
            'provider': metal.name,
            'requires_key': metal.requires_api_key,
            'configured': metal.is_configured(),
        },
        'crypto': {'provider': get_crypto_provider().name},
        'stocks': {'provider': get_stock_provider().name},
    }
