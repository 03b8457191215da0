"""Configuration service for pricing, validation and provider settings."""
import os

from zakat_engine.constants import PRICE_TTL_SECONDS


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


def is_network_enabled() -> bool:
    """Check if provider network calls are allowed.

    Controlled by PRICING_ALLOW_NETWORK env var (default: 1/true).
    """
    return _env_flag('PRICING_ALLOW_NETWORK', '1')


def is_strict_validation_enabled() -> bool:
    """Check if price snapshots must pass plausible-range checks.

    Controlled by PRICING_STRICT_VALIDATION env var (default: 1/true).
    """
    return _env_flag('PRICING_STRICT_VALIDATION', '1')


def get_fetch_timeout_seconds() -> float:
    """Get the per-request provider timeout.

    Controlled by PRICE_FETCH_TIMEOUT_SECONDS env var (default: 8).
    """
    return float(os.environ.get('PRICE_FETCH_TIMEOUT_SECONDS', '8'))


def get_ttl_seconds(asset_class: str) -> int:
    """Get the cache TTL for an asset class.

    Overridable per class, e.g. PRICE_TTL_METAL_SECONDS=900.
    """
    default = PRICE_TTL_SECONDS[asset_class]
    return int(os.environ.get(f'PRICE_TTL_{asset_class.upper()}_SECONDS', str(default)))


def get_default_currency() -> str:
    """Get the base currency new stores start in."""
    return os.environ.get('ZAKAT_DEFAULT_CURRENCY', 'USD').upper()


def get_user_agent() -> str:
    """Get the User-Agent string for provider HTTP requests."""
    default_ua = 'ZakatEngine/1.0 (+https://github.com/zakat-engine)'
    return os.environ.get('PRICING_USER_AGENT', default_ua)


# Provider API key getters
def get_goldapi_key() -> str | None:
    """Get GoldAPI key if configured."""
    return os.environ.get('GOLDAPI_KEY')


def get_openexchangerates_key() -> str | None:
    """Get Open Exchange Rates API key if configured."""
    return os.environ.get('OPENEXCHANGERATES_APP_ID')


def get_pricing_config() -> dict:
    """Get complete pricing configuration status."""
    return {
        'network_enabled': is_network_enabled(),
        'strict_validation': is_strict_validation_enabled(),
        'fetch_timeout_seconds': get_fetch_timeout_seconds(),
        'ttl_seconds': {name: get_ttl_seconds(name) for name in PRICE_TTL_SECONDS},
        'default_currency': get_default_currency(),
        'provider_keys': {
            'goldapi': bool(get_goldapi_key()),
            'openexchangerates': bool(get_openexchangerates_key()),
        },
    }
