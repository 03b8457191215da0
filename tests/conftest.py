"""Pytest fixtures for Zakat engine tests."""
import pytest

from zakat_engine import create_app
from zakat_engine.db import get_db
from zakat_engine.services.pricing import PriceService
from zakat_engine.services.state_repository import StateRepository
from zakat_engine.services.store import AssetValueStore
from zakat_engine.services.time_provider import TimeProvider
from tests.fakes.fake_providers import (
    FakeCryptoProvider,
    FakeFXProvider,
    FakeMetalProvider,
    FakeStockProvider,
)


# Fixed "now" for deterministic tests - 2026-01-15 10:00:00 UTC
FROZEN_NOW = 1768471200.0


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep tests off the network and independent of the host environment."""
    monkeypatch.setenv('PRICING_ALLOW_NETWORK', '0')
    monkeypatch.setenv('PRICING_STRICT_VALIDATION', '1')
    for name in ('GOLDAPI_KEY', 'OPENEXCHANGERATES_APP_ID', 'ZAKAT_DEFAULT_CURRENCY'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def frozen_time():
    """Freeze time to FROZEN_NOW.

    Yields the TimeProvider for use in tests. Automatically resets
    the default TimeProvider after the test completes.
    """
    provider = TimeProvider(frozen_at=FROZEN_NOW)
    TimeProvider.set_default(provider)
    yield provider
    TimeProvider.reset_default()


@pytest.fixture
def app(tmp_path):
    """Create application for testing with its database in a temp dir.

    Yields:
        Flask application configured for testing.
    """
    app = create_app({
        'TESTING': True,
        'DATA_DIR': str(tmp_path),
        'PRICING_ALLOW_NETWORK': False,
    })
    yield app


@pytest.fixture
def client(app):
    """Create test client.

    Args:
        app: Flask application fixture.

    Yields:
        Flask test client for making requests.
    """
    with app.test_client() as client:
        yield client


@pytest.fixture
def repository(app):
    """StateRepository bound to the test database inside an app context."""
    with app.app_context():
        yield StateRepository(get_db())


@pytest.fixture
def fx_provider():
    return FakeFXProvider()


@pytest.fixture
def metal_provider():
    return FakeMetalProvider()


@pytest.fixture
def price_service(fx_provider, metal_provider):
    """PriceService with fake providers and no persistence."""
    return PriceService(
        repository=None,
        fx_provider=fx_provider,
        metal_provider=metal_provider,
        crypto_provider=FakeCryptoProvider(),
        stock_provider=FakeStockProvider(),
        allow_network=True,
        strict=True,
    )


@pytest.fixture
def live_providers(monkeypatch, app):
    """Route the app's price lookups to the fake providers.

    Returns the dict of fakes so tests can change prices or make them fail.
    """
    from zakat_engine.services.providers import registry

    fakes = {
        'fx': FakeFXProvider(),
        'metal': FakeMetalProvider(),
        'crypto': FakeCryptoProvider(),
        'stock': FakeStockProvider(),
    }
    monkeypatch.setattr(registry, 'get_fx_provider', lambda: fakes['fx'])
    monkeypatch.setattr(registry, 'get_metal_provider', lambda: fakes['metal'])
    monkeypatch.setattr(registry, 'get_crypto_provider', lambda: fakes['crypto'])
    monkeypatch.setattr(registry, 'get_stock_provider', lambda: fakes['stock'])
    app.config['PRICING_ALLOW_NETWORK'] = True
    return fakes


@pytest.fixture
def store():
    """A ready, empty USD store."""
    store = AssetValueStore('USD')
    store.hydrate(None, 'restore')
    return store
