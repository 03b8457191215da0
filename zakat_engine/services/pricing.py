"""Pricing service: validated prices with a last-known-good fallback chain.

Every lookup runs the same chain through ``fetch_with_fallback_chain``:

1. Fresh cache (last-known-good within TTL), skipped when refreshing
2. Live provider, validated (strict ranges when enabled)
3. Last-known-good of any age (degraded)
4. Static defaults where they exist (degraded)

Provider results that pass validation are written back as the new
last-known-good.
"""
import logging

from zakat_engine.constants import (
    FALLBACK_EXCHANGE_RATES,
    FALLBACK_METAL_PRICES,
    OFFLINE_METAL_PRICES_USD,
)
from zakat_engine.errors import ConversionRateUnavailable, UpstreamUnavailable
from zakat_engine.services.cache_validation import (
    options_for,
    validate_exchange_rates,
    validate_price_snapshot,
)
from zakat_engine.services.config import is_network_enabled
from zakat_engine.services.fallback import Source, fetch_with_fallback_chain
from zakat_engine.services.fx import RateTable, round_price
from zakat_engine.services.providers import (
    CryptoProvider,
    FXProvider,
    MetalProvider,
    StockProvider,
)
from zakat_engine.services.snapshots import PriceContext, PriceSnapshot
from zakat_engine.services.state_repository import StateRepository
from zakat_engine.services.time_provider import get_now

logger = logging.getLogger(__name__)

METALS = ['gold', 'silver']


def convert_snapshot(snapshot: PriceSnapshot, currency: str, table: RateTable) -> PriceSnapshot:
    """Re-express a snapshot's per-unit prices in another currency.

    Raises:
        ConversionRateUnavailable: If the table lacks either currency.
    """
    if snapshot.currency == currency:
        return snapshot
    factor = table.factor(snapshot.currency, currency)
    return PriceSnapshot(
        values={k: round_price(v * factor) for k, v in snapshot.values.items()},
        currency=currency,
        timestamp=snapshot.timestamp,
        source=snapshot.source,
        asset_class=snapshot.asset_class,
        is_cache=snapshot.is_cache,
        degraded=snapshot.degraded or table.degraded,
    )


def static_rate_table() -> RateTable:
    return RateTable(
        base='USD',
        rates=dict(FALLBACK_EXCHANGE_RATES),
        timestamp=get_now(),
        source='static',
        degraded=True,
    )


class PriceService:
    """Serve metal, stock, crypto and FX prices through the fallback chain."""

    def __init__(
        self,
        repository: StateRepository | None = None,
        fx_provider: FXProvider | None = None,
        metal_provider: MetalProvider | None = None,
        crypto_provider: CryptoProvider | None = None,
        stock_provider: StockProvider | None = None,
        allow_network: bool | None = None,
        strict: bool | None = None,
    ):
        """Initialize the service.

        Args:
            repository: Last-known-good storage (None disables it)
            fx_provider, metal_provider, crypto_provider, stock_provider:
                Provider overrides; registry defaults are used when None
            allow_network: Whether providers may be called (defaults to config)
            strict: Strict range validation (defaults to config)
        """
        self._repository = repository
        self._fx_provider = fx_provider
        self._metal_provider = metal_provider
        self._crypto_provider = crypto_provider
        self._stock_provider = stock_provider
        self._allow_network = is_network_enabled() if allow_network is None else allow_network
        self._strict = strict
        self._rate_table: RateTable | None = None
        self._metal_snapshots: dict[str, PriceSnapshot] = {}

    # Providers

    def _provider(self, kind: str):
        from zakat_engine.services.providers import registry

        attr = f'_{kind}_provider'
        if getattr(self, attr) is None:
            factory = {
                'fx': registry.get_fx_provider,
                'metal': registry.get_metal_provider,
                'crypto': registry.get_crypto_provider,
                'stock': registry.get_stock_provider,
            }[kind]
            setattr(self, attr, factory())
        return getattr(self, attr)

    def _snapshot_validator(self, asset_class: str, max_age=None, fresh: bool = True):
        if fresh:
            options = options_for(asset_class, strict=self._strict)
        else:
            options = options_for(asset_class, strict=self._strict, max_age=max_age)
        return lambda snapshot: validate_price_snapshot(snapshot, options)

    def _cached(self, asset_class: str, currency: str, keys: list[str]):
        if self._repository is None:
            return lambda: None
        return lambda: self._repository.get_snapshot(asset_class, currency, keys)

    def _remember(self, snapshot: PriceSnapshot) -> None:
        if self._repository is not None and not snapshot.is_cache and not snapshot.degraded:
            self._repository.store_snapshot(snapshot)

    # Exchange rates

    def get_rate_table(self, refresh: bool = False) -> RateTable:
        """Get USD-based exchange rates. Never raises; static rates are the floor."""
        if self._rate_table is not None and not refresh:
            return self._rate_table

        fresh_options = options_for('fx', strict=self._strict)
        any_age = options_for('fx', strict=self._strict, max_age=None)
        sources = []

        if self._repository is not None and not refresh:
            sources.append(Source(
                name='cache',
                fetch=self._repository.get_rates,
                validate=lambda t: validate_exchange_rates(t.to_dict(), fresh_options),
            ))
        if self._allow_network:
            sources.append(Source(
                name='provider',
                fetch=self._fetch_rates,
                validate=lambda t: validate_exchange_rates(t.to_dict(), fresh_options),
            ))
        if self._repository is not None:
            sources.append(Source(
                name='last-known-good',
                fetch=self._repository.get_rates,
                validate=lambda t: validate_exchange_rates(t.to_dict(), any_age),
                is_fallback=True,
            ))
        sources.append(Source(name='static', fetch=static_rate_table, is_fallback=True))

        result = fetch_with_fallback_chain(sources)
        table = result.value
        table.degraded = result.degraded
        table.errors = result.errors
        if result.source == 'provider' and self._repository is not None:
            self._repository.store_rates(table)
        self._rate_table = table
        return table

    def _fetch_rates(self) -> RateTable | None:
        provider = self._provider('fx')
        rates = provider.get_rates()
        if not rates:
            return None
        return RateTable(
            base='USD',
            rates={r.currency: r.rate_to_usd for r in rates},
            timestamp=get_now(),
            source=provider.name,
        )

    # Metals

    def get_metal_prices(self, currency: str = 'USD', refresh: bool = False) -> PriceSnapshot:
        """Get gold and silver prices per gram in ``currency``.

        Static prices are the last resort, so this only raises when the
        currency has neither a static metal price nor a static exchange rate.

        Raises:
            UpstreamUnavailable: If no source can price the currency.
        """
        currency = currency.upper()
        if not refresh and currency in self._metal_snapshots:
            return self._metal_snapshots[currency]

        sources = []
        if not refresh:
            sources.append(Source(
                name='cache',
                fetch=self._cached('metal', currency, METALS),
                validate=self._snapshot_validator('metal'),
            ))
        if self._allow_network:
            sources.append(Source(
                name='provider',
                fetch=lambda: self._fetch_metals(currency),
                validate=self._snapshot_validator('metal'),
            ))
        sources.append(Source(
            name='last-known-good',
            fetch=self._cached('metal', currency, METALS),
            validate=self._snapshot_validator('metal', max_age=None, fresh=False),
            is_fallback=True,
        ))
        sources.append(Source(
            name='static',
            fetch=lambda: self.static_metal_prices(currency),
            is_fallback=True,
        ))

        result = fetch_with_fallback_chain(sources)
        snapshot = result.value
        snapshot.degraded = snapshot.degraded or result.degraded
        snapshot.errors = result.errors
        if result.source == 'provider':
            self._remember(snapshot)
        self._metal_snapshots[currency] = snapshot
        return snapshot

    def _fetch_metals(self, currency: str) -> PriceSnapshot | None:
        provider = self._provider('metal')
        prices = provider.get_prices(currency)
        by_metal = {p.metal: p for p in prices if p.metal in METALS}
        if set(by_metal) != set(METALS):
            return None

        quote_currency = by_metal['gold'].currency
        timestamps = [p.timestamp for p in by_metal.values() if p.timestamp is not None]
        snapshot = PriceSnapshot(
            values={m: p.price_per_gram for m, p in by_metal.items()},
            currency=quote_currency,
            timestamp=min(timestamps) if timestamps else get_now(),
            source=provider.name,
            asset_class='metal',
        )
        if quote_currency != currency:
            snapshot = convert_snapshot(snapshot, currency, self.get_rate_table())
        return snapshot

    def static_metal_prices(self, currency: str) -> PriceSnapshot:
        """Build the static metal price snapshot for a currency.

        Uses the per-currency table when it has the currency, otherwise the
        offline USD prices converted with the current rate table.

        Raises:
            ConversionRateUnavailable: If the currency cannot be reached.
        """
        if currency in FALLBACK_METAL_PRICES:
            return PriceSnapshot(
                values=dict(FALLBACK_METAL_PRICES[currency]),
                currency=currency,
                timestamp=get_now(),
                source='static',
                asset_class='metal',
                degraded=True,
            )
        offline = self.offline_metal_prices()
        return convert_snapshot(offline, currency, self.get_rate_table())

    @staticmethod
    def offline_metal_prices() -> PriceSnapshot:
        return PriceSnapshot(
            values=dict(OFFLINE_METAL_PRICES_USD),
            currency='USD',
            timestamp=get_now(),
            source='offline',
            asset_class='metal',
            degraded=True,
        )

    # Stocks and crypto

    def get_stock_price(self, symbol: str, currency: str = 'USD', refresh: bool = False) -> PriceSnapshot:
        """Get a stock price in ``currency``.

        Raises:
            UpstreamUnavailable: If neither the provider nor the cache has it.
        """
        symbol = symbol.upper()
        currency = currency.upper()
        return self._market_price('stock', symbol, currency, refresh, lambda: self._fetch_stock(symbol, currency))

    def get_crypto_price(self, symbol: str, currency: str = 'USD', refresh: bool = False) -> PriceSnapshot:
        """Get a coin price in ``currency``.

        Raises:
            UpstreamUnavailable: If neither the provider nor the cache has it.
        """
        symbol = symbol.upper()
        currency = currency.upper()
        return self._market_price('crypto', symbol, currency, refresh, lambda: self._fetch_crypto(symbol, currency))

    def _market_price(self, asset_class, symbol, currency, refresh, fetch) -> PriceSnapshot:
        sources = []
        if not refresh:
            sources.append(Source(
                name='cache',
                fetch=self._cached(asset_class, currency, [symbol]),
                validate=self._snapshot_validator(asset_class),
            ))
        if self._allow_network:
            sources.append(Source(name='provider', fetch=fetch, validate=self._snapshot_validator(asset_class)))
        sources.append(Source(
            name='last-known-good',
            fetch=self._cached(asset_class, currency, [symbol]),
            validate=self._snapshot_validator(asset_class, max_age=None, fresh=False),
            is_fallback=True,
        ))

        result = fetch_with_fallback_chain(sources)
        snapshot = result.value
        snapshot.degraded = snapshot.degraded or result.degraded
        if result.source == 'provider':
            self._remember(snapshot)
        return snapshot

    # Market quotes keep their exchange time on the quote; snapshots are
    # stamped with the fetch time so closed markets do not read as stale.

    def _fetch_stock(self, symbol: str, currency: str) -> PriceSnapshot:
        provider = self._provider('stock')
        quote = provider.get_quote(symbol)
        snapshot = PriceSnapshot(
            values={symbol: quote.price},
            currency=quote.currency,
            timestamp=get_now(),
            source=provider.name,
            asset_class='stock',
        )
        return convert_snapshot(snapshot, currency, self.get_rate_table())

    def _fetch_crypto(self, symbol: str, currency: str) -> PriceSnapshot | None:
        provider = self._provider('crypto')
        prices = provider.get_prices([symbol], currency)
        match = next((p for p in prices if p.symbol == symbol), None)
        if match is None:
            return None
        snapshot = PriceSnapshot(
            values={symbol: match.price},
            currency=match.currency,
            timestamp=get_now(),
            source=provider.name,
            asset_class='crypto',
        )
        return convert_snapshot(snapshot, currency, self.get_rate_table())

    # Combined

    def get_price_context(self, currency: str, refresh: bool = False) -> PriceContext:
        """Get metal prices and rates for valuing a store in ``currency``.

        Never raises: an unpriceable currency yields a context without metal
        prices, flagged degraded.
        """
        rates = self.get_rate_table(refresh=refresh)
        context = PriceContext(currency=currency.upper(), rates=rates, degraded=rates.degraded)
        context.sources['fx'] = rates.source
        try:
            metals = self.get_metal_prices(currency, refresh=refresh)
        except (UpstreamUnavailable, ConversionRateUnavailable) as e:
            logger.warning(f"No metal prices for {currency}: {e}")
            context.degraded = True
            context.sources['metals'] = 'unavailable'
            return context
        context.metals = metals
        context.degraded = context.degraded or metals.degraded
        context.sources['metals'] = metals.source
        return context
