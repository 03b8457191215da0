"""Glue between persisted state, prices and the calculators.

Routes and CLI commands work on one store per state key: load it, act on
it, save it. These helpers keep that sequence in one place.
"""
import logging

from zakat_engine.data.currencies import DEFAULT_CURRENCY, is_valid_currency
from zakat_engine.services.breakdown import summarize
from zakat_engine.services.config import get_default_currency
from zakat_engine.services.nisab import NisabOutcome, resolve_nisab
from zakat_engine.services.pricing import PriceService
from zakat_engine.services.state_repository import StateRepository
from zakat_engine.services.store import AssetValueStore

logger = logging.getLogger(__name__)


def _initial_currency() -> str:
    currency = get_default_currency()
    if not is_valid_currency(currency):
        logger.warning(f"ZAKAT_DEFAULT_CURRENCY={currency} is not supported, using {DEFAULT_CURRENCY}")
        return DEFAULT_CURRENCY
    return currency


def load_store(repository: StateRepository, state_key: str, intent: str = 'restore') -> AssetValueStore:
    """Load (or create) the store for a state key and make it ready."""
    store = AssetValueStore(_initial_currency())
    result = store.hydrate(repository.load_blob(state_key), intent)
    if not result.ok:
        logger.warning(f"Hydrating {state_key} failed ({result.error}), starting empty")
        store.hydrate(None, 'restore')
    return store


def save_store(repository: StateRepository, state_key: str, store: AssetValueStore) -> None:
    repository.save_blob(state_key, store.to_blob())


def current_nisab(store: AssetValueStore, prices: PriceService, repository: StateRepository | None = None,
                  refresh: bool = False) -> NisabOutcome:
    """Resolve the nisab in the store's currency and remember it when live."""
    cached = store.last_nisab
    if (not cached or cached.get('currency') != store.currency) and repository is not None:
        cached = repository.get_nisab(store.currency)

    outcome = resolve_nisab(store.currency, prices, cached=cached, refresh=refresh)
    threshold = outcome.threshold.to_dict()
    if outcome.degraded or threshold['currency'] != store.currency:
        return outcome
    store.remember_nisab(threshold)
    if repository is not None:
        repository.store_nisab(threshold)
    return outcome


def summarize_store(store: AssetValueStore, prices: PriceService, repository: StateRepository | None = None,
                    refresh: bool = False) -> dict:
    """Value every category of a store and compare the total with the nisab."""
    context = prices.get_price_context(store.currency, refresh=refresh)
    if context.metals is not None:
        store.remember_prices(context.metals)

    outcome = current_nisab(store, prices, repository, refresh=refresh)
    nisab = outcome.threshold if outcome.threshold.currency == store.currency else None

    summary = summarize(
        store.get_records(),
        store.hawl.to_dict(),
        context,
        nisab=nisab,
        nisab_degraded=outcome.degraded,
    )
    summary['nisab']['degraded'] = outcome.degraded
    summary['reset_epoch'] = store.reset_epoch
    summary['last_conversion'] = store.last_conversion
    return summary
