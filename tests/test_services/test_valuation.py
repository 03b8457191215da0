"""Tests for loading, saving and summarizing stored state."""
import pytest

from zakat_engine.services.pricing import PriceService
from zakat_engine.services.valuation import current_nisab, load_store, save_store, summarize_store


class TestLoadStore:
    def test_new_key_starts_empty_and_ready(self, repository):
        store = load_store(repository, 'alice')
        assert store.is_ready
        assert store.currency == 'USD'

    def test_default_currency_from_env(self, repository, monkeypatch):
        monkeypatch.setenv('ZAKAT_DEFAULT_CURRENCY', 'gbp')
        assert load_store(repository, 'alice').currency == 'GBP'

    def test_unsupported_default_currency(self, repository, monkeypatch):
        monkeypatch.setenv('ZAKAT_DEFAULT_CURRENCY', 'XYZ')
        assert load_store(repository, 'alice').currency == 'USD'

    def test_save_and_reload(self, repository):
        store = load_store(repository, 'alice')
        store.set_value('cash', 'cash_on_hand', 250)
        save_store(repository, 'alice', store)
        assert load_store(repository, 'alice').get_category('cash')['cash_on_hand'] == 250.0

    def test_fresh_intent(self, repository):
        store = load_store(repository, 'alice')
        store.set_value('cash', 'cash_on_hand', 250)
        save_store(repository, 'alice', store)
        assert load_store(repository, 'alice', intent='fresh').get_category('cash')['cash_on_hand'] == 0.0


@pytest.mark.usefixtures('frozen_time')
class TestNisabAndSummary:
    def test_current_nisab_remembered(self, store, price_service, repository):
        outcome = current_nisab(store, price_service, repository)
        assert outcome.degraded is False
        assert store.last_nisab['threshold'] == 606.9
        assert repository.get_nisab('USD')['threshold'] == 606.9

    def test_stored_nisab_reused(self, store, price_service, metal_provider):
        current_nisab(store, price_service)
        metal_provider.fail = True
        outcome = current_nisab(store, price_service)
        assert outcome.source == 'cache'

    def test_summary(self, store, price_service):
        store.set_value('cash', 'cash_on_hand', 600)
        store.set_value('precious-metals', 'gold_investment', 90)
        summary = summarize_store(store, price_service)
        assert summary['zakatable_total'] == pytest.approx(9058.2)
        assert summary['nisab']['degraded'] is False
        assert summary['reset_epoch'] == 0
        assert summary['last_conversion'] is None
        assert store.last_prices

    def test_fallback_nisab_not_remembered(self, store, price_service, repository, metal_provider):
        metal_provider.fail = True
        outcome = current_nisab(store, price_service, repository)
        assert outcome.degraded is True
        assert store.last_nisab is None
        assert repository.get_nisab('USD') is None

    def test_fallback_nisab_stays_degraded(self, store, repository):
        prices = PriceService(repository, allow_network=False)
        current_nisab(store, prices, repository)
        again = current_nisab(store, PriceService(repository, allow_network=False), repository)
        assert again.degraded is True
        assert again.source == 'static'
