"""Tests for the currency conversion coordinator."""
import pytest

from zakat_engine.services.conversion import (
    CONVERTED,
    PARTIAL,
    REJECTED,
    SKIPPED,
    CurrencyConversionCoordinator,
)
from zakat_engine.services.pricing import PriceService
from zakat_engine.services.store import AssetValueStore


@pytest.fixture
def coordinator(store, price_service):
    return CurrencyConversionCoordinator(store, price_service)


@pytest.fixture
def filled(store):
    """A USD store with cash, metals, stocks and a foreign cash holding."""
    store.set_values('cash', {
        'cash_on_hand': 600,
        'foreign_currency_entries': [
            {'amount': 100, 'currency': 'USD'},
            {'amount': 50, 'currency': 'GBP'},
        ],
    })
    store.set_value('precious-metals', 'gold_investment', 90)
    store.set_entries('stocks', 'active_stocks', [
        {'symbol': 'AAPL', 'shares': 10, 'current_price': 200, 'currency': 'USD'},
        {'symbol': 'SHOP', 'shares': 10, 'current_price': 135, 'currency': 'CAD'},
    ])
    store.set_entries('debt-receivable', 'liabilities_entries', [
        {'description': 'card', 'amount': 300},
    ])
    return store


@pytest.mark.usefixtures('frozen_time')
class TestConvert:
    """Tests for a single conversion."""

    def test_scalar_fields_converted(self, filled, coordinator):
        result = coordinator.convert('USD', 'EUR')
        assert result.status == CONVERTED
        assert filled.currency == 'EUR'
        assert filled.get_category('cash')['cash_on_hand'] == 540.0
        assert filled.get_category('debt-receivable')['short_term_liabilities'] == 270.0

    def test_weights_untouched(self, filled, coordinator):
        coordinator.convert('USD', 'EUR')
        assert filled.get_category('precious-metals')['gold_investment'] == 90.0

    def test_entries_tagged_with_old_base_retagged(self, filled, coordinator):
        coordinator.convert('USD', 'EUR')
        aapl, shop = filled.get_category('stocks')['active_stocks']
        assert aapl['currency'] == 'EUR'
        assert aapl['current_price'] == pytest.approx(180.0)
        assert aapl['shares'] == 10.0

    def test_stock_in_third_currency_converts_from_own_tag(self, filled, coordinator):
        """A CAD-listed stock moves straight from CAD into the new base."""
        coordinator.convert('USD', 'EUR')
        shop = filled.get_category('stocks')['active_stocks'][1]
        assert shop['currency'] == 'EUR'
        assert shop['current_price'] == pytest.approx(135 * 0.9 / 1.35)

    def test_foreign_cash_in_third_currency_stays(self, filled, coordinator):
        coordinator.convert('USD', 'EUR')
        usd, gbp = filled.get_category('cash')['foreign_currency_entries']
        assert usd == {'amount': 90.0, 'currency': 'EUR'}
        assert gbp == {'amount': 50.0, 'currency': 'GBP'}

    def test_nisab_repriced_in_new_currency(self, filled, coordinator):
        result = coordinator.convert('USD', 'EUR')
        assert result.nisab['currency'] == 'EUR'
        assert filled.last_nisab['currency'] == 'EUR'
        assert result.nisab['silver_value'] == pytest.approx(595 * 1.02 * 0.9, abs=0.01)

    def test_conversion_record_written(self, filled, coordinator, frozen_time):
        result = coordinator.convert('USD', 'EUR', action_id='click-1')
        assert filled.last_conversion == {
            'from_currency': 'USD',
            'to_currency': 'EUR',
            'action_id': 'click-1',
            'timestamp': frozen_time.now(),
        }
        assert result.record == filled.last_conversion
        assert filled.pending_conversion is None

    def test_events_emitted(self, filled, coordinator):
        events = []
        filled.subscribe(events.append)
        coordinator.convert('USD', 'EUR')
        kinds = [e.kind for e in events]
        assert kinds[0] == 'currency'
        assert kinds[-1] == 'conversion'
        assert all(e.detail.get('conversion') for e in events if e.kind == 'change')


@pytest.mark.usefixtures('frozen_time')
class TestIdempotence:
    """Repeated requests never convert twice."""

    def test_double_convert_is_noop(self, filled, coordinator):
        first = coordinator.convert('USD', 'EUR')
        second = coordinator.convert('USD', 'EUR')
        assert first.status == CONVERTED
        assert second.status == SKIPPED
        assert filled.get_category('cash')['cash_on_hand'] == 540.0

    def test_repeated_action_id_is_noop(self, filled, coordinator):
        coordinator.convert('USD', 'EUR', action_id='a1')
        result = coordinator.convert('EUR', 'GBP', action_id='a1')
        assert result.status == SKIPPED
        assert filled.currency == 'EUR'

    def test_round_trip(self, filled, coordinator):
        """USD -> EUR -> USD restores every value within a cent."""
        before = filled.get_records()
        coordinator.convert('USD', 'EUR')
        result = coordinator.convert('EUR', 'USD')
        assert result.status == CONVERTED
        after = filled.get_records()

        assert after['cash']['cash_on_hand'] == pytest.approx(before['cash']['cash_on_hand'], abs=0.01)
        assert after['debt-receivable']['short_term_liabilities'] == pytest.approx(300, abs=0.01)
        aapl = after['stocks']['active_stocks'][0]
        assert aapl['current_price'] == pytest.approx(200, abs=0.01)
        assert aapl['currency'] == 'USD'
        assert after['cash']['foreign_currency_entries'][0] == {'amount': 100.0, 'currency': 'USD'}

    def test_pending_same_pair_skipped(self, filled, coordinator):
        filled.begin_conversion('USD', 'EUR')
        result = coordinator.convert('USD', 'EUR')
        assert result.status == SKIPPED
        assert 'in progress' in result.reason
        assert filled.currency == 'USD'


@pytest.mark.usefixtures('frozen_time')
class TestGuards:
    """Requests the coordinator refuses."""

    def test_same_currency_skipped(self, filled, coordinator):
        assert coordinator.convert('USD', 'USD').status == SKIPPED

    def test_wrong_source_currency_skipped(self, filled, coordinator):
        result = coordinator.convert('GBP', 'EUR')
        assert result.status == SKIPPED
        assert filled.get_category('cash')['cash_on_hand'] == 600.0

    def test_invalid_currency_rejected(self, filled, coordinator):
        result = coordinator.convert('USD', 'XYZ')
        assert result.status == REJECTED
        assert result.changed is False

    @pytest.mark.parametrize('target', [5, None, ['EUR']])
    def test_non_string_currency_rejected(self, filled, coordinator, target):
        result = coordinator.convert('USD', target)
        assert result.status == REJECTED
        assert filled.currency == 'USD'
        assert filled.get_category('cash')['cash_on_hand'] == 600.0

    def test_offline_nisab_not_remembered(self, filled):
        prices = PriceService(allow_network=False)
        result = CurrencyConversionCoordinator(filled, prices).convert('USD', 'EUR')
        assert result.status == CONVERTED
        assert result.nisab['degraded'] is True
        assert filled.last_nisab is None

    def test_store_not_ready_rejected(self, price_service):
        store = AssetValueStore()
        result = CurrencyConversionCoordinator(store, price_service).convert('USD', 'EUR')
        assert result.status == REJECTED


@pytest.mark.usefixtures('frozen_time')
class TestMissingRates:
    """Missing rates leave values in place and report a partial conversion."""

    def test_missing_target_rate_is_partial(self, filled, coordinator):
        result = coordinator.convert('USD', 'AUD')
        assert result.status == PARTIAL
        assert filled.currency == 'AUD'
        assert filled.get_category('cash')['cash_on_hand'] == 600.0
        assert any('cash.cash_on_hand' in w for w in result.warnings)
        assert filled.last_conversion['to_currency'] == 'AUD'

    def test_provider_down_uses_static_rates(self, filled, coordinator, fx_provider):
        fx_provider.fail = True
        result = coordinator.convert('USD', 'EUR')
        assert result.status == CONVERTED
        assert result.degraded is True
        assert filled.get_category('cash')['cash_on_hand'] == pytest.approx(600 * 0.92)
        assert any(w.startswith('Exchange rates') for w in result.warnings)

    def test_to_dict(self, filled, coordinator):
        data = coordinator.convert('USD', 'EUR').to_dict()
        assert data['status'] == 'converted'
        assert data['from_currency'] == 'USD'
        assert data['to_currency'] == 'EUR'
