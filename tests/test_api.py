"""Tests for the JSON API."""
import pytest


def put_cash(client, key='alice', **values):
    return client.put(f'/api/v1/state/{key}/assets/cash', json=values)


class TestNisabEndpoint:
    """Tests for /api/v1/nisab."""

    def test_offline_falls_back_to_static_prices(self, client):
        """With the network off the endpoint still answers, tagged as fallback."""
        response = client.get('/api/v1/nisab?currency=USD')
        assert response.status_code == 200
        data = response.get_json()
        assert data['currency'] == 'USD'
        assert data['degraded'] is True
        assert data['metadata']['source'] == 'fallback'
        assert data['thresholds'] == {'gold': 7225.0, 'silver': 714.0}
        assert data['nisabThreshold'] == 714.0
        assert data['metadata']['bindingMetal'] == 'silver'

    def test_live_prices(self, client, live_providers):
        data = client.get('/api/v1/nisab').get_json()
        assert data['degraded'] is False
        assert data['metadata']['source'] == 'fake-metals'
        assert data['thresholds'] == {'gold': 7988.3, 'silver': 606.9}
        assert data['nisabThreshold'] == 606.9
        calculated = data['metadata']['calculatedThresholds']
        assert calculated['gold'] == {'price': 93.98, 'weight': 85, 'threshold': 7988.3, 'unit': 'gram'}

    def test_second_request_served_from_cache(self, client, live_providers):
        client.get('/api/v1/nisab')
        live_providers['metal'].fail = True
        data = client.get('/api/v1/nisab').get_json()
        assert data['metadata']['source'] == 'cache'
        assert data['degraded'] is False

    def test_forced_metal(self, client):
        data = client.get('/api/v1/nisab?metal=gold').get_json()
        assert data['nisabThreshold'] == data['thresholds']['gold']
        assert data['metadata']['usedMetalType'] == 'gold'

    def test_invalid_metal(self, client):
        assert client.get('/api/v1/nisab?metal=platinum').status_code == 400

    @pytest.mark.parametrize('currency', ['US', 'DOLLARS', 'U$D'])
    def test_malformed_currency(self, client, currency):
        assert client.get(f'/api/v1/nisab?currency={currency}').status_code == 400

    def test_unsupported_currency_uses_offline_usd(self, client):
        response = client.get('/api/v1/nisab?currency=XYZ')
        assert response.status_code == 200
        data = response.get_json()
        assert data['currency'] == 'USD'
        assert data['metadata']['conversionFailed'] is True
        assert data['nisabThreshold'] == 606.9


class TestPriceEndpoints:
    """Tests for /api/v1/prices/*."""

    def test_metals_offline(self, client):
        data = client.get('/api/v1/prices/metals?currency=GBP').get_json()
        assert data['gold'] == 67.0
        assert data['silver'] == 0.95
        assert data['source'] == 'fallback'
        assert data['degraded'] is True

    def test_metals_live(self, client, live_providers):
        data = client.get('/api/v1/prices/metals').get_json()
        assert data['gold'] == 93.98
        assert data['isCache'] is False
        assert data['source'] == 'fake-metals'
        assert data['lastUpdated'].endswith('Z')

    def test_metals_invalid_currency(self, client):
        assert client.get('/api/v1/prices/metals?currency=XYZ').status_code == 400

    def test_rates_offline_rebased(self, client):
        data = client.get('/api/v1/prices/rates?base=eur').get_json()
        assert data['base'] == 'EUR'
        assert data['rates']['EUR'] == 1.0
        assert data['rates']['USD'] == pytest.approx(1 / 0.92)
        assert data['source'] == 'fallback'
        assert data['degraded'] is True

    def test_rates_live(self, client, live_providers):
        data = client.get('/api/v1/prices/rates?base=GBP').get_json()
        assert data['rates']['EUR'] == pytest.approx(0.9 / 0.8)
        assert data['source'] == 'fake-fx'
        assert data['degraded'] is False
        assert data['lastUpdated'].endswith('Z')

    def test_rates_invalid_base(self, client):
        assert client.get('/api/v1/prices/rates?base=XYZ').status_code == 400

    def test_stock_live(self, client, live_providers):
        data = client.get('/api/v1/prices/stocks?symbol=aapl').get_json()
        assert data['symbol'] == 'AAPL'
        assert data['price'] == 200.0
        assert data['currency'] == 'USD'

    def test_stock_unavailable_offline(self, client):
        response = client.get('/api/v1/prices/stocks?symbol=AAPL')
        assert response.status_code == 502
        assert response.get_json()['kind'] == 'upstream_unavailable'

    def test_symbol_required(self, client):
        assert client.get('/api/v1/prices/stocks').status_code == 400

    def test_crypto_converted(self, client, live_providers):
        data = client.get('/api/v1/prices/crypto?symbol=BTC&currency=EUR').get_json()
        assert data['price'] == pytest.approx(45000.0)
        assert data['currency'] == 'EUR'


def test_providers_endpoint(client):
    data = client.get('/api/v1/providers').get_json()
    assert data['providers']['metals']['provider'] == 'goldprice'
    assert data['network_enabled'] is False
    assert data['config']['strict_validation'] is True


class TestStateEndpoints:
    """Tests for stored state."""

    def test_new_state(self, client):
        data = client.get('/api/v1/state/alice').get_json()
        assert data['state'] == 'ready'
        assert data['currency'] == 'USD'
        assert data['records']['cash']['cash_on_hand'] == 0.0
        assert all(data['hawl'].values())

    def test_invalid_state_key(self, client):
        assert client.get('/api/v1/state/not.valid').status_code == 400

    def test_write_persists(self, client):
        response = put_cash(client, cash_on_hand=600, savings_account=150.5)
        assert response.status_code == 200
        data = response.get_json()
        assert data['values']['savings_account'] == 150.5
        assert data['breakdown']['zakatable'] == 750.5

        stored = client.get('/api/v1/state/alice').get_json()
        assert stored['records']['cash']['cash_on_hand'] == 600.0

    def test_states_are_isolated(self, client):
        put_cash(client, cash_on_hand=600)
        other = client.get('/api/v1/state/bob').get_json()
        assert other['records']['cash']['cash_on_hand'] == 0.0

    def test_negative_value_rejected(self, client):
        response = put_cash(client, cash_on_hand=-1)
        assert response.status_code == 400
        assert response.get_json()['kind'] == 'invalid_input'

    def test_body_must_be_object(self, client):
        response = client.put('/api/v1/state/alice/assets/cash', json=[1, 2])
        assert response.status_code == 400

    def test_unknown_category(self, client):
        assert client.get('/api/v1/state/alice/assets/yachts').status_code == 404

    def test_entries(self, client):
        response = client.put('/api/v1/state/alice/assets/crypto/entries/coins', json=[
            {'symbol': 'BTC', 'quantity': 0.5, 'current_price': 50000},
        ])
        assert response.status_code == 200
        coin = response.get_json()['values']['coins'][0]
        assert coin['currency'] == 'USD'
        assert coin['quantity'] == 0.5

    def test_entries_wrapped_body(self, client):
        response = client.put('/api/v1/state/alice/assets/cash/entries/foreign_currency_entries', json={
            'entries': [{'amount': 50, 'currency': 'GBP'}],
        })
        assert response.get_json()['values']['foreign_currency_entries'] == [{'amount': 50.0, 'currency': 'GBP'}]

    def test_unknown_entry_list(self, client):
        response = client.put('/api/v1/state/alice/assets/crypto/entries/wallets', json=[])
        assert response.status_code == 400

    def test_reset_category(self, client):
        put_cash(client, cash_on_hand=600)
        data = client.post('/api/v1/state/alice/assets/cash/reset').get_json()
        assert data['values']['cash_on_hand'] == 0.0
        assert data['reset_epoch'] == 1

    def test_reset_state(self, client):
        put_cash(client, cash_on_hand=600)
        data = client.post('/api/v1/state/alice/reset').get_json()
        assert data['records']['cash']['cash_on_hand'] == 0.0
        assert data['reset_epoch'] == 1

    def test_hawl(self, client):
        put_cash(client, cash_on_hand=600)
        response = client.put('/api/v1/state/alice/hawl/cash', json={'met': False})
        assert response.get_json() == {'category': 'cash', 'hawl_met': False}

        data = client.get('/api/v1/state/alice/assets/cash').get_json()
        assert data['hawl_met'] is False
        assert data['breakdown']['zakatable'] == 0.0
        assert data['breakdown']['total'] == 600.0

    def test_hawl_requires_boolean(self, client):
        assert client.put('/api/v1/state/alice/hawl/cash', json={'met': 'no'}).status_code == 400

    def test_hydrate_fresh(self, client):
        put_cash(client, cash_on_hand=600)
        data = client.put('/api/v1/state/alice', json={'intent': 'fresh'}).get_json()
        assert data['records']['cash']['cash_on_hand'] == 0.0
        assert data['reset_epoch'] == 1

    def test_hydrate_from_supplied_blob(self, client):
        data = client.put('/api/v1/state/alice', json={
            'intent': 'restore',
            'state': {'version': 1, 'currency': 'EUR', 'records': {'cash': {'cash_on_hand': 40}}},
        }).get_json()
        assert data['currency'] == 'EUR'
        assert data['records']['cash']['cash_on_hand'] == 40.0

    def test_hydrate_bad_intent(self, client):
        assert client.put('/api/v1/state/alice', json={'intent': 'guess'}).status_code == 400

    @pytest.mark.parametrize('blob', [{'records': []}, {'reset_epoch': 'x'}, {'hawl': 'all'}])
    def test_hydrate_malformed_blob(self, client, blob):
        put_cash(client, cash_on_hand=600)
        response = client.put('/api/v1/state/alice', json={'state': blob})
        assert response.status_code == 400
        stored = client.get('/api/v1/state/alice').get_json()
        assert stored['records']['cash']['cash_on_hand'] == 600.0

    def test_hydrate_body_must_be_object(self, client):
        assert client.put('/api/v1/state/alice', json=['fresh']).status_code == 400

    def test_derived_debt_total_rejected(self, client):
        response = client.put('/api/v1/state/alice/assets/debt-receivable', json={'receivables': 100})
        assert response.status_code == 400


class TestCurrencyConversion:
    """Tests for POST /state/<key>/currency."""

    def test_convert(self, client):
        put_cash(client, cash_on_hand=600)
        response = client.post('/api/v1/state/alice/currency', json={'to': 'EUR'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['conversion']['status'] == 'converted'
        assert data['conversion']['degraded'] is True
        assert data['currency'] == 'EUR'
        assert data['records']['cash']['cash_on_hand'] == 552.0

        stored = client.get('/api/v1/state/alice').get_json()
        assert stored['currency'] == 'EUR'
        assert stored['last_conversion']['to_currency'] == 'EUR'

    def test_retry_is_noop(self, client):
        put_cash(client, cash_on_hand=600)
        body = {'from': 'USD', 'to': 'EUR', 'action_id': 'click-1'}
        client.post('/api/v1/state/alice/currency', json=body)
        data = client.post('/api/v1/state/alice/currency', json=body).get_json()
        assert data['conversion']['status'] == 'skipped'
        assert data['records']['cash']['cash_on_hand'] == 552.0

    def test_unsupported_currency(self, client):
        response = client.post('/api/v1/state/alice/currency', json={'to': 'XYZ'})
        assert response.status_code == 400
        assert response.get_json()['conversion']['status'] == 'rejected'

    def test_target_required(self, client):
        assert client.post('/api/v1/state/alice/currency', json={}).status_code == 400

    @pytest.mark.parametrize('body', [{'to': 5}, {'to': 'EUR', 'from': 1}, {'to': 'EUR', 'action_id': 7}])
    def test_non_string_fields(self, client, body):
        assert client.post('/api/v1/state/alice/currency', json=body).status_code == 400


class TestSummary:
    """Tests for GET /state/<key>/summary."""

    def test_end_to_end(self, client, live_providers):
        """600 cash and 90 g of investment gold against the silver nisab."""
        put_cash(client, cash_on_hand=600)
        client.put('/api/v1/state/alice/assets/precious-metals', json={'gold_investment': 90})

        data = client.get('/api/v1/state/alice/summary').get_json()
        assert data['currency'] == 'USD'
        assert data['zakatable_total'] == pytest.approx(9058.2)
        assert data['net_zakatable'] == pytest.approx(9058.2)
        assert data['meets_nisab'] is True
        assert data['nisab']['threshold'] == 606.9
        assert data['nisab']['binding_metal'] == 'silver'
        assert data['nisab']['degraded'] is False
        assert data['zakat_due'] == pytest.approx(226.455, abs=0.01)
        assert data['degraded'] is False

    def test_liabilities_deducted(self, client, live_providers):
        put_cash(client, cash_on_hand=1000)
        client.put('/api/v1/state/alice/assets/debt-receivable/entries/liabilities_entries', json=[
            {'description': 'card', 'amount': 600},
        ])
        data = client.get('/api/v1/state/alice/summary').get_json()
        assert data['zakatable_total'] == 1000.0
        assert data['deductible_total'] == 600.0
        assert data['net_zakatable'] == 400.0
        assert data['meets_nisab'] is False
        assert data['zakat_due'] == 0.0

    def test_offline_summary_is_degraded(self, client):
        put_cash(client, cash_on_hand=1000)
        data = client.get('/api/v1/state/alice/summary').get_json()
        assert data['degraded'] is True
        assert data['nisab']['degraded'] is True
        assert data['nisab']['threshold'] == 714.0
        assert data['meets_nisab'] is True

    def test_summary_remembers_nisab(self, client, live_providers):
        client.get('/api/v1/state/alice/summary')
        stored = client.get('/api/v1/state/alice').get_json()
        assert stored['last_nisab']['currency'] == 'USD'
        assert stored['last_nisab']['threshold'] == 606.9


def test_state_nisab_follows_currency(client):
    client.post('/api/v1/state/alice/currency', json={'to': 'EUR'})
    data = client.get('/api/v1/state/alice/nisab').get_json()
    assert data['currency'] == 'EUR'


class TestFallbackNisabNotCached:
    """Fallback thresholds stay marked as fallback on every request."""

    def test_state_nisab_offline_twice(self, client):
        first = client.get('/api/v1/state/alice/nisab').get_json()
        second = client.get('/api/v1/state/alice/nisab').get_json()
        for data in (first, second):
            assert data['degraded'] is True
            assert data['metadata']['source'] == 'fallback'
        assert client.get('/api/v1/state/alice').get_json()['last_nisab'] is None

    def test_summary_offline_twice(self, client):
        put_cash(client, cash_on_hand=1000)
        client.get('/api/v1/state/alice/summary')
        data = client.get('/api/v1/state/alice/summary').get_json()
        assert data['nisab']['degraded'] is True
        assert data['degraded'] is True
