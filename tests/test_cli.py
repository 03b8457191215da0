"""Tests for the flask CLI commands."""
import json

import pytest


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_init_db(runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'zakat.sqlite' in result.output


class TestRefreshPrices:
    """Tests for refresh-prices."""

    def test_live_refresh(self, runner, live_providers):
        result = runner.invoke(args=['refresh-prices', '-c', 'USD', '-c', 'EUR'])
        assert result.exit_code == 0
        assert 'rates from fake-fx (ok)' in result.output
        assert 'USD: gold 93.98/g, silver 1.02/g from fake-metals (ok)' in result.output
        assert 'EUR: gold' in result.output

    def test_refresh_bypasses_cache(self, runner, live_providers):
        runner.invoke(args=['refresh-prices'])
        runner.invoke(args=['refresh-prices'])
        assert live_providers['metal'].calls == 2
        assert live_providers['fx'].calls == 2

    def test_unsupported_currency_fails(self, runner, live_providers):
        result = runner.invoke(args=['refresh-prices', '-c', 'XYZ'])
        assert result.exit_code == 1
        assert 'XYZ: unsupported currency' in result.output

    def test_offline_reports_degraded(self, runner):
        result = runner.invoke(args=['refresh-prices'])
        assert result.exit_code == 0
        assert 'from static (degraded)' in result.output


class TestShowNisab:
    """Tests for show-nisab."""

    def test_offline(self, runner):
        result = runner.invoke(args=['show-nisab', '--offline', '--currency', 'gbp'])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data['currency'] == 'GBP'
        assert data['metadata']['source'] == 'fallback'

    def test_forced_metal(self, runner):
        result = runner.invoke(args=['show-nisab', '--offline', '--metal', 'gold'])
        data = json.loads(result.output)
        assert data['nisabThreshold'] == data['thresholds']['gold']

    def test_invalid_metal(self, runner):
        result = runner.invoke(args=['show-nisab', '--metal', 'platinum'])
        assert result.exit_code == 2


class TestStateCommands:
    """Tests for import-state, export-state and show-summary."""

    @pytest.fixture
    def state_file(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({
            'version': 1,
            'currency': 'USD',
            'records': {'cash': {'cash_on_hand': 1000}},
            'hawl': {'cash': True},
        }))
        return path

    def test_import_then_export(self, runner, state_file):
        result = runner.invoke(args=['import-state', 'alice', str(state_file)])
        assert result.exit_code == 0
        assert 'Imported state alice (USD)' in result.output

        result = runner.invoke(args=['export-state', 'alice'])
        assert result.exit_code == 0
        blob = json.loads(result.output)
        assert blob['records']['cash']['cash_on_hand'] == 1000.0
        assert blob['version'] >= 2

    def test_import_rejects_non_object(self, runner, tmp_path):
        path = tmp_path / 'list.json'
        path.write_text('[1, 2, 3]')
        result = runner.invoke(args=['import-state', 'alice', str(path)])
        assert result.exit_code == 1

    def test_import_rejects_malformed_blob(self, runner, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text(json.dumps({'records': [], 'currency': 'USD'}))
        result = runner.invoke(args=['import-state', 'alice', str(path)])
        assert result.exit_code == 1
        assert 'Import failed' in result.output
        assert runner.invoke(args=['export-state', 'alice']).exit_code == 1

    def test_export_missing_state(self, runner):
        result = runner.invoke(args=['export-state', 'nobody'])
        assert result.exit_code == 1
        assert 'No state stored under nobody' in result.output

    def test_show_summary(self, runner, state_file):
        runner.invoke(args=['import-state', 'alice', str(state_file)])
        result = runner.invoke(args=['show-summary', 'alice', '--offline'])
        assert result.exit_code == 0
        assert 'State alice (USD)' in result.output
        assert 'Net zakatable:  1000.00' in result.output
        assert 'Nisab:          714.00 (silver, above)' in result.output
        assert 'Zakat due:      25.00 USD' in result.output
