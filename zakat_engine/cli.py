"""Flask CLI commands for the database, prices and stored state."""
import json
import click
from flask import current_app
from flask.cli import with_appcontext

from zakat_engine.db import get_db, init_db, get_db_path
from zakat_engine.data.currencies import is_valid_currency
from zakat_engine.errors import ZakatEngineError
from zakat_engine.services.nisab import format_nisab_response, resolve_nisab
from zakat_engine.services.pricing import PriceService
from zakat_engine.services.state_repository import StateRepository
from zakat_engine.services.valuation import load_store, save_store, summarize_store


def _price_service(repository: StateRepository, offline: bool = False) -> PriceService:
    allow_network = False if offline else current_app.config['PRICING_ALLOW_NETWORK']
    return PriceService(repository, allow_network=allow_network)


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Initialize the SQLite database with schema."""
    init_db()
    click.echo(f'Initialized database at {get_db_path()}')


@click.command('refresh-prices')
@click.option('--currency', '-c', 'currencies', multiple=True, default=['USD'], help='Currency to price metals in (repeatable)')
@with_appcontext
def refresh_prices_command(currencies):
    """Fetch exchange rates and metal prices, bypassing the cache.

    Successful provider results become the new last-known-good prices.
    """
    repository = StateRepository(get_db())
    prices = _price_service(repository)

    table = prices.get_rate_table(refresh=True)
    status = 'degraded' if table.degraded else 'ok'
    click.echo(f'FX: {len(table.rates)} rates from {table.source} ({status})')
    for error in table.errors:
        click.echo(f'  {error}')

    failures = 0
    for currency in currencies:
        currency = currency.upper()
        if not is_valid_currency(currency):
            click.echo(f'{currency}: unsupported currency')
            failures += 1
            continue
        try:
            snapshot = prices.get_metal_prices(currency, refresh=True)
        except ZakatEngineError as e:
            click.echo(f'{currency}: metal prices unavailable ({e})')
            failures += 1
            continue
        status = 'degraded' if snapshot.degraded else 'ok'
        click.echo(
            f"{currency}: gold {snapshot.price('gold')}/g, silver {snapshot.price('silver')}/g "
            f"from {snapshot.source} ({status})"
        )

    if failures:
        raise SystemExit(1)


@click.command('show-nisab')
@click.option('--currency', '-c', default='USD', help='Currency code')
@click.option('--metal', type=click.Choice(['gold', 'silver']), default=None, help='Force the reported metal')
@click.option('--offline', is_flag=True, help='Do not call price providers')
@with_appcontext
def show_nisab_command(currency, metal, offline):
    """Print the nisab threshold as JSON."""
    repository = StateRepository(get_db())
    currency = currency.upper()
    outcome = resolve_nisab(currency, _price_service(repository, offline), cached=repository.get_nisab(currency))
    click.echo(json.dumps(format_nisab_response(outcome, metal), indent=2))


@click.command('show-summary')
@click.argument('state_key', default='default')
@click.option('--offline', is_flag=True, help='Do not call price providers')
@with_appcontext
def show_summary_command(state_key, offline):
    """Print the zakat summary of a stored state."""
    repository = StateRepository(get_db())
    store = load_store(repository, state_key)
    summary = summarize_store(store, _price_service(repository, offline), repository)
    save_store(repository, state_key, store)

    currency = summary['currency']
    click.echo(f"State {state_key} ({currency})")
    for category, result in summary['categories'].items():
        if result['total'] or result['zakatable']:
            hawl = '' if result['hawl_met'] else ' [hawl not met]'
            click.echo(f"  {category:<16} total {result['total']:>12.2f}  zakatable {result['zakatable']:>12.2f}{hawl}")
    click.echo(f"Deductible:     {summary['deductible_total']:.2f}")
    click.echo(f"Net zakatable:  {summary['net_zakatable']:.2f}")
    nisab = summary['nisab']
    if nisab['threshold'] is not None:
        click.echo(f"Nisab:          {nisab['threshold']:.2f} ({nisab['binding_metal']}, {nisab['status']})")
    click.echo(f"Zakat due:      {summary['zakat_due']:.2f} {currency}")
    for warning in summary['warnings']:
        click.echo(f"Warning: {warning}")


@click.command('import-state')
@click.argument('state_key')
@click.argument('json_path', type=click.Path(exists=True))
@with_appcontext
def import_state_command(state_key, json_path):
    """Restore a state blob from a JSON file (any schema version)."""
    with open(json_path, 'r', encoding='utf-8') as f:
        blob = json.load(f)
    if not isinstance(blob, dict):
        click.echo('State file must contain a JSON object')
        raise SystemExit(1)

    repository = StateRepository(get_db())
    store = load_store(repository, state_key)
    result = store.hydrate(blob, 'restore')
    if not result:
        click.echo(f'Import failed: {result.error}')
        raise SystemExit(1)
    save_store(repository, state_key, store)
    click.echo(f'Imported state {state_key} ({store.currency})')


@click.command('export-state')
@click.argument('state_key')
@with_appcontext
def export_state_command(state_key):
    """Print a stored state blob as JSON."""
    repository = StateRepository(get_db())
    blob = repository.load_blob(state_key)
    if blob is None:
        click.echo(f'No state stored under {state_key}')
        raise SystemExit(1)
    click.echo(json.dumps(load_store(repository, state_key).to_blob(), indent=2))


def register_cli(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(init_db_command)
    app.cli.add_command(refresh_prices_command)
    app.cli.add_command(show_nisab_command)
    app.cli.add_command(show_summary_command)
    app.cli.add_command(import_state_command)
    app.cli.add_command(export_state_command)
