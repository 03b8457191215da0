"""API routes for prices, nisab and stored asset state."""
import re

from flask import Blueprint, jsonify, request, current_app

from zakat_engine.db import get_db
from zakat_engine.data.categories import get_schema, is_valid_category
from zakat_engine.data.currencies import (
    get_ordered_currencies,
    is_valid_currency,
    DEFAULT_CURRENCY,
)
from zakat_engine.errors import ConversionRateUnavailable, UpstreamUnavailable
from zakat_engine.services.breakdown import breakdown
from zakat_engine.services.config import get_pricing_config
from zakat_engine.services.conversion import REJECTED, CurrencyConversionCoordinator
from zakat_engine.services.fx import compute_cross_rates
from zakat_engine.services.nisab import format_nisab_response, resolve_nisab
from zakat_engine.services.pricing import PriceService
from zakat_engine.services.providers.registry import get_provider_status
from zakat_engine.services.snapshots import format_timestamp
from zakat_engine.services.state_repository import StateRepository
from zakat_engine.services.valuation import current_nisab, load_store, save_store, summarize_store

api_bp = Blueprint('api', __name__)

STATE_KEY_RE = re.compile(r'^[A-Za-z0-9_-]{1,64}$')
CURRENCY_CODE_RE = re.compile(r'^[A-Za-z]{3}$')


def _repository() -> StateRepository:
    return StateRepository(get_db())


def _price_service(repository: StateRepository) -> PriceService:
    return PriceService(repository, allow_network=current_app.config['PRICING_ALLOW_NETWORK'])


def _flag(name: str) -> bool:
    return request.args.get(name, 'false').lower() in ('1', 'true', 'yes')


def _currency_arg(default: str = DEFAULT_CURRENCY) -> str:
    return request.args.get('currency', default).upper()


def _json_body():
    return request.get_json(silent=True)


def _state_response(state_key: str, store) -> dict:
    return {
        'state_key': state_key,
        'state': store.state,
        'currency': store.currency,
        'records': store.get_records(),
        'hawl': store.hawl.to_dict(),
        'reset_epoch': store.reset_epoch,
        'last_nisab': store.last_nisab,
        'last_conversion': store.last_conversion,
    }


@api_bp.route('/currencies')
def currencies():
    """Return ordered list of all supported currencies."""
    currency_list = get_ordered_currencies()
    return jsonify({
        'currencies': currency_list,
        'default': DEFAULT_CURRENCY,
        'count': len(currency_list)
    })


@api_bp.route('/providers')
def providers():
    """Return which price providers are configured."""
    return jsonify({
        'providers': get_provider_status(),
        'network_enabled': current_app.config['PRICING_ALLOW_NETWORK'],
        'config': get_pricing_config(),
    })


@api_bp.route('/nisab')
def nisab():
    """Return the nisab threshold in a currency.

    Query Parameters:
        currency: ISO 4217 code (default: USD)
        metal: gold or silver to force the reported threshold (default: binding metal)
        refresh: bypass cached prices

    Upstream failures never produce an error status: the payload falls back
    to cached or static prices and is tagged ``metadata.source == 'fallback'``.
    """
    currency = _currency_arg()
    if not CURRENCY_CODE_RE.match(currency):
        return jsonify({'error': f'Invalid currency: {currency}'}), 400

    metal = request.args.get('metal')
    if metal is not None and metal not in ('gold', 'silver'):
        return jsonify({'error': 'metal must be gold or silver'}), 400

    repository = _repository()
    prices = _price_service(repository)
    refresh = _flag('refresh')
    outcome = resolve_nisab(currency, prices, cached=repository.get_nisab(currency), refresh=refresh)
    if not outcome.degraded:
        repository.store_nisab(outcome.threshold.to_dict())
    else:
        current_app.logger.warning(f"Nisab for {currency} served from {outcome.source}: {outcome.errors}")

    return jsonify(format_nisab_response(outcome, metal))


@api_bp.route('/prices/metals')
def metal_prices():
    """Return gold and silver prices per gram."""
    currency = _currency_arg()
    if not is_valid_currency(currency):
        return jsonify({'error': f'Invalid currency: {currency}'}), 400

    prices = _price_service(_repository())
    try:
        snapshot = prices.get_metal_prices(currency, refresh=_flag('refresh'))
    except (UpstreamUnavailable, ConversionRateUnavailable) as e:
        current_app.logger.warning(f"Metal prices unavailable for {currency}: {e}")
        return jsonify({'error': 'Metal prices unavailable', 'kind': e.kind}), 502

    return jsonify({
        'gold': snapshot.price('gold'),
        'silver': snapshot.price('silver'),
        'currency': snapshot.currency,
        'isCache': snapshot.is_cache,
        'lastUpdated': snapshot.last_updated,
        'source': 'fallback' if snapshot.degraded else snapshot.source,
        'degraded': snapshot.degraded,
    })


@api_bp.route('/prices/rates')
def exchange_rates():
    """Return exchange rates rebased to a currency.

    Query Parameters:
        base: Base currency code (default: USD)
        refresh: bypass cached rates

    Returns:
        JSON with units of each currency per 1 base. Static rates are the
        floor, so this only fails for a base the rate table lacks.
    """
    base_currency = request.args.get('base', DEFAULT_CURRENCY).upper()
    if not is_valid_currency(base_currency):
        return jsonify({'error': f'Invalid currency: {base_currency}'}), 400

    table = _price_service(_repository()).get_rate_table(refresh=_flag('refresh'))
    try:
        rates = compute_cross_rates(table.rates, base_currency)
    except ConversionRateUnavailable as e:
        current_app.logger.warning(f"No {base_currency} rate in {table.source} table")
        return jsonify({'error': str(e), 'kind': e.kind}), 502

    return jsonify({
        'base': base_currency,
        'rates': rates,
        'lastUpdated': format_timestamp(table.timestamp),
        'source': 'fallback' if table.degraded else table.source,
        'degraded': table.degraded,
    })


def _market_price(asset_class: str):
    symbol = (request.args.get('symbol') or '').strip().upper()
    if not symbol:
        return jsonify({'error': 'symbol is required'}), 400
    currency = _currency_arg()
    if not is_valid_currency(currency):
        return jsonify({'error': f'Invalid currency: {currency}'}), 400

    prices = _price_service(_repository())
    fetch = prices.get_stock_price if asset_class == 'stock' else prices.get_crypto_price
    try:
        snapshot = fetch(symbol, currency, refresh=_flag('refresh'))
    except (UpstreamUnavailable, ConversionRateUnavailable) as e:
        current_app.logger.warning(f"{asset_class} price unavailable for {symbol}: {e}")
        return jsonify({'error': f'Price unavailable for {symbol}', 'kind': e.kind}), 502

    return jsonify({
        'symbol': symbol,
        'price': snapshot.price(symbol),
        'currency': snapshot.currency,
        'lastUpdated': snapshot.last_updated,
        'isCache': snapshot.is_cache,
        'source': snapshot.source,
        'degraded': snapshot.degraded,
    })


@api_bp.route('/prices/stocks')
def stock_price():
    """Return a stock quote in the requested currency."""
    return _market_price('stock')


@api_bp.route('/prices/crypto')
def crypto_price():
    """Return a coin price in the requested currency."""
    return _market_price('crypto')


# Stored state

@api_bp.route('/state/<state_key>', methods=['GET', 'PUT'])
def state(state_key):
    """Read or (re)hydrate the asset state stored under a key.

    PUT body:
        intent: 'restore' (keep values) or 'fresh' (reset every category)
        state: optional blob to restore from instead of the stored one
    """
    if not STATE_KEY_RE.match(state_key):
        return jsonify({'error': 'Invalid state key'}), 400
    repository = _repository()

    if request.method == 'GET':
        return jsonify(_state_response(state_key, load_store(repository, state_key)))

    body = _json_body() or {}
    if not isinstance(body, dict):
        return jsonify({'error': 'Body must be an object'}), 400
    intent = body.get('intent', 'restore')
    blob = body.get('state')
    if blob is not None and not isinstance(blob, dict):
        return jsonify({'error': 'state must be an object'}), 400

    store = load_store(repository, state_key)
    result = store.hydrate(blob if blob is not None else store.to_blob(), intent)
    if not result:
        return jsonify({'error': result.error}), 400

    save_store(repository, state_key, store)
    current_app.logger.info(f"State {state_key} hydrated ({intent})")
    return jsonify(_state_response(state_key, store))


@api_bp.route('/state/<state_key>/reset', methods=['POST'])
def reset_state(state_key):
    """Reset every category of a stored state."""
    if not STATE_KEY_RE.match(state_key):
        return jsonify({'error': 'Invalid state key'}), 400
    repository = _repository()
    store = load_store(repository, state_key)
    store.reset_all()
    save_store(repository, state_key, store)
    return jsonify(_state_response(state_key, store))


def _load_category(state_key: str, category: str):
    """Validate path parameters; returns (repository, store, error_response)."""
    if not STATE_KEY_RE.match(state_key):
        return None, None, (jsonify({'error': 'Invalid state key'}), 400)
    if not is_valid_category(category):
        return None, None, (jsonify({'error': f'Unknown asset category: {category}'}), 404)
    repository = _repository()
    return repository, load_store(repository, state_key), None


@api_bp.route('/state/<state_key>/assets/<category>', methods=['GET', 'PUT'])
def category_assets(state_key, category):
    """Read a category (with its breakdown) or write several of its fields."""
    repository, store, error = _load_category(state_key, category)
    if error:
        return error

    if request.method == 'PUT':
        body = _json_body()
        if not isinstance(body, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        result = store.set_values(category, body)
        if not result:
            return jsonify({'error': result.error, 'kind': result.kind}), 400
        save_store(repository, state_key, store)

    prices = _price_service(repository).get_price_context(store.currency)
    hawl_met = store.hawl.is_met(category)
    result = breakdown(category, store.get_category(category), prices, hawl_met)
    return jsonify({
        'category': category,
        'label': get_schema(category).label,
        'currency': store.currency,
        'values': store.get_category(category),
        'hawl_met': hawl_met,
        'breakdown': result.to_dict(),
        'degraded': prices.degraded,
    })


@api_bp.route('/state/<state_key>/assets/<category>/entries/<entry_key>', methods=['PUT'])
def category_entries(state_key, category, entry_key):
    """Replace one entry list of a category.

    Body is either the list itself or ``{"entries": [...]}``.
    """
    repository, store, error = _load_category(state_key, category)
    if error:
        return error

    body = _json_body()
    entries = body.get('entries') if isinstance(body, dict) else body
    result = store.set_entries(category, entry_key, entries)
    if not result:
        return jsonify({'error': result.error, 'kind': result.kind}), 400

    save_store(repository, state_key, store)
    return jsonify({
        'category': category,
        'currency': store.currency,
        'values': store.get_category(category),
    })


@api_bp.route('/state/<state_key>/assets/<category>/reset', methods=['POST'])
def reset_category(state_key, category):
    """Reset one category to its defaults."""
    repository, store, error = _load_category(state_key, category)
    if error:
        return error

    store.reset_category(category)
    save_store(repository, state_key, store)
    return jsonify({
        'category': category,
        'values': store.get_category(category),
        'reset_epoch': store.reset_epoch,
    })


@api_bp.route('/state/<state_key>/hawl/<category>', methods=['PUT'])
def hawl(state_key, category):
    """Set whether a category has been held for a full lunar year."""
    repository, store, error = _load_category(state_key, category)
    if error:
        return error

    body = _json_body()
    met = body.get('met') if isinstance(body, dict) else None
    result = store.set_hawl(category, met)
    if not result:
        return jsonify({'error': result.error}), 400

    save_store(repository, state_key, store)
    return jsonify({'category': category, 'hawl_met': store.hawl.is_met(category)})


@api_bp.route('/state/<state_key>/currency', methods=['POST'])
def convert_currency(state_key):
    """Convert every stored value to a new base currency.

    Body:
        to: target currency
        from: expected current currency (default: the store's)
        action_id: optional id making retries no-ops
    """
    if not STATE_KEY_RE.match(state_key):
        return jsonify({'error': 'Invalid state key'}), 400
    body = _json_body()
    if not isinstance(body, dict) or not body.get('to'):
        return jsonify({'error': 'to currency is required'}), 400
    if any(not isinstance(body.get(name), (str, type(None))) for name in ('to', 'from', 'action_id')):
        return jsonify({'error': 'to, from and action_id must be strings'}), 400

    repository = _repository()
    store = load_store(repository, state_key)
    coordinator = CurrencyConversionCoordinator(store, _price_service(repository))
    result = coordinator.convert(body.get('from') or store.currency, body['to'], body.get('action_id'))
    if result.status == REJECTED:
        return jsonify({'error': result.reason, 'conversion': result.to_dict()}), 400

    if result.changed:
        save_store(repository, state_key, store)
    return jsonify({
        'conversion': result.to_dict(),
        'currency': store.currency,
        'records': store.get_records(),
    })


@api_bp.route('/state/<state_key>/summary')
def summary(state_key):
    """Value every category, apply liabilities and compare with the nisab."""
    if not STATE_KEY_RE.match(state_key):
        return jsonify({'error': 'Invalid state key'}), 400
    repository = _repository()
    store = load_store(repository, state_key)
    result = summarize_store(store, _price_service(repository), repository, refresh=_flag('refresh'))
    save_store(repository, state_key, store)
    return jsonify(result)


@api_bp.route('/state/<state_key>/nisab')
def state_nisab(state_key):
    """Return the nisab in the stored state's currency."""
    if not STATE_KEY_RE.match(state_key):
        return jsonify({'error': 'Invalid state key'}), 400
    repository = _repository()
    store = load_store(repository, state_key)
    outcome = current_nisab(store, _price_service(repository), repository, refresh=_flag('refresh'))
    save_store(repository, state_key, store)
    return jsonify(format_nisab_response(outcome))
