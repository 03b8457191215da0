"""Nisab threshold evaluation and fallback resolution.

The nisab is the lower of the gold (85 g) and silver (595 g) thresholds in
the requested currency. ``evaluate`` is strict: it refuses snapshots that
fail validation. ``resolve_nisab`` wraps it in a fallback chain so callers
always get a non-zero threshold, flagged degraded when it is not live.
"""
import logging
from dataclasses import dataclass, field

from zakat_engine.constants import NISAB_GOLD_GRAMS, NISAB_SILVER_GRAMS
from zakat_engine.errors import StaleOrMissingPrice, UpstreamUnavailable, error_for_kind
from zakat_engine.services.cache_validation import (
    ValidationOptions,
    ValidationResult,
    options_for,
    parse_timestamp,
    validate_cache_entry,
    validate_price_snapshot,
)
from zakat_engine.services.fallback import Source, fetch_with_fallback_chain
from zakat_engine.services.snapshots import PriceSnapshot, format_timestamp
from zakat_engine.services.time_provider import get_now

logger = logging.getLogger(__name__)

# Thresholds from these sources are never reused as cached values
FALLBACK_SOURCES = ('static', 'offline')

NISAB_WEIGHTS = {
    'gold': NISAB_GOLD_GRAMS,
    'silver': NISAB_SILVER_GRAMS,
}


@dataclass
class NisabThreshold:
    """Gold and silver nisab values in one currency."""
    gold_value: float
    silver_value: float
    gold_price: float
    silver_price: float
    currency: str
    timestamp: float
    binding_metal: str
    source: str = 'live'
    degraded: bool = False

    @property
    def threshold(self) -> float:
        return self.value_for(self.binding_metal)

    def value_for(self, metal: str) -> float:
        return self.gold_value if metal == 'gold' else self.silver_value

    def to_dict(self) -> dict:
        return {
            'gold_value': self.gold_value,
            'silver_value': self.silver_value,
            'gold_price': self.gold_price,
            'silver_price': self.silver_price,
            'currency': self.currency,
            'timestamp': self.timestamp,
            'binding_metal': self.binding_metal,
            'threshold': self.threshold,
            'source': self.source,
            'degraded': self.degraded,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'NisabThreshold':
        return cls(
            gold_value=float(data['gold_value']),
            silver_value=float(data['silver_value']),
            gold_price=float(data.get('gold_price', 0.0)),
            silver_price=float(data.get('silver_price', 0.0)),
            currency=data['currency'],
            timestamp=float(data['timestamp']),
            binding_metal=data['binding_metal'],
            source=data.get('source', 'cache'),
            degraded=data.get('degraded', False),
        )


@dataclass
class NisabOutcome:
    """A resolved threshold and where it came from."""
    threshold: NisabThreshold
    source: str
    degraded: bool
    conversion_failed: bool = False
    errors: list[str] = field(default_factory=list)


def _metal_price(snapshot, metal: str, options: ValidationOptions) -> tuple[float, str, float]:
    if isinstance(snapshot, PriceSnapshot):
        snapshot = snapshot.to_dict()
    result = validate_price_snapshot(snapshot, options)
    if not result.is_valid:
        raise error_for_kind(result.kind, f"{metal.title()} price rejected: {result.reason}")
    price = snapshot['values'].get(metal)
    if price is None:
        raise StaleOrMissingPrice(f"Snapshot has no {metal} price")
    timestamp = parse_timestamp(snapshot.get('timestamp'))
    return float(price), snapshot['currency'].upper(), get_now() if timestamp is None else timestamp


def evaluate(gold_snapshot, silver_snapshot, options: ValidationOptions | None = None) -> NisabThreshold:
    """Compute the nisab threshold from gold and silver price snapshots.

    Both arguments may be the same snapshot carrying gold and silver.
    The binding metal is whichever threshold is lower (silver on a tie).

    Args:
        gold_snapshot: Snapshot with a per-gram ``gold`` value
        silver_snapshot: Snapshot with a per-gram ``silver`` value
        options: Validation options (defaults to the metal TTL and config strictness)

    Returns:
        NisabThreshold in the snapshots' currency, stamped with the older
        snapshot's timestamp.

    Raises:
        FuturePrice, StalePrice, OutOfRangePrice: If a snapshot fails the
            matching validation check.
        StaleOrMissingPrice: If a snapshot is malformed or lacks a metal, or
            the snapshots are in different currencies.
    """
    options = options or options_for('metal')
    gold_price, gold_currency, gold_time = _metal_price(gold_snapshot, 'gold', options)
    silver_price, silver_currency, silver_time = _metal_price(silver_snapshot, 'silver', options)
    if gold_currency != silver_currency:
        raise StaleOrMissingPrice(f"Currency mismatch: gold in {gold_currency}, silver in {silver_currency}")

    gold_value = round(gold_price * NISAB_GOLD_GRAMS, 2)
    silver_value = round(silver_price * NISAB_SILVER_GRAMS, 2)
    return NisabThreshold(
        gold_value=gold_value,
        silver_value=silver_value,
        gold_price=gold_price,
        silver_price=silver_price,
        currency=gold_currency,
        timestamp=min(gold_time, silver_time),
        binding_metal='gold' if gold_value < silver_value else 'silver',
    )


def _validate_cached_threshold(currency: str, options: ValidationOptions):
    def check(data: dict) -> ValidationResult:
        result = validate_cache_entry(data, options)
        if not result.is_valid:
            return result
        if data.get('currency') != currency:
            return ValidationResult(False, f"Cached threshold is in {data.get('currency')}", 'invalid')
        if data.get('degraded') or data.get('source') in FALLBACK_SOURCES:
            return ValidationResult(False, 'Cached threshold was built from fallback prices', 'invalid')
        try:
            values = (float(data['gold_value']), float(data['silver_value']))
        except (KeyError, TypeError, ValueError):
            return ValidationResult(False, 'Cached threshold is malformed', 'invalid')
        if min(values) <= 0:
            return ValidationResult(False, 'Cached threshold is not positive', 'invalid')
        return result
    return check


def resolve_nisab(currency: str, price_service, cached: dict | None = None,
                  refresh: bool = False) -> NisabOutcome:
    """Resolve the nisab for a currency, never failing and never returning zero.

    Chain:
    1. Cached threshold younger than the nisab TTL (skipped on refresh)
    2. Fresh metal prices from the price service
    3. Last valid cached threshold of any age (degraded)
    4. Static metal prices for the currency (degraded)
    5. Offline USD prices (degraded, conversion_failed)

    Args:
        currency: Requested currency
        price_service: PriceService used for metal prices
        cached: Last threshold dict (from the store or the repository)
        refresh: Bypass the fresh-cache step

    Returns:
        NisabOutcome with the threshold and its provenance.
    """
    currency = currency.upper()
    sources = []

    if cached and not refresh:
        sources.append(Source(
            name='cache',
            fetch=lambda: cached,
            validate=_validate_cached_threshold(currency, options_for('nisab')),
        ))

    def live() -> dict:
        snapshot = price_service.get_metal_prices(currency, refresh=refresh)
        if snapshot.degraded:
            raise StaleOrMissingPrice(f"Only fallback metal prices available ({snapshot.source})")
        threshold = evaluate(snapshot, snapshot)
        threshold.source = snapshot.source
        return threshold.to_dict()

    sources.append(Source(name='live', fetch=live))

    if cached:
        sources.append(Source(
            name='last-known-good',
            fetch=lambda: cached,
            validate=_validate_cached_threshold(currency, options_for('nisab', max_age=None)),
            is_fallback=True,
        ))

    no_age = ValidationOptions(max_age=None, strict=False)

    def static() -> dict:
        snapshot = price_service.static_metal_prices(currency)
        threshold = evaluate(snapshot, snapshot, no_age)
        threshold.source = snapshot.source
        return threshold.to_dict()

    sources.append(Source(name='static', fetch=static, is_fallback=True))

    conversion_failed = False
    try:
        result = fetch_with_fallback_chain(sources)
        data, source, degraded, errors = result.value, result.source, result.degraded, result.errors
    except UpstreamUnavailable as e:
        logger.warning(f"Nisab for {currency} unavailable, using offline USD prices: {e}")
        offline = price_service.offline_metal_prices()
        data = evaluate(offline, offline, no_age).to_dict()
        data['source'] = 'offline'
        source, degraded, errors = 'offline', True, [str(e)]
        conversion_failed = currency != 'USD'

    threshold = NisabThreshold.from_dict(data)
    threshold.degraded = degraded
    if source in ('cache', 'last-known-good'):
        threshold.source = source
    return NisabOutcome(
        threshold=threshold,
        source=source,
        degraded=degraded,
        conversion_failed=conversion_failed,
        errors=errors,
    )


def format_nisab_response(outcome: NisabOutcome, metal: str | None = None) -> dict:
    """Format a resolved nisab for the API.

    Args:
        outcome: Resolved nisab
        metal: Force 'gold' or 'silver' as the reported threshold

    Returns:
        Dict with nisabThreshold, thresholds, currency, timestamp and metadata.
    """
    threshold = outcome.threshold
    used_metal = metal if metal in NISAB_WEIGHTS else threshold.binding_metal
    prices = {'gold': threshold.gold_price, 'silver': threshold.silver_price}
    return {
        'nisabThreshold': threshold.value_for(used_metal),
        'thresholds': {
            'gold': threshold.gold_value,
            'silver': threshold.silver_value,
        },
        'currency': threshold.currency,
        'timestamp': format_timestamp(threshold.timestamp),
        'degraded': outcome.degraded,
        'metadata': {
            'calculatedThresholds': {
                m: {
                    'price': prices[m],
                    'weight': NISAB_WEIGHTS[m],
                    'threshold': threshold.value_for(m),
                    'unit': 'gram',
                }
                for m in NISAB_WEIGHTS
            },
            'usedMetalType': used_metal,
            'bindingMetal': threshold.binding_metal,
            'conversionFailed': outcome.conversion_failed,
            'source': 'fallback' if outcome.degraded else threshold.source,
        },
    }
