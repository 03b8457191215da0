"""Freshness and plausibility checks for externally sourced prices.

Every snapshot coming from a provider, the last-known-good table or a
persisted store blob passes through ``validate`` before it is used. The
validator never raises: it returns a ``ValidationResult`` whose ``kind``
maps onto the error taxonomy (``future``, ``stale``, ``out_of_range``,
``invalid``) so callers can fall back to the next source.
"""
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from zakat_engine.constants import (
    CONVERTED_PRICE_MARGIN,
    EPOCH_MILLISECONDS_THRESHOLD,
    EXCHANGE_RATE_MARGIN,
    EXPECTED_EXCHANGE_RATE_RANGES,
    EXPECTED_METAL_PRICE_RANGES,
    PRICE_TTL_SECONDS,
)
from zakat_engine.services.config import get_ttl_seconds, is_strict_validation_enabled
from zakat_engine.services.snapshots import PriceSnapshot
from zakat_engine.services.time_provider import get_now

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class ValidationOptions:
    """Options controlling a single validation.

    Attributes:
        max_age: Maximum age in seconds. None disables the age check.
        allow_future_dates: Accept timestamps ahead of the clock.
        validate_timestamp: Check the timestamp at all.
        strict: Apply plausible-range checks and require a timestamp.
        asset_class: metal, stock, crypto, fx or nisab. Falls back to the
            entry's own ``asset_class`` key.
    """
    max_age: float | None = PRICE_TTL_SECONDS['metal']
    allow_future_dates: bool = False
    validate_timestamp: bool = True
    strict: bool = False
    asset_class: str | None = None


@dataclass
class ValidationResult:
    """Outcome of a validation. ``reason`` and ``kind`` are set on rejection."""
    is_valid: bool
    reason: str | None = None
    kind: str | None = None

    def __bool__(self) -> bool:
        return self.is_valid


VALID = ValidationResult(is_valid=True)


def options_for(asset_class: str, strict: bool | None = None, max_age=_UNSET) -> ValidationOptions:
    """Build options using the configured TTL for an asset class.

    Args:
        asset_class: metal, stock, crypto, fx or nisab
        strict: Override the PRICING_STRICT_VALIDATION setting
        max_age: Override the TTL (None disables the age check)
    """
    return ValidationOptions(
        max_age=get_ttl_seconds(asset_class) if max_age is _UNSET else max_age,
        strict=is_strict_validation_enabled() if strict is None else strict,
        asset_class=asset_class,
    )


def _reject(kind: str, reason: str) -> ValidationResult:
    logger.warning(f"Price cache entry rejected ({kind}): {reason}")
    return ValidationResult(is_valid=False, reason=reason, kind=kind)


def parse_timestamp(value) -> float | None:
    """Parse a timestamp into epoch seconds.

    Accepts epoch seconds, epoch milliseconds (values above 1e11), ISO 8601
    strings and datetime objects. Naive datetimes are treated as UTC.

    Returns:
        Epoch seconds, or None if the value cannot be parsed.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return value / 1000.0 if value > EPOCH_MILLISECONDS_THRESHOLD else float(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return None


def _is_positive_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def validate_cache_entry(entry, options: ValidationOptions | None = None) -> ValidationResult:
    """Validate the shape and timestamp of a generic cache entry."""
    options = options or ValidationOptions()

    if entry is None:
        return _reject('invalid', 'Cache entry is null')
    if not isinstance(entry, Mapping):
        return _reject('invalid', 'Cache entry is not an object')
    if not options.validate_timestamp:
        return VALID

    if 'timestamp' in entry:
        field_name = 'timestamp'
    elif 'last_updated' in entry:
        field_name = 'last_updated'
    elif 'lastUpdated' in entry:
        field_name = 'lastUpdated'
    else:
        if options.strict:
            return _reject('invalid', 'No timestamp or last_updated field found')
        return VALID

    timestamp = parse_timestamp(entry[field_name])
    if timestamp is None:
        return _reject('invalid', f"Invalid {field_name} format")

    now = get_now()
    if not options.allow_future_dates and timestamp > now:
        ahead = timestamp - now
        return _reject('future', f"Future-dated cache entry ({ahead:.0f}s ahead)")

    if options.max_age is not None and now - timestamp > options.max_age:
        return _reject('stale', f"Cache entry has expired (age {now - timestamp:.0f}s > {options.max_age:.0f}s)")

    return VALID


def _check_metal_ranges(values: Mapping, currency: str) -> ValidationResult:
    for metal, (low, high) in EXPECTED_METAL_PRICE_RANGES.items():
        price = values.get(metal)
        if price is None:
            continue
        if currency == 'USD':
            if price < low or price > high:
                return _reject('out_of_range',
                               f"{metal.title()} price ({price}) outside expected range ({low}-{high}) for USD")
        elif currency in EXPECTED_EXCHANGE_RATE_RANGES:
            rate_low, rate_high = EXPECTED_EXCHANGE_RATE_RANGES[currency]
            expected_low = low * rate_low * (1 - CONVERTED_PRICE_MARGIN)
            expected_high = high * rate_high * (1 + CONVERTED_PRICE_MARGIN)
            if price < expected_low or price > expected_high:
                return _reject('out_of_range',
                               f"{metal.title()} price ({price}) outside expected range for {currency}")
    return VALID


def validate_price_snapshot(entry, options: ValidationOptions | None = None) -> ValidationResult:
    """Validate a metal, stock, crypto or nisab price snapshot.

    Checks the timestamp, then that every quoted value is a finite positive
    number, then (strict mode, metals only) the plausible per-gram range.
    """
    options = options or ValidationOptions()
    if isinstance(entry, PriceSnapshot):
        entry = entry.to_dict()

    base = validate_cache_entry(entry, options)
    if not base:
        return base

    values = entry.get('values')
    if not isinstance(values, Mapping) or not values:
        return _reject('invalid', 'Snapshot has no price values')
    for key, value in values.items():
        if not _is_positive_number(value):
            return _reject('invalid', f"Invalid {key} price: {value!r}")

    currency = entry.get('currency')
    if not currency or not isinstance(currency, str):
        return _reject('invalid', 'Invalid currency')

    asset_class = options.asset_class or entry.get('asset_class')
    if options.strict and asset_class in ('metal', 'nisab'):
        return _check_metal_ranges(values, currency.upper())
    return VALID


def validate_exchange_rates(entry, options: ValidationOptions | None = None) -> ValidationResult:
    """Validate an exchange-rate table of the form {base, rates, timestamp}."""
    options = options or ValidationOptions(max_age=PRICE_TTL_SECONDS['fx'], asset_class='fx')

    base = validate_cache_entry(entry, options)
    if not base:
        return base

    rates = entry.get('rates')
    if not isinstance(rates, Mapping) or not rates:
        return _reject('invalid', 'Invalid rates object')
    base_currency = entry.get('base')
    if not base_currency or not isinstance(base_currency, str):
        return _reject('invalid', 'Invalid base currency')

    for currency, rate in rates.items():
        if not _is_positive_number(rate):
            return _reject('invalid', f"Invalid exchange rate for {currency}: {rate!r}")

    if options.strict and base_currency == 'USD':
        for currency, rate in rates.items():
            expected = EXPECTED_EXCHANGE_RATE_RANGES.get(currency)
            if expected is None:
                continue
            low, high = expected
            if rate < low * (1 - EXCHANGE_RATE_MARGIN) or rate > high * (1 + EXCHANGE_RATE_MARGIN):
                return _reject('out_of_range', f"Exchange rate ({rate}) outside expected range for {currency}")

    return VALID


def validate(entry, options: ValidationOptions | None = None) -> ValidationResult:
    """Validate any externally sourced entry, dispatching on its asset class."""
    options = options or ValidationOptions()
    asset_class = options.asset_class
    if asset_class is None and isinstance(entry, Mapping):
        asset_class = entry.get('asset_class')
    if asset_class == 'fx':
        return validate_exchange_rates(entry, options)
    if isinstance(entry, PriceSnapshot) or (isinstance(entry, Mapping) and 'values' in entry):
        return validate_price_snapshot(entry, options)
    return validate_cache_entry(entry, options)
