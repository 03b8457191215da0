"""Currency conversion coordinator.

Re-expresses every stored monetary value in a new base currency exactly
once. The order of steps is fixed:

1. Record the new base currency in the store.
2. Fetch one rate table and derive one from->to factor; rewrite every
   monetary field the category schemas declare.
3. Convert currency-tagged entries by their own tag (see EntrySpec.tag_policy).
4. Re-price the nisab from metal prices quoted in the new currency.
5. Write the ConversionRecord.

A repeated request for the same pair is a no-op. A missing rate leaves the
affected values in the old currency and is reported as a warning; nothing
is rolled back.
"""
import logging
from dataclasses import dataclass, field

from zakat_engine.constants import ASSET_CATEGORIES
from zakat_engine.data.categories import EntrySpec, get_schema
from zakat_engine.data.currencies import is_valid_currency
from zakat_engine.errors import ConversionRateUnavailable
from zakat_engine.services.fx import RateTable, round_money, round_price
from zakat_engine.services.nisab import resolve_nisab
from zakat_engine.services.store import AssetValueStore

logger = logging.getLogger(__name__)

CONVERTED = 'converted'
PARTIAL = 'partial'
SKIPPED = 'skipped'
REJECTED = 'rejected'


@dataclass
class ConversionResult:
    """Outcome of a conversion request."""
    status: str
    from_currency: str
    to_currency: str
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)
    nisab: dict | None = None
    record: dict | None = None
    degraded: bool = False

    @property
    def changed(self) -> bool:
        return self.status in (CONVERTED, PARTIAL)

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'from_currency': self.from_currency,
            'to_currency': self.to_currency,
            'reason': self.reason,
            'warnings': list(self.warnings),
            'nisab': self.nisab,
            'record': self.record,
            'degraded': self.degraded,
        }


def _round(kind: str, value: float) -> float:
    return round_price(value) if kind == 'price' else round_money(value)


def _normalize_code(code) -> str:
    return code.strip().upper() if isinstance(code, str) else repr(code)


class CurrencyConversionCoordinator:
    """The only writer allowed to rewrite monetary values in the store."""

    def __init__(self, store: AssetValueStore, price_service):
        self._store = store
        self._prices = price_service

    def _guard(self, from_currency: str, to_currency: str, action_id: str | None) -> ConversionResult | None:
        def stop(status, reason):
            logger.info(f"Conversion {from_currency}->{to_currency} {status}: {reason}")
            return ConversionResult(status, from_currency, to_currency, reason=reason)

        store = self._store
        if not store.is_ready:
            return stop(REJECTED, 'Store is not ready')
        for code in (from_currency, to_currency):
            if not is_valid_currency(code):
                return stop(REJECTED, f"Unsupported currency: {code}")
        if from_currency == to_currency:
            return stop(SKIPPED, 'Currencies are the same')

        pending = store.pending_conversion
        if pending and (pending['from_currency'], pending['to_currency']) == (from_currency, to_currency):
            return stop(SKIPPED, 'Conversion already in progress')

        last = store.last_conversion
        if last and store.currency == to_currency:
            if (last['from_currency'], last['to_currency']) == (from_currency, to_currency):
                return stop(SKIPPED, 'Already converted')
        if last and action_id and last.get('action_id') == action_id:
            return stop(SKIPPED, 'Action already applied')

        if store.currency != from_currency:
            return stop(SKIPPED, f"Store is in {store.currency}, not {from_currency}")
        return None

    def convert(self, from_currency: str, to_currency: str, action_id: str | None = None) -> ConversionResult:
        """Convert every stored value from one base currency to another.

        Args:
            from_currency: Current base currency of the store
            to_currency: New base currency
            action_id: Optional caller id; a repeated id is a no-op

        Returns:
            ConversionResult with status converted, partial, skipped or rejected.
        """
        from_currency = _normalize_code(from_currency)
        to_currency = _normalize_code(to_currency)
        stopped = self._guard(from_currency, to_currency, action_id)
        if stopped:
            return stopped

        store = self._store
        store.begin_conversion(from_currency, to_currency, action_id)
        store.set_currency(to_currency)

        table = self._prices.get_rate_table()
        warnings = list(f"Exchange rates: {e}" for e in table.errors) if table.degraded else []
        try:
            factor = table.factor(from_currency, to_currency)
        except ConversionRateUnavailable as e:
            logger.warning(f"Conversion {from_currency}->{to_currency}: {e}")
            factor = None

        for category in ASSET_CATEGORIES:
            updates = self._convert_category(category, from_currency, to_currency, factor, table, warnings)
            if updates:
                store.rewrite_monetary(category, updates)

        outcome = resolve_nisab(to_currency, self._prices)
        if not outcome.degraded and outcome.threshold.currency == to_currency:
            store.remember_nisab(outcome.threshold.to_dict())
        if outcome.degraded:
            warnings.append(f"Nisab is using {outcome.source} data")

        record = store.finish_conversion()
        status = PARTIAL if any(w.startswith('Unconverted') for w in warnings) else CONVERTED
        logger.info(f"Converted store {from_currency}->{to_currency} ({status}, {len(warnings)} warnings)")
        return ConversionResult(
            status=status,
            from_currency=from_currency,
            to_currency=to_currency,
            warnings=warnings,
            nisab=outcome.threshold.to_dict(),
            record=record,
            degraded=table.degraded or outcome.degraded,
        )

    def _convert_category(self, category, from_currency, to_currency, factor, table, warnings) -> dict:
        spec = get_schema(category)
        record = self._store.get_category(category)
        updates = {}

        for field_spec in spec.fields:
            if not field_spec.is_monetary:
                continue
            value = record[field_spec.name]
            if factor is None:
                if value:
                    warnings.append(f"Unconverted {category}.{field_spec.name}: no {from_currency}->{to_currency} rate")
                continue
            updates[field_spec.name] = _round(field_spec.kind, value * factor)

        for entry_spec in spec.entries:
            entries = record[entry_spec.key]
            if entries:
                updates[entry_spec.key] = [
                    self._convert_entry(entry_spec, entry, from_currency, to_currency, factor, table,
                                        f"{category}.{entry_spec.key}[{i}]", warnings)
                    for i, entry in enumerate(entries)
                ]
        return updates

    def _convert_entry(self, entry_spec: EntrySpec, entry: dict, from_currency: str, to_currency: str,
                       factor: float | None, table: RateTable, where: str, warnings: list) -> dict:
        tag_field = entry_spec.currency_field
        tag = entry.get(tag_field) if tag_field else None

        if entry_spec.tag_policy is None:
            entry_factor = factor
            source = from_currency
        elif tag == to_currency:
            return entry
        elif tag == from_currency:
            entry_factor = factor
            source = from_currency
        elif entry_spec.tag_policy == 'matching':
            return entry
        else:
            source = tag
            try:
                entry_factor = table.factor(tag, to_currency)
            except ConversionRateUnavailable:
                entry_factor = None

        if entry_factor is None:
            warnings.append(f"Unconverted {where}: no {source}->{to_currency} rate")
            return entry

        converted = dict(entry)
        for field_spec in entry_spec.fields:
            if field_spec.is_monetary:
                converted[field_spec.name] = _round(field_spec.kind, entry[field_spec.name] * entry_factor)
        if tag_field:
            converted[tag_field] = to_currency
        return converted
