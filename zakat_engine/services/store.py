"""AssetValueStore: the single mutable source of truth for asset records.

The store owns one schema-built record per category, the hawl flags, the
base currency and the last prices and nisab it was valued with. Writes are
validated against the category schema and reported through ``StoreResult``;
invalid input never mutates the store and never raises.

Lifecycle is explicit: a store starts ``initializing`` and becomes
``ready`` after ``hydrate()`` or ``mark_ready()``. Mutations before that are
rejected. Listeners registered with ``subscribe`` receive a ``StoreEvent``
after every change.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Callable

from zakat_engine.constants import ASSET_CATEGORIES, STATE_SCHEMA_VERSION
from zakat_engine.data.categories import (
    coerce_entry,
    coerce_value,
    get_schema,
    is_valid_category,
    new_record,
)
from zakat_engine.data.currencies import DEFAULT_CURRENCY, is_valid_currency
from zakat_engine.errors import InvalidInput
from zakat_engine.services.breakdown import liabilities_totals, receivables_total
from zakat_engine.services.fx import round_money
from zakat_engine.services.hawl import HawlTracker
from zakat_engine.services.time_provider import get_now

logger = logging.getLogger(__name__)

INITIALIZING = 'initializing'
READY = 'ready'

HYDRATE_INTENTS = ('restore', 'fresh')


@dataclass
class StoreResult:
    """Outcome of a store write."""
    ok: bool
    error: str | None = None
    kind: str | None = None

    def __bool__(self) -> bool:
        return self.ok


OK = StoreResult(ok=True)


def _invalid(message: str) -> StoreResult:
    return StoreResult(ok=False, error=message, kind=InvalidInput.kind)


@dataclass
class StoreEvent:
    """Notification sent to store subscribers."""
    kind: str                       # ready, change, reset, hawl, currency, conversion
    category: str | None = None
    detail: dict = field(default_factory=dict)


BLOB_MAPPINGS = ('records', 'hawl', 'last_prices', 'last_nisab', 'last_conversion')


def blob_problem(blob) -> str | None:
    """Describe why a persisted blob cannot be migrated, or None if it can."""
    if not isinstance(blob, dict):
        return 'State must be an object'
    for key in ('version', 'reset_epoch'):
        value = blob.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            return f"{key} must be a non-negative integer"
    if not isinstance(blob.get('currency', ''), str):
        return 'currency must be a string'
    for key in BLOB_MAPPINGS:
        value = blob.get(key)
        if value is not None and not isinstance(value, dict):
            return f"{key} must be an object"
    for category, record in (blob.get('records') or {}).items():
        if record is not None and not isinstance(record, dict):
            return f"records.{category} must be an object"
    return None


def migrate_blob(blob: dict) -> dict:
    """Bring a persisted blob up to the current schema version.

    Version history:
        1: currency, records, hawl
        2: adds last_prices and last_nisab
        3: adds reset_epoch and last_conversion
    Missing categories and fields are backfilled with schema defaults.
    """
    blob = copy.deepcopy(blob) if blob else {}
    version = blob.get('version', 1)

    if version < 2:
        blob.setdefault('last_prices', {})
        blob.setdefault('last_nisab', None)
    if version < 3:
        blob.setdefault('reset_epoch', 0)
        blob.setdefault('last_conversion', None)

    blob.setdefault('currency', DEFAULT_CURRENCY)
    if not blob.get('hawl'):
        blob['hawl'] = {}
    if not blob.get('records'):
        blob['records'] = {}
    records = blob['records']
    for category in ASSET_CATEGORIES:
        record = new_record(category)
        record.update(records.get(category) or {})
        records[category] = record

    blob['version'] = STATE_SCHEMA_VERSION
    return blob


class AssetValueStore:
    """Per-category asset records with validated writes and change events."""

    def __init__(self, currency: str = DEFAULT_CURRENCY):
        self.state = INITIALIZING
        self.currency = currency.upper()
        self.hawl = HawlTracker()
        self.reset_epoch = 0
        self.last_prices: dict[str, dict] = {}
        self.last_nisab: dict | None = None
        self.last_conversion: dict | None = None
        self.pending_conversion: dict | None = None
        self._records = {category: new_record(category) for category in ASSET_CATEGORIES}
        self._listeners: list[Callable[[StoreEvent], None]] = []

    # Lifecycle and events

    @property
    def is_ready(self) -> bool:
        return self.state == READY

    def subscribe(self, listener: Callable[[StoreEvent], None]) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, category: str | None = None, **detail) -> None:
        event = StoreEvent(kind=kind, category=category, detail=detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Store listener failed on {kind} event")

    def mark_ready(self) -> None:
        if self.state != READY:
            self.state = READY
            self._emit('ready')

    def _check_writable(self, category: str) -> StoreResult | None:
        if not self.is_ready:
            return _invalid('Store is not ready')
        if not is_valid_category(category):
            return _invalid(f"Unknown asset category: {category}")
        return None

    def hydrate(self, blob: dict | None, intent: str) -> StoreResult:
        """Load persisted state and become ready.

        Args:
            blob: Persisted blob (any version), or None for an empty store
            intent: 'restore' keeps stored values; 'fresh' resets every
                category but keeps the base currency and hawl flags

        Returns:
            StoreResult; on an invalid intent or a malformed blob the store is
            left untouched.
        """
        if intent not in HYDRATE_INTENTS:
            return _invalid(f"Hydrate intent must be one of {list(HYDRATE_INTENTS)}")
        if blob is not None:
            problem = blob_problem(blob)
            if problem:
                return _invalid(f"Invalid state blob: {problem}")

        blob = migrate_blob(blob or {'currency': self.currency})
        currency = blob['currency']
        if is_valid_currency(currency):
            self.currency = currency.upper()
        else:
            logger.warning(f"Stored currency {currency!r} is not supported, keeping {self.currency}")

        self.hawl = HawlTracker(blob['hawl'])
        self.reset_epoch = int(blob['reset_epoch'] or 0)
        self.last_prices = dict(blob['last_prices'] or {})
        self.last_nisab = blob['last_nisab']
        self.last_conversion = blob['last_conversion']
        self.pending_conversion = None

        if intent == 'fresh':
            self._records = {category: new_record(category) for category in ASSET_CATEGORIES}
            self.reset_epoch += 1
        else:
            self._records = {
                category: self._load_record(category, blob['records'][category])
                for category in ASSET_CATEGORIES
            }

        self.state = READY
        self._emit('ready', intent=intent)
        return OK

    def _load_record(self, category: str, stored: dict) -> dict:
        """Validate a stored record field by field, dropping bad values."""
        spec = get_schema(category)
        record = new_record(category)
        for field_spec in spec.fields:
            if field_spec.name not in stored:
                continue
            try:
                record[field_spec.name] = coerce_value(field_spec, stored[field_spec.name], category)
            except InvalidInput as e:
                logger.warning(f"Dropping stored value: {e}")
        for entry_spec in spec.entries:
            entries = stored.get(entry_spec.key) or []
            if not isinstance(entries, list):
                logger.warning(f"Dropping stored {category}.{entry_spec.key}: not a list")
                continue
            for entry in entries:
                try:
                    record[entry_spec.key].append(coerce_entry(entry_spec, entry, self.currency))
                except InvalidInput as e:
                    logger.warning(f"Dropping stored entry: {e}")
        return record

    # Reads

    def get_category(self, category: str) -> dict | None:
        """Get a copy of a category record, or None for an unknown category."""
        if not is_valid_category(category):
            return None
        return copy.deepcopy(self._records[category])

    def get_records(self) -> dict[str, dict]:
        return copy.deepcopy(self._records)

    # Writes

    def set_value(self, category: str, field_name: str, value) -> StoreResult:
        """Set one scalar field after validating it against the schema."""
        problem = self._check_writable(category)
        if problem:
            return problem

        spec = get_schema(category)
        field_spec = spec.field(field_name)
        if field_spec is None:
            if spec.entry(field_name) is not None:
                return _invalid(f"{field_name} is an entry list; use set_entries")
            return _invalid(f"Unknown field {category}.{field_name}")
        if field_name in spec.derived:
            return _invalid(f"{category}.{field_name} is derived from its entry lists")

        try:
            stored = coerce_value(field_spec, value, category)
        except InvalidInput as e:
            return _invalid(str(e))

        self._records[category][field_name] = stored
        self._emit('change', category, field=field_name)
        return OK

    def set_values(self, category: str, values: dict) -> StoreResult:
        """Set several fields and entry lists at once; nothing is written if any is invalid."""
        problem = self._check_writable(category)
        if problem:
            return problem
        if not isinstance(values, dict):
            return _invalid('Values must be an object')

        spec = get_schema(category)
        staged = {}
        errors = []
        for name, value in values.items():
            try:
                if name in spec.derived:
                    raise InvalidInput(f"{category}.{name} is derived from its entry lists")
                if spec.field(name) is not None:
                    staged[name] = coerce_value(spec.field(name), value, category)
                elif spec.entry(name) is not None:
                    if not isinstance(value, list):
                        raise InvalidInput(f"{name} must be a list")
                    staged[name] = [coerce_entry(spec.entry(name), e, self.currency) for e in value]
                else:
                    raise InvalidInput(f"Unknown field {category}.{name}")
            except InvalidInput as e:
                errors.append(str(e))

        if errors:
            return _invalid('; '.join(errors))

        self._records[category].update(staged)
        if any(spec.entry(name) is not None for name in staged):
            self._derive(category)
        self._emit('change', category, fields=sorted(staged))
        return OK

    def set_entries(self, category: str, key: str, entries: list) -> StoreResult:
        """Replace an entry list after validating every entry."""
        problem = self._check_writable(category)
        if problem:
            return problem

        entry_spec = get_schema(category).entry(key)
        if entry_spec is None:
            return _invalid(f"Unknown entry list {category}.{key}")
        if not isinstance(entries, list):
            return _invalid(f"{key} must be a list")

        try:
            validated = [coerce_entry(entry_spec, entry, self.currency) for entry in entries]
        except InvalidInput as e:
            return _invalid(str(e))

        self._records[category][key] = validated
        self._derive(category)
        self._emit('change', category, field=key)
        return OK

    def add_entry(self, category: str, key: str, entry: dict) -> StoreResult:
        current = self._records[category].get(key, []) if is_valid_category(category) else []
        return self.set_entries(category, key, list(current) + [entry])

    def remove_entry(self, category: str, key: str, index: int) -> StoreResult:
        if not is_valid_category(category) or key not in self._records[category]:
            return _invalid(f"Unknown entry list {category}.{key}")
        current = list(self._records[category][key])
        if not 0 <= index < len(current):
            return _invalid(f"No entry at index {index}")
        del current[index]
        return self.set_entries(category, key, current)

    def _derive(self, category: str) -> None:
        """Recompute scalar totals that are derived from entry lists."""
        if category != 'debt-receivable':
            return
        record = self._records[category]
        record['receivables'] = round_money(receivables_total(record['receivables_entries']))
        short_term, long_term = liabilities_totals(record['liabilities_entries'])
        record['short_term_liabilities'] = round_money(short_term)
        record['long_term_liabilities_annual'] = round_money(long_term)

    def reset_category(self, category: str) -> StoreResult:
        """Zero every field and empty every entry list of a category."""
        problem = self._check_writable(category)
        if problem:
            return problem
        self._records[category] = new_record(category)
        self.reset_epoch += 1
        self._emit('reset', category, reset_epoch=self.reset_epoch)
        return OK

    def reset_all(self) -> StoreResult:
        if not self.is_ready:
            return _invalid('Store is not ready')
        self._records = {category: new_record(category) for category in ASSET_CATEGORIES}
        self.reset_epoch += 1
        self._emit('reset', None, reset_epoch=self.reset_epoch)
        return OK

    def set_hawl(self, category: str, met) -> StoreResult:
        problem = self._check_writable(category)
        if problem:
            return problem
        try:
            self.hawl.set(category, met)
        except InvalidInput as e:
            return _invalid(str(e))
        self._emit('hawl', category, met=met)
        return OK

    # Currency and conversion (used by the conversion coordinator)

    def set_currency(self, currency: str) -> StoreResult:
        """Record a new base currency without touching any value."""
        if not self.is_ready:
            return _invalid('Store is not ready')
        if not is_valid_currency(currency):
            return _invalid(f"Unsupported currency: {currency}")
        self.currency = currency.upper()
        self._emit('currency', currency=self.currency)
        return OK

    def begin_conversion(self, from_currency: str, to_currency: str, action_id: str | None = None) -> None:
        self.pending_conversion = {
            'from_currency': from_currency,
            'to_currency': to_currency,
            'action_id': action_id,
            'started_at': get_now(),
        }

    def finish_conversion(self) -> dict | None:
        """Turn the pending conversion into the last ConversionRecord."""
        pending = self.pending_conversion
        if pending is None:
            return None
        record = {
            'from_currency': pending['from_currency'],
            'to_currency': pending['to_currency'],
            'action_id': pending['action_id'],
            'timestamp': get_now(),
        }
        self.last_conversion = record
        self.pending_conversion = None
        self._emit('conversion', **record)
        return record

    def rewrite_monetary(self, category: str, values: dict) -> StoreResult:
        """Overwrite converted monetary fields and entry lists in place.

        Only allowed while a conversion is pending; values were produced by
        the coordinator from already-validated data.
        """
        if self.pending_conversion is None:
            return _invalid('Monetary fields can only be rewritten during a conversion')
        if not is_valid_category(category):
            return _invalid(f"Unknown asset category: {category}")
        self._records[category].update(copy.deepcopy(values))
        self._emit('change', category, fields=sorted(values), conversion=True)
        return OK

    def remember_prices(self, snapshot) -> None:
        self.last_prices[snapshot.asset_class] = snapshot.to_dict()

    def remember_nisab(self, threshold: dict) -> None:
        self.last_nisab = dict(threshold)

    # Persistence

    def to_blob(self) -> dict:
        """Serialise the store to a versioned blob."""
        return {
            'version': STATE_SCHEMA_VERSION,
            'currency': self.currency,
            'records': copy.deepcopy(self._records),
            'hawl': self.hawl.to_dict(),
            'last_prices': copy.deepcopy(self.last_prices),
            'last_nisab': copy.deepcopy(self.last_nisab),
            'reset_epoch': self.reset_epoch,
            'last_conversion': copy.deepcopy(self.last_conversion),
        }
