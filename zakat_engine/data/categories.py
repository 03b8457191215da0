"""Declared schema for every asset category record.

Each category owns a flat record of typed scalar fields plus optional entry
lists. The store validates writes against this schema, the breakdown reads
it, and the currency coordinator walks it to find every monetary value.

Field kinds:
  money     amount in the record's base currency
  price     per-unit price in the record's base currency
  weight    grams
  quantity  units, shares or coins
  rate      fraction in [0, 1]
  flag      boolean
  choice    one of a fixed set of values
  currency  ISO 4217 code tagging an entry
  text      free text
"""
import math
from dataclasses import dataclass

from zakat_engine.constants import (
    DEFAULT_KARAT,
    DEFAULT_LOAN_FREQUENCY,
    DEFAULT_PASSIVE_METHOD,
    DEFAULT_RECEIVABLE_LIKELIHOOD,
    DEFAULT_RETIREMENT_TAX_RATE,
    EARLY_WITHDRAWAL_PENALTY_RATE,
    LOAN_FREQUENCY_MULTIPLIERS,
    PASSIVE_METHODS,
    RECEIVABLE_LIKELIHOODS,
    VALID_KARATS,
)
from zakat_engine.data.currencies import DEFAULT_CURRENCY, is_valid_currency
from zakat_engine.errors import InvalidInput

MONETARY_KINDS = ('money', 'price')
NUMERIC_KINDS = ('money', 'price', 'weight', 'quantity', 'rate')


@dataclass(frozen=True)
class FieldSpec:
    """A single typed field of a record or entry."""
    name: str
    kind: str
    default: object = 0.0
    choices: tuple = ()

    @property
    def is_monetary(self) -> bool:
        return self.kind in MONETARY_KINDS


@dataclass(frozen=True)
class EntrySpec:
    """A list of sub-records inside a category record.

    tag_policy decides how currency-tagged entries behave on conversion:
      'own'       every entry converts from its own tag (stocks, crypto)
      'matching'  only entries tagged with the old base convert (foreign cash)
      None        untagged; money fields follow the record's base currency
    """
    key: str
    fields: tuple[FieldSpec, ...]
    tag_policy: str | None = None

    @property
    def currency_field(self) -> str | None:
        for spec in self.fields:
            if spec.kind == 'currency':
                return spec.name
        return None

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


@dataclass(frozen=True)
class CategorySpec:
    """Schema of one asset category."""
    name: str
    label: str
    fields: tuple[FieldSpec, ...]
    entries: tuple[EntrySpec, ...] = ()
    derived: tuple[str, ...] = ()

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def entry(self, key: str) -> EntrySpec | None:
        for spec in self.entries:
            if spec.key == key:
                return spec
        return None


def _money(*names: str) -> tuple[FieldSpec, ...]:
    return tuple(FieldSpec(name, 'money') for name in names)


_KARATS = tuple(VALID_KARATS)

CATEGORY_SCHEMAS: dict[str, CategorySpec] = {
    'cash': CategorySpec(
        name='cash',
        label='Cash & Bank Accounts',
        fields=_money('cash_on_hand', 'checking_account', 'savings_account', 'digital_wallets'),
        entries=(
            EntrySpec(
                key='foreign_currency_entries',
                fields=(
                    FieldSpec('amount', 'money'),
                    FieldSpec('currency', 'currency', DEFAULT_CURRENCY),
                ),
                tag_policy='matching',
            ),
        ),
    ),
    'precious-metals': CategorySpec(
        name='precious-metals',
        label='Gold & Silver',
        fields=(
            FieldSpec('gold_regular', 'weight'),
            FieldSpec('gold_occasional', 'weight'),
            FieldSpec('gold_investment', 'weight'),
            FieldSpec('silver_regular', 'weight'),
            FieldSpec('silver_occasional', 'weight'),
            FieldSpec('silver_investment', 'weight'),
            FieldSpec('gold_regular_purity', 'choice', DEFAULT_KARAT, _KARATS),
            FieldSpec('gold_occasional_purity', 'choice', DEFAULT_KARAT, _KARATS),
            FieldSpec('gold_investment_purity', 'choice', DEFAULT_KARAT, _KARATS),
        ),
    ),
    'stocks': CategorySpec(
        name='stocks',
        label='Stocks & Investments',
        fields=(
            FieldSpec('total_dividend_earnings', 'money'),
            FieldSpec('fund_value', 'money'),
            FieldSpec('is_passive_fund', 'flag', False),
        ),
        entries=(
            EntrySpec(
                key='active_stocks',
                fields=(
                    FieldSpec('symbol', 'text', ''),
                    FieldSpec('shares', 'quantity'),
                    FieldSpec('current_price', 'price'),
                    FieldSpec('currency', 'currency', DEFAULT_CURRENCY),
                ),
                tag_policy='own',
            ),
            EntrySpec(
                key='passive_investments',
                fields=(
                    FieldSpec('name', 'text', ''),
                    FieldSpec('shares', 'quantity'),
                    FieldSpec('price_per_share', 'price'),
                    FieldSpec('currency', 'currency', DEFAULT_CURRENCY),
                    FieldSpec('method', 'choice', DEFAULT_PASSIVE_METHOD, tuple(PASSIVE_METHODS)),
                    FieldSpec('company_cash', 'money'),
                    FieldSpec('company_receivables', 'money'),
                    FieldSpec('company_inventory', 'money'),
                    FieldSpec('total_shares', 'quantity'),
                ),
                tag_policy='own',
            ),
        ),
    ),
    'crypto': CategorySpec(
        name='crypto',
        label='Cryptocurrency',
        fields=(),
        entries=(
            EntrySpec(
                key='coins',
                fields=(
                    FieldSpec('symbol', 'text', ''),
                    FieldSpec('quantity', 'quantity'),
                    FieldSpec('current_price', 'price'),
                    FieldSpec('currency', 'currency', DEFAULT_CURRENCY),
                ),
                tag_policy='own',
            ),
        ),
    ),
    'real-estate': CategorySpec(
        name='real-estate',
        label='Real Estate',
        fields=_money(
            'primary_residence_value',
            'rental_property_value',
            'rental_income',
            'rental_expenses',
            'property_for_sale_value',
            'vacant_land_value',
            'sale_price',
        ) + (
            FieldSpec('property_for_sale_active', 'flag', False),
            FieldSpec('vacant_land_sold', 'flag', False),
        ),
    ),
    'retirement': CategorySpec(
        name='retirement',
        label='Retirement Accounts',
        fields=_money(
            'traditional_401k',
            'traditional_ira',
            'roth_401k',
            'roth_ira',
            'pension',
            'other_retirement',
        ) + (
            FieldSpec('tax_rate', 'rate', DEFAULT_RETIREMENT_TAX_RATE),
            FieldSpec('penalty_rate', 'rate', EARLY_WITHDRAWAL_PENALTY_RATE),
        ),
    ),
    'debt-receivable': CategorySpec(
        name='debt-receivable',
        label='Debts & Receivables',
        fields=_money('receivables', 'short_term_liabilities', 'long_term_liabilities_annual'),
        entries=(
            EntrySpec(
                key='receivables_entries',
                fields=(
                    FieldSpec('description', 'text', ''),
                    FieldSpec('amount', 'money'),
                    FieldSpec('likelihood', 'choice', DEFAULT_RECEIVABLE_LIKELIHOOD,
                              tuple(RECEIVABLE_LIKELIHOODS)),
                ),
            ),
            EntrySpec(
                key='liabilities_entries',
                fields=(
                    FieldSpec('description', 'text', ''),
                    FieldSpec('amount', 'money'),
                    FieldSpec('is_short_term', 'flag', True),
                    FieldSpec('payment_amount', 'money'),
                    FieldSpec('frequency', 'choice', DEFAULT_LOAN_FREQUENCY,
                              tuple(LOAN_FREQUENCY_MULTIPLIERS)),
                ),
            ),
        ),
        derived=('receivables', 'short_term_liabilities', 'long_term_liabilities_annual'),
    ),
}


def get_schema(category: str) -> CategorySpec:
    """Get the schema for a category.

    Raises:
        InvalidInput: If the category is unknown.
    """
    spec = CATEGORY_SCHEMAS.get(category)
    if spec is None:
        raise InvalidInput(f"Unknown asset category: {category}")
    return spec


def is_valid_category(category: str) -> bool:
    return category in CATEGORY_SCHEMAS


def new_record(category: str) -> dict:
    """Build a record holding every field's default and empty entry lists."""
    spec = get_schema(category)
    record = {f.name: f.default for f in spec.fields}
    for entry_spec in spec.entries:
        record[entry_spec.key] = []
    return record


def coerce_value(spec: FieldSpec, value, where: str = ''):
    """Validate a value against its field spec and return the stored form.

    Args:
        spec: Field specification
        value: Raw value from the caller
        where: Context for error messages (category or entry key)

    Returns:
        The value to store (numbers as float, currency codes upper-cased).

    Raises:
        InvalidInput: If the value does not satisfy the field's kind.
    """
    label = f"{where}.{spec.name}" if where else spec.name

    if spec.kind in NUMERIC_KINDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidInput(f"{label} must be a number")
        number = float(value)
        if not math.isfinite(number):
            raise InvalidInput(f"{label} must be finite")
        if number < 0:
            raise InvalidInput(f"{label} must not be negative")
        if spec.kind == 'rate' and number > 1:
            raise InvalidInput(f"{label} must be between 0 and 1")
        return number

    if spec.kind == 'flag':
        if not isinstance(value, bool):
            raise InvalidInput(f"{label} must be true or false")
        return value

    if spec.kind == 'choice':
        if isinstance(value, bool) or value not in spec.choices:
            raise InvalidInput(f"{label} must be one of {list(spec.choices)}")
        return value

    if spec.kind == 'currency':
        if not is_valid_currency(value):
            raise InvalidInput(f"{label} is not a supported currency: {value}")
        return value.upper()

    if spec.kind == 'text':
        if not isinstance(value, str):
            raise InvalidInput(f"{label} must be text")
        return value.strip()

    raise InvalidInput(f"{label} has unknown kind {spec.kind}")


def coerce_entry(entry_spec: EntrySpec, entry, currency: str) -> dict:
    """Validate one entry, filling defaults for missing fields.

    Entries without a currency tag are tagged with the record's current
    base currency.
    """
    if not isinstance(entry, dict):
        raise InvalidInput(f"{entry_spec.key} entries must be objects")

    unknown = set(entry) - {f.name for f in entry_spec.fields}
    if unknown:
        raise InvalidInput(f"{entry_spec.key} has unknown fields: {sorted(unknown)}")

    result = {}
    for spec in entry_spec.fields:
        if spec.name in entry and entry[spec.name] is not None:
            result[spec.name] = coerce_value(spec, entry[spec.name], entry_spec.key)
        elif spec.kind == 'currency':
            result[spec.name] = currency
        else:
            result[spec.name] = spec.default
    return result
