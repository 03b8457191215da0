"""Per-category zakat breakdown and combined summary.

Each ``breakdown_<category>`` function is pure: it reads one category
record, the current prices and the category's hawl flag, and returns a
``Breakdown``. An item is zakatable only when its category rule allows it
and hawl is met. Amounts in entries tagged with another currency are
converted to the price context's currency before summing.
"""
import logging
from dataclasses import dataclass, field

from zakat_engine.constants import (
    LOAN_FREQUENCY_MULTIPLIERS,
    NISAB_NEAR_RATIO,
    RECEIVABLE_LIKELIHOODS,
    ZAKAT_RATE,
    ZAKATABLE_PORTION_RATE,
)
from zakat_engine.errors import ConversionRateUnavailable
from zakat_engine.services.snapshots import PriceContext

logger = logging.getLogger(__name__)

WEAR_STATES = ('regular', 'occasional', 'investment')


@dataclass
class BreakdownItem:
    """One valued line of a category breakdown."""
    label: str
    value: float
    is_zakatable: bool
    is_exempt: bool
    zakatable: float

    @property
    def zakat_due(self) -> float:
        return self.zakatable * ZAKAT_RATE

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'value': round(self.value, 2),
            'is_zakatable': self.is_zakatable,
            'is_exempt': self.is_exempt,
            'zakatable': round(self.zakatable, 2),
            'zakat_due': round(self.zakat_due, 2),
        }


@dataclass
class Breakdown:
    """Valued items of one category.

    deductible holds liabilities that reduce the combined zakatable total;
    it is not part of this category's own zakatable amount.
    """
    category: str
    items: dict[str, BreakdownItem] = field(default_factory=dict)
    deductible: float = 0.0
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(item.value for item in self.items.values())

    @property
    def zakatable(self) -> float:
        return sum(item.zakatable for item in self.items.values() if item.is_zakatable)

    @property
    def zakat_due(self) -> float:
        return self.zakatable * ZAKAT_RATE

    def add(self, key: str, label: str, value: float, zakatable: float | None = None,
            rule: bool = True, exempt: bool = False, hawl: bool = True) -> BreakdownItem:
        """Add an item.

        Args:
            key: Item key, unique within the category
            label: Human-readable label
            value: Full value of the holding
            zakatable: Zakatable portion (defaults to the full value)
            rule: Whether the category rule makes this item zakatable
            exempt: Whether the item is structurally exempt
            hawl: The category's hawl flag
        """
        is_zakatable = rule and not exempt and hawl
        portion = value if zakatable is None else zakatable
        item = BreakdownItem(
            label=label,
            value=value,
            is_zakatable=is_zakatable,
            is_exempt=exempt,
            zakatable=max(0.0, portion) if is_zakatable else 0.0,
        )
        self.items[key] = item
        return item

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'total': round(self.total, 2),
            'zakatable': round(self.zakatable, 2),
            'zakat_due': round(self.zakat_due, 2),
            'deductible': round(self.deductible, 2),
            'items': {key: item.to_dict() for key, item in self.items.items()},
            'warnings': list(self.warnings),
        }


def karat_to_fraction(karat: int) -> float:
    """Convert karat to purity fraction. 24K=1.0, 18K=0.75, etc."""
    return karat / 24.0


def _to_base(amount: float, currency: str | None, prices: PriceContext, result: Breakdown,
             what: str) -> float | None:
    """Convert an entry amount into the context currency, or None with a warning."""
    if not currency or currency == prices.currency or amount == 0:
        return amount
    if prices.rates is None:
        result.warnings.append(f"No exchange rates available for {what} in {currency}")
        return None
    try:
        return prices.rates.convert(amount, currency, prices.currency)
    except ConversionRateUnavailable as e:
        logger.warning(f"{what}: {e}")
        result.warnings.append(f"{e}; {what} left out")
        return None


def breakdown_precious_metals(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Regular (daily worn) jewellery is exempt; occasional and investment are zakatable."""
    result = Breakdown('precious-metals')
    has_weight = any(record[f'{m}_{s}'] for m in ('gold', 'silver') for s in WEAR_STATES)
    if has_weight and prices.metals is None:
        result.warnings.append('No metal prices available; metals valued at 0')

    for metal in ('gold', 'silver'):
        price = prices.metal_price(metal)
        for state in WEAR_STATES:
            weight = record[f'{metal}_{state}']
            purity = karat_to_fraction(record[f'gold_{state}_purity']) if metal == 'gold' else 1.0
            value = weight * purity * price
            result.add(
                f'{metal}_{state}',
                f'{metal.title()} ({state})',
                value,
                exempt=state == 'regular',
                hawl=hawl,
            )
    return result


def breakdown_cash(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Every cash field is zakatable; foreign holdings are converted first."""
    result = Breakdown('cash')
    for key, label in (
        ('cash_on_hand', 'Cash on hand'),
        ('checking_account', 'Checking accounts'),
        ('savings_account', 'Savings accounts'),
        ('digital_wallets', 'Digital wallets'),
    ):
        result.add(key, label, record[key], hawl=hawl)

    foreign_total = 0.0
    for entry in record['foreign_currency_entries']:
        converted = _to_base(entry['amount'], entry['currency'], prices, result, 'foreign cash')
        if converted is not None:
            foreign_total += converted
    result.add('foreign_currency', 'Foreign currency', foreign_total, hawl=hawl)
    return result


def breakdown_stocks(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Active holdings in full; passive holdings by 30% or company balance sheet."""
    result = Breakdown('stocks')

    active = {}
    for entry in record['active_stocks']:
        value = _to_base(entry['shares'] * entry['current_price'], entry['currency'], prices, result,
                         f"stock {entry['symbol']}")
        if value is not None:
            symbol = entry['symbol'] or 'UNKNOWN'
            active[symbol] = active.get(symbol, 0.0) + value
    for symbol, value in active.items():
        result.add(f'active_{symbol}', f'{symbol} (active trading)', value, hawl=hawl)

    for index, entry in enumerate(record['passive_investments']):
        name = entry['name'] or f'Holding {index + 1}'
        market_value = entry['shares'] * entry['price_per_share']
        if entry['method'] == 'detailed' and entry['total_shares'] > 0:
            company_zakatable = entry['company_cash'] + entry['company_receivables'] + entry['company_inventory']
            portion = company_zakatable * entry['shares'] / entry['total_shares']
        else:
            if entry['method'] == 'detailed':
                result.warnings.append(f"{name}: total shares missing, using the 30% method")
            portion = market_value * ZAKATABLE_PORTION_RATE

        value = _to_base(market_value, entry['currency'], prices, result, f'holding {name}')
        portion = _to_base(portion, entry['currency'], prices, result, f'holding {name}')
        if value is None or portion is None:
            continue
        result.add(f'passive_{index}', f'{name} (passive)', value, zakatable=portion, hawl=hawl)

    result.add('dividends', 'Dividend earnings', record['total_dividend_earnings'], hawl=hawl)

    fund_value = record['fund_value']
    fund_zakatable = fund_value * ZAKATABLE_PORTION_RATE if record['is_passive_fund'] else fund_value
    result.add('investment_funds', 'Investment funds', fund_value, zakatable=fund_zakatable, hawl=hawl)
    return result


def breakdown_crypto(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Coins are zakatable in full at market value, aggregated by symbol."""
    result = Breakdown('crypto')
    by_symbol = {}
    for entry in record['coins']:
        value = _to_base(entry['quantity'] * entry['current_price'], entry['currency'], prices, result,
                         f"coin {entry['symbol']}")
        if value is not None:
            symbol = entry['symbol'] or 'UNKNOWN'
            by_symbol[symbol] = by_symbol.get(symbol, 0.0) + value
    for symbol, value in by_symbol.items():
        result.add(symbol, symbol, value, hawl=hawl)
    return result


def breakdown_real_estate(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Primary residence and rental assets are exempt; net rent and property for sale are not."""
    result = Breakdown('real-estate')
    result.add('primary_residence', 'Primary residence', record['primary_residence_value'], exempt=True)
    result.add('rental_property', 'Rental property', record['rental_property_value'], exempt=True)

    net_rent = max(0.0, record['rental_income'] - record['rental_expenses'])
    result.add('rental_income', 'Net rental income', record['rental_income'], zakatable=net_rent, hawl=hawl)

    for_sale = record['property_for_sale_active']
    result.add('property_for_sale', 'Property for sale', record['property_for_sale_value'],
               exempt=not for_sale, hawl=hawl)

    sold = record['vacant_land_sold']
    land_value = record['sale_price'] if sold else record['vacant_land_value']
    result.add('vacant_land', 'Vacant land', land_value, exempt=not sold, hawl=hawl)
    return result


def breakdown_retirement(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Traditional accounts net of tax and penalty; Roth and pension deferred."""
    result = Breakdown('retirement')
    net_rate = max(0.0, 1.0 - record['tax_rate'] - record['penalty_rate'])

    result.add('traditional_401k', 'Traditional 401(k)', record['traditional_401k'],
               zakatable=record['traditional_401k'] * net_rate, hawl=hawl)
    result.add('traditional_ira', 'Traditional IRA', record['traditional_ira'],
               zakatable=record['traditional_ira'] * net_rate, hawl=hawl)
    result.add('roth_401k', 'Roth 401(k)', record['roth_401k'], exempt=True)
    result.add('roth_ira', 'Roth IRA', record['roth_ira'], exempt=True)
    result.add('pension', 'Pension', record['pension'], exempt=True)
    result.add('other_retirement', 'Accessible retirement funds', record['other_retirement'], hawl=hawl)
    return result


def breakdown_debt_receivable(record: dict, prices: PriceContext, hawl: bool) -> Breakdown:
    """Good receivables are zakatable; liabilities due within 12 months are deductible."""
    result = Breakdown('debt-receivable')
    result.add('receivables', 'Receivables (likely to be paid)', record['receivables'], hawl=hawl)

    short_term = record['short_term_liabilities']
    long_term = record['long_term_liabilities_annual']
    result.add('short_term_liabilities', 'Short-term liabilities', -short_term, rule=False)
    result.add('long_term_liabilities', 'Long-term liabilities (next 12 months)', -long_term, rule=False)
    result.deductible = short_term + long_term
    return result


def receivables_total(entries: list[dict]) -> float:
    """Sum receivables whose likelihood counts toward zakat."""
    return sum(e['amount'] for e in entries if RECEIVABLE_LIKELIHOODS[e['likelihood']]['include'])


def liabilities_totals(entries: list[dict]) -> tuple[float, float]:
    """Split liabilities into (short-term, long-term due in the next 12 months).

    Short-term debts count in full. Long-term debts count up to twelve
    months of instalments, never more than the outstanding amount.
    """
    short_term = 0.0
    long_term = 0.0
    for entry in entries:
        if entry['is_short_term']:
            short_term += entry['amount']
        else:
            annual = entry['payment_amount'] * LOAN_FREQUENCY_MULTIPLIERS[entry['frequency']]
            long_term += min(entry['amount'], annual)
    return short_term, long_term


CATEGORY_BREAKDOWNS = {
    'cash': breakdown_cash,
    'precious-metals': breakdown_precious_metals,
    'stocks': breakdown_stocks,
    'crypto': breakdown_crypto,
    'real-estate': breakdown_real_estate,
    'retirement': breakdown_retirement,
    'debt-receivable': breakdown_debt_receivable,
}


def breakdown(category: str, record: dict, prices: PriceContext, hawl: bool = True) -> Breakdown:
    """Compute the breakdown for one category."""
    return CATEGORY_BREAKDOWNS[category](record, prices, hawl)


def nisab_status(net_total: float, threshold: float) -> tuple[str, float]:
    """Return (status, display ratio) for a net total against a threshold."""
    if threshold > 0:
        raw_ratio = net_total / threshold
        display_ratio = min(max(raw_ratio, 0), 1)
    else:
        raw_ratio = 0
        display_ratio = 0

    if raw_ratio < NISAB_NEAR_RATIO:
        status = 'below'
    elif raw_ratio < 1.0:
        status = 'near'
    else:
        status = 'above'
    return status, display_ratio


def summarize(records: dict[str, dict], hawl: dict[str, bool], prices: PriceContext,
              nisab=None, nisab_degraded: bool = False) -> dict:
    """Combine every category breakdown with the nisab threshold.

    Liabilities are deducted from the combined zakatable total. Zakat is
    due only when the net total reaches the threshold.

    Args:
        records: Category name -> record
        hawl: Category name -> hawl flag
        prices: Prices in the summary currency
        nisab: NisabThreshold in the same currency (None if unavailable)
        nisab_degraded: Whether the threshold came from a fallback source

    Returns:
        Dict with per-category breakdowns, totals, nisab and zakat due.
    """
    categories = {}
    warnings = []
    gross = 0.0
    deductible = 0.0
    assets_total = 0.0
    for category, record in records.items():
        hawl_met = hawl.get(category, True)
        result = breakdown(category, record, prices, hawl_met)
        gross += result.zakatable
        deductible += result.deductible
        assets_total += sum(i.value for i in result.items.values() if i.value > 0)
        warnings.extend(f"{category}: {w}" for w in result.warnings)
        categories[category] = dict(result.to_dict(), hawl_met=hawl_met)

    net_total = max(0.0, gross - deductible)
    threshold = nisab.threshold if nisab is not None else None
    if threshold is None:
        warnings.append('Nisab threshold unavailable')
        status, ratio, meets = 'unknown', 0, False
    else:
        status, ratio = nisab_status(net_total, threshold)
        meets = net_total >= threshold

    zakat_due = net_total * ZAKAT_RATE if meets else 0.0

    return {
        'currency': prices.currency,
        'categories': categories,
        'assets_total': round(assets_total, 2),
        'zakatable_total': round(gross, 2),
        'deductible_total': round(deductible, 2),
        'net_zakatable': round(net_total, 2),
        'nisab': {
            'threshold': round(threshold, 2) if threshold is not None else None,
            'binding_metal': nisab.binding_metal if nisab is not None else None,
            'gold_value': nisab.gold_value if nisab is not None else None,
            'silver_value': nisab.silver_value if nisab is not None else None,
            'source': nisab.source if nisab is not None else None,
            'ratio': round(ratio, 4),
            'status': status,
        },
        'meets_nisab': meets,
        'zakat_due': round(zakat_due, 2),
        'zakat_rate': ZAKAT_RATE,
        'degraded': prices.degraded or nisab_degraded,
        'price_sources': dict(prices.sources),
        'warnings': warnings,
    }
