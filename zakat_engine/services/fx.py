"""Currency conversion service."""
from dataclasses import dataclass, field

from zakat_engine.errors import ConversionRateUnavailable

MONEY_DECIMALS = 2
PRICE_DECIMALS = 6


@dataclass
class RateTable:
    """A snapshot of exchange rates against one base currency.

    rates[X] means "1 base = X units of currency X", so rates[base] == 1.0.
    """
    base: str
    rates: dict[str, float]
    timestamp: float
    source: str
    degraded: bool = False
    errors: list[str] = field(default_factory=list)

    def has(self, currency: str) -> bool:
        rate = self.rates.get(currency.upper())
        return rate is not None and rate > 0

    def factor(self, from_currency: str, to_currency: str) -> float:
        """Get the multiplier converting from_currency amounts into to_currency.

        Raises:
            ConversionRateUnavailable: If either currency is missing.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0
        if not self.has(from_currency) or not self.has(to_currency):
            raise ConversionRateUnavailable(from_currency, to_currency)
        return self.rates[to_currency] / self.rates[from_currency]

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        return amount * self.factor(from_currency, to_currency)

    def to_dict(self) -> dict:
        return {
            'base': self.base,
            'rates': dict(self.rates),
            'timestamp': self.timestamp,
            'source': self.source,
            'degraded': self.degraded,
        }


def compute_cross_rates(usd_rates: dict, base_currency: str) -> dict:
    """Compute cross rates from USD-based rates to a different base.

    If 1 USD = X target and 1 USD = Y base, then 1 base = X/Y target.

    Args:
        usd_rates: Dict of currency -> rate_to_usd (1 USD = X currency)
        base_currency: Target base currency

    Returns:
        Dict of currency -> units of that currency per 1 base_currency.

    Raises:
        ConversionRateUnavailable: If the base currency has no USD rate.
    """
    base_rate = usd_rates.get(base_currency)
    if not base_rate:
        raise ConversionRateUnavailable('USD', base_currency)

    result = {}
    for currency, usd_rate in usd_rates.items():
        if usd_rate and usd_rate > 0:
            result[currency] = usd_rate / base_rate
    result[base_currency] = 1.0
    return result


def round_money(value: float) -> float:
    return round(value, MONEY_DECIMALS)


def round_price(value: float) -> float:
    return round(value, PRICE_DECIMALS)
