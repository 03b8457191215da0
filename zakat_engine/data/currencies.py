"""Supported currencies with priority ordering.

Priority tiers:
  1. USD (engine default, always first)
  2. Major trading and zakat-relevant currencies
  3. Alphabetical (all remaining supported currencies)
"""

DEFAULT_CURRENCY = 'USD'

PRIORITY_CURRENCIES = [
    'EUR',
    'GBP',
    'SAR',
    'AED',
    'PKR',
    'INR',
    'BDT',
    'MYR',
    'IDR',
]

# Format: code -> (name, minor_unit)
SUPPORTED_CURRENCIES: dict[str, tuple[str, int]] = {
    'AED': ('UAE Dirham', 2),
    'AUD': ('Australian Dollar', 2),
    'BDT': ('Bangladeshi Taka', 2),
    'BHD': ('Bahraini Dinar', 3),
    'CAD': ('Canadian Dollar', 2),
    'CHF': ('Swiss Franc', 2),
    'CNY': ('Chinese Yuan', 2),
    'EGP': ('Egyptian Pound', 2),
    'EUR': ('Euro', 2),
    'GBP': ('British Pound', 2),
    'IDR': ('Indonesian Rupiah', 2),
    'INR': ('Indian Rupee', 2),
    'JOD': ('Jordanian Dinar', 3),
    'JPY': ('Japanese Yen', 0),
    'KWD': ('Kuwaiti Dinar', 3),
    'MAD': ('Moroccan Dirham', 2),
    'MYR': ('Malaysian Ringgit', 2),
    'NGN': ('Nigerian Naira', 2),
    'OMR': ('Omani Rial', 3),
    'PKR': ('Pakistani Rupee', 2),
    'QAR': ('Qatari Riyal', 2),
    'RUB': ('Russian Ruble', 2),
    'SAR': ('Saudi Riyal', 2),
    'SGD': ('Singapore Dollar', 2),
    'TRY': ('Turkish Lira', 2),
    'USD': ('US Dollar', 2),
    'ZAR': ('South African Rand', 2),
}


def get_ordered_currencies() -> list[dict]:
    """Return currencies in priority order: default first, then priority, then alphabetical.

    Returns:
        List of dicts with keys: code, name, minor_unit, priority
    """
    ordered = [DEFAULT_CURRENCY] + [c for c in PRIORITY_CURRENCIES if c != DEFAULT_CURRENCY]
    ordered += sorted(code for code in SUPPORTED_CURRENCIES if code not in ordered)

    result = []
    for code in ordered:
        name, minor_unit = SUPPORTED_CURRENCIES[code]
        if code == DEFAULT_CURRENCY:
            priority = 1
        elif code in PRIORITY_CURRENCIES:
            priority = 2
        else:
            priority = 3
        result.append({'code': code, 'name': name, 'minor_unit': minor_unit, 'priority': priority})
    return result


def get_currency_codes() -> list[str]:
    """Return all currency codes in priority order."""
    return [c['code'] for c in get_ordered_currencies()]


def is_valid_currency(code) -> bool:
    """Check if a currency code is supported."""
    return isinstance(code, str) and code.upper() in SUPPORTED_CURRENCIES


def normalize_currency(code: str) -> str:
    return code.strip().upper()
