"""Shared constants for valuation, nisab and price validation."""

# Nisab thresholds (minimum wealth for zakat obligation)
NISAB_GOLD_GRAMS = 85
NISAB_SILVER_GRAMS = 595

# Zakat rate (2.5%)
ZAKAT_RATE = 0.025

# Share of nisab at which the summary reports "near"
NISAB_NEAR_RATIO = 0.9

# Asset categories, in display order
ASSET_CATEGORIES = [
    'cash',
    'precious-metals',
    'stocks',
    'crypto',
    'real-estate',
    'retirement',
    'debt-receivable',
]

# Cache lifetimes in seconds, per asset class
PRICE_TTL_SECONDS = {
    'metal': 30 * 60,
    'stock': 5 * 60,
    'crypto': 5 * 60,
    'nisab': 60 * 60,
    'fx': 60 * 60,
}

# Epoch values above this are milliseconds, not seconds
EPOCH_MILLISECONDS_THRESHOLD = 1e11

# Plausible USD per-gram metal prices (strict validation)
EXPECTED_METAL_PRICE_RANGES = {
    'gold': (50.0, 120.0),
    'silver': (0.5, 3.0),
}

# Plausible units of currency per 1 USD (strict validation)
EXPECTED_EXCHANGE_RATE_RANGES = {
    'EUR': (0.8, 1.0),
    'GBP': (0.7, 0.9),
    'INR': (70.0, 90.0),
    'PKR': (250.0, 300.0),
    'AED': (3.5, 3.8),
    'SAR': (3.6, 3.9),
    'JPY': (140.0, 160.0),
}

# Tolerance applied to the expected ranges above
CONVERTED_PRICE_MARGIN = 0.5
EXCHANGE_RATE_MARGIN = 0.2

# Last-resort metal prices (USD per gram) when nothing else is available
OFFLINE_METAL_PRICES_USD = {
    'gold': 93.98,
    'silver': 1.02,
}

# Static per-currency metal prices (per gram) used by the nisab fallback
FALLBACK_METAL_PRICES = {
    'USD': {'gold': 85.0, 'silver': 1.2},
    'EUR': {'gold': 78.0, 'silver': 1.1},
    'GBP': {'gold': 67.0, 'silver': 0.95},
    'INR': {'gold': 7000.0, 'silver': 90.0},
    'PKR': {'gold': 24000.0, 'silver': 300.0},
    'AED': {'gold': 310.0, 'silver': 4.4},
    'SAR': {'gold': 320.0, 'silver': 4.5},
}

# Static USD-based exchange rates (1 USD = X currency)
FALLBACK_EXCHANGE_RATES = {
    'USD': 1.0,
    'EUR': 0.92,
    'GBP': 0.78,
    'JPY': 150.5,
    'CAD': 1.35,
    'AUD': 1.52,
    'INR': 83.15,
    'PKR': 278.5,
    'AED': 3.67,
    'SAR': 3.75,
    'MYR': 4.65,
    'SGD': 1.35,
    'BDT': 110.5,
    'EGP': 30.9,
    'IDR': 15600.0,
    'KWD': 0.31,
    'NGN': 1550.0,
    'QAR': 3.64,
    'ZAR': 18.5,
    'RUB': 91.5,
}

# Loan frequency multipliers for annualization
LOAN_FREQUENCY_MULTIPLIERS = {
    'weekly': 52,
    'biweekly': 26,
    'semi_monthly': 24,
    'monthly': 12,
    'quarterly': 4,
    'yearly': 1,
}
DEFAULT_LOAN_FREQUENCY = 'monthly'

# Receivables likelihood and inclusion rules
RECEIVABLE_LIKELIHOODS = {
    'likely': {'label': 'Likely to be paid', 'include': True},
    'uncertain': {'label': 'Uncertain', 'include': False},
    'doubtful': {'label': 'Doubtful/Bad debt', 'include': False},
}
DEFAULT_RECEIVABLE_LIKELIHOOD = 'likely'

# Passive holdings valuation methods
PASSIVE_METHODS = {
    'quick': 'Zakatable portion only (30%)',
    'detailed': 'Company balance sheet (CRI)',
}
DEFAULT_PASSIVE_METHOD = 'quick'
ZAKATABLE_PORTION_RATE = 0.30

# Retirement withdrawal assumptions for traditional accounts
DEFAULT_RETIREMENT_TAX_RATE = 0.20
EARLY_WITHDRAWAL_PENALTY_RATE = 0.10

# Valid gold karats
VALID_KARATS = [24, 22, 21, 18]
DEFAULT_KARAT = 24

# Persisted store blob version
STATE_SCHEMA_VERSION = 3
