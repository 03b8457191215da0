"""Error taxonomy for valuation, pricing and conversion failures.

Public operations do not let these escape their boundary: they are raised
internally and surfaced to callers as degraded results, warnings or
``StoreResult`` errors.
"""


class ZakatEngineError(Exception):
    """Base exception for engine errors."""
    kind = 'error'


class InvalidInput(ZakatEngineError):
    """A write was rejected (negative, non-finite or malformed value)."""
    kind = 'invalid_input'


class StalePrice(ZakatEngineError):
    """A price snapshot is older than its TTL."""
    kind = 'stale'


class FuturePrice(ZakatEngineError):
    """A price snapshot is timestamped in the future."""
    kind = 'future'


class OutOfRangePrice(ZakatEngineError):
    """A price snapshot falls outside the plausible range."""
    kind = 'out_of_range'


class StaleOrMissingPrice(ZakatEngineError):
    """No valid price snapshot is available for a calculation."""
    kind = 'stale_or_missing'


class ConversionRateUnavailable(ZakatEngineError):
    """No exchange rate exists for a currency pair."""
    kind = 'rate_unavailable'

    def __init__(self, from_currency: str, to_currency: str):
        super().__init__(f"No exchange rate for {from_currency}->{to_currency}")
        self.from_currency = from_currency
        self.to_currency = to_currency


class UpstreamUnavailable(ZakatEngineError):
    """An upstream price source failed or timed out."""
    kind = 'upstream_unavailable'


VALIDATION_ERRORS = {
    'future': FuturePrice,
    'stale': StalePrice,
    'out_of_range': OutOfRangePrice,
    'invalid': StaleOrMissingPrice,
}


def error_for_kind(kind: str | None, message: str) -> ZakatEngineError:
    """Build the exception matching a validation failure kind."""
    return VALIDATION_ERRORS.get(kind or 'invalid', StaleOrMissingPrice)(message)
