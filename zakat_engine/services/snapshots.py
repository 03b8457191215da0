"""Price snapshot data model shared by pricing, validation and nisab."""
from dataclasses import dataclass, field
from datetime import datetime, timezone

from zakat_engine.services.fx import RateTable

ASSET_CLASSES = ('metal', 'stock', 'crypto', 'fx', 'nisab')


@dataclass
class PriceSnapshot:
    """Per-unit prices from one source at one instant.

    values maps a quote key (gold, silver, a ticker, a coin symbol) to its
    price per unit in ``currency``. Metal prices are per gram.
    """
    values: dict[str, float]
    currency: str
    timestamp: float
    source: str
    asset_class: str
    is_cache: bool = False
    degraded: bool = False
    errors: list[str] = field(default_factory=list)

    def price(self, key: str) -> float | None:
        return self.values.get(key)

    @property
    def last_updated(self) -> str:
        return format_timestamp(self.timestamp)

    def to_dict(self) -> dict:
        return {
            'values': dict(self.values),
            'currency': self.currency,
            'timestamp': self.timestamp,
            'source': self.source,
            'asset_class': self.asset_class,
            'is_cache': self.is_cache,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceSnapshot':
        return cls(
            values={k: float(v) for k, v in data['values'].items()},
            currency=data['currency'],
            timestamp=float(data['timestamp']),
            source=data.get('source', 'cache'),
            asset_class=data['asset_class'],
            is_cache=data.get('is_cache', True),
        )


def format_timestamp(timestamp: float) -> str:
    """Format epoch seconds as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class PriceContext:
    """Everything the breakdown needs to value a store in one currency.

    metals holds gold and silver per gram in ``currency``; rates converts
    currency-tagged entries that are not yet in ``currency``.
    """
    currency: str
    metals: PriceSnapshot | None = None
    rates: RateTable | None = None
    degraded: bool = False
    sources: dict[str, str] = field(default_factory=dict)

    def metal_price(self, metal: str) -> float:
        if self.metals is None:
            return 0.0
        return self.metals.values.get(metal, 0.0)
