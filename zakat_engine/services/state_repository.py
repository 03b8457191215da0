"""SQLite-backed persistence for store blobs and last-known-good prices.

Store blobs are saved whole, one per state key. Prices are written only
after they pass validation, so anything read back from ``price_snapshots``
was good at the time it was fetched; callers decide how old is too old.
"""
import json
import logging
import sqlite3

from zakat_engine.services.fx import RateTable
from zakat_engine.services.snapshots import PriceSnapshot

logger = logging.getLogger(__name__)


class StateRepository:
    """Read and write persisted engine state on one SQLite connection."""

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    # Store blobs

    def load_blob(self, state_key: str) -> dict | None:
        row = self._db.execute(
            'SELECT payload FROM state_blobs WHERE state_key = ?', (state_key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row['payload'])
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt state blob for {state_key}")
            return None

    def save_blob(self, state_key: str, blob: dict) -> None:
        self._db.execute(
            '''
            INSERT OR REPLACE INTO state_blobs (state_key, version, payload, updated_at)
            VALUES (?, ?, ?, datetime('now'))
            ''',
            (state_key, blob.get('version', 0), json.dumps(blob)),
        )
        self._db.commit()

    def delete_blob(self, state_key: str) -> None:
        self._db.execute('DELETE FROM state_blobs WHERE state_key = ?', (state_key,))
        self._db.commit()

    # Last-known-good prices

    def store_snapshot(self, snapshot: PriceSnapshot) -> None:
        """Remember every value of a validated snapshot."""
        try:
            for key, price in snapshot.values.items():
                self._db.execute(
                    '''
                    INSERT OR REPLACE INTO price_snapshots
                        (asset_class, currency, quote_key, price, source, fetched_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, datetime('now'))
                    ''',
                    (snapshot.asset_class, snapshot.currency, key, price, snapshot.source, snapshot.timestamp),
                )
            self._db.commit()
        except sqlite3.Error as e:
            logger.warning(f"Failed to store {snapshot.asset_class} snapshot: {e}")

    def get_snapshot(self, asset_class: str, currency: str, keys: list[str]) -> PriceSnapshot | None:
        """Get the last-known-good prices for the given quote keys.

        Returns:
            A cache-flagged snapshot timestamped with the oldest of its
            quotes, or None if any key has never been stored.
        """
        values = {}
        oldest = None
        for key in keys:
            row = self._db.execute(
                '''
                SELECT price, fetched_at FROM price_snapshots
                WHERE asset_class = ? AND currency = ? AND quote_key = ?
                ''',
                (asset_class, currency, key),
            ).fetchone()
            if row is None:
                return None
            values[key] = row['price']
            oldest = row['fetched_at'] if oldest is None else min(oldest, row['fetched_at'])

        if not values:
            return None
        return PriceSnapshot(
            values=values,
            currency=currency,
            timestamp=oldest,
            source='last-known-good',
            asset_class=asset_class,
            is_cache=True,
        )

    def store_rates(self, table: RateTable) -> None:
        self.store_snapshot(PriceSnapshot(
            values=dict(table.rates),
            currency=table.base,
            timestamp=table.timestamp,
            source=table.source,
            asset_class='fx',
        ))

    def get_rates(self, base: str = 'USD') -> RateTable | None:
        rows = self._db.execute(
            '''
            SELECT quote_key, price, fetched_at FROM price_snapshots
            WHERE asset_class = 'fx' AND currency = ?
            ''',
            (base,),
        ).fetchall()
        if not rows:
            return None
        return RateTable(
            base=base,
            rates={row['quote_key']: row['price'] for row in rows},
            timestamp=min(row['fetched_at'] for row in rows),
            source='last-known-good',
        )

    # Nisab thresholds

    def store_nisab(self, threshold: dict) -> None:
        try:
            self._db.execute(
                '''
                INSERT OR REPLACE INTO nisab_thresholds (currency, payload, computed_at)
                VALUES (?, ?, ?)
                ''',
                (threshold['currency'], json.dumps(threshold), threshold['timestamp']),
            )
            self._db.commit()
        except sqlite3.Error as e:
            logger.warning(f"Failed to store nisab threshold: {e}")

    def get_nisab(self, currency: str) -> dict | None:
        row = self._db.execute(
            'SELECT payload FROM nisab_thresholds WHERE currency = ?', (currency,)
        ).fetchone()
        return json.loads(row['payload']) if row else None
