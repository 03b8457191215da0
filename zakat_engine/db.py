"""SQLite database connection management for state blobs and price snapshots."""
import os
import sqlite3
from flask import current_app, g


def get_db_path() -> str:
    """Get the path to the SQLite database file."""
    data_dir = current_app.config.get('DATA_DIR', os.path.join(os.path.dirname(__file__), '..', 'data'))
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, 'zakat.sqlite')


def get_db() -> sqlite3.Connection:
    """Get a database connection, creating one if needed for this request."""
    if 'db' not in g:
        g.db = sqlite3.connect(get_db_path())
        g.db.row_factory = sqlite3.Row
    return g.db


def close_db(e=None):
    """Close the database connection at end of request."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db():
    """Initialize the database with schema."""
    db = get_db()
    db.executescript(get_schema())
    db.commit()


def get_schema() -> str:
    """Return the database schema SQL."""
    return '''
-- One versioned store blob per state key
CREATE TABLE IF NOT EXISTS state_blobs (
    state_key TEXT PRIMARY KEY,
    version INTEGER NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Last-known-good prices that passed validation
-- asset_class: metal, stock, crypto or fx (fx rows are USD based: 1 USD = X currency)
-- fetched_at: epoch seconds of the upstream quote
CREATE TABLE IF NOT EXISTS price_snapshots (
    asset_class TEXT NOT NULL,
    currency TEXT NOT NULL,
    quote_key TEXT NOT NULL,
    price REAL NOT NULL,
    source TEXT,
    fetched_at REAL NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (asset_class, currency, quote_key)
);
CREATE INDEX IF NOT EXISTS idx_price_snapshots_class ON price_snapshots(asset_class, currency);

-- Last valid nisab threshold per currency
CREATE TABLE IF NOT EXISTS nisab_thresholds (
    currency TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    computed_at REAL NOT NULL
);
'''


def init_app(app):
    """Register database functions with Flask app and ensure database exists."""
    app.teardown_appcontext(close_db)

    with app.app_context():
        db = get_db()
        db.executescript(get_schema())
        db.commit()
