"""
SQLite schema.

Raw on-chain integers (sizes, collateral, nonces) can exceed 64 bits and are
stored as decimal TEXT. Timestamps are fixed-width UTC ISO strings so they
sort lexically.
"""

from __future__ import annotations

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Pending commitment ledger (revealed, not yet executed)
CREATE TABLE IF NOT EXISTS pending_reveals (
    pool_id TEXT NOT NULL,
    commitment_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (pool_id, commitment_hash)
);

CREATE INDEX IF NOT EXISTS idx_pending_reveals_pool_created
    ON pending_reveals(pool_id, created_at);

-- One row per revealed intent
CREATE TABLE IF NOT EXISTS perp_orders (
    commitment_hash TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    wallet_address TEXT NOT NULL,
    pool_id TEXT NOT NULL,
    market TEXT NOT NULL,
    size TEXT NOT NULL,
    is_long INTEGER NOT NULL,
    is_open INTEGER NOT NULL,
    collateral TEXT NOT NULL,
    leverage TEXT NOT NULL,
    nonce TEXT NOT NULL,
    deadline INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    executed_at TEXT,
    tx_hash TEXT
);

CREATE INDEX IF NOT EXISTS idx_perp_orders_account ON perp_orders(account_id, created_at);
CREATE INDEX IF NOT EXISTS idx_perp_orders_status ON perp_orders(status);

-- Append-only settlement records, one per executed order
CREATE TABLE IF NOT EXISTS perp_trades (
    trade_id TEXT PRIMARY KEY,
    commitment_hash TEXT NOT NULL UNIQUE,
    account_id TEXT NOT NULL,
    wallet_address TEXT NOT NULL,
    pool_id TEXT NOT NULL,
    market TEXT NOT NULL,
    size TEXT NOT NULL,
    is_long INTEGER NOT NULL,
    is_open INTEGER NOT NULL,
    collateral TEXT NOT NULL,
    leverage TEXT NOT NULL,
    entry_price TEXT,
    realized_pnl TEXT,
    tx_hash TEXT NOT NULL,
    executed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_perp_trades_account ON perp_trades(account_id, executed_at);
CREATE INDEX IF NOT EXISTS idx_perp_trades_tx ON perp_trades(tx_hash);

CREATE TABLE IF NOT EXISTS schema_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""
