"""
Database connection management.

Provides SQLite connections and the schema for pricing, markup and costs.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "ai_cost_meter.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS ai_pricing (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider_id TEXT NOT NULL,
    provider_name TEXT NOT NULL,
    model_id TEXT NOT NULL,
    model_name TEXT NOT NULL,
    input_cost REAL NOT NULL,
    output_cost REAL NOT NULL,
    reasoning_cost REAL,
    cache_read_cost REAL,
    cache_write_cost REAL,
    context_limit INTEGER NOT NULL DEFAULT 0,
    output_limit INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (provider_id, model_id)
);
CREATE INDEX IF NOT EXISTS idx_ai_pricing_provider ON ai_pricing (provider_id);
CREATE INDEX IF NOT EXISTS idx_ai_pricing_model ON ai_pricing (model_id);

CREATE TABLE IF NOT EXISTS tool_pricing (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider_id TEXT NOT NULL,
    provider_name TEXT NOT NULL,
    tool_id TEXT,
    tool_name TEXT,
    pricing TEXT NOT NULL,
    limits TEXT,
    last_updated TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
-- A NULL tool_id is the provider default; COALESCE keeps it unique per provider.
CREATE UNIQUE INDEX IF NOT EXISTS uq_tool_pricing_provider_tool
    ON tool_pricing (provider_id, COALESCE(tool_id, ''));
CREATE INDEX IF NOT EXISTS idx_tool_pricing_tool ON tool_pricing (tool_id);

CREATE TABLE IF NOT EXISTS markup_multiplier (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    scope TEXT NOT NULL CHECK (scope IN ('provider', 'model', 'tool')),
    provider_id TEXT NOT NULL,
    model_id TEXT,
    tool_id TEXT,
    multiplier REAL NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_markup_scope_provider ON markup_multiplier (scope, provider_id);
CREATE INDEX IF NOT EXISTS idx_markup_provider_model ON markup_multiplier (provider_id, model_id);
CREATE INDEX IF NOT EXISTS idx_markup_provider_tool ON markup_multiplier (provider_id, tool_id);

CREATE TABLE IF NOT EXISTS ai_cost (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id TEXT NOT NULL,
    user_id TEXT,
    thread_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    model_id TEXT NOT NULL,
    usage TEXT NOT NULL,
    cost TEXT NOT NULL,
    cost_for_user TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_ai_cost_user ON ai_cost (user_id);
CREATE INDEX IF NOT EXISTS idx_ai_cost_thread ON ai_cost (thread_id);
CREATE INDEX IF NOT EXISTS idx_ai_cost_message ON ai_cost (message_id);

CREATE TABLE IF NOT EXISTS tool_cost (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id TEXT NOT NULL,
    user_id TEXT,
    thread_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    tool_id TEXT NOT NULL,
    usage TEXT NOT NULL,
    cost TEXT NOT NULL,
    cost_for_user TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tool_cost_user ON tool_cost (user_id);
CREATE INDEX IF NOT EXISTS idx_tool_cost_thread ON tool_cost (thread_id);
CREATE INDEX IF NOT EXISTS idx_tool_cost_provider_tool ON tool_cost (provider_id, tool_id);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables and indexes if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
