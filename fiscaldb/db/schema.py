"""Per-fiscal-year schema creation and versioning."""

from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1

# Statements are templated on the attached schema name; every object is
# created with IF NOT EXISTS so re-running never duplicates anything.
_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS "{schema}".vouchers (
        voucher_id INTEGER PRIMARY KEY AUTOINCREMENT,
        voucher_no TEXT NOT NULL,
        kind TEXT NOT NULL CHECK(kind IN ('receipt', 'payment', 'journal')),
        party TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK(amount > 0),
        voucher_date DATE NOT NULL,
        description TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    'CREATE UNIQUE INDEX IF NOT EXISTS "{schema}".ux_vouchers_voucher_no ON vouchers (voucher_no)',
    'CREATE INDEX IF NOT EXISTS "{schema}".ix_vouchers_voucher_date ON vouchers (voucher_date)',
    'CREATE INDEX IF NOT EXISTS "{schema}".ix_vouchers_party ON vouchers (party)',
)


async def _user_version(conn: aiosqlite.Connection, schema: str) -> int:
    cursor = await conn.execute(f'PRAGMA "{schema}".user_version;')
    row = await cursor.fetchone()
    await cursor.close()
    return row[0] if row else 0


async def initialize_fiscal_year(conn: aiosqlite.Connection, schema: str) -> None:
    """Create tables and indexes for an attached fiscal-year database.

    Safe to call repeatedly: on an up-to-date database nothing is written.
    """
    current_version = await _user_version(conn, schema)
    if current_version >= CURRENT_SCHEMA_VERSION:
        logger.debug("Schema %s is up-to-date (version %d)", schema, current_version)
        return

    logger.info(
        "Initializing schema %s from version %d to %d",
        schema,
        current_version,
        CURRENT_SCHEMA_VERSION,
    )
    await conn.execute("BEGIN IMMEDIATE;")
    try:
        for statement in _SCHEMA_STATEMENTS:
            await conn.execute(statement.format(schema=schema))
        await conn.execute(f'PRAGMA "{schema}".user_version = {CURRENT_SCHEMA_VERSION};')
        await conn.execute("COMMIT;")
    except Exception:
        await conn.execute("ROLLBACK;")
        logger.exception("Failed to initialize schema %s", schema)
        raise
    logger.info("Schema %s initialized, version set to %d", schema, CURRENT_SCHEMA_VERSION)
