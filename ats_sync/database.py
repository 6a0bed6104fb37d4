"""
Database connection management and migrations.
"""
import asyncpg
import logging
from typing import Optional
from ats_sync.config import DATABASE_URL

logger = logging.getLogger(__name__)

# Global connection pool
_db_pool: Optional[asyncpg.Pool] = None


async def get_db_pool() -> asyncpg.Pool:
    """Get or create the database connection pool.

    - setup callback validates connections on acquire (like SQLAlchemy pool_pre_ping)
    - max_inactive_connection_lifetime drops idle connections after ~5 min
    """
    global _db_pool
    if _db_pool is None:
        if not DATABASE_URL:
            raise RuntimeError("DATABASE_URL environment variable is required for the postgres storage backend")

        # Accept SQLAlchemy-style URLs as well
        raw_url = DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://")

        async def setup_connection(conn):
            """Validate connection on acquire."""
            await conn.execute("SELECT 1")

        _db_pool = await asyncpg.create_pool(
            raw_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
            max_inactive_connection_lifetime=300.0,
            setup=setup_connection,
        )
        logger.info("Database connection pool created (min=2, max=10, idle_lifetime=300s)")
    return _db_pool


async def close_db_pool():
    """Close the database connection pool."""
    global _db_pool
    if _db_pool is not None:
        await _db_pool.close()
        _db_pool = None
        logger.info("Database connection pool closed")


async def run_schema_migrations(pool: asyncpg.Pool):
    """Create the sheet storage and sync state tables if they don't exist."""
    try:
        await pool.execute("CREATE SCHEMA IF NOT EXISTS ats;")

        await pool.execute("""
            CREATE TABLE IF NOT EXISTS ats.sheet_tables (
                name        TEXT PRIMARY KEY,
                max_rows    INTEGER NOT NULL DEFAULT 1000,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)

        await pool.execute("""
            CREATE TABLE IF NOT EXISTS ats.sheet_rows (
                sheet_name  TEXT NOT NULL REFERENCES ats.sheet_tables(name) ON DELETE CASCADE,
                row_number  INTEGER NOT NULL,
                cells       JSONB NOT NULL DEFAULT '[]',
                format      JSONB,
                PRIMARY KEY (sheet_name, row_number)
            );
        """)

        await pool.execute("""
            CREATE TABLE IF NOT EXISTS ats.sheet_validations (
                sheet_name  TEXT NOT NULL REFERENCES ats.sheet_tables(name) ON DELETE CASCADE,
                row_number  INTEGER NOT NULL,
                col         INTEGER NOT NULL,
                rule        JSONB NOT NULL,
                PRIMARY KEY (sheet_name, row_number, col)
            );
        """)

        await pool.execute("""
            CREATE TABLE IF NOT EXISTS ats.sync_state (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)

        logger.info("Schema migrations completed")
    except Exception as e:
        logger.warning(f"Schema migration warning (may be ok if already done): {e}")
