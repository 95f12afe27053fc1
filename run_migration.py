import asyncio
import logging
from pathlib import Path

import asyncpg

from cirrusapi.config import PG_HOST, PG_PORT, PG_DATABASE, PG_USER, PG_PASSWORD, RETRACTION_TABLES
from cirrusapi.logger import configure_logging

logger = logging.getLogger("run_migration")

MIGRATION_FILE = Path(__file__).parent / "migrations" / "cirrus_ledger.sql"

async def run_migration():
    configure_logging()
    conn = await asyncpg.connect(
        host=PG_HOST,
        port=PG_PORT,
        user=PG_USER,
        password=PG_PASSWORD,
        database=PG_DATABASE
    )
    try:
        await conn.execute(MIGRATION_FILE.read_text())
        logger.info("Migration %s applied", MIGRATION_FILE.name)

        # Verify tables exist
        tables = await conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name = ANY($1::text[])
            """,
            list(RETRACTION_TABLES)
        )

        found = {table["table_name"] for table in tables}
        missing = set(RETRACTION_TABLES) - found
        if missing:
            raise RuntimeError(f"tables missing after migration: {sorted(missing)}")

        for table in sorted(found):
            logger.info("Verified table %s", table)

    except Exception as e:
        logger.error("Error running migration: %s", e)
        raise
    finally:
        await conn.close()

if __name__ == '__main__':
    asyncio.run(run_migration())
