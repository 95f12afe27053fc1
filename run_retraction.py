import argparse
import asyncio
import logging

from cirrusapi.database import init_pool, close_pool
from cirrusapi.logger import configure_logging
from cirrusapi.retraction import retract_block
from cirrusapi.store import PostgresLedgerStore

logger = logging.getLogger("run_retraction")

async def run_retraction(heights):
    configure_logging()
    pool = await init_pool()
    try:
        store = PostgresLedgerStore(pool)
        # Highest first, the way a reorg unwinds the chain
        for height in sorted(set(heights), reverse=True):
            deleted = await retract_block(store, height)
            logger.info("Block %d: %d rows removed", height, sum(deleted.values()))
    finally:
        await close_pool()

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Remove ledger rows of retracted blocks")
    parser.add_argument("heights", nargs="+", type=int, help="block heights to retract")
    args = parser.parse_args()
    asyncio.run(run_retraction(args.heights))
