"""
Block retraction.

When the chain reorganizes, every row tied to a retracted block height is
deleted from each table in ``RETRACTION_TABLES``. The caller must retract
height H before indexing a replacement block at H.

With a transactional store the deletes run as one batch. Otherwise they are
issued concurrently and the retraction fails if any of them fails. Deleting a
height that is already gone is a no-op, so a failed retraction is retried as a
whole.

Non-fungible assets are retracted by the height they were minted at. Owner
and burn changes are written onto the asset row in place by the indexer, so a
change made at a retracted height is not undone here; the indexer has to
rewrite those rows when it replays the replacement block.
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence

from cirrusapi.config import ATOMIC_RETRACTION, RETRACTION_TABLES
from cirrusapi.exceptions import RetractionFailed
from cirrusapi.store import LedgerStore

logger = logging.getLogger(__name__)


async def retract_block(
    store: LedgerStore,
    height: int,
    tables: Sequence[str] = RETRACTION_TABLES,
    atomic: Optional[bool] = None,
) -> Dict[str, int]:
    """
    Delete all rows at block ``height`` from ``tables``.

    Returns the number of rows deleted per table. Raises ``RetractionFailed``
    if any table could not be cleared.
    """
    if atomic is None:
        atomic = ATOMIC_RETRACTION

    where = {"block_index": height}

    if atomic and store.supports_transactions:
        try:
            deleted = await store.delete_in_transaction({table: where for table in tables})
        except Exception as e:
            logger.error("Retraction of block %d rolled back: %s", height, e)
            raise RetractionFailed(height, {table: e for table in tables}) from e
    else:
        results = await asyncio.gather(
            *(store.delete_where(table, where) for table in tables),
            return_exceptions=True,
        )

        failures = {}
        deleted = {}
        for table, result in zip(tables, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures[table] = result
            else:
                deleted[table] = result

        if failures:
            logger.error(
                "Retraction of block %d failed for %s (deleted so far: %s)",
                height, sorted(failures), deleted,
            )
            raise RetractionFailed(height, failures)

    logger.info("Retracted block %d: %s", height, deleted)
    return deleted
