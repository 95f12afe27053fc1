"""
Windowed reads over ordered ledger queries.

Every paginated query goes through ``paginate`` so the window arithmetic
lives in one place. A request either names an offset (``PageMode.FROM_OFFSET``)
or leaves it out, in which case the window is the most recent ``limit``
items (``PageMode.MOST_RECENT``). Windows are always returned in ascending
order of the query's sort key.

The total is counted before the window is fetched, as two separate reads.
Rows appended in between may make the total lag the window slightly.
"""

import enum
from typing import Any, Callable, Dict, Optional, Sequence

from cirrusapi.models import QueryResult
from cirrusapi.store import LedgerStore, Where


class PageMode(enum.Enum):
    FROM_OFFSET = "from_offset"
    MOST_RECENT = "most_recent"


def page_mode(offset: Optional[int]) -> PageMode:
    return PageMode.MOST_RECENT if offset is None else PageMode.FROM_OFFSET


def resolve_skip(total: int, limit: int, offset: Optional[int]) -> int:
    """
    Number of rows to skip for a request.

    In ``MOST_RECENT`` mode this is ``max(0, total - limit)``. An explicit
    offset is used as given; range checks belong to the request validation.
    """
    if page_mode(offset) is PageMode.MOST_RECENT:
        return max(0, total - limit)
    return offset


async def paginate(
    store: LedgerStore,
    table: str,
    where: Where,
    limit: int,
    offset: Optional[int] = None,
    order_by: Sequence[str] = ("block_index",),
    mapper: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> QueryResult:
    total = await store.count(table, where)
    skip = resolve_skip(total, limit, offset)

    if total == 0 and page_mode(offset) is PageMode.MOST_RECENT:
        return QueryResult(items=[], offset=0, limit=limit, total=0)

    rows = await store.find(table, where, order_by=order_by, skip=skip, limit=limit)
    items = [mapper(row) for row in rows] if mapper else rows

    return QueryResult(items=items, offset=skip, limit=limit, total=total)
