"""
Ledger store access.

``LedgerStore`` is the surface the query core needs from storage: filtered
and ordered reads with skip/limit, counts, deletes and grouped folds.
Predicates are equality maps of column name to value; ``None`` matches SQL NULL.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import asyncpg

from cirrusapi.exceptions import StoreError

logger = logging.getLogger(__name__)

Where = Mapping[str, Any]

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


class LedgerStore(ABC):
    """Storage primitives the query core is written against."""

    # True when delete_in_transaction is available
    supports_transactions = False

    @abstractmethod
    async def count(self, table: str, where: Optional[Where] = None) -> int:
        ...

    @abstractmethod
    async def find(
        self,
        table: str,
        where: Optional[Where] = None,
        order_by: Sequence[str] = (),
        descending: bool = False,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def delete_where(self, table: str, where: Where) -> int:
        ...

    @abstractmethod
    async def group_count(
        self, table: str, key: str, first_of: str, order_by: str, where: Optional[Where] = None
    ) -> List[Dict[str, Any]]:
        """Rows of ``{"key", "count", "first"}`` where ``first`` is ``first_of`` of the earliest row by ``order_by``."""

    @abstractmethod
    async def group_sum(
        self, table: str, key: str, value: str, where: Optional[Where] = None
    ) -> List[Dict[str, Any]]:
        """Rows of ``{"key", "total"}`` summing ``value`` per ``key``."""

    async def find_one(self, table: str, where: Where, order_by: Sequence[str] = (), descending: bool = False):
        rows = await self.find(table, where, order_by=order_by, descending=descending, limit=1)
        return rows[0] if rows else None

    async def delete_in_transaction(self, deletes: Mapping[str, Where]) -> Dict[str, int]:
        raise NotImplementedError(f"{type(self).__name__} does not support transactional deletes")


def quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid identifier: {name!r}")
    return name


def build_where(where: Optional[Where], first_param: int = 1) -> Tuple[str, List[Any]]:
    """Render an equality predicate as a SQL condition and its positional parameters."""
    clauses = []
    params = []

    for column, value in (where or {}).items():
        column = quote_identifier(column)
        if value is None:
            clauses.append(f"{column} IS NULL")
            continue
        params.append(value)
        clauses.append(f"{column} = ${first_param + len(params) - 1}")

    return " AND ".join(clauses) if clauses else "1=1", params


def build_order(order_by: Sequence[str], descending: bool = False) -> str:
    if not order_by:
        return ""
    direction = "DESC" if descending else "ASC"
    return "ORDER BY " + ", ".join(f"{quote_identifier(c)} {direction}" for c in order_by)


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "DELETE 12"
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresLedgerStore(LedgerStore):
    """LedgerStore backed by an asyncpg pool."""

    supports_transactions = True

    def __init__(self, pool):
        self._pool = pool

    @asynccontextmanager
    async def _acquire(self):
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.error("Store operation failed: %s", e)
            raise StoreError(type(e).__name__) from e

    async def count(self, table, where=None):
        where_sql, params = build_where(where)
        async with self._acquire() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM {quote_identifier(table)} WHERE {where_sql}",
                *params
            )
        return total or 0

    async def find(self, table, where=None, order_by=(), descending=False, skip=0, limit=None):
        where_sql, params = build_where(where)
        query = f"SELECT * FROM {quote_identifier(table)} WHERE {where_sql} {build_order(order_by, descending)}"

        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        if skip:
            params.append(skip)
            query += f" OFFSET ${len(params)}"

        async with self._acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [dict(row) for row in rows]

    async def delete_where(self, table, where):
        where_sql, params = build_where(where)
        async with self._acquire() as conn:
            status = await conn.execute(
                f"DELETE FROM {quote_identifier(table)} WHERE {where_sql}",
                *params
            )
        return _affected_rows(status)

    async def delete_in_transaction(self, deletes):
        deleted = {}
        async with self._acquire() as conn:
            async with conn.transaction():
                for table, where in deletes.items():
                    where_sql, params = build_where(where)
                    status = await conn.execute(
                        f"DELETE FROM {quote_identifier(table)} WHERE {where_sql}",
                        *params
                    )
                    deleted[table] = _affected_rows(status)
        return deleted

    async def group_count(self, table, key, first_of, order_by, where=None):
        where_sql, params = build_where(where)
        key = quote_identifier(key)
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {key} AS key,
                       COUNT(*) AS count,
                       (ARRAY_AGG({quote_identifier(first_of)} ORDER BY {quote_identifier(order_by)}))[1] AS first
                FROM {quote_identifier(table)}
                WHERE {where_sql}
                GROUP BY {key}
                """,
                *params
            )
        return [dict(row) for row in rows]

    async def group_sum(self, table, key, value, where=None):
        where_sql, params = build_where(where)
        key = quote_identifier(key)
        async with self._acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {key} AS key, SUM({quote_identifier(value)}) AS total
                FROM {quote_identifier(table)}
                WHERE {where_sql}
                GROUP BY {key}
                """,
                *params
            )
        return [{"key": row["key"], "total": int(row["total"] or 0)} for row in rows]
