"""
Shared fixtures: an in-memory LedgerStore and row builders.
"""

import itertools

import pytest

from cirrusapi.exceptions import StoreError
from cirrusapi.store import LedgerStore

CONTRACT = "tContract00000000000000000000000001"
OTHER_CONTRACT = "tContract00000000000000000000000002"
ALICE = "tAlice000000000000000000000000000001"
BOB = "tBob00000000000000000000000000000001"


def _matches(row, where):
    return all(row.get(column) == value for column, value in (where or {}).items())


def _sort_key(order_by):
    return lambda row: tuple(row.get(column) for column in order_by)


class InMemoryLedgerStore(LedgerStore):
    """LedgerStore over plain lists of dict rows."""

    def __init__(self, supports_transactions=False):
        self.supports_transactions = supports_transactions
        self.tables = {}
        self.fail_on = set()
        self.delete_calls = []
        self._sale_index = itertools.count(1)

    def insert(self, table, **row):
        if table == "non_fungible_sales":
            row.setdefault("sale_index", next(self._sale_index))
        self.tables.setdefault(table, []).append(row)
        return row

    def rows(self, table):
        return self.tables.get(table, [])

    async def count(self, table, where=None):
        return sum(1 for row in self.rows(table) if _matches(row, where))

    async def find(self, table, where=None, order_by=(), descending=False, skip=0, limit=None):
        rows = [dict(row) for row in self.rows(table) if _matches(row, where)]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        rows = rows[skip:]
        return rows if limit is None else rows[:limit]

    async def delete_where(self, table, where):
        self.delete_calls.append(table)
        if table in self.fail_on:
            raise StoreError(f"delete failed on {table}")
        before = self.rows(table)
        kept = [row for row in before if not _matches(row, where)]
        self.tables[table] = kept
        return len(before) - len(kept)

    async def delete_in_transaction(self, deletes):
        if not self.supports_transactions:
            return await super().delete_in_transaction(deletes)
        failed = [table for table in deletes if table in self.fail_on]
        if failed:
            raise StoreError(f"delete failed on {failed[0]}")
        deleted = {}
        for table, where in deletes.items():
            before = self.rows(table)
            kept = [row for row in before if not _matches(row, where)]
            self.tables[table] = kept
            deleted[table] = len(before) - len(kept)
        return deleted

    async def group_count(self, table, key, first_of, order_by, where=None):
        groups = {}
        for row in sorted(self.rows(table), key=_sort_key((order_by,))):
            if not _matches(row, where):
                continue
            group = groups.setdefault(row[key], {"key": row[key], "count": 0, "first": row[first_of]})
            group["count"] += 1
        return list(groups.values())

    async def group_sum(self, table, key, value, where=None):
        totals = {}
        for row in self.rows(table):
            if _matches(row, where):
                totals[row[key]] = totals.get(row[key], 0) + row[value]
        return [{"key": k, "total": v} for k, v in totals.items()]


def call_row(transaction_id, block_index, to_address=CONTRACT, from_address=ALICE, **extra):
    row = {
        "transaction_id": transaction_id,
        "block_index": block_index,
        "from_address": from_address,
        "to_address": to_address,
        "new_contract_address": None,
        "contract_code_type": None,
        "contract_opcode": "call",
        "success": True,
        "error": None,
        "method_name": "Call",
        "method_parameters": {},
        "gas_used": 100,
        "gas_price": 1,
        "amount": 0,
        "contract_balance": 0,
        "logs": [],
        "post_state": None,
    }
    row.update(extra)
    return row


def create_row(transaction_id, block_index, contract_address=CONTRACT, code_type="StandardToken", **extra):
    extra.setdefault("method_name", None)
    return call_row(
        transaction_id,
        block_index,
        to_address=None,
        new_contract_address=contract_address,
        contract_code_type=code_type,
        contract_opcode="create",
        **extra
    )


def log(event, **data):
    return {"event": event, "data": data}


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def transactional_store():
    return InMemoryLedgerStore(supports_transactions=True)
