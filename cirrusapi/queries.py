"""Point, listing and aggregation queries over the contract ledger."""

import logging
from typing import Optional

from cirrusapi.exceptions import IntegrityViolation
from cirrusapi.models import (
    OPCODE_CREATE,
    ContractCallRecord,
    ContractCodeRecord,
    NonFungibleAssetRecord,
    QueryResult,
)
from cirrusapi.paging import paginate
from cirrusapi.sales import last_sale_transaction, price_paid, sale_event_from_row
from cirrusapi.store import LedgerStore

logger = logging.getLogger(__name__)

CALL_ORDER = ("block_index", "transaction_id")
ASSET_ORDER = ("block_index", "contract_address", "token_id")
SALE_ORDER = ("block_index", "sale_index")


# Helper to format a contract creation response
def format_contract_create(record: ContractCallRecord, contract_balance: int):
    return {
        "success": record.success,
        "contractAddress": record.new_contract_address,
        "contractCodeType": record.contract_code_type,
        "gasUsed": record.gas_used,
        "gasPrice": record.gas_price,
        "amount": record.amount,
        "contractBalance": contract_balance,
        "fromAddress": record.from_address,
        "error": record.error,
        "contractOpcode": record.contract_opcode,
        "blockIndex": record.block_index,
        "transactionId": record.transaction_id,
    }

# Helper to format a contract call list entry
def format_contract_call(row):
    record = ContractCallRecord.from_row(row)
    return {
        "success": record.success,
        "methodName": record.method_name,
        "toAddress": record.to_address,
        "gasUsed": record.gas_used,
        "gasPrice": record.gas_price,
        "amount": record.amount,
        "contractBalance": record.contract_balance,
        "fromAddress": record.from_address,
        "error": record.error,
        "blockIndex": record.block_index,
        "transactionId": record.transaction_id,
    }

# Helper to format a full contract transaction
def format_contract_transaction(record: ContractCallRecord):
    return {
        "success": record.success,
        "newContractAddress": record.new_contract_address,
        "contractCodeType": record.contract_code_type,
        "gasUsed": record.gas_used,
        "gasPrice": record.gas_price,
        "amount": record.amount,
        "contractBalance": record.contract_balance,
        "fromAddress": record.from_address,
        "toAddress": record.to_address,
        "logs": record.logs,
        "methodName": record.method_name,
        "postState": record.post_state,
        "error": record.error,
        "contractOpcode": record.contract_opcode,
        "blockIndex": record.block_index,
        "transactionId": record.transaction_id,
    }

def format_contract_code(record: ContractCodeRecord):
    return {
        "codeType": record.code_type,
        "byteCode": record.byte_code,
        "contractHash": record.contract_hash,
        "sourceCode": record.source_code,
    }

def format_contract_list_entry(row):
    record = ContractCallRecord.from_row(row)
    return {
        "contractAddress": record.new_contract_address,
        "contractCodeType": record.contract_code_type,
        "error": record.error,
        "blockIndex": record.block_index,
        "transactionId": record.transaction_id,
    }

def format_asset(asset: NonFungibleAssetRecord):
    return {
        "contractId": asset.contract_address,
        "id": asset.token_id,
        "owner": asset.owner,
        "creator": asset.creator,
        "uri": asset.uri,
        "isBurned": asset.is_burned,
        "transactionId": last_sale_transaction(asset.sales_history),
        "pricePaid": price_paid(asset.sales_history),
    }


async def find_creation_record(store: LedgerStore, address: str) -> Optional[ContractCallRecord]:
    """The record that created ``address``, or None. More than one is an integrity violation."""
    rows = await store.find("contract_calls", {"new_contract_address": address}, order_by=CALL_ORDER)

    if len(rows) > 1:
        logger.error("Found %d creation records for contract %s", len(rows), address)
        raise IntegrityViolation("creation", address, len(rows))

    return ContractCallRecord.from_row(rows[0]) if rows else None


async def contract_create(store: LedgerStore, address: str):
    record = await find_creation_record(store, address)
    if record is None:
        return None

    last_entry = await store.find_one(
        "contract_calls", {"to_address": address}, order_by=CALL_ORDER, descending=True
    )
    contract_balance = (last_entry["contract_balance"] or 0) if last_entry else 0

    return format_contract_create(record, contract_balance)


async def contract_calls(
    store: LedgerStore,
    address: str,
    filter_address: Optional[str],
    offset: Optional[int],
    limit: int,
) -> QueryResult:
    where = {"to_address": address}
    if filter_address is not None:
        where["from_address"] = filter_address

    return await paginate(
        store, "contract_calls", where, limit, offset,
        order_by=CALL_ORDER, mapper=format_contract_call,
    )


async def contract_transaction(store: LedgerStore, transaction_id: str):
    rows = await store.find("contract_calls", {"transaction_id": transaction_id})

    if len(rows) > 1:
        logger.error("Found %d records for transaction %s", len(rows), transaction_id)
        raise IntegrityViolation("transaction", transaction_id, len(rows))

    if not rows:
        return None

    return format_contract_transaction(ContractCallRecord.from_row(rows[0]))


async def contract_code(store: LedgerStore, address: str):
    row = await store.find_one("contract_code", {"contract_address": address})
    if row is None:
        return None
    return format_contract_code(ContractCodeRecord.from_row(row))


async def grouped_contracts(store: LedgerStore) -> QueryResult:
    """Contract code records per code type, with a count and the first deployed hash."""
    groups = await store.group_count("contract_code", "code_type", "contract_hash", "block_index")

    items = [
        {
            "contractCodeType": group["key"],
            "count": group["count"],
            "contractHash": group["first"],
        }
        for group in groups
    ]

    return QueryResult(items=items, offset=0, limit=len(items), total=len(items))


async def list_contracts(store: LedgerStore, code_type: str, offset: Optional[int], limit: int) -> QueryResult:
    where = {
        "contract_opcode": OPCODE_CREATE,
        "contract_code_type": code_type,
        "success": True,
    }
    return await paginate(
        store, "contract_calls", where, limit, offset,
        order_by=CALL_ORDER, mapper=format_contract_list_entry,
    )


async def load_sales_history(store: LedgerStore, contract_address: str, token_id: str):
    rows = await store.find(
        "non_fungible_sales",
        {"contract_address": contract_address, "token_id": token_id},
        order_by=SALE_ORDER,
    )
    return [sale_event_from_row(row) for row in rows]


async def load_asset(store: LedgerStore, row) -> NonFungibleAssetRecord:
    history = await load_sales_history(store, row["contract_address"], row["token_id"])
    return NonFungibleAssetRecord.from_row(row, history)


async def non_fungible_token(store: LedgerStore, contract_address: str, token_id: str):
    row = await store.find_one(
        "non_fungible_assets", {"contract_address": contract_address, "token_id": token_id}
    )
    if row is None:
        return None
    return format_asset(await load_asset(store, row))


async def assets_for_owner(store: LedgerStore, owner: str, offset: Optional[int], limit: int) -> QueryResult:
    result = await paginate(
        store, "non_fungible_assets", {"owner": owner}, limit, offset, order_by=ASSET_ORDER,
    )
    result.items = [format_asset(await load_asset(store, row)) for row in result.items]
    return result


async def holder_balance(store: LedgerStore, contract_address: str, holder_address: str) -> Optional[int]:
    """Sum of a holder's balance deltas, or None when the holder has no history."""
    sums = await store.group_sum(
        "token_holder_changes",
        "holder_address",
        "amount",
        {"contract_address": contract_address, "holder_address": holder_address},
    )
    return sums[0]["total"] if sums else None
