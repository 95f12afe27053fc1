"""
Ledger record types.

Rows come back from the store as mappings keyed by column name; each record
type knows how to build itself from one.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

T = TypeVar("T")

OPCODE_CREATE = "create"
OPCODE_CALL = "call"


@dataclass
class ContractCallRecord:
    """One on-chain contract interaction: a creation or a call."""

    transaction_id: str
    block_index: int
    from_address: str
    to_address: Optional[str] = None
    new_contract_address: Optional[str] = None
    contract_code_type: Optional[str] = None
    contract_opcode: str = OPCODE_CALL
    success: bool = True
    error: Optional[str] = None
    method_name: Optional[str] = None
    method_parameters: Dict[str, Any] = field(default_factory=dict)
    gas_used: int = 0
    gas_price: int = 0
    amount: int = 0
    contract_balance: int = 0
    logs: List[Dict[str, Any]] = field(default_factory=list)
    post_state: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ContractCallRecord":
        return cls(
            transaction_id=row["transaction_id"],
            block_index=row["block_index"],
            from_address=row["from_address"],
            to_address=row.get("to_address"),
            new_contract_address=row.get("new_contract_address"),
            contract_code_type=row.get("contract_code_type"),
            contract_opcode=row.get("contract_opcode") or OPCODE_CALL,
            success=bool(row.get("success")),
            error=row.get("error"),
            method_name=row.get("method_name"),
            method_parameters=row.get("method_parameters") or {},
            gas_used=row.get("gas_used") or 0,
            gas_price=row.get("gas_price") or 0,
            amount=row.get("amount") or 0,
            contract_balance=row.get("contract_balance") or 0,
            logs=row.get("logs") or [],
            post_state=row.get("post_state"),
        )

    @property
    def is_create(self) -> bool:
        return self.contract_opcode == OPCODE_CREATE


@dataclass
class ContractCodeRecord:
    contract_address: str
    block_index: int
    code_type: str
    byte_code: Optional[str] = None
    contract_hash: Optional[str] = None
    source_code: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ContractCodeRecord":
        return cls(
            contract_address=row["contract_address"],
            block_index=row["block_index"],
            code_type=row["code_type"],
            byte_code=row.get("byte_code"),
            contract_hash=row.get("contract_hash"),
            source_code=row.get("source_code"),
        )


@dataclass
class NonFungibleAssetRecord:
    contract_address: str
    token_id: str
    owner: Optional[str]
    creator: Optional[str]
    block_index: int
    is_burned: bool = False
    uri: Optional[str] = None
    # Ordered oldest first; see cirrusapi.sales
    sales_history: list = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], sales_history=None) -> "NonFungibleAssetRecord":
        return cls(
            contract_address=row["contract_address"],
            token_id=row["token_id"],
            owner=row.get("owner"),
            creator=row.get("creator"),
            block_index=row["block_index"],
            is_burned=bool(row.get("is_burned")),
            uri=row.get("uri"),
            sales_history=list(sales_history or []),
        )


@dataclass
class QueryResult(Generic[T]):
    """A bounded window over an ordered query plus the numbers that produced it."""

    items: List[T]
    offset: int
    limit: int
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "offset": self.offset,
            "limit": self.limit,
            "total": self.total,
        }
