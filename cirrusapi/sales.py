"""
Sale events of non-fungible assets and the price-paid normalization.

A sale history is an ordered list of variants. The price paid for an asset
is read from the last entry: an auction's highest bid or a listing's fixed
price. Anything else yields 0 so read paths keep working when new sale
mechanisms show up in the ledger before this module knows them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

SALE_AUCTION = "Auction"
SALE_ON_SALE = "OnSale"


@dataclass(frozen=True)
class Auction:
    transaction_id: str
    block_index: int
    highest_bid: int
    seller: Optional[str] = None
    highest_bidder: Optional[str] = None


@dataclass(frozen=True)
class OnSale:
    transaction_id: str
    block_index: int
    price: int
    seller: Optional[str] = None
    buyer: Optional[str] = None


@dataclass(frozen=True)
class UnknownSale:
    """A sale event whose type this service does not recognize."""

    transaction_id: str
    block_index: int
    sale_type: str
    data: Dict[str, Any] = field(default_factory=dict, compare=False)


SaleEvent = Union[Auction, OnSale, UnknownSale]


def sale_event_from_row(row: Mapping[str, Any]) -> SaleEvent:
    sale_type = row.get("sale_type")
    if sale_type == SALE_AUCTION:
        return Auction(
            transaction_id=row["transaction_id"],
            block_index=row["block_index"],
            highest_bid=row.get("highest_bid") or 0,
            seller=row.get("seller"),
            highest_bidder=row.get("buyer"),
        )
    if sale_type == SALE_ON_SALE:
        return OnSale(
            transaction_id=row["transaction_id"],
            block_index=row["block_index"],
            price=row.get("price") or 0,
            seller=row.get("seller"),
            buyer=row.get("buyer"),
        )
    return UnknownSale(
        transaction_id=row["transaction_id"],
        block_index=row["block_index"],
        sale_type=str(sale_type),
        data=dict(row),
    )


def price_paid(history: Sequence[SaleEvent]) -> int:
    """Return the price paid according to the last event of ``history``, 0 if unknown."""
    if not history:
        return 0

    last = history[-1]
    if isinstance(last, Auction):
        return last.highest_bid
    if isinstance(last, OnSale):
        return last.price

    logger.debug(
        "No price for sale event %r in %s",
        getattr(last, "sale_type", type(last).__name__),
        getattr(last, "transaction_id", None),
    )
    return 0


def last_sale_transaction(history: Sequence[SaleEvent]) -> Optional[str]:
    return history[-1].transaction_id if history else None
