"""
On-demand contract state projections.

A projector folds every ledger record of one contract into a view: the
creation record first, then each successful call in ascending block order.
Log events emitted by a call are dispatched by event name to the projector's
handlers; events a projector has no handler for are skipped.

Views are a pure function of the ledger and are recomputed on every request.
The cost is proportional to the contract's history.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cirrusapi.models import ContractCallRecord
from cirrusapi.queries import (
    ASSET_ORDER,
    CALL_ORDER,
    find_creation_record,
    format_asset,
    holder_balance,
    load_asset,
)
from cirrusapi.store import LedgerStore

logger = logging.getLogger(__name__)

DAO_CONTRACT = "DAOContract"
STANDARD_TOKEN = "StandardToken"
NON_FUNGIBLE_TOKEN = "NonFungibleToken"


def _int(value, default=0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer value %r", value)
        return default


def token_amount(value: int) -> str:
    # Token quantities are NUMERIC(78, 0) and overflow a JSON int64
    return str(value)


@dataclass
class ComputedContractView:
    contract_address: str
    owner: Optional[str]
    created_on_block: int
    creation_transaction_id: str
    last_processed_block: int
    previous_owners: List[str] = field(default_factory=list)

    contract_type = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contractType": self.contract_type,
            "contractAddress": self.contract_address,
            "owner": self.owner,
            "createdOnBlock": self.created_on_block,
            "creationTransactionId": self.creation_transaction_id,
            "lastProcessedBlock": self.last_processed_block,
            "previousOwners": list(self.previous_owners),
        }


@dataclass
class DaoProposal:
    id: int
    recipient: Optional[str]
    amount: int
    description: Optional[str]
    proposer: str
    proposed_on_block: int
    votes: Dict[str, bool] = field(default_factory=dict)
    was_executed: bool = False
    executed_on_block: Optional[int] = None

    @property
    def yes(self) -> int:
        return sum(1 for vote in self.votes.values() if vote)

    @property
    def no(self) -> int:
        return sum(1 for vote in self.votes.values() if not vote)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "amount": self.amount,
            "description": self.description,
            "proposer": self.proposer,
            "proposedOnBlock": self.proposed_on_block,
            "yes": self.yes,
            "no": self.no,
            "votes": [{"voter": voter, "vote": vote} for voter, vote in self.votes.items()],
            "wasExecuted": self.was_executed,
            "executedOnBlock": self.executed_on_block,
        }


@dataclass
class DaoView(ComputedContractView):
    min_voting_duration: int = 0
    max_voting_duration: int = 0
    current_amount: int = 0
    whitelisted_addresses: List[str] = field(default_factory=list)
    proposals: Dict[int, DaoProposal] = field(default_factory=dict)
    deposits: List[Dict[str, Any]] = field(default_factory=list)

    contract_type = DAO_CONTRACT

    def to_dict(self):
        result = super().to_dict()
        result.update({
            "minVotingDuration": self.min_voting_duration,
            "maxVotingDuration": self.max_voting_duration,
            "currentAmount": self.current_amount,
            "whitelistedCount": len(self.whitelisted_addresses),
            "whitelistedAddresses": list(self.whitelisted_addresses),
            "proposals": [p.to_dict() for _, p in sorted(self.proposals.items())],
            "deposits": list(self.deposits),
        })
        return result


@dataclass
class StandardTokenView(ComputedContractView):
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: int = 0
    total_supply: int = 0
    holders: List[Dict[str, Any]] = field(default_factory=list)

    contract_type = STANDARD_TOKEN

    def to_dict(self):
        result = super().to_dict()
        result.update({
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "totalSupply": token_amount(self.total_supply),
            "holders": [
                {"address": h["address"], "amount": token_amount(h["amount"])} for h in self.holders
            ],
        })
        return result


@dataclass
class NonFungibleTokenView(ComputedContractView):
    name: Optional[str] = None
    symbol: Optional[str] = None
    owner_only_minting: bool = False
    pending_owner: Optional[str] = None
    tokens: List[Dict[str, Any]] = field(default_factory=list)

    contract_type = NON_FUNGIBLE_TOKEN

    def to_dict(self):
        result = super().to_dict()
        result.update({
            "name": self.name,
            "symbol": self.symbol,
            "ownerOnlyMinting": self.owner_only_minting,
            "pendingOwner": self.pending_owner,
            "tokens": list(self.tokens),
        })
        return result


class ContractProjector:
    """
    Base class for per-contract-type projections.

    Subclasses set ``contract_type``, build the initial view from the creation
    record in ``create_view`` and map log event names to handler method names
    in ``log_handlers``. Handlers are called as ``handler(view, call, data)``.
    """

    contract_type: str = None
    log_handlers: Dict[str, str] = {}

    def __init__(self, store: LedgerStore):
        self.store = store

    async def compute(self, address: str):
        """Return the view for ``address`` or None when no such contract was created."""
        creation = await find_creation_record(self.store, address)

        if creation is None or not creation.success:
            return None
        if creation.contract_code_type != self.contract_type:
            logger.debug(
                "Contract %s is %s, not %s", address, creation.contract_code_type, self.contract_type
            )
            return None

        view = self.create_view(creation)
        self.apply(view, creation)

        rows = await self.store.find(
            "contract_calls", {"to_address": address, "success": True}, order_by=CALL_ORDER
        )
        for row in rows:
            self.apply(view, ContractCallRecord.from_row(row))

        await self.complete(view)
        return view

    def create_view(self, creation: ContractCallRecord):
        raise NotImplementedError

    def apply(self, view, call: ContractCallRecord) -> None:
        view.last_processed_block = call.block_index

        for log in call.logs:
            event = log.get("event")
            handler_name = self.log_handlers.get(event)
            if handler_name is None:
                logger.debug("Skipping %s event in %s", event, call.transaction_id)
                continue
            getattr(self, handler_name)(view, call, log.get("data") or {})

    async def complete(self, view) -> None:
        """Hook for loading state that lives outside the call records."""

    def _transfer_ownership(self, view, call, data):
        previous = data.get("previousOwner") or view.owner
        if previous and previous not in view.previous_owners:
            view.previous_owners.append(previous)
        view.owner = data.get("newOwner")


class DaoProjector(ContractProjector):
    contract_type = DAO_CONTRACT
    log_handlers = {
        "ProposalAdded": "_proposal_added",
        "ProposalVoted": "_proposal_voted",
        "ProposalExecuted": "_proposal_executed",
        "FundRaised": "_fund_raised",
        "WhitelistedAddress": "_whitelisted",
        "BlacklistedAddress": "_blacklisted",
        "MinVotingDurationUpdated": "_min_duration_updated",
        "MaxVotingDurationUpdated": "_max_duration_updated",
        "OwnershipTransferred": "_transfer_ownership",
    }

    def create_view(self, creation):
        params = creation.method_parameters
        return DaoView(
            contract_address=creation.new_contract_address,
            owner=creation.from_address,
            created_on_block=creation.block_index,
            creation_transaction_id=creation.transaction_id,
            last_processed_block=creation.block_index,
            min_voting_duration=_int(params.get("minVotingDuration")),
            max_voting_duration=_int(params.get("maxVotingDuration")),
        )

    def apply(self, view, call):
        super().apply(view, call)
        if not call.is_create:
            view.current_amount = call.contract_balance

    def _proposal_added(self, view, call, data):
        proposal_id = _int(data.get("proposalId"))
        view.proposals[proposal_id] = DaoProposal(
            id=proposal_id,
            recipient=data.get("recipient"),
            amount=_int(data.get("amount")),
            description=data.get("description"),
            proposer=call.from_address,
            proposed_on_block=call.block_index,
        )

    def _proposal_voted(self, view, call, data):
        proposal = view.proposals.get(_int(data.get("proposalId")))
        if proposal is None:
            logger.debug("Vote for unknown proposal %s in %s", data.get("proposalId"), call.transaction_id)
            return
        proposal.votes[data.get("voter") or call.from_address] = bool(data.get("vote"))

    def _proposal_executed(self, view, call, data):
        proposal = view.proposals.get(_int(data.get("proposalId")))
        if proposal is None:
            return
        proposal.was_executed = True
        proposal.executed_on_block = call.block_index

    def _fund_raised(self, view, call, data):
        view.deposits.append({
            "sender": data.get("sender") or call.from_address,
            "amount": _int(data.get("amount"), call.amount),
            "transactionId": call.transaction_id,
            "blockIndex": call.block_index,
        })

    def _whitelisted(self, view, call, data):
        address = data.get("address")
        if address and address not in view.whitelisted_addresses:
            view.whitelisted_addresses.append(address)

    def _blacklisted(self, view, call, data):
        address = data.get("address")
        if address in view.whitelisted_addresses:
            view.whitelisted_addresses.remove(address)

    def _min_duration_updated(self, view, call, data):
        view.min_voting_duration = _int(data.get("value"), view.min_voting_duration)

    def _max_duration_updated(self, view, call, data):
        view.max_voting_duration = _int(data.get("value"), view.max_voting_duration)


class StandardTokenProjector(ContractProjector):
    contract_type = STANDARD_TOKEN
    log_handlers = {
        "Mint": "_mint",
        "Burn": "_burn",
        "OwnershipTransferred": "_transfer_ownership",
    }

    def create_view(self, creation):
        params = creation.method_parameters
        return StandardTokenView(
            contract_address=creation.new_contract_address,
            owner=creation.from_address,
            created_on_block=creation.block_index,
            creation_transaction_id=creation.transaction_id,
            last_processed_block=creation.block_index,
            name=params.get("name"),
            symbol=params.get("symbol"),
            decimals=_int(params.get("decimals")),
            total_supply=_int(params.get("totalSupply")),
        )

    def _mint(self, view, call, data):
        view.total_supply += _int(data.get("amount"))

    def _burn(self, view, call, data):
        view.total_supply -= _int(data.get("amount"))

    async def complete(self, view):
        sums = await self.store.group_sum(
            "token_holder_changes", "holder_address", "amount",
            {"contract_address": view.contract_address},
        )
        holders = [{"address": s["key"], "amount": s["total"]} for s in sums if s["total"] != 0]
        holders.sort(key=lambda h: (-h["amount"], h["address"]))
        view.holders = holders


class NonFungibleTokenProjector(ContractProjector):
    contract_type = NON_FUNGIBLE_TOKEN
    log_handlers = {
        "OwnershipTransferRequested": "_transfer_requested",
        "OwnershipTransferred": "_ownership_transferred",
    }

    def create_view(self, creation):
        params = creation.method_parameters
        return NonFungibleTokenView(
            contract_address=creation.new_contract_address,
            owner=creation.from_address,
            created_on_block=creation.block_index,
            creation_transaction_id=creation.transaction_id,
            last_processed_block=creation.block_index,
            name=params.get("name"),
            symbol=params.get("symbol"),
            owner_only_minting=bool(params.get("ownerOnlyMinting")),
        )

    def _transfer_requested(self, view, call, data):
        view.pending_owner = data.get("pendingOwner")

    def _ownership_transferred(self, view, call, data):
        self._transfer_ownership(view, call, data)
        view.pending_owner = None

    async def complete(self, view):
        rows = await self.store.find(
            "non_fungible_assets", {"contract_address": view.contract_address}, order_by=ASSET_ORDER
        )
        view.tokens = [format_asset(await load_asset(self.store, row)) for row in rows]


async def standard_token_holder(store: LedgerStore, contract_address: str, holder_address: str):
    """A holder's balance of a standard token, with the token's name, symbol and supply."""
    token = await StandardTokenProjector(store).compute(contract_address)
    if token is None:
        return None

    amount = await holder_balance(store, contract_address, holder_address)
    if amount is None:
        return None

    return {
        "name": token.name,
        "symbol": token.symbol,
        "totalSupply": token_amount(token.total_supply),
        "address": holder_address,
        "amount": token_amount(amount),
    }
