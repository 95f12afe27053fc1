from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from cirrusapi.config import API_HOST, API_PORT, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from cirrusapi.database import init_pool, close_pool, get_pool
from cirrusapi.exceptions import IntegrityViolation, StoreError
from cirrusapi.logger import configure_logging
from cirrusapi.models import QueryResult
from cirrusapi.projector import (
    DaoProjector,
    NonFungibleTokenProjector,
    StandardTokenProjector,
    standard_token_holder,
)
from cirrusapi.store import PostgresLedgerStore
from cirrusapi import queries

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_pool()
    yield
    await close_pool()

app = FastAPI(
    title="Cirrus Contract Ledger API",
    default_response_class=ORJSONResponse,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PREFIX = "/api/query/cirrus"

def address_path():
    return Path(..., min_length=30, max_length=100)


async def get_store():
    return PostgresLedgerStore(await get_pool())


class InFlightRequests:
    """Keys of projector requests currently being computed in this process."""

    def __init__(self):
        self._keys = set()

    def try_acquire(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str):
        self._keys.discard(key)

    def __contains__(self, key):
        return key in self._keys


in_flight = InFlightRequests()

async def shed_duplicate_requests(request: Request):
    # Projections scan a contract's whole history; one at a time per path
    key = request.url.path
    if not in_flight.try_acquire(key):
        raise HTTPException(status_code=429, detail="Request already in progress")
    try:
        yield
    finally:
        in_flight.release(key)


@app.exception_handler(IntegrityViolation)
async def integrity_violation_handler(request: Request, exc: IntegrityViolation):
    logger.error("Integrity violation serving %s: %s", request.url.path, exc)
    return ORJSONResponse(status_code=500, content={"detail": "Ledger integrity violation"})

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error serving %s: %s", request.url.path, exc)
    return ORJSONResponse(status_code=503, content={"detail": "Storage unavailable"})


# Helper to write a paged result as headers plus body
def ok_paging(result: QueryResult, response: Response, envelope: bool):
    response.headers["Pagination-Offset"] = str(result.offset)
    response.headers["Pagination-Limit"] = str(result.limit)
    response.headers["Pagination-Total"] = str(result.total)

    if envelope:
        return result.to_dict()
    return result.items

def ok_item(item, detail: str):
    if item is None:
        raise HTTPException(status_code=404, detail=detail)
    return item

def ok_view(view, detail: str):
    if view is None:
        raise HTTPException(status_code=404, detail=detail)
    return view.to_dict()

# ===== CONTRACT ENDPOINTS =====

@app.get(PREFIX + "/contract/transaction/{transaction_id}")
async def get_transaction_contract(
    transaction_id: str = address_path(),
    store=Depends(get_store)
):
    return ok_item(await queries.contract_transaction(store, transaction_id), "Transaction not found")

@app.get(PREFIX + "/contract/code/{address}")
async def get_contract_code(address: str = address_path(), store=Depends(get_store)):
    return ok_item(await queries.contract_code(store, address), "Contract code not found")

@app.get(PREFIX + "/contract/dao/{address}", dependencies=[Depends(shed_duplicate_requests)])
async def get_dao_contract(address: str = address_path(), store=Depends(get_store)):
    return ok_view(await DaoProjector(store).compute(address), "DAO contract not found")

@app.get(PREFIX + "/contract/StandardToken/{address}", dependencies=[Depends(shed_duplicate_requests)])
async def get_standard_token_contract(address: str = address_path(), store=Depends(get_store)):
    return ok_view(await StandardTokenProjector(store).compute(address), "Standard token not found")

@app.get(PREFIX + "/contract/StandardToken/{address}/{holder}", dependencies=[Depends(shed_duplicate_requests)])
async def get_standard_token_holder(
    address: str = address_path(),
    holder: str = address_path(),
    store=Depends(get_store)
):
    return ok_item(await standard_token_holder(store, address, holder), "Token holder not found")

@app.get(PREFIX + "/contract/NonFungibleToken/{address}", dependencies=[Depends(shed_duplicate_requests)])
async def get_non_fungible_token_contract(address: str = address_path(), store=Depends(get_store)):
    return ok_view(await NonFungibleTokenProjector(store).compute(address), "Non-fungible token not found")

@app.get(PREFIX + "/contract/NonFungibleToken/{address}/{token_id}")
async def get_non_fungible_token(
    token_id: str,
    address: str = address_path(),
    store=Depends(get_store)
):
    return ok_item(await queries.non_fungible_token(store, address, token_id), "Token not found")

@app.get(PREFIX + "/contract/{address}")
async def get_address_contract(address: str = address_path(), store=Depends(get_store)):
    return ok_item(await queries.contract_create(store, address), "Contract not found")

@app.get(PREFIX + "/contract/{address}/transactions")
async def get_address_calls(
    response: Response,
    address: str = address_path(),
    offset: Optional[int] = Query(None, ge=0),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    envelope: bool = Query(False),
    store=Depends(get_store)
):
    result = await queries.contract_calls(store, address, None, offset, limit)
    return ok_paging(result, response, envelope)

@app.get(PREFIX + "/contract/{address}/transactions/{filter_address}")
async def get_address_calls_filtered(
    response: Response,
    address: str = address_path(),
    filter_address: str = address_path(),
    offset: Optional[int] = Query(None, ge=0),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    envelope: bool = Query(False),
    store=Depends(get_store)
):
    result = await queries.contract_calls(store, address, filter_address, offset, limit)
    return ok_paging(result, response, envelope)

# ===== CONTRACT LISTING ENDPOINTS =====

@app.get(PREFIX + "/contracts/grouped")
async def get_grouped_contracts(
    response: Response,
    envelope: bool = Query(False),
    store=Depends(get_store)
):
    return ok_paging(await queries.grouped_contracts(store), response, envelope)

@app.get(PREFIX + "/contracts/{code_type}")
async def get_contracts_list(
    response: Response,
    code_type: str = Path(..., min_length=1, max_length=100),
    offset: Optional[int] = Query(None, ge=0),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    envelope: bool = Query(False),
    store=Depends(get_store)
):
    result = await queries.list_contracts(store, code_type, offset, limit)
    return ok_paging(result, response, envelope)

# ===== ASSET ENDPOINTS =====

@app.get(PREFIX + "/address/{address}/assets")
async def get_assets_for_address(
    response: Response,
    address: str = address_path(),
    offset: Optional[int] = Query(None, ge=0),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    envelope: bool = Query(False),
    store=Depends(get_store)
):
    result = await queries.assets_for_owner(store, address, offset, limit)
    return ok_paging(result, response, envelope)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)
