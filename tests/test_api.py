"""
API Route Tests

HTTP behaviour of the query routes over an in-memory ledger.
"""

import pytest
from fastapi.testclient import TestClient

from cirrusapi.exceptions import StoreError
from cirrusapi.main import InFlightRequests, app, get_store, in_flight
from conftest import ALICE, BOB, CONTRACT, InMemoryLedgerStore, call_row, create_row

BASE = "/api/query/cirrus"
TX_ID = "a" * 64


@pytest.fixture
def ledger():
    store = InMemoryLedgerStore()
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def client(ledger):
    return TestClient(app)


def add_calls(store, count):
    store.insert("contract_calls", **create_row("tx-create", 0, from_address=ALICE,
                                                method_parameters={"name": "Coin", "symbol": "C"}))
    for height in range(1, count + 1):
        store.insert("contract_calls", **call_row(f"tx-{height:02d}", height,
                                                  from_address=BOB if height % 2 else ALICE))


class TestContractRoutes:
    """Test contract lookups and paged calls."""

    def test_contract_create(self, client, ledger):
        add_calls(ledger, 2)

        response = client.get(f"{BASE}/contract/{CONTRACT}")

        assert response.status_code == 200
        assert response.json()["transactionId"] == "tx-create"

    def test_contract_not_found(self, client):
        response = client.get(f"{BASE}/contract/{CONTRACT}")
        assert response.status_code == 404

    def test_address_length_validated(self, client):
        response = client.get(f"{BASE}/contract/short")
        assert response.status_code == 422

    def test_calls_bare_list_most_recent(self, client, ledger):
        add_calls(ledger, 12)

        response = client.get(f"{BASE}/contract/{CONTRACT}/transactions")

        assert response.status_code == 200
        body = response.json()
        assert [c["blockIndex"] for c in body] == list(range(3, 13))
        assert response.headers["Pagination-Offset"] == "2"
        assert response.headers["Pagination-Limit"] == "10"
        assert response.headers["Pagination-Total"] == "12"

    def test_calls_envelope_from_start(self, client, ledger):
        add_calls(ledger, 12)

        response = client.get(f"{BASE}/contract/{CONTRACT}/transactions",
                              params={"offset": 0, "limit": 10, "envelope": "true"})

        body = response.json()
        assert set(body) == {"items", "offset", "limit", "total"}
        assert [c["blockIndex"] for c in body["items"]] == list(range(1, 11))
        assert (body["offset"], body["limit"], body["total"]) == (0, 10, 12)

    def test_calls_filtered_by_sender(self, client, ledger):
        add_calls(ledger, 6)

        response = client.get(f"{BASE}/contract/{CONTRACT}/transactions/{BOB}", params={"envelope": "true"})

        body = response.json()
        assert body["total"] == 3
        assert all(c["fromAddress"] == BOB for c in body["items"])

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 51}, {"offset": -1}])
    def test_paging_bounds(self, client, params):
        response = client.get(f"{BASE}/contract/{CONTRACT}/transactions", params=params)
        assert response.status_code == 422

    def test_transaction(self, client, ledger):
        ledger.insert("contract_calls", **call_row(TX_ID, 4))

        response = client.get(f"{BASE}/contract/transaction/{TX_ID}")

        assert response.status_code == 200
        assert response.json()["blockIndex"] == 4

    def test_code_not_found(self, client):
        response = client.get(f"{BASE}/contract/code/{CONTRACT}")
        assert response.status_code == 404


class TestProjectionRoutes:
    """Test computed contract views over HTTP."""

    def test_standard_token(self, client, ledger):
        add_calls(ledger, 1)
        ledger.insert("token_holder_changes", contract_address=CONTRACT, holder_address=BOB,
                      transaction_id="tx-01", block_index=1, amount=9)

        response = client.get(f"{BASE}/contract/StandardToken/{CONTRACT}")

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Coin"
        assert body["holders"] == [{"address": BOB, "amount": "9"}]

    def test_standard_token_holder(self, client, ledger):
        add_calls(ledger, 1)
        ledger.insert("token_holder_changes", contract_address=CONTRACT, holder_address=BOB,
                      transaction_id="tx-01", block_index=1, amount=9)

        response = client.get(f"{BASE}/contract/StandardToken/{CONTRACT}/{BOB}")

        assert response.status_code == 200
        assert response.json()["amount"] == "9"

    def test_standard_token_amounts_beyond_int64(self, client, ledger):
        balance = 100 * 10 ** 18
        ledger.insert("contract_calls", **create_row(
            "tx-create", 0, from_address=ALICE,
            method_parameters={"name": "Coin", "symbol": "C", "decimals": 18, "totalSupply": str(balance)},
        ))
        ledger.insert("token_holder_changes", contract_address=CONTRACT, holder_address=BOB,
                      transaction_id="tx-create", block_index=0, amount=balance)

        response = client.get(f"{BASE}/contract/StandardToken/{CONTRACT}")

        assert response.status_code == 200
        body = response.json()
        assert body["totalSupply"] == "100000000000000000000"
        assert body["holders"] == [{"address": BOB, "amount": "100000000000000000000"}]

        response = client.get(f"{BASE}/contract/StandardToken/{CONTRACT}/{BOB}")

        assert response.status_code == 200
        assert int(response.json()["amount"]) == balance

    def test_non_fungible_route_uses_nft_projector(self, client, ledger):
        add_calls(ledger, 1)

        # The contract is a StandardToken, so the NFT view does not exist
        assert client.get(f"{BASE}/contract/NonFungibleToken/{CONTRACT}").status_code == 404
        assert client.get(f"{BASE}/contract/dao/{CONTRACT}").status_code == 404

    def test_duplicate_in_flight_request_rejected(self, client, ledger):
        add_calls(ledger, 1)
        path = f"{BASE}/contract/StandardToken/{CONTRACT}"

        in_flight.try_acquire(path)
        try:
            response = client.get(path)
        finally:
            in_flight.release(path)

        assert response.status_code == 429
        assert client.get(path).status_code == 200
        assert path not in in_flight


class TestListingRoutes:
    """Test grouped and filtered contract listings and owner assets."""

    def test_grouped(self, client, ledger):
        ledger.insert("contract_code", contract_address="c1", block_index=1, code_type="DAOContract",
                      byte_code=None, contract_hash="h1", source_code=None)

        response = client.get(f"{BASE}/contracts/grouped", params={"envelope": "true"})

        body = response.json()
        assert body["items"] == [{"contractCodeType": "DAOContract", "count": 1, "contractHash": "h1"}]
        assert body["total"] == 1

    def test_list_by_type(self, client, ledger):
        add_calls(ledger, 2)

        response = client.get(f"{BASE}/contracts/StandardToken")

        assert [c["contractAddress"] for c in response.json()] == [CONTRACT]

    def test_assets(self, client, ledger):
        ledger.insert("non_fungible_assets", contract_address=CONTRACT, token_id="1", owner=ALICE,
                      creator=BOB, is_burned=False, uri=None, block_index=3)
        ledger.insert("non_fungible_sales", contract_address=CONTRACT, token_id="1", transaction_id="tx-s",
                      block_index=4, sale_type="OnSale", price=30)

        response = client.get(f"{BASE}/address/{ALICE}/assets")

        assert response.json() == [{
            "contractId": CONTRACT, "id": "1", "owner": ALICE, "creator": BOB, "uri": None,
            "isBurned": False, "transactionId": "tx-s", "pricePaid": 30,
        }]


class TestErrorMapping:
    """Test how core errors surface to HTTP callers."""

    def test_integrity_violation_is_server_error(self, client, ledger):
        ledger.insert("contract_calls", **create_row("tx-c1", 1))
        ledger.insert("contract_calls", **create_row("tx-c2", 2))

        response = client.get(f"{BASE}/contract/{CONTRACT}")

        assert response.status_code == 500
        assert response.json() == {"detail": "Ledger integrity violation"}

    def test_store_error_hides_details(self, client, ledger):
        async def broken_count(table, where=None):
            raise StoreError("password authentication failed for user postgres")

        ledger.count = broken_count

        response = client.get(f"{BASE}/contract/{CONTRACT}/transactions")

        assert response.status_code == 503
        assert "postgres" not in response.text


class TestInFlightRequests:
    def test_acquire_release(self):
        requests = InFlightRequests()

        assert requests.try_acquire("a")
        assert not requests.try_acquire("a")
        assert requests.try_acquire("b")

        requests.release("a")
        assert "a" not in requests
        assert requests.try_acquire("a")
