"""
Integration tests for blockchain endpoints.

The Ethereum node is never reachable in tests: RPC-backed routes are
exercised for their degraded behaviour, hashing and QR codes fully.
"""

import json

import httpx
import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.messages import ErrorCodes
from casewatch.models.blockchain import BlockchainTransaction
from casewatch.models.user import Tier
from casewatch.services import blockchain as blockchain_service
from casewatch.services.blockchain import EthereumClient, hash_bytes
from casewatch.testing.factories import create_case, create_document, create_user, get_auth_headers

WALLET = "0x" + "d4" * 20


@pytest.mark.integration
async def test_tier_lookup_degrades_to_tier_one(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.post("/api/blockchain/tier", headers=get_auth_headers(user), json={"eth_address": WALLET})

    assert response.status_code == 200
    data = response.json()
    assert data["tier"] == Tier.tier_1.value
    assert data["balance"] == 0
    assert data["error"]


@pytest.mark.integration
async def test_tier_refresh_reports_rpc_failure(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.put("/api/blockchain/tier", headers=get_auth_headers(user), json={"eth_address": WALLET})

    assert response.status_code == 503
    assert response.json()["error"] == ErrorCodes.BLOCKCHAIN_ERROR


@pytest.mark.integration
async def test_balance_rejects_bad_address(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.get("/api/blockchain/balance/not-an-address", headers=get_auth_headers(user))

    assert response.status_code == 400


@pytest.mark.integration
async def test_hash_document(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_2)
    (settings.documents_dir / "proof.pdf").write_bytes(b"proof")

    response = await client.post(
        "/api/blockchain/hash",
        headers=get_auth_headers(user),
        json={"document_path": "documents/proof.pdf", "document_type": "Other"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["hash"] == hash_bytes(b"proof")
    assert data["metadata"] == {"document_type": "Other"}


@pytest.mark.integration
async def test_hash_refuses_paths_outside_storage(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_2)

    response = await client.post(
        "/api/blockchain/hash",
        headers=get_auth_headers(user),
        json={"document_path": "../../etc/passwd"},
    )

    assert response.status_code == 400


@pytest.mark.integration
async def test_hash_requires_tier_two(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.post(
        "/api/blockchain/hash", headers=get_auth_headers(user), json={"document_path": "documents/x.pdf"}
    )

    assert response.status_code == 403


@pytest.mark.integration
async def test_verify_document(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    (settings.documents_dir / "proof.pdf").write_bytes(b"proof")

    response = await client.post(
        "/api/blockchain/verify",
        headers=get_auth_headers(user),
        json={"document_path": "documents/proof.pdf", "expected_hash": "0" * 64},
    )

    assert response.status_code == 200
    assert response.json()["is_valid"] is False


@pytest.mark.integration
async def test_register_without_contract(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_3)

    response = await client.post(
        "/api/blockchain/register", headers=get_auth_headers(user), json={"document_hash": "a" * 64}
    )

    assert response.status_code == 503
    assert response.json()["error"] == ErrorCodes.BLOCKCHAIN_ERROR


@pytest.mark.integration
async def test_transaction_status_without_node(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    tx_hash = "0x" + "e5" * 32

    response = await client.get(f"/api/blockchain/transaction/{tx_hash}", headers=get_auth_headers(user))

    assert response.status_code == 200
    assert response.json()["status"] == "Error"


@pytest.mark.integration
async def test_generate_qr(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_2)

    response = await client.post(
        "/api/blockchain/qr",
        headers=get_auth_headers(user),
        json={"document_hash": "f" * 64, "metadata": {"note": "exhibit A"}},
    )

    assert response.status_code == 201
    data = response.json()
    assert (settings.qr_codes_dir / data["file_name"]).is_file()
    assert data["qr_data"]["metadata"] == {"note": "exhibit A"}


@pytest.mark.integration
async def test_blockchain_stats(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.get("/api/blockchain/stats", headers=get_auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["contract_configured"] is False
    assert data["transactions"]["total"] == 0


TX_HASH = "0x" + "9f" * 32


@pytest.fixture
def chain_node(monkeypatch) -> list:
    """Configure the registry contract and answer RPC calls from a local node."""
    calls: list = []
    answers = {
        "web3_sha3": "0x1234abcd" + "00" * 28,
        "eth_sendTransaction": TX_HASH,
        "eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x7", "gasUsed": "0x5208"},
    }

    def handle(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append(body["method"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": answers[body["method"]]})

    monkeypatch.setattr(settings, "CONTRACT_ADDRESS", "0x" + "c0" * 20)
    monkeypatch.setattr(settings, "ETH_SENDER_ADDRESS", "0x" + "5e" * 20)
    monkeypatch.setattr(
        blockchain_service,
        "get_ethereum_client",
        lambda: EthereumClient("http://node.test", transport=httpx.MockTransport(handle)),
    )
    return calls


@pytest.mark.integration
async def test_register_hash_for_own_document(client: AsyncClient, session: AsyncSession, chain_node: list):
    user = await create_user(session, tier=Tier.tier_3)
    document = await create_document(session, user=user)

    response = await client.post(
        "/api/blockchain/register",
        headers=get_auth_headers(user),
        json={"document_hash": document.file_hash, "document_id": str(document.id)},
    )

    assert response.status_code == 201
    assert response.json()["tx_hash"] == TX_HASH
    await session.refresh(document)
    assert document.blockchain_tx_hash == TX_HASH


@pytest.mark.integration
async def test_register_hash_refuses_foreign_document(client: AsyncClient, session: AsyncSession, chain_node: list):
    owner = await create_user(session)
    document = await create_document(session, user=owner)
    intruder = await create_user(session, tier=Tier.tier_3)

    response = await client.post(
        "/api/blockchain/register",
        headers=get_auth_headers(intruder),
        json={"document_hash": document.file_hash, "document_id": str(document.id)},
    )

    assert response.status_code == 404
    assert chain_node == []
    assert (await session.exec(select(BlockchainTransaction))).all() == []
    await session.refresh(document)
    assert document.blockchain_tx_hash is None


@pytest.mark.integration
async def test_register_hash_refuses_foreign_case(client: AsyncClient, session: AsyncSession, chain_node: list):
    owner = await create_user(session)
    case = await create_case(session, user=owner)
    intruder = await create_user(session, tier=Tier.tier_3)

    response = await client.post(
        "/api/blockchain/register",
        headers=get_auth_headers(intruder),
        json={"document_hash": "ab" * 32, "case_id": str(case.id)},
    )

    assert response.status_code == 404
    assert chain_node == []


@pytest.mark.integration
async def test_register_hash_requires_registration_feature(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_2)

    response = await client.post(
        "/api/blockchain/register", headers=get_auth_headers(user), json={"document_hash": "ab" * 32}
    )

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == ErrorCodes.INSUFFICIENT_TIER
    assert body["details"]["required_tiers"] == [Tier.tier_3.value, Tier.tier_4.value]


@pytest.mark.integration
async def test_hash_requires_hashing_feature(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.post(
        "/api/blockchain/hash", headers=get_auth_headers(user), json={"document_path": "documents/proof.pdf"}
    )

    assert response.status_code == 403
    assert response.json()["details"]["current_tier"] == Tier.tier_1.value
