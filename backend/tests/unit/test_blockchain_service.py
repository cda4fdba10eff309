"""
Unit tests for the blockchain service.

The Ethereum node is replaced by an ``httpx.MockTransport`` speaking JSON-RPC.
"""

import json

import httpx
import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.errors import BlockchainError
from casewatch.models.blockchain import BlockchainTransaction, TransactionStatus
from casewatch.models.document import VerificationStatus
from casewatch.services import blockchain
from casewatch.services.blockchain import EthereumClient
from casewatch.testing.factories import create_document, create_user

DOCUMENT_HASH = "ab" * 32
TX_HASH = "0x" + "cd" * 32
SELECTOR_HASH = "0x1234abcd" + "00" * 28


def _rpc_client(handlers: dict, calls: list | None = None) -> EthereumClient:
    def handle(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        handler = handlers[body["method"]]
        result = handler(body["params"]) if callable(handler) else handler
        if isinstance(result, dict) and "error" in result and len(result) == 1:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return EthereumClient("http://node.test", transport=httpx.MockTransport(handle))


class TestHashing:
    def test_hash_bytes(self):
        assert blockchain.hash_bytes(b"abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_hash_file_matches_hash_bytes(self):
        path = settings.documents_dir / "doc.pdf"
        path.write_bytes(b"contents" * 10_000)
        assert blockchain.hash_file(path) == blockchain.hash_bytes(b"contents" * 10_000)

    def test_hash_document(self):
        path = settings.documents_dir / "doc.pdf"
        path.write_bytes(b"abc")
        result = blockchain.hash_document(path, {"case_id": "c1"})
        assert result["file_path"] == "documents/doc.pdf"
        assert result["file_size"] == 3
        assert result["metadata"] == {"case_id": "c1"}

    def test_verify_file(self):
        path = settings.documents_dir / "doc.pdf"
        path.write_bytes(b"abc")
        good = blockchain.hash_bytes(b"abc")
        assert blockchain.verify_file(path, good.upper())["is_valid"] is True
        assert blockchain.verify_file(path, "00" * 32)["is_valid"] is False
        assert blockchain.verify_file(path)["is_valid"] is True


class TestEthereumClient:
    async def test_get_balance_converts_wei(self):
        client = _rpc_client({"eth_getBalance": hex(3 * 10**18)})
        assert await client.get_balance("0x" + "1" * 40) == 3.0

    async def test_rpc_error_raises(self):
        client = _rpc_client({"eth_getBalance": {"error": {"code": -32000, "message": "boom"}}})
        with pytest.raises(BlockchainError, match="boom"):
            await client.get_balance("0x" + "1" * 40)

    async def test_http_failure_raises(self):
        def handle(request):
            return httpx.Response(502)

        client = EthereumClient("http://node.test", transport=httpx.MockTransport(handle))
        with pytest.raises(BlockchainError):
            await client.get_transaction_receipt(TX_HASH)

    async def test_unconfigured_rpc_raises(self):
        with pytest.raises(BlockchainError):
            await EthereumClient().call("eth_blockNumber", [])

    async def test_wait_for_receipt_polls(self):
        answers = iter([None, None, {"status": "0x1"}])
        client = _rpc_client({"eth_getTransactionReceipt": lambda params: next(answers)})
        receipt = await client.wait_for_receipt(TX_HASH, attempts=3, interval=0)
        assert receipt == {"status": "0x1"}

    async def test_wait_for_receipt_gives_up(self):
        client = _rpc_client({"eth_getTransactionReceipt": None})
        assert await client.wait_for_receipt(TX_HASH, attempts=2, interval=0) is None


async def test_registration_calldata():
    client = _rpc_client({"web3_sha3": SELECTOR_HASH})
    calldata = await blockchain.registration_calldata(client, DOCUMENT_HASH.upper())
    assert calldata == "0x1234abcd" + DOCUMENT_HASH.lower()


async def test_register_requires_contract():
    with pytest.raises(BlockchainError):
        await blockchain.register_hash_on_chain(None, document_hash=DOCUMENT_HASH)


class TestTransactionStatus:
    async def test_confirmed(self):
        client = _rpc_client({"eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x10", "gasUsed": "0x5208"}})
        result = await blockchain.get_transaction_status(TX_HASH, client)
        assert result["found"] is True
        assert result["status"] == TransactionStatus.confirmed.value
        assert result["block_number"] == 16
        assert result["gas_used"] == 21000

    async def test_failed(self):
        client = _rpc_client({"eth_getTransactionReceipt": {"status": "0x0"}})
        result = await blockchain.get_transaction_status(TX_HASH, client)
        assert result["status"] == TransactionStatus.failed.value

    async def test_pending(self):
        client = _rpc_client({"eth_getTransactionReceipt": None})
        result = await blockchain.get_transaction_status(TX_HASH, client)
        assert result == {"tx_hash": TX_HASH, "status": TransactionStatus.pending.value, "found": False}

    async def test_rpc_error_is_reported(self):
        result = await blockchain.get_transaction_status(TX_HASH, EthereumClient())
        assert result["status"] == "Error"
        assert result["found"] is False


def test_explorer_url_uses_network():
    assert blockchain.explorer_url(TX_HASH) == f"https://{settings.ETH_NETWORK}.etherscan.io/tx/{TX_HASH}"


CONTRACT = "0x" + "c0" * 20
SENDER = "0x" + "5e" * 20


@pytest.fixture
def contract_configured(monkeypatch):
    monkeypatch.setattr(settings, "CONTRACT_ADDRESS", CONTRACT)
    monkeypatch.setattr(settings, "ETH_SENDER_ADDRESS", SENDER)
    monkeypatch.setattr(blockchain, "RECEIPT_ATTEMPTS", 1)
    monkeypatch.setattr(blockchain, "RECEIPT_INTERVAL_SECONDS", 0)


def _registration_node(receipt, calls: list | None = None) -> EthereumClient:
    return _rpc_client(
        {"web3_sha3": SELECTOR_HASH, "eth_sendTransaction": TX_HASH, "eth_getTransactionReceipt": receipt},
        calls,
    )


async def _stored_transactions(session: AsyncSession) -> list[BlockchainTransaction]:
    return (await session.exec(select(BlockchainTransaction))).all()


@pytest.mark.unit
@pytest.mark.service
class TestRegisterHashOnChain:
    async def test_confirmed_registration_verifies_document(self, session: AsyncSession, contract_configured):
        user = await create_user(session)
        document = await create_document(session, user=user)
        calls: list = []
        client = _registration_node({"status": "0x1", "blockNumber": "0x2a", "gasUsed": "0x5208"}, calls)

        result = await blockchain.register_hash_on_chain(
            session, document_hash=DOCUMENT_HASH, user=user, document_id=document.id, client=client
        )

        assert result["tx_hash"] == TX_HASH
        assert result["status"] == TransactionStatus.confirmed
        assert result["block_number"] == 42
        assert result["gas_used"] == 21000
        assert result["explorer_url"] == f"https://{settings.ETH_NETWORK}.etherscan.io/tx/{TX_HASH}"

        sent = next(call for call in calls if call["method"] == "eth_sendTransaction")
        assert sent["params"][0] == {"from": SENDER, "to": CONTRACT, "data": "0x1234abcd" + DOCUMENT_HASH}

        [row] = await _stored_transactions(session)
        assert row.status == TransactionStatus.confirmed
        assert row.document_id == document.id
        assert row.user_id == user.id
        assert row.block_number == 42

        await session.refresh(document)
        assert document.blockchain_tx_hash == TX_HASH
        assert document.verification_status == VerificationStatus.verified

    async def test_reverted_transaction_is_recorded_as_failed(self, session: AsyncSession, contract_configured):
        document = await create_document(session)
        client = _registration_node({"status": "0x0", "blockNumber": "0x2b"})

        result = await blockchain.register_hash_on_chain(
            session, document_hash=DOCUMENT_HASH, document_id=document.id, client=client
        )

        assert result["status"] == TransactionStatus.failed
        [row] = await _stored_transactions(session)
        assert row.status == TransactionStatus.failed

        await session.refresh(document)
        assert document.blockchain_tx_hash == TX_HASH
        assert document.verification_status == VerificationStatus.pending

    async def test_missing_receipt_is_recorded_as_pending(self, session: AsyncSession, contract_configured):
        client = _registration_node(None)

        result = await blockchain.register_hash_on_chain(session, document_hash=DOCUMENT_HASH, client=client)

        assert result["status"] == TransactionStatus.pending
        assert result["block_number"] is None
        [row] = await _stored_transactions(session)
        assert row.status == TransactionStatus.pending
        assert row.tx_hash == TX_HASH

    async def test_receipt_error_after_broadcast_keeps_transaction(self, session: AsyncSession, contract_configured):
        document = await create_document(session)
        client = _registration_node({"error": {"code": -32000, "message": "node went away"}})

        result = await blockchain.register_hash_on_chain(
            session, document_hash=DOCUMENT_HASH, document_id=document.id, client=client
        )

        assert result["tx_hash"] == TX_HASH
        assert result["status"] == TransactionStatus.pending
        [row] = await _stored_transactions(session)
        assert row.status == TransactionStatus.pending
        assert row.document_id == document.id

        await session.refresh(document)
        assert document.blockchain_tx_hash == TX_HASH

    async def test_send_failure_records_nothing(self, session: AsyncSession, contract_configured):
        client = _rpc_client(
            {"web3_sha3": SELECTOR_HASH, "eth_sendTransaction": {"error": {"code": -32000, "message": "no funds"}}}
        )

        with pytest.raises(BlockchainError, match="no funds"):
            await blockchain.register_hash_on_chain(session, document_hash=DOCUMENT_HASH, client=client)

        assert await _stored_transactions(session) == []
