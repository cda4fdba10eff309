"""Ethereum JSON-RPC access, document hashing and on-chain registration.

Transactions are sent with ``eth_sendTransaction`` from an account managed
by the node (``ETH_SENDER_ADDRESS``); no private key is held by this service.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import hashlib
import itertools
import logging
from pathlib import Path
from typing import Any, Optional
import uuid

import httpx
from sqlalchemy import case as sa_case, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.errors import BlockchainError
from casewatch.core.messages import BlockchainMessages
from casewatch.models.blockchain import BlockchainTransaction, TransactionStatus
from casewatch.models.case import Case
from casewatch.models.document import Document, VerificationStatus
from casewatch.models.tier import UserTier
from casewatch.models.user import User
from casewatch.services.storage import CHUNK_SIZE, relative_storage_path

logger = logging.getLogger(__name__)

WEI_PER_ETH = 10**18
REGISTER_SIGNATURE = "registerDocument(bytes32)"
RECEIPT_ATTEMPTS = 10
RECEIPT_INTERVAL_SECONDS = 2.0

_request_ids = itertools.count(1)


class EthereumClient:
    """Minimal async JSON-RPC client for the handful of calls we need."""

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.RPC_URL
        self.timeout = timeout
        self.transport = transport

    async def call(self, method: str, params: list[Any]) -> Any:
        if not self.rpc_url:
            raise BlockchainError(BlockchainMessages.RPC_NOT_CONFIGURED)
        payload = {"jsonrpc": "2.0", "id": next(_request_ids), "method": method, "params": params}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Ethereum RPC %s failed: %s", method, exc)
            raise BlockchainError(f"Ethereum RPC request failed: {exc}") from exc
        except ValueError as exc:
            raise BlockchainError("Ethereum RPC returned invalid JSON") from exc

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning("Ethereum RPC %s returned error: %s", method, message)
            raise BlockchainError(f"Ethereum RPC error: {message}")
        return data.get("result")

    async def get_balance(self, address: str) -> float:
        result = await self.call("eth_getBalance", [address, "latest"])
        return int(result, 16) / WEI_PER_ETH

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def keccak(self, data: str) -> str:
        return await self.call("web3_sha3", ["0x" + data.encode("utf-8").hex()])

    async def send_transaction(self, *, sender: str, to: str, data: str) -> str:
        return await self.call("eth_sendTransaction", [{"from": sender, "to": to, "data": data}])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        attempts: int | None = None,
        interval: float | None = None,
    ) -> Optional[dict[str, Any]]:
        attempts = RECEIPT_ATTEMPTS if attempts is None else attempts
        interval = RECEIPT_INTERVAL_SECONDS if interval is None else interval
        for attempt in range(attempts):
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt:
                return receipt
            if attempt < attempts - 1:
                await asyncio.sleep(interval)
        return None


def get_ethereum_client() -> EthereumClient:
    return EthereumClient()


def explorer_url(tx_hash: str) -> str:
    return f"https://{settings.ETH_NETWORK}.etherscan.io/tx/{tx_hash}"


def _hex_to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


def receipt_status(receipt: dict[str, Any]) -> TransactionStatus:
    return TransactionStatus.confirmed if _hex_to_int(receipt.get("status")) == 1 else TransactionStatus.failed


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


def hash_document(path: Path, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "hash": hash_file(path),
        "file_path": relative_storage_path(path),
        "file_size": path.stat().st_size,
        "hashed_at": datetime.now(timezone.utc),
        "metadata": metadata or {},
    }


def verify_file(path: Path, expected_hash: str | None = None) -> dict[str, Any]:
    actual_hash = hash_file(path)
    return {
        "file_path": relative_storage_path(path),
        "actual_hash": actual_hash,
        "expected_hash": expected_hash,
        "is_valid": actual_hash == expected_hash.lower() if expected_hash else True,
        "verified_at": datetime.now(timezone.utc),
    }


async def registration_calldata(client: EthereumClient, document_hash: str) -> str:
    selector = (await client.keccak(REGISTER_SIGNATURE))[:10]
    return selector + document_hash.lower()


async def register_hash_on_chain(
    session: AsyncSession,
    *,
    document_hash: str,
    user: User | None = None,
    document_id: uuid.UUID | None = None,
    case_id: uuid.UUID | None = None,
    client: EthereumClient | None = None,
) -> dict[str, Any]:
    if not (settings.CONTRACT_ADDRESS and settings.ETH_SENDER_ADDRESS):
        raise BlockchainError(BlockchainMessages.CONTRACT_NOT_INITIALIZED)

    client = client or get_ethereum_client()
    calldata = await registration_calldata(client, document_hash)
    tx_hash = await client.send_transaction(
        sender=settings.ETH_SENDER_ADDRESS,
        to=settings.CONTRACT_ADDRESS,
        data=calldata,
    )
    logger.info("Registration transaction sent: %s", tx_hash)

    # Already broadcast: without a receipt the row is stored as Pending
    try:
        receipt = await client.wait_for_receipt(tx_hash)
    except BlockchainError as exc:
        logger.warning("Receipt lookup for %s failed, recording as pending: %s", tx_hash, exc.message)
        receipt = None
    status = receipt_status(receipt) if receipt else TransactionStatus.pending
    block_number = _hex_to_int(receipt.get("blockNumber")) if receipt else None
    gas_used = _hex_to_int(receipt.get("gasUsed")) if receipt else None

    session.add(
        BlockchainTransaction(
            document_id=document_id,
            case_id=case_id,
            user_id=user.id if user else None,
            tx_hash=tx_hash,
            document_hash=document_hash,
            block_number=block_number,
            gas_used=gas_used,
            status=status,
            network=settings.ETH_NETWORK,
        )
    )

    if document_id:
        document = await session.get(Document, document_id)
        if document:
            document.blockchain_tx_hash = tx_hash
            if status == TransactionStatus.confirmed:
                document.verification_status = VerificationStatus.verified
            document.updated_at = datetime.now(timezone.utc)
            session.add(document)

    await session.commit()
    logger.info("Document hash %s registered in %s (%s)", document_hash, tx_hash, status.value)

    return {
        "tx_hash": tx_hash,
        "block_number": block_number,
        "gas_used": gas_used,
        "document_hash": document_hash,
        "explorer_url": explorer_url(tx_hash),
        "status": status,
    }


async def get_transaction_status(tx_hash: str, client: EthereumClient | None = None) -> dict[str, Any]:
    client = client or get_ethereum_client()
    try:
        receipt = await client.get_transaction_receipt(tx_hash)
    except BlockchainError as exc:
        logger.error("Error getting transaction status for %s: %s", tx_hash, exc.message)
        return {"tx_hash": tx_hash, "status": "Error", "error": exc.message, "found": False}

    if not receipt:
        return {"tx_hash": tx_hash, "status": TransactionStatus.pending.value, "found": False}
    return {
        "tx_hash": tx_hash,
        "status": receipt_status(receipt).value,
        "block_number": _hex_to_int(receipt.get("blockNumber")),
        "gas_used": _hex_to_int(receipt.get("gasUsed")),
        "found": True,
    }


async def get_blockchain_stats(session: AsyncSession, user: User | None = None) -> dict[str, Any]:
    """Transaction counts and tier distribution; non-admins only see their own cases."""
    recent_cutoff = datetime.now(timezone.utc) - timedelta(days=30)
    stmt = select(
        func.count(BlockchainTransaction.id),
        func.count(sa_case((BlockchainTransaction.status == TransactionStatus.confirmed, 1))),
        func.count(sa_case((BlockchainTransaction.status == TransactionStatus.pending, 1))),
        func.count(sa_case((BlockchainTransaction.status == TransactionStatus.failed, 1))),
        func.count(sa_case((BlockchainTransaction.created_at > recent_cutoff, 1))),
        func.avg(BlockchainTransaction.gas_used),
    )
    if user is not None and not user.is_admin:
        own_cases = select(Case.id).where(Case.user_id == user.id)
        stmt = stmt.where(BlockchainTransaction.case_id.in_(own_cases))
    total, confirmed, pending, failed, recent, avg_gas = (await session.exec(stmt)).one()

    tier_rows = await session.exec(
        select(UserTier.tier, func.count(UserTier.id))
        .where(UserTier.is_active.is_(True))
        .group_by(UserTier.tier)
    )
    return {
        "network": settings.ETH_NETWORK,
        "contract_configured": bool(settings.CONTRACT_ADDRESS),
        "transactions": {
            "total": total,
            "confirmed": confirmed,
            "pending": pending,
            "failed": failed,
            "recent": recent,
            "avg_gas_used": float(avg_gas) if avg_gas is not None else None,
        },
        "tier_distribution": {tier.value: count for tier, count in tier_rows.all()},
    }
