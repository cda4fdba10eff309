from fastapi import APIRouter, status

from casewatch.api.deps import CurrentUser, HashingUser, RegistrationUser, SessionDep, Tier2User
from casewatch.core import tiers as tier_rules
from casewatch.core.errors import BadRequestError
from casewatch.core.messages import BlockchainMessages
from casewatch.schemas.blockchain import (
    BalanceResponse,
    BlockchainStats,
    EthAddressRequest,
    HashRequest,
    HashResponse,
    QRRequest,
    QRResponse,
    RegisterHashRequest,
    RegistrationResult,
    TierInfo,
    TransactionStatusResponse,
    VerifyRequest,
    VerifyResponse,
)
from casewatch.schemas.user import validate_eth_address
from casewatch.services import blockchain as blockchain_service
from casewatch.services import cases as cases_service
from casewatch.services import documents as documents_service
from casewatch.services import qr_codes, storage
from casewatch.services import tiers as tiers_service

router = APIRouter()


@router.post("/tier", response_model=TierInfo)
async def get_tier(payload: EthAddressRequest, session: SessionDep, current_user: CurrentUser) -> dict:
    return await tiers_service.get_user_tier(session, current_user, payload.eth_address)


@router.put("/tier", response_model=TierInfo)
async def refresh_tier(payload: EthAddressRequest, session: SessionDep, current_user: CurrentUser) -> dict:
    return await tiers_service.update_user_tier(session, current_user, payload.eth_address)


@router.get("/balance/{eth_address}", response_model=BalanceResponse)
async def get_balance(eth_address: str, _user: CurrentUser) -> BalanceResponse:
    try:
        address = validate_eth_address(eth_address)
    except ValueError as exc:
        raise BadRequestError(BlockchainMessages.INVALID_ADDRESS) from exc
    balance = await blockchain_service.get_ethereum_client().get_balance(address)
    return BalanceResponse(address=address, balance=balance, tier=tier_rules.tier_from_balance(balance))


@router.post("/hash", response_model=HashResponse)
async def hash_document(payload: HashRequest, _user: HashingUser) -> dict:
    path = storage.resolve_storage_path(payload.document_path)
    metadata = {}
    if payload.case_id:
        metadata["case_id"] = str(payload.case_id)
    if payload.document_type:
        metadata["document_type"] = payload.document_type
    return blockchain_service.hash_document(path, metadata)


@router.post("/register", response_model=RegistrationResult, status_code=status.HTTP_201_CREATED)
async def register_hash(payload: RegisterHashRequest, session: SessionDep, current_user: RegistrationUser) -> dict:
    if payload.document_id:
        await documents_service.get_visible_document(session, current_user, payload.document_id)
    if payload.case_id:
        await cases_service.get_case_for_user(session, current_user, payload.case_id)
    return await blockchain_service.register_hash_on_chain(
        session,
        document_hash=payload.document_hash,
        user=current_user,
        document_id=payload.document_id,
        case_id=payload.case_id,
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_document(payload: VerifyRequest, _user: CurrentUser) -> dict:
    path = storage.resolve_storage_path(payload.document_path)
    return blockchain_service.verify_file(path, payload.expected_hash)


@router.get("/transaction/{tx_hash}", response_model=TransactionStatusResponse)
async def transaction_status(tx_hash: str, _user: CurrentUser) -> dict:
    return await blockchain_service.get_transaction_status(tx_hash)


@router.post("/qr", response_model=QRResponse, status_code=status.HTTP_201_CREATED)
async def generate_qr(payload: QRRequest, _user: Tier2User) -> dict:
    verification = qr_codes.build_verification_payload(payload.document_hash, payload.tx_hash, payload.metadata)
    return qr_codes.generate_qr_file(verification)


@router.get("/stats", response_model=BlockchainStats)
async def blockchain_stats(session: SessionDep, current_user: CurrentUser) -> dict:
    return await blockchain_service.get_blockchain_stats(session, current_user)
