from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import uuid

from sqlalchemy import case as sa_case, func, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.errors import (
    AccountLockedError,
    AuthenticationError,
    BadRequestError,
    BlockchainError,
    ConflictError,
    NotFoundError,
)
from casewatch.core.messages import AuthMessages, ErrorCodes, UserMessages
from casewatch.core.security import create_access_token, get_password_hash, verify_password
from casewatch.db.query import paginated_query
from casewatch.models.tier import TriggeredBy
from casewatch.models.user import Tier, User, UserRole
from casewatch.schemas.user import UserAdminUpdate, UserCreate, UserProfileUpdate
from casewatch.services import tiers as tiers_service

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError(UserMessages.NOT_FOUND)
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    stmt = select(User).where(func.lower(User.email) == email.lower())
    return (await session.exec(stmt)).one_or_none()


async def _ensure_eth_address_free(session: AsyncSession, eth_address: str, exclude_id: uuid.UUID | None = None) -> None:
    stmt = select(User.id).where(func.lower(User.eth_address) == eth_address.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if (await session.exec(stmt)).first() is not None:
        raise ConflictError("Ethereum address is already linked to another account")


def issue_token(user: User) -> str:
    return create_access_token(str(user.id), extra_claims={"email": user.email})


async def register_user(session: AsyncSession, payload: UserCreate) -> User:
    if await get_user_by_email(session, payload.email):
        raise ConflictError(AuthMessages.USER_EXISTS, code=ErrorCodes.USER_EXISTS)
    if payload.eth_address:
        await _ensure_eth_address_free(session, payload.eth_address)

    user = User(
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        eth_address=payload.eth_address or None,
        first_name=payload.first_name,
        last_name=payload.last_name,
        organization=payload.organization,
        tier=Tier.tier_1,
        role=UserRole.user,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("User registered: %s", user.email)

    if user.eth_address:
        try:
            await tiers_service.update_user_tier(session, user, user.eth_address, triggered_by=TriggeredBy.system)
        except BlockchainError as exc:
            logger.warning("Initial tier lookup failed for %s: %s", user.email, exc.message)
            await session.rollback()
        await session.refresh(user)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    """Check credentials, applying the failed-login lockout."""
    user = await get_user_by_email(session, email)
    if user is None:
        raise AuthenticationError(AuthMessages.INVALID_CREDENTIALS, code=ErrorCodes.INVALID_CREDENTIALS)
    if not user.is_active:
        raise AuthenticationError(AuthMessages.ACCOUNT_DEACTIVATED, code=ErrorCodes.ACCOUNT_DEACTIVATED)

    now = datetime.now(timezone.utc)
    if user.is_locked(now):
        raise AccountLockedError(AuthMessages.ACCOUNT_LOCKED, details={"locked_until": user.locked_until})

    if not verify_password(password, user.password_hash):
        user.login_attempts += 1
        if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
            user.login_attempts = 0
            logger.warning("Account %s locked after repeated failed logins", user.email)
        session.add(user)
        await session.commit()
        raise AuthenticationError(AuthMessages.INVALID_CREDENTIALS, code=ErrorCodes.INVALID_CREDENTIALS)

    user.login_attempts = 0
    user.locked_until = None
    user.last_login = now
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("User logged in: %s", user.email)
    return user


async def update_profile(session: AsyncSession, user: User, payload: UserProfileUpdate) -> User:
    updates = payload.model_dump(exclude_unset=True)
    if "eth_address" in updates:
        eth_address = updates["eth_address"] or None
        if eth_address:
            await _ensure_eth_address_free(session, eth_address, exclude_id=user.id)
        updates["eth_address"] = eth_address
    for field, value in updates.items():
        setattr(user, field, value)
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def change_password(session: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise BadRequestError(AuthMessages.INVALID_PASSWORD, code=ErrorCodes.INVALID_PASSWORD)
    user.password_hash = get_password_hash(new_password)
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    logger.info("Password changed for %s", user.email)


async def list_users(
    session: AsyncSession,
    *,
    page: int = 1,
    page_size: int = 20,
    search: str | None = None,
    role: UserRole | None = None,
    tier: Tier | None = None,
    is_active: bool | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> tuple[list[User], int, int]:
    stmt = select(User)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.organization.ilike(pattern),
            )
        )
    if role is not None:
        stmt = stmt.where(User.role == role)
    if tier is not None:
        stmt = stmt.where(User.tier == tier)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if created_from is not None:
        stmt = stmt.where(User.created_at >= created_from)
    if created_to is not None:
        stmt = stmt.where(User.created_at <= created_to)
    stmt = stmt.order_by(User.created_at.desc())
    return await paginated_query(session, stmt, page, page_size)


async def get_user_stats(session: AsyncSession) -> dict[str, int]:
    new_cutoff = datetime.now(timezone.utc) - timedelta(days=30)

    def _count_when(condition):
        return func.count(sa_case((condition, 1)))

    row = (
        await session.exec(
            select(
                func.count(User.id),
                _count_when(User.is_active.is_(True)),
                _count_when(User.is_active.is_(False)),
                _count_when(User.role == UserRole.admin),
                _count_when(User.tier == Tier.tier_1),
                _count_when(User.tier == Tier.tier_2),
                _count_when(User.tier == Tier.tier_3),
                _count_when(User.tier == Tier.tier_4),
                _count_when(User.created_at > new_cutoff),
            )
        )
    ).one()
    keys = (
        "total_users",
        "active_users",
        "inactive_users",
        "admin_users",
        "tier_1_users",
        "tier_2_users",
        "tier_3_users",
        "tier_4_users",
        "new_users_30d",
    )
    return dict(zip(keys, row))


async def admin_update_user(session: AsyncSession, user: User, payload: UserAdminUpdate) -> User:
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("email") and updates["email"] != user.email:
        if await get_user_by_email(session, updates["email"]):
            raise ConflictError(AuthMessages.USER_EXISTS, code=ErrorCodes.USER_EXISTS)
    if "eth_address" in updates:
        updates["eth_address"] = updates["eth_address"] or None
        if updates["eth_address"]:
            await _ensure_eth_address_free(session, updates["eth_address"], exclude_id=user.id)

    new_tier = updates.get("tier")
    if new_tier is not None:
        await tiers_service.record_admin_tier_change(session, user, Tier(user.tier), new_tier)

    for field, value in updates.items():
        if value is None and field in {"email", "tier", "role", "is_active"}:
            continue
        setattr(user, field, value)
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    if new_tier is not None:
        logger.info("Tier for user %s set to %s by admin", user.id, new_tier.value)
    return user


def _refuse_self(admin: User, target: User) -> None:
    if admin.id == target.id:
        raise BadRequestError(UserMessages.CANNOT_MODIFY_SELF)


async def deactivate_user(session: AsyncSession, admin: User, user: User) -> User:
    _refuse_self(admin, user)
    user.is_active = False
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("User %s deactivated by %s", user.email, admin.email)
    return user


async def delete_user_permanently(session: AsyncSession, admin: User, user: User) -> None:
    """Hard delete; the user's cases survive with ``user_id`` cleared by the FK."""
    _refuse_self(admin, user)
    email = user.email
    await session.delete(user)
    await session.commit()
    logger.info("User %s permanently deleted by %s", email, admin.email)


async def activate_user(session: AsyncSession, user: User) -> User:
    user.is_active = True
    user.login_attempts = 0
    user.locked_until = None
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def set_role(session: AsyncSession, user: User, role: UserRole) -> User:
    user.role = role
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user
