"""Database-backed tier lookups: permissions, wallet balance caching and history."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core import tiers as tier_rules
from casewatch.core.config import settings
from casewatch.core.errors import BlockchainError
from casewatch.models.tier import ChangeReason, TierHistory, TierPermission, TriggeredBy, UserTier
from casewatch.models.user import Tier, User
from casewatch.services import blockchain as blockchain_service

logger = logging.getLogger(__name__)


async def get_permission(session: AsyncSession, tier: Tier, name: str) -> dict[str, Any] | None:
    stmt = select(TierPermission).where(
        TierPermission.tier == tier,
        TierPermission.permission_name == name,
        TierPermission.is_active.is_(True),
    )
    permission = (await session.exec(stmt)).one_or_none()
    if permission:
        return permission.permission_value
    return tier_rules.default_permission(tier, name)


async def allowed_forms(session: AsyncSession, tier: Tier) -> list[str]:
    value = await get_permission(session, tier, "form_generation") or {}
    if not value.get("enabled", False):
        return []
    return list(value.get("forms", []))


async def monthly_case_limit(session: AsyncSession, tier: Tier) -> int:
    """Monthly case allowance; ``-1`` is unlimited."""
    value = await get_permission(session, tier, "max_cases_per_month") or {}
    return int(value.get("limit", -1))


async def get_active_tier_row(session: AsyncSession, user_id) -> UserTier | None:
    stmt = select(UserTier).where(UserTier.user_id == user_id, UserTier.is_active.is_(True))
    return (await session.exec(stmt)).one_or_none()


async def save_tier_info(
    session: AsyncSession,
    *,
    user: User,
    eth_address: str,
    tier: Tier,
    balance: float,
    triggered_by: TriggeredBy = TriggeredBy.automatic,
) -> UserTier:
    """Upsert the user's single active tier row and record any change in ``tier_history``.

    The caller commits.
    """
    now = datetime.now(timezone.utc)
    row = await get_active_tier_row(session, user.id)

    if row is None:
        row = UserTier(
            user_id=user.id,
            tier=tier,
            eth_balance=balance,
            eth_address=eth_address,
            last_balance_check=now,
            balance_check_count=1,
        )
        session.add(row)
        session.add(
            TierHistory(
                user_id=user.id,
                old_tier=None,
                new_tier=tier,
                old_balance=None,
                new_balance=balance,
                eth_address=eth_address,
                change_reason=ChangeReason.initial,
                triggered_by=triggered_by,
                change_metadata={"new_tier": tier.value, "balance": balance},
            )
        )
        return row

    old_tier, old_balance = Tier(row.tier), row.eth_balance
    reason: ChangeReason | None = None
    if old_tier != tier:
        reason = ChangeReason.tier_change
        row.previous_tier = old_tier
        row.tier_changed_at = now
        if tier_rules.tier_rank(tier) > tier_rules.tier_rank(old_tier):
            row.tier_upgrade_count += 1
        else:
            row.tier_downgrade_count += 1
    elif old_balance != balance:
        reason = ChangeReason.balance_update

    if reason is not None:
        session.add(
            TierHistory(
                user_id=user.id,
                old_tier=old_tier,
                new_tier=tier,
                old_balance=old_balance,
                new_balance=balance,
                eth_address=eth_address,
                change_reason=reason,
                triggered_by=triggered_by,
                change_metadata={
                    "old_tier": old_tier.value,
                    "new_tier": tier.value,
                    "balance_difference": balance - old_balance,
                },
            )
        )

    row.tier = tier
    row.eth_balance = balance
    row.eth_address = eth_address
    row.last_balance_check = now
    row.balance_check_count += 1
    row.updated_at = now
    session.add(row)
    return row


def _tier_payload(user: User, eth_address: str, tier: Tier, balance: float, last_checked, **extra: Any) -> dict:
    return {
        "user_id": user.id,
        "eth_address": eth_address,
        "tier": tier,
        "balance": balance,
        "last_checked": last_checked,
        **extra,
    }


async def get_user_tier(
    session: AsyncSession,
    user: User,
    eth_address: str,
    client: blockchain_service.EthereumClient | None = None,
) -> dict[str, Any]:
    """Tier for ``eth_address``, served from the cached row while it is fresh.

    RPC failures degrade to Tier 1 without touching the database.
    """
    row = await get_active_tier_row(session, user.id)
    cache_cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.TIER_CACHE_MINUTES)
    if row and row.eth_address.lower() == eth_address.lower() and row.last_balance_check > cache_cutoff:
        return _tier_payload(user, eth_address, Tier(row.tier), row.eth_balance, row.last_balance_check, cached=True)

    client = client or blockchain_service.get_ethereum_client()
    try:
        balance = await client.get_balance(eth_address)
    except BlockchainError as exc:
        logger.warning("Balance lookup failed for %s: %s", eth_address, exc.message)
        return _tier_payload(user, eth_address, Tier.tier_1, 0.0, None, cached=False, error=exc.message)

    tier = tier_rules.tier_from_balance(balance)
    row = await save_tier_info(session, user=user, eth_address=eth_address, tier=tier, balance=balance)
    await session.commit()
    return _tier_payload(user, eth_address, tier, balance, row.last_balance_check, cached=False)


async def update_user_tier(
    session: AsyncSession,
    user: User,
    eth_address: str,
    triggered_by: TriggeredBy = TriggeredBy.manual,
    client: blockchain_service.EthereumClient | None = None,
) -> dict[str, Any]:
    """Force a fresh balance check and sync ``users.tier``; RPC errors propagate."""
    client = client or blockchain_service.get_ethereum_client()
    balance = await client.get_balance(eth_address)
    tier = tier_rules.tier_from_balance(balance)

    row = await save_tier_info(
        session,
        user=user,
        eth_address=eth_address,
        tier=tier,
        balance=balance,
        triggered_by=triggered_by,
    )
    user.tier = tier
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.commit()
    logger.info("Tier for user %s updated to %s (balance %s ETH)", user.id, tier.value, balance)
    return _tier_payload(user, eth_address, tier, balance, row.last_balance_check, cached=False, updated=True)


async def record_admin_tier_change(session: AsyncSession, user: User, old_tier: Tier, new_tier: Tier) -> None:
    """History row for a tier set by hand rather than derived from a balance."""
    if old_tier == new_tier:
        return
    session.add(
        TierHistory(
            user_id=user.id,
            old_tier=old_tier,
            new_tier=new_tier,
            eth_address=user.eth_address,
            change_reason=ChangeReason.tier_change,
            triggered_by=TriggeredBy.admin,
            change_metadata={"old_tier": old_tier.value, "new_tier": new_tier.value},
        )
    )
