"""
Unit tests for the tier service.

Tests the database-backed tier logic including:
- Permission lookups with built-in defaults
- Balance caching in user_tiers
- Tier history on upgrades and downgrades
"""

import httpx
import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.errors import BlockchainError
from casewatch.models.tier import ChangeReason, PermissionType, TierHistory, TierPermission, UserTier
from casewatch.models.user import Tier
from casewatch.services import tiers as tiers_service
from casewatch.services.blockchain import EthereumClient, WEI_PER_ETH
from casewatch.testing.factories import create_user

WALLET = "0x" + "a7" * 20


class FakeNode:
    """JSON-RPC node answering eth_getBalance with a configurable balance."""

    def __init__(self, eth: float):
        self.eth = eth
        self.calls = 0

    def client(self) -> EthereumClient:
        def handle(request: httpx.Request) -> httpx.Response:
            self.calls += 1
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "result": hex(int(self.eth * WEI_PER_ETH))}
            )

        return EthereumClient("http://node.test", transport=httpx.MockTransport(handle))


@pytest.mark.unit
@pytest.mark.service
async def test_permission_defaults_without_rows(session: AsyncSession):
    assert await tiers_service.monthly_case_limit(session, Tier.tier_1) == 5
    assert await tiers_service.monthly_case_limit(session, Tier.tier_4) == -1
    assert await tiers_service.allowed_forms(session, Tier.tier_2) == ["N240", "N1", "ET1"]


@pytest.mark.unit
@pytest.mark.service
async def test_permission_rows_override_defaults(session: AsyncSession):
    session.add(
        TierPermission(
            tier=Tier.tier_1,
            permission_name="max_cases_per_month",
            permission_type=PermissionType.api_limit,
            permission_value={"limit": 2},
        )
    )
    await session.commit()

    assert await tiers_service.monthly_case_limit(session, Tier.tier_1) == 2


@pytest.mark.unit
@pytest.mark.service
async def test_get_user_tier_caches_balance(session: AsyncSession):
    user = await create_user(session)
    node = FakeNode(eth=6)

    first = await tiers_service.get_user_tier(session, user, WALLET, client=node.client())
    second = await tiers_service.get_user_tier(session, user, WALLET, client=node.client())

    assert first["tier"] == Tier.tier_3
    assert first["cached"] is False
    assert second["cached"] is True
    assert node.calls == 1

    history = (await session.exec(select(TierHistory).where(TierHistory.user_id == user.id))).all()
    assert [entry.change_reason for entry in history] == [ChangeReason.initial]


@pytest.mark.unit
@pytest.mark.service
async def test_get_user_tier_rpc_failure(session: AsyncSession):
    user = await create_user(session)

    result = await tiers_service.get_user_tier(session, user, WALLET)

    assert result["tier"] == Tier.tier_1
    assert result["error"]
    assert (await session.exec(select(UserTier))).all() == []


@pytest.mark.unit
@pytest.mark.service
async def test_update_user_tier_records_upgrade(session: AsyncSession):
    user = await create_user(session)

    await tiers_service.update_user_tier(session, user, WALLET, client=FakeNode(eth=0.5).client())
    result = await tiers_service.update_user_tier(session, user, WALLET, client=FakeNode(eth=12).client())

    assert result["tier"] == Tier.tier_4
    assert result["updated"] is True
    await session.refresh(user)
    assert user.tier == Tier.tier_4

    rows = (await session.exec(select(UserTier).where(UserTier.user_id == user.id))).all()
    assert len(rows) == 1
    assert rows[0].previous_tier == Tier.tier_1
    assert rows[0].tier_upgrade_count == 1
    assert rows[0].balance_check_count == 2

    reasons = {entry.change_reason for entry in (await session.exec(select(TierHistory))).all()}
    assert reasons == {ChangeReason.initial, ChangeReason.tier_change}


@pytest.mark.unit
@pytest.mark.service
async def test_update_user_tier_records_downgrade(session: AsyncSession):
    user = await create_user(session)

    await tiers_service.update_user_tier(session, user, WALLET, client=FakeNode(eth=5).client())
    await tiers_service.update_user_tier(session, user, WALLET, client=FakeNode(eth=1).client())

    row = (await session.exec(select(UserTier))).one()
    assert row.tier == Tier.tier_2
    assert row.tier_downgrade_count == 1


@pytest.mark.unit
@pytest.mark.service
async def test_update_user_tier_propagates_rpc_errors(session: AsyncSession):
    user = await create_user(session)

    with pytest.raises(BlockchainError):
        await tiers_service.update_user_tier(session, user, WALLET)
