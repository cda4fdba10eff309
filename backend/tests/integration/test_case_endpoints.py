"""
Integration tests for case endpoints.

Tests the case API endpoints including:
- Public and authenticated submission with AI triage
- Monthly submission limits per tier
- Ownership checks, listing, updates and the activity trail
- Manual escalation combined with the AI recommendation
"""

from datetime import datetime, timedelta, timezone
import json

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.messages import ErrorCodes
from casewatch.models.case import AIClassification, Case, CaseActivity, CaseStatus, EscalationLevel
from casewatch.models.notification import Notification
from casewatch.models.user import Tier, UserRole
from casewatch.services import ai_classification
from casewatch.testing.factories import DEFAULT_DESCRIPTION, create_case, create_user, get_auth_headers


def _case_payload(**overrides) -> dict:
    payload = {
        "client_name": "Jane Reporter",
        "description": DEFAULT_DESCRIPTION,
        "jurisdiction": "Greater London",
    }
    payload.update(overrides)
    return payload


async def _admin(session: AsyncSession):
    return await create_user(session, role=UserRole.admin, tier=Tier.tier_4)


@pytest.mark.integration
async def test_public_submission_uses_fallback_triage(client: AsyncClient, session: AsyncSession):
    response = await client.post("/api/cases/", json=_case_payload())

    assert response.status_code == 201
    data = response.json()
    case = data["case"]
    assert case["case_ref"].startswith("999P-")
    assert case["is_public_submission"] is True
    assert case["user_id"] is None
    assert case["status"] == CaseStatus.pending.value
    # Fallback triage: Other / Priority with urgency 6 -> Normal priority
    assert data["classification"]["fallback"] is True
    assert case["issue_category"] == "Other"
    assert case["escalation_level"] == "Priority"
    assert case["escalation_flag"] is True
    assert case["priority"] == "Normal"
    assert case["title"] == "Other - Jane Reporter"

    activities = (await session.exec(select(CaseActivity))).all()
    assert [activity.action for activity in activities] == ["case_submitted_public"]
    logs = (await session.exec(select(AIClassification))).all()
    assert len(logs) == 1


@pytest.mark.integration
async def test_submission_with_model_answer(client: AsyncClient, session: AsyncSession, monkeypatch):
    async def fake_completion(messages, **kwargs):
        return json.dumps(
            {
                "issue_category": "Corruption - Police",
                "escalation_level": "Urgent",
                "confidence": 0.95,
                "suggested_actions": ["Contact a solicitor"],
                "urgency_score": 9,
            }
        )

    monkeypatch.setattr(ai_classification, "_chat_completion", fake_completion)
    user = await create_user(session)

    response = await client.post("/api/cases/", headers=get_auth_headers(user), json=_case_payload(title="Threats"))

    assert response.status_code == 201
    case = response.json()["case"]
    assert case["user_id"] == str(user.id)
    assert case["is_public_submission"] is False
    assert case["issue_category"] == "Corruption - Police"
    assert case["priority"] == "Critical"
    assert case["title"] == "Threats"


@pytest.mark.integration
async def test_short_description_rejected(client: AsyncClient):
    response = await client.post("/api/cases/", json=_case_payload(description="Too short"))

    assert response.status_code == 400
    assert response.json()["error"] == ErrorCodes.VALIDATION_ERROR


@pytest.mark.integration
async def test_monthly_limit_for_tier_one(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    for _ in range(5):
        await create_case(session, user=user)

    response = await client.post("/api/cases/", headers=get_auth_headers(user), json=_case_payload())

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == ErrorCodes.CASE_LIMIT_REACHED
    assert body["details"]["monthly_limit"] == 5


@pytest.mark.integration
async def test_admin_has_no_monthly_limit(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    for _ in range(6):
        await create_case(session, user=admin)

    response = await client.post("/api/cases/", headers=get_auth_headers(admin), json=_case_payload())

    assert response.status_code == 201


@pytest.mark.integration
async def test_owner_can_read_case_with_activities(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    created = await client.post("/api/cases/", headers=get_auth_headers(user), json=_case_payload())
    case_id = created.json()["case"]["id"]

    response = await client.get(f"/api/cases/{case_id}", headers=get_auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == case_id
    assert [activity["action"] for activity in data["activities"]] == ["case_created"]


@pytest.mark.integration
async def test_other_users_cannot_see_case(client: AsyncClient, session: AsyncSession):
    owner = await create_user(session)
    stranger = await create_user(session)
    case = await create_case(session, user=owner)

    response = await client.get(f"/api/cases/{case.id}", headers=get_auth_headers(stranger))

    assert response.status_code == 404


@pytest.mark.integration
async def test_admin_can_see_any_case(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.get(f"/api/cases/{case.id}", headers=get_auth_headers(admin))

    assert response.status_code == 200


@pytest.mark.integration
async def test_list_my_cases(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    mine = await create_case(session, user=user)
    await create_case(session)

    response = await client.get("/api/cases/mine", headers=get_auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 1
    assert data["items"][0]["id"] == str(mine.id)


@pytest.mark.integration
async def test_list_all_cases_requires_admin(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.get("/api/cases/", headers=get_auth_headers(user))

    assert response.status_code == 403


@pytest.mark.integration
async def test_admin_list_filters_and_search(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    await create_case(session, title="Bribery at the port", status=CaseStatus.in_progress)
    await create_case(session, title="Unpaid wages")

    response = await client.get(
        "/api/cases/", headers=get_auth_headers(admin), params={"status": "In Progress"}
    )
    assert response.status_code == 200
    assert [item["title"] for item in response.json()["items"]] == ["Bribery at the port"]

    response = await client.get("/api/cases/", headers=get_auth_headers(admin), params={"search": "wages"})
    assert [item["title"] for item in response.json()["items"]] == ["Unpaid wages"]


@pytest.mark.integration
async def test_case_stats(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    await create_case(session)
    await create_case(session, status=CaseStatus.escalated)

    response = await client.get("/api/cases/stats", headers=get_auth_headers(admin))

    assert response.status_code == 200
    stats = response.json()
    assert stats["total_cases"] == 2
    assert stats["pending_cases"] == 1
    assert stats["escalated_cases"] == 1


@pytest.mark.integration
async def test_update_case_records_activity(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    case = await create_case(session, user=user)

    response = await client.put(
        f"/api/cases/{case.id}",
        headers=get_auth_headers(user),
        json={"status": "Closed", "jurisdiction": "Wales"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "Closed"
    assert data["closed_by"] == str(user.id)
    assert data["closed_at"] is not None

    response = await client.get(f"/api/cases/{case.id}/activities", headers=get_auth_headers(user))
    activity = response.json()[0]
    assert activity["action"] == "case_updated"
    assert activity["old_values"]["status"] == "Pending"
    assert activity["new_values"] == {"status": "Closed", "jurisdiction": "Wales"}


@pytest.mark.integration
async def test_update_without_fields(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    case = await create_case(session, user=user)

    response = await client.put(f"/api/cases/{case.id}", headers=get_auth_headers(user), json={})

    assert response.status_code == 400
    assert response.json()["error"] == ErrorCodes.NO_UPDATES


@pytest.mark.integration
async def test_delete_case(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.delete(f"/api/cases/{case.id}", headers=get_auth_headers(admin))

    assert response.status_code == 200
    assert await session.get(Case, case.id, populate_existing=True) is None


@pytest.mark.integration
async def test_escalation_with_ai_unavailable(client: AsyncClient, session: AsyncSession):
    """Low-confidence fallback analysis lets the manual request through."""
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.post(
        f"/api/cases/{case.id}/escalate",
        headers=get_auth_headers(admin),
        json={"reason": "Witness has been threatened", "priority": "Critical"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["escalation_approved"] is True
    assert data["case"]["status"] == "Escalated"
    assert data["case"]["priority"] == "Critical"
    assert data["case"]["escalation_level"] == "Urgent"
    assert data["case"]["escalated_by"] == str(admin.id)
    assert "low confidence" in data["case"]["metadata"]["escalation"]["reason"]


@pytest.mark.integration
async def test_escalation_rejected_by_confident_ai(client: AsyncClient, session: AsyncSession, monkeypatch):
    async def fake_completion(messages, **kwargs):
        return json.dumps(
            {
                "should_escalate": False,
                "confidence": 0.9,
                "reasons": ["Routine dispute"],
                "suggested_priority": "Normal",
                "urgency_score": 2,
                "risk_factors": [],
                "recommendation": "Handle through normal queue",
            }
        )

    monkeypatch.setattr(ai_classification, "_chat_completion", fake_completion)
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.post(
        f"/api/cases/{case.id}/escalate",
        headers=get_auth_headers(admin),
        json={"reason": "Client keeps calling us"},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == ErrorCodes.ESCALATION_REJECTED
    assert body["details"]["ai_analysis"]["confidence"] == 0.9
    await session.refresh(case)
    assert case.status == CaseStatus.pending


@pytest.mark.integration
async def test_cannot_escalate_twice(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    case = await create_case(session, status=CaseStatus.escalated)

    response = await client.post(
        f"/api/cases/{case.id}/escalate",
        headers=get_auth_headers(admin),
        json={"reason": "Witness has been threatened"},
    )

    assert response.status_code == 409
    assert response.json()["error"] == ErrorCodes.ALREADY_ESCALATED


@pytest.mark.integration
async def test_escalation_priority_must_be_high_or_critical(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.post(
        f"/api/cases/{case.id}/escalate",
        headers=get_auth_headers(admin),
        json={"reason": "Witness has been threatened", "priority": "Low"},
    )

    assert response.status_code == 400


@pytest.mark.integration
async def test_escalation_preview_changes_nothing(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    case = await create_case(session)

    response = await client.post(
        f"/api/cases/{case.id}/escalate/preview", headers=get_auth_headers(admin), json={}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["decision"]["approved"] is True
    assert data["ai_analysis"]["confidence"] == 0.1
    await session.refresh(case)
    assert case.status == CaseStatus.pending


@pytest.mark.integration
async def test_escalation_notifies_case_owner(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    owner = await create_user(session)
    case = await create_case(session, user=owner)

    response = await client.post(
        f"/api/cases/{case.id}/escalate",
        headers=get_auth_headers(admin),
        json={"reason": "Witness has been threatened", "priority": "Critical"},
    )

    assert response.status_code == 200
    notification = (await session.exec(select(Notification).where(Notification.user_id == owner.id))).one()
    assert notification.case_id == case.id
    assert notification.notification_metadata["topic"] == "escalation_alerts"
    assert notification.notification_metadata["escalation_level"] == "Urgent"


@pytest.mark.integration
async def test_dashboard_stats(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    now = datetime.now(timezone.utc)
    await create_case(session, urgency_score=9, escalation_level=EscalationLevel.urgent)
    await create_case(session, status=CaseStatus.completed, urgency_score=6)
    await create_case(session, status=CaseStatus.closed, urgency_score=2)
    await create_case(session, submission_date=now - timedelta(days=45), updated_at=now - timedelta(days=45))

    response = await client.get("/api/cases/dashboard-stats", headers=get_auth_headers(admin))

    assert response.status_code == 200
    data = response.json()
    stats = data["stats"]
    assert stats["total_cases"] == 3
    assert stats["resolved_cases"] == 2
    assert stats["urgent_cases"] == 1
    # One case in the previous 30 days, three now
    assert stats["total_change"] == 200
    assert sum(point["cases"] for point in data["trend_data"]) == 3
    priorities = {item["name"]: item["value"] for item in data["priority_distribution"]}
    assert priorities == {"Critical": 1, "High": 1, "Medium": 0, "Low": 1}
    statuses = {item["name"]: item["percentage"] for item in data["status_distribution"]}
    assert statuses == {"Pending": 33.3, "Completed": 33.3, "Closed": 33.3}
    assert sum(month["total_cases"] for month in data["monthly_trends"]) == 4
    assert {item["action_type"] for item in data["recent_activity"]} == {"submitted"}
    assert data["filters"]["date_range"] == "30d"


@pytest.mark.integration
async def test_dashboard_stats_filters(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    await create_case(session)
    await create_case(session, status=CaseStatus.escalated, escalation_level=EscalationLevel.priority)

    response = await client.get(
        "/api/cases/dashboard-stats",
        headers=get_auth_headers(admin),
        params={"date_range": "7d", "status": ["Escalated"]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["stats"]["total_cases"] == 1
    assert data["stats"]["escalated_cases"] == 1
    assert data["filters"]["status"] == ["Escalated"]
    assert [item["name"] for item in data["status_distribution"]] == ["Escalated"]


@pytest.mark.integration
async def test_dashboard_stats_custom_range(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    now = datetime.now(timezone.utc)
    await create_case(session, submission_date=now - timedelta(days=200))
    await create_case(session)

    response = await client.get(
        "/api/cases/dashboard-stats",
        headers=get_auth_headers(admin),
        params={
            "start_date": (now - timedelta(days=300)).isoformat(),
            "end_date": (now - timedelta(days=100)).isoformat(),
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["stats"]["total_cases"] == 1
    # Ranges over 120 days are grouped by month
    assert len(data["trend_data"]) == 1
    assert data["trend_data"][0]["date"].startswith((now - timedelta(days=200)).strftime("%Y-%m"))


@pytest.mark.integration
async def test_dashboard_stats_rejects_bad_range(client: AsyncClient, session: AsyncSession):
    admin = await _admin(session)
    now = datetime.now(timezone.utc)

    response = await client.get(
        "/api/cases/dashboard-stats",
        headers=get_auth_headers(admin),
        params={"start_date": now.isoformat(), "end_date": (now - timedelta(days=1)).isoformat()},
    )
    assert response.status_code == 400
    assert response.json()["error"] == ErrorCodes.VALIDATION_ERROR

    response = await client.get(
        "/api/cases/dashboard-stats", headers=get_auth_headers(admin), params={"start_date": now.isoformat()}
    )
    assert response.status_code == 400

    response = await client.get(
        "/api/cases/dashboard-stats", headers=get_auth_headers(admin), params={"date_range": "2w"}
    )
    assert response.status_code == 400


@pytest.mark.integration
async def test_dashboard_stats_requires_admin(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, tier=Tier.tier_3)

    response = await client.get("/api/cases/dashboard-stats", headers=get_auth_headers(user))

    assert response.status_code == 403
