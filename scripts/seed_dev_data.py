"""Dev data seeder for CaseWatch.

Usage:
    python seed_dev_data.py          # Create test data
    python seed_dev_data.py --clean  # Remove seeded test data

Designed to run from the backend/ directory (CWD) so casewatch imports resolve.
Saves created IDs to .vscode/.dev_seed_ids.json for cleanup.

Creates one user per tier plus an admin, a spread of cases across categories
and statuses with their activity trail.
"""

from __future__ import annotations

import asyncio
import json
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

# ---------------------------------------------------------------------------
# Bootstrap: add backend/ to sys.path so `casewatch.*` imports work when
# invoked as `python ../scripts/seed_dev_data.py` from the backend/ directory.
# ---------------------------------------------------------------------------
BACKEND_DIR = Path(__file__).resolve().parent.parent / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlmodel import select  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from casewatch.core.security import get_password_hash  # noqa: E402
from casewatch.db.init_db import init_document_templates, init_tier_permissions  # noqa: E402
from casewatch.db.session import AsyncSessionLocal  # noqa: E402
from casewatch.models.case import (  # noqa: E402
    Case,
    CaseActivity,
    CasePriority,
    CaseStatus,
    EscalationLevel,
    IssueCategory,
)
from casewatch.models.user import Tier, User, UserRole  # noqa: E402
from casewatch.services.cases import generate_case_ref, record_activity  # noqa: E402

STATE_FILE = Path(__file__).resolve().parent.parent / ".vscode" / ".dev_seed_ids.json"
PASSWORD = "DevPass123"

# Consistent "now" for seeding
NOW = datetime.now(timezone.utc)

# (email, first_name, tier, role)
USERS = [
    ("reporter@casewatch.dev", "Rita", Tier.tier_1, UserRole.user),
    ("advocate@casewatch.dev", "Ade", Tier.tier_2, UserRole.user),
    ("investigator@casewatch.dev", "Ivo", Tier.tier_3, UserRole.user),
    ("partner@casewatch.dev", "Petra", Tier.tier_4, UserRole.user),
    ("admin@casewatch.dev", "Alma", Tier.tier_1, UserRole.admin),
]

# (owner index or None, title, category, level, status, priority, urgency, days ago)
CASES = [
    (0, "Permit bribes at district office", IssueCategory.corruption_government,
     EscalationLevel.basic, CaseStatus.pending, CasePriority.normal, 4, 2),
    (0, "Landlord withholding deposit", IssueCategory.legal_housing,
     EscalationLevel.basic, CaseStatus.in_progress, CasePriority.low, 2, 20),
    (1, "Unfair dismissal after whistleblowing", IssueCategory.legal_employment,
     EscalationLevel.priority, CaseStatus.in_progress, CasePriority.high, 7, 9),
    (2, "Officer demanding cash at checkpoint", IssueCategory.corruption_police,
     EscalationLevel.urgent, CaseStatus.escalated, CasePriority.critical, 9, 1),
    (2, "Invoice fraud in council contract", IssueCategory.criminal_fraud,
     EscalationLevel.priority, CaseStatus.completed, CasePriority.high, 6, 40),
    (3, "Judge with undeclared interest", IssueCategory.corruption_judicial,
     EscalationLevel.priority, CaseStatus.closed, CasePriority.normal, 5, 65),
    (None, "Anonymous report of harassment", IssueCategory.criminal_harassment,
     EscalationLevel.basic, CaseStatus.pending, CasePriority.normal, 3, 0),
]

DESCRIPTION = (
    "Seeded case for local development. The reporter describes repeated incidents "
    "over several weeks and has kept copies of the relevant correspondence."
)


def _save_state(state: dict) -> None:
    STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
    STATE_FILE.write_text(json.dumps(state, indent=2))
    print(f"  State saved to {STATE_FILE}")


def _load_state() -> dict | None:
    if not STATE_FILE.exists():
        return None
    return json.loads(STATE_FILE.read_text())


async def _create_users(session: AsyncSession) -> list[User]:
    password_hash = get_password_hash(PASSWORD)
    users = []
    for email, first_name, tier, role in USERS:
        existing = (await session.exec(select(User).where(User.email == email))).one_or_none()
        if existing:
            print(f"  User {email} already exists, reusing")
            users.append(existing)
            continue
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name="Dev",
            tier=tier,
            role=role,
            email_verified=True,
        )
        session.add(user)
        users.append(user)
    await session.flush()
    print(f"  Created {len(users)} users (password: {PASSWORD})")
    return users


async def _create_cases(session: AsyncSession, users: list[User]) -> list[Case]:
    admin = users[-1]
    cases = []
    for owner_index, title, category, level, status, priority, urgency, days_ago in CASES:
        owner = users[owner_index] if owner_index is not None else None
        submitted = NOW - timedelta(days=days_ago)
        case = Case(
            case_ref=generate_case_ref(),
            user_id=owner.id if owner else None,
            title=title,
            client_name=f"{owner.first_name} Dev" if owner else "Anonymous",
            description=DESCRIPTION,
            issue_category=category,
            escalation_level=level,
            escalation_flag=level != EscalationLevel.basic,
            ai_confidence=0.75,
            urgency_score=urgency,
            status=status,
            priority=priority,
            suggested_actions=["Collect documentary evidence", "Record a timeline of events"],
            is_public_submission=owner is None,
            submission_date=submitted,
            updated_at=submitted,
        )
        if status == CaseStatus.escalated:
            case.escalated_by = admin.id
            case.escalated_at = submitted + timedelta(hours=2)
        if status == CaseStatus.closed:
            case.closed_by = admin.id
            case.closed_at = submitted + timedelta(days=30)
            case.closure_reason = "Resolved with the reporter"
        session.add(case)
        await session.flush()

        record_activity(
            session,
            case,
            "case_submitted" if owner else "case_submitted_public",
            f"Case {case.case_ref} submitted",
            user=owner,
        )
        if status != CaseStatus.pending:
            record_activity(
                session,
                case,
                "case_updated",
                f"Status set to {status.value}",
                user=admin,
                old_values={"status": CaseStatus.pending.value},
                new_values={"status": status.value},
            )
        cases.append(case)
    await session.flush()
    print(f"  Created {len(cases)} cases")
    return cases


async def seed() -> None:
    if _load_state():
        print("Seed data already present; run with --clean first.")
        return

    print("Seeding CaseWatch dev data...")
    async with AsyncSessionLocal() as session:
        # Both helpers commit only when they add rows
        await init_tier_permissions(session)
        await init_document_templates(session)
        await session.commit()

        async with session.begin():
            users = await _create_users(session)
            cases = await _create_cases(session, users)

    _save_state(
        {
            "users": [str(user.id) for user in users],
            "cases": [str(case.id) for case in cases],
        }
    )
    print("Done!")


async def clean() -> None:
    state = _load_state()
    if not state:
        print("No seed state found; nothing to clean.")
        return

    print("Removing seeded data...")
    async with AsyncSessionLocal() as session:
        async with session.begin():
            case_ids = [uuid.UUID(case_id) for case_id in state.get("cases", [])]
            activities = await session.exec(select(CaseActivity).where(CaseActivity.case_id.in_(case_ids)))
            for activity in activities.all():
                await session.delete(activity)
            for case_id in case_ids:
                obj = await session.get(Case, case_id)
                if obj:
                    await session.delete(obj)
            await session.flush()
            print("  Removed cases")

            for user_id in state.get("users", []):
                obj = await session.get(User, uuid.UUID(user_id))
                if obj:
                    await session.delete(obj)
            await session.flush()
            print("  Removed users")

        # Transaction committed

    STATE_FILE.unlink(missing_ok=True)
    print("Done! All seeded data removed.")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    if "--clean" in sys.argv:
        asyncio.run(clean())
    else:
        asyncio.run(seed())
