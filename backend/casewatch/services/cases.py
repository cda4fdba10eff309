from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import secrets
import string
from typing import Any
import uuid

from fastapi.encoders import jsonable_encoder
from sqlalchemy import String, case as sa_case, cast, func, literal_column, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnprocessableError
from casewatch.core.messages import CaseMessages, ErrorCodes
from casewatch.db.query import paginated_query
from casewatch.models.case import Case, CaseActivity, CasePriority, CaseStatus, EscalationLevel
from casewatch.models.notification import NotificationTopic
from casewatch.models.user import User
from casewatch.schemas.ai import ClassificationResult, EscalationAnalysis
from casewatch.schemas.case import CaseCreate, CaseRead, CaseUpdate, DashboardFilters
from casewatch.services import ai_classification as ai_service
from casewatch.services import notifications as notifications_service
from casewatch.services import tiers as tiers_service

logger = logging.getLogger(__name__)

CASE_REF_PREFIX = "999P"
CASE_REF_ALPHABET = string.ascii_uppercase + string.digits
RECENT_ACTIVITY_LIMIT = 10

# Escalation decision thresholds on the AI confidence
APPROVE_CONFIDENCE = 0.6
MODERATE_CONFIDENCE = 0.4
REJECT_CONFIDENCE = 0.7


def generate_case_ref() -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(secrets.choice(CASE_REF_ALPHABET) for _ in range(4))
    return f"{CASE_REF_PREFIX}-{millis}-{suffix}"


def priority_from_urgency(score: int) -> CasePriority:
    if score >= 9:
        return CasePriority.critical
    if score >= 7:
        return CasePriority.high
    if score >= 4:
        return CasePriority.normal
    return CasePriority.low


def escalation_level_for_priority(priority: CasePriority) -> EscalationLevel:
    if priority == CasePriority.critical:
        return EscalationLevel.urgent
    if priority == CasePriority.high:
        return EscalationLevel.priority
    return EscalationLevel.basic


def case_snapshot(case: Case) -> dict[str, Any]:
    return CaseRead.model_validate(case).model_dump(mode="json")


def record_activity(
    session: AsyncSession,
    case: Case,
    action: str,
    description: str,
    *,
    user: User | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> CaseActivity:
    activity = CaseActivity(
        case_id=case.id,
        user_id=user.id if user else None,
        action=action,
        description=description,
        old_values=old_values,
        new_values=new_values,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(activity)
    return activity


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_cases_this_month(session: AsyncSession, user: User) -> int:
    stmt = select(func.count(Case.id)).where(
        Case.user_id == user.id,
        Case.submission_date >= _month_start(datetime.now(timezone.utc)),
    )
    return (await session.exec(stmt)).one()


async def create_case(
    session: AsyncSession,
    payload: CaseCreate,
    *,
    user: User | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[Case, ClassificationResult]:
    if user is not None:
        limit = await tiers_service.monthly_case_limit(session, user.tier)
        if limit != -1:
            used = await count_cases_this_month(session, user)
            if used >= limit:
                raise ForbiddenError(
                    CaseMessages.LIMIT_REACHED,
                    code=ErrorCodes.CASE_LIMIT_REACHED,
                    details={"current_tier": user.tier, "monthly_limit": limit, "cases_this_month": used},
                )

    classification = await ai_service.classify_text(payload.description)
    case = Case(
        case_ref=generate_case_ref(),
        user_id=user.id if user else None,
        title=payload.title or f"{classification.issue_category.value} - {payload.client_name}",
        client_name=payload.client_name,
        client_email=payload.client_email,
        client_phone=payload.client_phone,
        description=payload.description,
        jurisdiction=payload.jurisdiction,
        issue_category=classification.issue_category,
        escalation_level=classification.escalation_level,
        escalation_flag=classification.escalation_level != EscalationLevel.basic,
        ai_confidence=classification.confidence,
        status=CaseStatus.pending,
        priority=priority_from_urgency(classification.urgency_score),
        urgency_score=classification.urgency_score,
        suggested_actions=classification.suggested_actions,
        attachments=payload.attachments,
        case_metadata={"ip_address": ip_address, "user_agent": user_agent, "submission_source": "web"},
        is_public_submission=user is None,
        submission_ip=ip_address,
        submission_user_agent=user_agent,
    )
    session.add(case)
    await session.flush()

    ai_service.log_classification_result(session, classification, payload.description, case_id=case.id)
    if user is not None:
        action, description = "case_created", "Case created by registered user"
    else:
        action, description = "case_submitted_public", "Case submitted by public user"
    record_activity(
        session,
        case,
        action,
        description,
        user=user,
        new_values=case_snapshot(case),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await session.commit()
    await session.refresh(case)
    logger.info("Case %s created (%s, %s)", case.case_ref, case.issue_category.value, case.escalation_level.value)
    return case, classification


async def get_case(session: AsyncSession, case_id: uuid.UUID) -> Case:
    case = await session.get(Case, case_id)
    if case is None:
        raise NotFoundError(CaseMessages.NOT_FOUND)
    return case


async def get_case_for_user(session: AsyncSession, user: User, case_id: uuid.UUID) -> Case:
    """The case when ``user`` owns it or is an admin; 404 otherwise."""
    case = await session.get(Case, case_id)
    if case is None or (not user.is_admin and case.user_id != user.id):
        raise NotFoundError(CaseMessages.NOT_FOUND)
    return case


async def list_cases(
    session: AsyncSession,
    *,
    page: int = 1,
    page_size: int = 10,
    status: CaseStatus | None = None,
    priority: CasePriority | None = None,
    escalation_level: EscalationLevel | None = None,
    search: str | None = None,
    user: User | None = None,
) -> tuple[list[Case], int, int]:
    stmt = select(Case)
    if user is not None:
        stmt = stmt.where(Case.user_id == user.id)
    if status is not None:
        stmt = stmt.where(Case.status == status)
    if priority is not None:
        stmt = stmt.where(Case.priority == priority)
    if escalation_level is not None:
        stmt = stmt.where(Case.escalation_level == escalation_level)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Case.case_ref.ilike(pattern),
                cast(Case.id, String).ilike(pattern),
                Case.title.ilike(pattern),
                cast(Case.issue_category, String).ilike(pattern),
                Case.client_name.ilike(pattern),
            )
        )
    stmt = stmt.order_by(Case.submission_date.desc())
    return await paginated_query(session, stmt, page, page_size)


async def get_case_stats(session: AsyncSession) -> dict[str, Any]:
    recent_cutoff = datetime.now(timezone.utc) - timedelta(days=30)

    def _count_when(condition):
        return func.count(sa_case((condition, 1)))

    row = (
        await session.exec(
            select(
                func.count(Case.id),
                _count_when(Case.status == CaseStatus.pending),
                _count_when(Case.status == CaseStatus.in_progress),
                _count_when(Case.status == CaseStatus.completed),
                _count_when(Case.status == CaseStatus.escalated),
                _count_when(Case.status == CaseStatus.closed),
                _count_when(Case.escalation_level == EscalationLevel.urgent),
                _count_when(Case.submission_date > recent_cutoff),
                func.avg(Case.ai_confidence),
                func.avg(Case.urgency_score),
            )
        )
    ).one()
    total, pending, in_progress, completed, escalated, closed, urgent, recent, avg_confidence, avg_urgency = row
    return {
        "total_cases": total,
        "pending_cases": pending,
        "in_progress_cases": in_progress,
        "completed_cases": completed,
        "escalated_cases": escalated,
        "closed_cases": closed,
        "urgent_cases": urgent,
        "recent_cases": recent,
        "avg_confidence": float(avg_confidence) if avg_confidence is not None else None,
        "avg_urgency": float(avg_urgency) if avg_urgency is not None else None,
    }


DATE_RANGES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}
RECENT_WINDOW = timedelta(days=7)
RESOLVED_STATUSES = (CaseStatus.completed, CaseStatus.closed)
URGENCY_BUCKETS = (("Critical", 8), ("High", 6), ("Medium", 4), ("Low", None))
DASHBOARD_ACTIVITY_LIMIT = 10


def _trend_granularity(span: timedelta) -> str:
    if span <= timedelta(days=31):
        return "day"
    if span <= timedelta(days=120):
        return "week"
    return "month"


def _truncated(unit: str):
    # Inlined so SELECT and GROUP BY render the same expression
    return func.date_trunc(literal_column(f"'{unit}'"), Case.submission_date)


def _trend_label(bucket: datetime, granularity: str) -> str:
    if granularity == "month":
        return bucket.strftime("%b %Y")
    return bucket.strftime("%b %d")


def percent_change(current: int, previous: int) -> int:
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


def _rounded(value) -> float | None:
    return round(float(value), 1) if value is not None else None


async def get_dashboard_stats(session: AsyncSession, filters: DashboardFilters) -> dict[str, Any]:
    """Admin dashboard figures for a date window, with trends, distributions and recent activity.

    The window is ``start_date``..``end_date`` when both are given, otherwise the
    ``date_range`` preceding now. Status and escalation filters apply throughout.
    """
    now = datetime.now(timezone.utc)
    if (filters.start_date is None) != (filters.end_date is None):
        raise BadRequestError(CaseMessages.DATE_RANGE_INCOMPLETE, code=ErrorCodes.VALIDATION_ERROR)
    if filters.start_date and filters.end_date:
        start, end = filters.start_date, filters.end_date
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        if start >= end:
            raise BadRequestError(CaseMessages.DATE_RANGE_INVALID, code=ErrorCodes.VALIDATION_ERROR)
    else:
        end = now
        start = now - DATE_RANGES[filters.date_range]
    span = end - start

    conditions = []
    if filters.status:
        conditions.append(Case.status.in_(filters.status))
    if filters.escalation_level:
        conditions.append(Case.escalation_level.in_(filters.escalation_level))
    in_window = [Case.submission_date >= start, Case.submission_date < end, *conditions]

    def _count_when(condition):
        return func.count(sa_case((condition, 1)))

    resolved = Case.status.in_(RESOLVED_STATUSES)
    row = (
        await session.exec(
            select(
                func.count(Case.id),
                _count_when(Case.status == CaseStatus.pending),
                _count_when(Case.status == CaseStatus.in_progress),
                _count_when(Case.status == CaseStatus.completed),
                _count_when(Case.status == CaseStatus.escalated),
                _count_when(Case.status == CaseStatus.closed),
                _count_when(Case.escalation_level == EscalationLevel.urgent),
                _count_when(resolved),
                _count_when(Case.submission_date >= now - RECENT_WINDOW),
                func.avg(Case.ai_confidence),
                func.avg(Case.urgency_score),
            ).where(*in_window)
        )
    ).one()
    total, pending, in_progress, completed, escalated, closed, urgent, resolved_count, recent, avg_conf, avg_urg = row

    previous_total = (
        await session.exec(
            select(func.count(Case.id)).where(
                Case.submission_date >= start - span,
                Case.submission_date < start,
                *conditions,
            )
        )
    ).one()

    granularity = _trend_granularity(span)
    bucket = _truncated(granularity).label("bucket")
    trend_rows = (
        await session.exec(
            select(
                bucket,
                func.count(Case.id),
                _count_when(resolved),
                _count_when(Case.status == CaseStatus.pending),
                _count_when(Case.escalation_level == EscalationLevel.urgent),
            )
            .where(*in_window)
            .group_by(bucket)
            .order_by(bucket)
        )
    ).all()

    status_rows = (
        await session.exec(
            select(Case.status, func.count(Case.id))
            .where(*in_window)
            .group_by(Case.status)
            .order_by(func.count(Case.id).desc())
        )
    ).all()

    urgency_counts = {name: 0 for name, _ in URGENCY_BUCKETS}
    urgency_rows = (await session.exec(select(Case.urgency_score).where(*in_window))).all()
    for score in urgency_rows:
        urgency_counts[next(name for name, floor in URGENCY_BUCKETS if floor is None or score >= floor)] += 1

    month = _truncated("month").label("month")
    monthly_rows = (
        await session.exec(
            select(month, func.count(Case.id), _count_when(resolved), func.avg(Case.ai_confidence))
            .where(Case.submission_date >= now - DATE_RANGES["1y"], *conditions)
            .group_by(month)
            .order_by(month)
        )
    ).all()

    recent_cases = (
        await session.exec(
            select(Case)
            .where(Case.submission_date >= now - RECENT_WINDOW, *conditions)
            .order_by(Case.updated_at.desc())
            .limit(DASHBOARD_ACTIVITY_LIMIT)
        )
    ).all()

    def _share(value: int) -> float:
        return round(value * 100 / total, 1) if total else 0.0

    return {
        "stats": {
            "total_cases": total,
            "pending_cases": pending,
            "in_progress_cases": in_progress,
            "completed_cases": completed,
            "escalated_cases": escalated,
            "closed_cases": closed,
            "urgent_cases": urgent,
            "resolved_cases": resolved_count,
            "recent_cases": recent,
            "avg_confidence": _rounded(avg_conf),
            "avg_urgency": _rounded(avg_urg),
            "total_change": percent_change(total, previous_total),
        },
        "trend_data": [
            {
                "name": _trend_label(day, granularity),
                "date": day,
                "cases": cases,
                "resolved": resolved_cases,
                "pending": pending_cases,
                "urgent": urgent_cases,
            }
            for day, cases, resolved_cases, pending_cases, urgent_cases in trend_rows
        ],
        "status_distribution": [
            {"name": CaseStatus(status).value, "value": count, "percentage": _share(count)}
            for status, count in status_rows
        ],
        "priority_distribution": [
            {"name": name, "value": count, "percentage": _share(count)} for name, count in urgency_counts.items()
        ],
        "monthly_trends": [
            {
                "month": month_start.strftime("%b %Y"),
                "total_cases": month_total,
                "resolved_cases": month_resolved,
                "avg_confidence": _rounded(month_confidence),
                "resolution_rate": round(month_resolved * 100 / month_total) if month_total else 0,
            }
            for month_start, month_total, month_resolved, month_confidence in monthly_rows
        ],
        "recent_activity": [
            {
                "id": case.id,
                "case_ref": case.case_ref,
                "title": case.title,
                "status": case.status,
                "escalation_level": case.escalation_level,
                "action_type": "updated" if case.updated_at - case.submission_date > timedelta(seconds=1) else "submitted",
                "timestamp": case.updated_at,
            }
            for case in recent_cases
        ],
        "filters": filters,
    }


async def get_case_activities(
    session: AsyncSession,
    case_id: uuid.UUID,
    limit: int | None = None,
) -> list[CaseActivity]:
    stmt = select(CaseActivity).where(CaseActivity.case_id == case_id).order_by(CaseActivity.created_at.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list((await session.exec(stmt)).all())


# Columns that may be cleared explicitly; everything else ignores nulls.
NULLABLE_UPDATE_FIELDS = {"jurisdiction"}


async def update_case(
    session: AsyncSession,
    case: Case,
    payload: CaseUpdate,
    *,
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Case:
    updates = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_UPDATE_FIELDS
    }
    if not updates:
        raise BadRequestError(CaseMessages.NO_UPDATES, code=ErrorCodes.NO_UPDATES)

    old_values: dict[str, Any] = {}
    new_values: dict[str, Any] = {}
    for field, value in updates.items():
        current = getattr(case, field)
        if current == value:
            continue
        old_values[field] = jsonable_encoder(current)
        new_values[field] = jsonable_encoder(value)
        setattr(case, field, value)

    now = datetime.now(timezone.utc)
    if new_values.get("status") == CaseStatus.closed.value:
        case.closed_at = now
        case.closed_by = user.id

    if new_values:
        case.updated_at = now
        session.add(case)
        record_activity(
            session,
            case,
            "case_updated",
            f"Case updated: {', '.join(sorted(new_values))}",
            user=user,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if "status" in new_values and case.user_id and case.user_id != user.id:
            await notifications_service.notify_event(
                session,
                user_id=case.user_id,
                topic=NotificationTopic.case_updates,
                title=f"Case {case.case_ref} updated",
                message=f"Your case status changed from {old_values['status']} to {new_values['status']}.",
                case_id=case.id,
            )
        await session.commit()
        await session.refresh(case)
    return case


async def delete_case(session: AsyncSession, case: Case) -> None:
    await session.delete(case)
    await session.commit()
    logger.info("Case %s deleted", case.case_ref)


def decide_escalation(analysis: EscalationAnalysis, requested_priority: CasePriority) -> dict[str, Any]:
    """Combine the admin's request with the AI recommendation.

    Returns ``approved``, ``final_priority``, ``escalation_level`` and ``notes``;
    a rejection carries the reason in ``notes``.
    """
    recommendation = analysis.recommendation
    if analysis.should_escalate and analysis.confidence >= APPROVE_CONFIDENCE:
        approved, final_priority = True, analysis.suggested_priority
        notes = f" | AI Analysis: {recommendation}"
    elif analysis.should_escalate and analysis.confidence >= MODERATE_CONFIDENCE:
        approved, final_priority = True, requested_priority
        notes = f" | AI Analysis (moderate confidence): {recommendation}"
    elif not analysis.should_escalate and analysis.confidence >= REJECT_CONFIDENCE:
        approved, final_priority = False, requested_priority
        notes = (
            f"AI analysis advises against escalation: {recommendation}. "
            f"Confidence: {analysis.confidence * 100:.1f}%"
        )
    else:
        approved, final_priority = True, requested_priority
        notes = (
            " | AI Analysis (low confidence): Manual escalation approved despite AI recommendation. "
            f"{recommendation}"
        )
    return {
        "approved": approved,
        "final_priority": final_priority,
        "escalation_level": escalation_level_for_priority(final_priority),
        "notes": notes,
    }


def _check_escalatable(case: Case) -> None:
    if case.status == CaseStatus.escalated:
        raise ConflictError(CaseMessages.ALREADY_ESCALATED, code=ErrorCodes.ALREADY_ESCALATED)
    if case.status in (CaseStatus.closed, CaseStatus.completed):
        raise BadRequestError(CaseMessages.CASE_CLOSED, code=ErrorCodes.CASE_CLOSED)


async def escalate_case(
    session: AsyncSession,
    case: Case,
    *,
    user: User,
    reason: str,
    priority: CasePriority = CasePriority.high,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[Case, EscalationAnalysis]:
    _check_escalatable(case)

    analysis = await ai_service.analyze_escalation(case, reason)
    decision = decide_escalation(analysis, priority)
    if not decision["approved"]:
        raise UnprocessableError(decision["notes"], details={"ai_analysis": analysis.model_dump(mode="json")})

    old_values = {
        "status": case.status.value,
        "priority": case.priority.value,
        "escalation_level": case.escalation_level.value,
    }
    now = datetime.now(timezone.utc)
    final_priority: CasePriority = decision["final_priority"]
    level: EscalationLevel = decision["escalation_level"]

    case.status = CaseStatus.escalated
    case.priority = final_priority
    case.escalation_level = level
    case.escalation_flag = level != EscalationLevel.basic
    case.urgency_score = analysis.urgency_score
    case.escalated_by = user.id
    case.escalated_at = now
    case.updated_at = now
    case.case_metadata = {
        **(case.case_metadata or {}),
        "escalation": {
            "reason": reason + decision["notes"],
            "priority": final_priority.value,
            "escalated_by": str(user.id),
            "escalated_at": now.isoformat(),
            "ai_analysis": analysis.model_dump(mode="json"),
        },
    }
    session.add(case)

    ai_service.log_classification(
        session,
        input_text=f"Escalation analysis: {case.title}",
        issue_category=case.issue_category.value,
        escalation_level=level.value,
        confidence=analysis.confidence,
        urgency_score=analysis.urgency_score,
        suggested_actions=analysis.reasons,
        model_used=f"{settings.OPENAI_MODEL}-escalation-analysis",
        case_id=case.id,
    )
    record_activity(
        session,
        case,
        "case_escalated",
        f"Case escalated to {final_priority.value}: {reason}",
        user=user,
        old_values=old_values,
        new_values={
            "status": CaseStatus.escalated.value,
            "priority": final_priority.value,
            "escalation_level": level.value,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    if case.user_id:
        await notifications_service.notify_event(
            session,
            user_id=case.user_id,
            topic=NotificationTopic.escalation_alerts,
            title=f"Case {case.case_ref} escalated",
            message=f"Your case was escalated with {final_priority.value} priority.",
            case_id=case.id,
            metadata={"escalation_level": level.value},
        )
    await session.commit()
    await session.refresh(case)
    logger.info("Case %s escalated to %s by %s", case.case_ref, final_priority.value, user.id)
    return case, analysis


async def preview_escalation(
    case: Case,
    reason: str | None = None,
    priority: CasePriority = CasePriority.high,
) -> tuple[EscalationAnalysis, dict[str, Any]]:
    analysis = await ai_service.analyze_escalation(case, reason)
    return analysis, decide_escalation(analysis, priority)


async def reclassify_case(session: AsyncSession, case: Case, *, user: User) -> tuple[Case, ClassificationResult]:
    result = await ai_service.classify_text(case.description)
    old_values = {
        "issue_category": case.issue_category.value,
        "escalation_level": case.escalation_level.value,
        "urgency_score": case.urgency_score,
    }
    case.issue_category = result.issue_category
    case.escalation_level = result.escalation_level
    case.escalation_flag = result.escalation_level != EscalationLevel.basic
    case.ai_confidence = result.confidence
    case.urgency_score = result.urgency_score
    case.suggested_actions = result.suggested_actions
    case.priority = priority_from_urgency(result.urgency_score)
    case.updated_at = datetime.now(timezone.utc)
    session.add(case)

    ai_service.log_classification_result(session, result, case.description, case_id=case.id)
    record_activity(
        session,
        case,
        "case_reclassified",
        "Case reclassified by AI",
        user=user,
        old_values=old_values,
        new_values={
            "issue_category": result.issue_category.value,
            "escalation_level": result.escalation_level.value,
            "urgency_score": result.urgency_score,
        },
    )
    await session.commit()
    await session.refresh(case)
    return case, result
