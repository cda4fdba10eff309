from datetime import datetime
from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Query, status

from casewatch.api.deps import AdminUser, ClientInfoDep, CurrentUser, OptionalUser, SessionDep
from casewatch.db.query import build_paginated_response
from casewatch.models.case import CasePriority, CaseStatus, EscalationLevel
from casewatch.schemas.auth import MessageResponse
from casewatch.schemas.case import (
    CaseActivityRead,
    CaseCreate,
    CaseCreateResponse,
    CaseDetail,
    CaseListResponse,
    CaseRead,
    CaseStats,
    CaseUpdate,
    DashboardFilters,
    DashboardStatsResponse,
    DateRange,
    EscalateRequest,
    EscalateResponse,
    EscalationPreviewRequest,
    EscalationPreviewResponse,
)
from casewatch.services import cases as cases_service

router = APIRouter()


@router.post("/", response_model=CaseCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    payload: CaseCreate,
    session: SessionDep,
    current_user: OptionalUser,
    client: ClientInfoDep,
) -> CaseCreateResponse:
    case, classification = await cases_service.create_case(
        session,
        payload,
        user=current_user,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return CaseCreateResponse(case=CaseRead.model_validate(case), classification=classification)


@router.get("/", response_model=CaseListResponse)
async def list_cases(
    session: SessionDep,
    _admin: AdminUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    status_filter: Annotated[Optional[CaseStatus], Query(alias="status")] = None,
    priority: Optional[CasePriority] = None,
    escalation_level: Optional[EscalationLevel] = None,
    search: Annotated[Optional[str], Query(min_length=3, max_length=100)] = None,
) -> dict:
    cases, total, page = await cases_service.list_cases(
        session,
        page=page,
        page_size=limit,
        status=status_filter,
        priority=priority,
        escalation_level=escalation_level,
        search=search,
    )
    return build_paginated_response(cases, total, page, limit)


@router.get("/mine", response_model=CaseListResponse)
async def list_my_cases(
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    status_filter: Annotated[Optional[CaseStatus], Query(alias="status")] = None,
) -> dict:
    cases, total, page = await cases_service.list_cases(
        session, page=page, page_size=limit, status=status_filter, user=current_user
    )
    return build_paginated_response(cases, total, page, limit)


@router.get("/stats", response_model=CaseStats)
async def case_stats(session: SessionDep, _admin: AdminUser) -> dict:
    return await cases_service.get_case_stats(session)


@router.get("/dashboard-stats", response_model=DashboardStatsResponse)
async def dashboard_stats(
    session: SessionDep,
    _admin: AdminUser,
    date_range: DateRange = "30d",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    status_filter: Annotated[list[CaseStatus], Query(alias="status")] = [],
    escalation_level: Annotated[list[EscalationLevel], Query()] = [],
) -> dict:
    filters = DashboardFilters(
        date_range=date_range,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        escalation_level=escalation_level,
    )
    return await cases_service.get_dashboard_stats(session, filters)


@router.get("/{case_id}", response_model=CaseDetail)
async def read_case(case_id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> CaseDetail:
    case = await cases_service.get_case_for_user(session, current_user, case_id)
    activities = await cases_service.get_case_activities(session, case.id, limit=cases_service.RECENT_ACTIVITY_LIMIT)
    return CaseDetail(
        **CaseRead.model_validate(case).model_dump(),
        activities=[CaseActivityRead.model_validate(activity) for activity in activities],
    )


@router.get("/{case_id}/activities", response_model=list[CaseActivityRead])
async def list_case_activities(case_id: uuid.UUID, session: SessionDep, current_user: CurrentUser):
    case = await cases_service.get_case_for_user(session, current_user, case_id)
    return await cases_service.get_case_activities(session, case.id)


@router.put("/{case_id}", response_model=CaseRead)
async def update_case(
    case_id: uuid.UUID,
    payload: CaseUpdate,
    session: SessionDep,
    current_user: CurrentUser,
    client: ClientInfoDep,
):
    case = await cases_service.get_case_for_user(session, current_user, case_id)
    return await cases_service.update_case(
        session,
        case,
        payload,
        user=current_user,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )


@router.delete("/{case_id}", response_model=MessageResponse)
async def delete_case(case_id: uuid.UUID, session: SessionDep, _admin: AdminUser) -> MessageResponse:
    case = await cases_service.get_case(session, case_id)
    await cases_service.delete_case(session, case)
    return MessageResponse(message="Case deleted successfully")


@router.post("/{case_id}/escalate", response_model=EscalateResponse)
async def escalate_case(
    case_id: uuid.UUID,
    payload: EscalateRequest,
    session: SessionDep,
    admin: AdminUser,
    client: ClientInfoDep,
) -> EscalateResponse:
    case = await cases_service.get_case(session, case_id)
    case, analysis = await cases_service.escalate_case(
        session,
        case,
        user=admin,
        reason=payload.reason,
        priority=payload.priority,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return EscalateResponse(case=CaseRead.model_validate(case), ai_analysis=analysis, escalation_approved=True)


@router.post("/{case_id}/escalate/preview", response_model=EscalationPreviewResponse)
async def preview_escalation(
    case_id: uuid.UUID,
    payload: EscalationPreviewRequest,
    session: SessionDep,
    _admin: AdminUser,
) -> EscalationPreviewResponse:
    case = await cases_service.get_case(session, case_id)
    analysis, decision = await cases_service.preview_escalation(case, payload.reason)
    return EscalationPreviewResponse(case_id=case.id, ai_analysis=analysis, decision=decision)
