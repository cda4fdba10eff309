from typing import Annotated
import uuid

from fastapi import APIRouter, Query

from casewatch.api.deps import CurrentUser, SessionDep, Tier2User, Tier3User
from casewatch.db.query import build_paginated_response
from casewatch.schemas.ai import (
    ClassificationHistoryResponse,
    ClassificationResult,
    ClassificationStats,
    ClassifyRequest,
    SummaryResponse,
)
from casewatch.schemas.case import CaseRead, ReclassifyResponse
from casewatch.services import ai_classification as ai_service
from casewatch.services import cases as cases_service

router = APIRouter()


@router.post("/classify", response_model=ClassificationResult)
async def classify(payload: ClassifyRequest, session: SessionDep, _user: CurrentUser) -> ClassificationResult:
    return await ai_service.classify_and_log(session, payload.text, payload.context)


@router.post("/reclassify/{case_id}", response_model=ReclassifyResponse)
async def reclassify(case_id: uuid.UUID, session: SessionDep, current_user: Tier2User) -> ReclassifyResponse:
    case = await cases_service.get_case_for_user(session, current_user, case_id)
    case, result = await cases_service.reclassify_case(session, case, user=current_user)
    return ReclassifyResponse(case=CaseRead.model_validate(case), classification=result)


@router.get("/history", response_model=ClassificationHistoryResponse)
async def classification_history(
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict:
    items, total, page = await ai_service.get_classification_history(session, current_user, page, limit)
    return build_paginated_response(items, total, page, limit)


@router.get("/stats", response_model=ClassificationStats)
async def classification_stats(
    session: SessionDep,
    current_user: CurrentUser,
    timeframe: Annotated[str, Query(pattern=r"^(7d|30d|90d|1y)$")] = "30d",
) -> dict:
    return await ai_service.get_classification_stats(session, current_user, timeframe)


@router.post("/generate-summary/{case_id}", response_model=SummaryResponse)
async def generate_summary(case_id: uuid.UUID, session: SessionDep, current_user: Tier3User) -> SummaryResponse:
    case = await cases_service.get_case_for_user(session, current_user, case_id)
    summary = await ai_service.generate_case_summary(case)
    return SummaryResponse(case_id=case.id, summary=summary)
