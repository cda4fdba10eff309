from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, Field

from casewatch.models.case import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    CasePriority,
    EscalationLevel,
    IssueCategory,
)
from casewatch.schemas.query import PaginatedResponse


class ClassificationResult(BaseModel):
    issue_category: IssueCategory
    escalation_level: EscalationLevel
    confidence: float = Field(ge=0, le=1)
    suggested_actions: list[str]
    urgency_score: int = Field(ge=1, le=10)
    processing_time_ms: Optional[int] = None
    model_used: Optional[str] = None
    fallback: bool = False


class EscalationAnalysis(BaseModel):
    should_escalate: bool
    confidence: float = Field(ge=0, le=1)
    reasons: list[str]
    suggested_priority: CasePriority
    urgency_score: int = Field(ge=1, le=10)
    risk_factors: list[str] = Field(default_factory=list)
    recommendation: str


class ClassifyRequest(BaseModel):
    text: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    context: Optional[str] = Field(default=None, max_length=1000)


class ClassificationHistoryItem(BaseModel):
    id: uuid.UUID
    case_id: Optional[uuid.UUID] = None
    case_ref: Optional[str] = None
    input_text: str
    issue_category: str
    escalation_level: str
    confidence: float
    urgency_score: int
    processing_time_ms: Optional[int] = None
    model_used: Optional[str] = None
    created_at: datetime


class CategoryBreakdown(BaseModel):
    issue_category: str
    count: int
    avg_confidence: Optional[float] = None


class ClassificationStats(BaseModel):
    timeframe: str
    total_classifications: int
    avg_confidence: Optional[float] = None
    avg_urgency: Optional[float] = None
    avg_processing_time_ms: Optional[float] = None
    basic_count: int
    priority_count: int
    urgent_count: int
    categories: list[CategoryBreakdown]


class SummaryResponse(BaseModel):
    case_id: uuid.UUID
    summary: str


class ClassificationHistoryResponse(PaginatedResponse[ClassificationHistoryItem]):
    pass
