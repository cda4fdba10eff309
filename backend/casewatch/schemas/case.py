from datetime import datetime
from typing import Any, Literal, Optional
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from casewatch.models.case import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    CasePriority,
    CaseStatus,
    EscalationLevel,
    IssueCategory,
)
from casewatch.schemas.ai import ClassificationResult, EscalationAnalysis
from casewatch.schemas.query import PaginatedResponse

DateRange = Literal["7d", "30d", "90d", "1y"]


class CaseCreate(BaseModel):
    client_name: str = Field(min_length=2, max_length=255)
    title: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    jurisdiction: Optional[str] = Field(default=None, max_length=100)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(default=None, max_length=20)
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class CaseUpdate(BaseModel):
    client_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    title: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(
        default=None, min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH
    )
    jurisdiction: Optional[str] = Field(default=None, max_length=100)
    status: Optional[CaseStatus] = None
    priority: Optional[CasePriority] = None
    attachments: Optional[list[dict[str, Any]]] = None


class CaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_ref: str
    user_id: Optional[uuid.UUID] = None
    title: str
    client_name: str
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    description: str
    jurisdiction: Optional[str] = None
    issue_category: IssueCategory
    escalation_level: EscalationLevel
    escalation_flag: bool
    ai_confidence: Optional[float] = None
    status: CaseStatus
    priority: CasePriority
    urgency_score: int
    suggested_actions: list[str] = Field(default_factory=list)
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("case_metadata", "metadata"),
    )
    assigned_to: Optional[uuid.UUID] = None
    escalated_by: Optional[uuid.UUID] = None
    escalated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[uuid.UUID] = None
    closure_reason: Optional[str] = None
    is_public_submission: bool
    submission_date: datetime
    updated_at: datetime


class CaseActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: str
    description: Optional[str] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


class CaseDetail(CaseRead):
    activities: list[CaseActivityRead] = Field(default_factory=list)


class CaseCreateResponse(BaseModel):
    case: CaseRead
    classification: ClassificationResult


class ReclassifyResponse(CaseCreateResponse):
    pass


class CaseListResponse(PaginatedResponse[CaseRead]):
    pass


class CaseStats(BaseModel):
    total_cases: int
    pending_cases: int
    in_progress_cases: int
    completed_cases: int
    escalated_cases: int
    closed_cases: int
    urgent_cases: int
    recent_cases: int
    avg_confidence: Optional[float] = None
    avg_urgency: Optional[float] = None


class DashboardFilters(BaseModel):
    date_range: DateRange = "30d"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: list[CaseStatus] = Field(default_factory=list)
    escalation_level: list[EscalationLevel] = Field(default_factory=list)


class DashboardSummary(CaseStats):
    resolved_cases: int
    total_change: int


class TrendPoint(BaseModel):
    name: str
    date: datetime
    cases: int
    resolved: int
    pending: int
    urgent: int


class DistributionSlice(BaseModel):
    name: str
    value: int
    percentage: float


class MonthlyTrend(BaseModel):
    month: str
    total_cases: int
    resolved_cases: int
    avg_confidence: Optional[float] = None
    resolution_rate: int


class RecentCaseActivity(BaseModel):
    id: uuid.UUID
    case_ref: str
    title: str
    status: CaseStatus
    escalation_level: EscalationLevel
    action_type: Literal["submitted", "updated"]
    timestamp: datetime


class DashboardStatsResponse(BaseModel):
    stats: DashboardSummary
    trend_data: list[TrendPoint]
    status_distribution: list[DistributionSlice]
    priority_distribution: list[DistributionSlice]
    monthly_trends: list[MonthlyTrend]
    recent_activity: list[RecentCaseActivity]
    filters: DashboardFilters


class EscalateRequest(BaseModel):
    reason: str = Field(min_length=10, max_length=500)
    priority: CasePriority = CasePriority.high

    @field_validator("priority")
    @classmethod
    def check_priority(cls, value: CasePriority) -> CasePriority:
        if value not in (CasePriority.high, CasePriority.critical):
            raise ValueError("Escalation priority must be High or Critical")
        return value


class EscalationPreviewRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class EscalationDecision(BaseModel):
    approved: bool
    final_priority: CasePriority
    escalation_level: EscalationLevel
    notes: str


class EscalateResponse(BaseModel):
    case: CaseRead
    ai_analysis: EscalationAnalysis
    escalation_approved: bool


class EscalationPreviewResponse(BaseModel):
    case_id: uuid.UUID
    ai_analysis: EscalationAnalysis
    decision: EscalationDecision
