from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from casewatch.models.user import enum_values


class IssueCategory(str, Enum):
    corruption_police = "Corruption - Police"
    corruption_government = "Corruption - Government"
    corruption_judicial = "Corruption - Judicial"
    criminal_assault = "Criminal - Assault"
    criminal_fraud = "Criminal - Fraud"
    criminal_harassment = "Criminal - Harassment"
    criminal_murder = "Criminal - Murder"
    legal_civil_rights = "Legal - Civil Rights"
    legal_employment = "Legal - Employment"
    legal_housing = "Legal - Housing"
    legal_immigration = "Legal - Immigration"
    other = "Other"


class EscalationLevel(str, Enum):
    basic = "Basic"
    priority = "Priority"
    urgent = "Urgent"


class CaseStatus(str, Enum):
    pending = "Pending"
    in_progress = "In Progress"
    completed = "Completed"
    escalated = "Escalated"
    closed = "Closed"


class CasePriority(str, Enum):
    low = "Low"
    normal = "Normal"
    high = "High"
    critical = "Critical"


DESCRIPTION_MIN_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 5000


class Case(SQLModel, table=True):
    __tablename__ = "cases"
    __table_args__ = (
        CheckConstraint(
            f"char_length(description) BETWEEN {DESCRIPTION_MIN_LENGTH} AND {DESCRIPTION_MAX_LENGTH}",
            name="cases_description_length",
        ),
        CheckConstraint("ai_confidence IS NULL OR (ai_confidence >= 0 AND ai_confidence <= 1)", name="cases_ai_confidence_range"),
        CheckConstraint("urgency_score BETWEEN 1 AND 10", name="cases_urgency_score_range"),
        CheckConstraint("escalation_flag = (escalation_level <> 'Basic')", name="cases_escalation_flag_matches_level"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    case_ref: str = Field(sa_column=Column(String(50), unique=True, index=True, nullable=False))
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    title: str = Field(sa_column=Column(String(255), nullable=False))
    client_name: str = Field(sa_column=Column(String(255), nullable=False))
    client_email: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    client_phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    description: str = Field(sa_column=Column(Text, nullable=False))
    jurisdiction: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    issue_category: IssueCategory = Field(
        sa_column=Column(
            SQLEnum(IssueCategory, name="issue_category", values_callable=enum_values),
            nullable=False,
            index=True,
        ),
    )
    escalation_level: EscalationLevel = Field(
        default=EscalationLevel.basic,
        sa_column=Column(
            SQLEnum(EscalationLevel, name="escalation_level", values_callable=enum_values),
            nullable=False,
            server_default=EscalationLevel.basic.value,
            index=True,
        ),
    )
    escalation_flag: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    ai_confidence: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    status: CaseStatus = Field(
        default=CaseStatus.pending,
        sa_column=Column(
            SQLEnum(CaseStatus, name="case_status", values_callable=enum_values),
            nullable=False,
            server_default=CaseStatus.pending.value,
            index=True,
        ),
    )
    priority: CasePriority = Field(
        default=CasePriority.normal,
        sa_column=Column(
            SQLEnum(CasePriority, name="case_priority", values_callable=enum_values),
            nullable=False,
            server_default=CasePriority.normal.value,
            index=True,
        ),
    )
    urgency_score: int = Field(
        default=5,
        sa_column=Column(Integer, nullable=False, server_default="5"),
    )
    suggested_actions: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    )
    attachments: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    )
    # "metadata" is reserved on declarative classes
    case_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    assigned_to: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    escalated_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    escalated_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    closure_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    is_public_submission: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false", index=True),
    )
    submission_ip: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    submission_user_agent: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    submission_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class CaseActivity(SQLModel, table=True):
    __tablename__ = "case_activities"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    case_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    action: str = Field(sa_column=Column(String(100), nullable=False, index=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    old_values: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))
    new_values: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class AIClassification(SQLModel, table=True):
    __tablename__ = "ai_classifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    case_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True),
    )
    input_text: str = Field(sa_column=Column(Text, nullable=False))
    issue_category: str = Field(sa_column=Column(String(100), nullable=False))
    escalation_level: str = Field(sa_column=Column(String(50), nullable=False))
    confidence: float = Field(sa_column=Column(Float, nullable=False))
    urgency_score: int = Field(sa_column=Column(Integer, nullable=False))
    suggested_actions: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    )
    processing_time_ms: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    model_used: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
