"""Initial CaseWatch schema.

Revision ID: 20260101_0001
Revises:
Create Date: 2026-01-01 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20260101_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS: dict[str, tuple[str, ...]] = {
    "user_tier": ("Tier 1", "Tier 2", "Tier 3", "Tier 4"),
    "user_role": ("user", "admin"),
    "issue_category": (
        "Corruption - Police",
        "Corruption - Government",
        "Corruption - Judicial",
        "Criminal - Assault",
        "Criminal - Fraud",
        "Criminal - Harassment",
        "Criminal - Murder",
        "Legal - Civil Rights",
        "Legal - Employment",
        "Legal - Housing",
        "Legal - Immigration",
        "Other",
    ),
    "escalation_level": ("Basic", "Priority", "Urgent"),
    "case_status": ("Pending", "In Progress", "Completed", "Escalated", "Closed"),
    "case_priority": ("Low", "Normal", "High", "Critical"),
    "document_type": ("N240", "N1", "N244", "ET1", "N208", "N279", "CPR23", "Other"),
    "document_status": ("Generated", "Processing", "Verified", "Failed", "Archived"),
    "verification_status": ("Pending", "Verified", "Failed", "Expired"),
    "document_access_type": ("view", "download", "share", "verify", "delete"),
    "document_share_type": ("public", "private", "temporary"),
    "tier_permission_type": ("feature_access", "api_limit", "storage_limit", "priority_support"),
    "tier_change_reason": ("tier_change", "balance_update", "initial"),
    "tier_triggered_by": ("automatic", "manual", "admin", "system"),
    "blockchain_transaction_status": ("Pending", "Confirmed", "Failed"),
}

TABLES = (
    "secure_entries",
    "blockchain_transactions",
    "tier_history",
    "tier_permissions",
    "user_tiers",
    "document_shares",
    "document_access_logs",
    "documents",
    "document_templates",
    "ai_classifications",
    "case_activities",
    "cases",
    "users",
)


def _create_enum_if_not_exists(name: str, values: tuple[str, ...]) -> None:
    quoted_values = ", ".join(f"'{value}'" for value in values)
    op.execute(
        sa.text(
            f"""
            DO $$
            BEGIN
                IF NOT EXISTS (
                    SELECT 1 FROM pg_type WHERE typname = '{name}'
                ) THEN
                    CREATE TYPE {name} AS ENUM ({quoted_values});
                END IF;
            END;
            $$;
            """
        )
    )


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _jsonb(name: str, default: str = "'{}'::jsonb", nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, postgresql.JSONB(), nullable=True)
    return sa.Column(name, postgresql.JSONB(), nullable=False, server_default=sa.text(default))


def upgrade() -> None:
    for enum_name, values in ENUMS.items():
        _create_enum_if_not_exists(enum_name, values)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("eth_address", sa.String(length=42), nullable=True),
        sa.Column("tier", _enum("user_tier"), nullable=False, server_default="Tier 1"),
        sa.Column("role", _enum("user_role"), nullable=False, server_default="user"),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("organization", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "eth_address IS NULL OR eth_address ~ '^0x[0-9a-fA-F]{40}$'",
            name="users_eth_address_format",
        ),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_eth_address"), "users", ["eth_address"], unique=True)
    op.create_index(op.f("ix_users_tier"), "users", ["tier"], unique=False)

    op.create_table(
        "cases",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("case_ref", sa.String(length=50), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=True),
        sa.Column("client_phone", sa.String(length=20), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("jurisdiction", sa.String(length=100), nullable=True),
        sa.Column("issue_category", _enum("issue_category"), nullable=False),
        sa.Column("escalation_level", _enum("escalation_level"), nullable=False, server_default="Basic"),
        sa.Column("escalation_flag", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("status", _enum("case_status"), nullable=False, server_default="Pending"),
        sa.Column("priority", _enum("case_priority"), nullable=False, server_default="Normal"),
        sa.Column("urgency_score", sa.Integer(), nullable=False, server_default="5"),
        _jsonb("suggested_actions", "'[]'::jsonb"),
        _jsonb("attachments", "'[]'::jsonb"),
        _jsonb("metadata"),
        sa.Column("assigned_to", sa.Uuid(), nullable=True),
        sa.Column("escalated_by", sa.Uuid(), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.Uuid(), nullable=True),
        sa.Column("closure_reason", sa.Text(), nullable=True),
        sa.Column("is_public_submission", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("submission_ip", sa.String(length=64), nullable=True),
        sa.Column("submission_user_agent", sa.Text(), nullable=True),
        sa.Column("submission_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["escalated_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["closed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("char_length(description) BETWEEN 50 AND 5000", name="cases_description_length"),
        sa.CheckConstraint(
            "ai_confidence IS NULL OR (ai_confidence >= 0 AND ai_confidence <= 1)",
            name="cases_ai_confidence_range",
        ),
        sa.CheckConstraint("urgency_score BETWEEN 1 AND 10", name="cases_urgency_score_range"),
        sa.CheckConstraint(
            "escalation_flag = (escalation_level <> 'Basic')",
            name="cases_escalation_flag_matches_level",
        ),
    )
    op.create_index(op.f("ix_cases_case_ref"), "cases", ["case_ref"], unique=True)
    for column in ("user_id", "issue_category", "escalation_level", "status", "priority", "is_public_submission", "submission_date"):
        op.create_index(op.f(f"ix_cases_{column}"), "cases", [column], unique=False)

    op.create_table(
        "case_activities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("case_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _jsonb("old_values", nullable=True),
        _jsonb("new_values", nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("case_id", "action", "created_at"):
        op.create_index(op.f(f"ix_case_activities_{column}"), "case_activities", [column], unique=False)

    op.create_table(
        "ai_classifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("case_id", sa.Uuid(), nullable=True),
        sa.Column("input_text", sa.Text(), nullable=False),
        sa.Column("issue_category", sa.String(length=100), nullable=False),
        sa.Column("escalation_level", sa.String(length=50), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("urgency_score", sa.Integer(), nullable=False),
        _jsonb("suggested_actions", "'[]'::jsonb"),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("model_used", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_ai_classifications_case_id"), "ai_classifications", ["case_id"], unique=False)
    op.create_index(op.f("ix_ai_classifications_created_at"), "ai_classifications", ["created_at"], unique=False)

    op.create_table(
        "document_templates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("template_name", sa.String(length=100), nullable=False),
        sa.Column("form_type", _enum("document_type"), nullable=False),
        sa.Column("template_path", sa.String(length=500), nullable=True),
        sa.Column("version", sa.String(length=20), nullable=False, server_default="1.0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _jsonb("field_mappings"),
        _jsonb("validation_rules"),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_name"),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("case_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("document_type", _enum("document_type"), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False, server_default="application/pdf"),
        sa.Column("file_hash", sa.String(length=64), nullable=False),
        sa.Column("blockchain_tx_hash", sa.String(length=100), nullable=True),
        sa.Column("qr_code_path", sa.String(length=500), nullable=True),
        sa.Column("status", _enum("document_status"), nullable=False, server_default="Generated"),
        sa.Column("verification_status", _enum("verification_status"), nullable=False, server_default="Pending"),
        _jsonb("metadata"),
        _jsonb("form_data"),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_downloaded", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_documents_file_hash"), "documents", ["file_hash"], unique=True)
    for column in ("case_id", "created_by", "document_type", "status", "created_at"):
        op.create_index(op.f(f"ix_documents_{column}"), "documents", [column], unique=False)

    op.create_table(
        "document_access_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("access_type", _enum("document_access_type"), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("accessed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_document_access_logs_document_id"), "document_access_logs", ["document_id"], unique=False)
    op.create_index(op.f("ix_document_access_logs_accessed_at"), "document_access_logs", ["accessed_at"], unique=False)

    op.create_table(
        "document_shares",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("shared_by", sa.Uuid(), nullable=True),
        sa.Column("share_token", sa.String(length=255), nullable=False),
        sa.Column("share_type", _enum("document_share_type"), nullable=False, server_default="private"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_downloads", sa.Integer(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shared_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_document_shares_document_id"), "document_shares", ["document_id"], unique=False)
    op.create_index(op.f("ix_document_shares_share_token"), "document_shares", ["share_token"], unique=True)

    op.create_table(
        "user_tiers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("tier", _enum("user_tier"), nullable=False, server_default="Tier 1"),
        sa.Column("eth_balance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("eth_address", sa.String(length=42), nullable=False),
        sa.Column("last_balance_check", sa.DateTime(timezone=True), nullable=False),
        sa.Column("balance_check_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tier_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("previous_tier", _enum("user_tier"), nullable=True),
        sa.Column("tier_upgrade_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tier_downgrade_count", sa.Integer(), nullable=False, server_default="0"),
        _jsonb("metadata"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("eth_balance >= 0", name="user_tiers_eth_balance_non_negative"),
    )
    op.create_index(op.f("ix_user_tiers_user_id"), "user_tiers", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_tiers_eth_address"), "user_tiers", ["eth_address"], unique=False)
    op.create_index(
        "uq_user_tiers_active_user",
        "user_tiers",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "tier_permissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tier", _enum("user_tier"), nullable=False),
        sa.Column("permission_name", sa.String(length=100), nullable=False),
        sa.Column("permission_type", _enum("tier_permission_type"), nullable=False),
        _jsonb("permission_value"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tier", "permission_name", name="uq_tier_permissions_tier_name"),
    )
    op.create_index(op.f("ix_tier_permissions_tier"), "tier_permissions", ["tier"], unique=False)

    op.create_table(
        "tier_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("old_tier", _enum("user_tier"), nullable=True),
        sa.Column("new_tier", _enum("user_tier"), nullable=False),
        sa.Column("old_balance", sa.Float(), nullable=True),
        sa.Column("new_balance", sa.Float(), nullable=True),
        sa.Column("eth_address", sa.String(length=42), nullable=True),
        sa.Column("change_reason", _enum("tier_change_reason"), nullable=False),
        sa.Column("triggered_by", _enum("tier_triggered_by"), nullable=False, server_default="automatic"),
        sa.Column("tx_hash", sa.String(length=100), nullable=True),
        _jsonb("change_metadata"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tier_history_user_id"), "tier_history", ["user_id"], unique=False)
    op.create_index(op.f("ix_tier_history_created_at"), "tier_history", ["created_at"], unique=False)

    op.create_table(
        "blockchain_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("document_id", sa.Uuid(), nullable=True),
        sa.Column("case_id", sa.Uuid(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("tx_hash", sa.String(length=100), nullable=False),
        sa.Column("document_hash", sa.String(length=64), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("gas_used", sa.BigInteger(), nullable=True),
        sa.Column("status", _enum("blockchain_transaction_status"), nullable=False, server_default="Pending"),
        sa.Column("network", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_blockchain_transactions_tx_hash"), "blockchain_transactions", ["tx_hash"], unique=True)
    for column in ("document_id", "case_id", "user_id", "document_hash", "created_at"):
        op.create_index(
            op.f(f"ix_blockchain_transactions_{column}"), "blockchain_transactions", [column], unique=False
        )

    op.create_table(
        "secure_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("reference_code", sa.String(length=20), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("descriptions", sa.Text(), nullable=False),
        sa.Column("submission_ip", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_secure_entries_reference_code"), "secure_entries", ["reference_code"], unique=True)


def downgrade() -> None:
    for table in TABLES:
        op.drop_table(table)
    for enum_name in reversed(list(ENUMS)):
        op.execute(sa.text(f"DROP TYPE IF EXISTS {enum_name}"))
