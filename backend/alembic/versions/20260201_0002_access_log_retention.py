"""Keep document access logs after the document is deleted.

Revision ID: 20260201_0002
Revises: 20260101_0001
Create Date: 2026-02-01 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20260201_0002"
down_revision: Union[str, None] = "20260101_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FK_NAME = "document_access_logs_document_id_fkey"


def upgrade() -> None:
    op.add_column("document_access_logs", sa.Column("document_ref", sa.Uuid(), nullable=True))
    op.add_column("document_access_logs", sa.Column("file_name", sa.String(length=255), nullable=True))
    op.execute(
        """
        UPDATE document_access_logs AS log
        SET document_ref = log.document_id, file_name = documents.file_name
        FROM documents
        WHERE documents.id = log.document_id
        """
    )
    op.create_index(
        op.f("ix_document_access_logs_document_ref"),
        "document_access_logs",
        ["document_ref"],
        unique=False,
    )

    op.drop_constraint(FK_NAME, "document_access_logs", type_="foreignkey")
    op.alter_column("document_access_logs", "document_id", existing_type=sa.Uuid(), nullable=True)
    op.create_foreign_key(
        FK_NAME,
        "document_access_logs",
        "documents",
        ["document_id"],
        ["id"],
        ondelete="SET NULL",
    )


def downgrade() -> None:
    op.execute("DELETE FROM document_access_logs WHERE document_id IS NULL")
    op.drop_constraint(FK_NAME, "document_access_logs", type_="foreignkey")
    op.alter_column("document_access_logs", "document_id", existing_type=sa.Uuid(), nullable=False)
    op.create_foreign_key(
        FK_NAME,
        "document_access_logs",
        "documents",
        ["document_id"],
        ["id"],
        ondelete="CASCADE",
    )

    op.drop_index(op.f("ix_document_access_logs_document_ref"), table_name="document_access_logs")
    op.drop_column("document_access_logs", "file_name")
    op.drop_column("document_access_logs", "document_ref")
