"""add tenant-scoped idempotency_records table

Revision ID: 20261002_0002
Revises: 20261001_0001
Create Date: 2026-10-02 00:02:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261002_0002"
down_revision: Union[str, None] = "20261001_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

idempotency_request_type = sa.Enum(
    "checkout", "payment", "order_update", "webhook", name="idempotency_request_type"
)
idempotency_status = sa.Enum("processing", "completed", "failed", name="idempotency_status")


def upgrade() -> None:
    op.create_table(
        "idempotency_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_type", idempotency_request_type, nullable=False),
        sa.Column("request_path", sa.String(length=255), nullable=True),
        sa.Column("request_method", sa.String(length=10), nullable=True),
        sa.Column("request_fingerprint", sa.String(length=64), nullable=False),
        sa.Column(
            "response_data",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=True,
        ),
        sa.Column("response_status", sa.Integer(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("status", idempotency_status, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("attempts >= 1", name="ck_idempotency_records_attempts_positive"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_idem_tenant_key"),
    )
    op.create_index(
        "ix_idempotency_records_tenant_id_expires_at",
        "idempotency_records",
        ["tenant_id", "expires_at"],
        unique=False,
    )
    op.create_index(
        "ix_idempotency_records_status",
        "idempotency_records",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_idempotency_records_status", table_name="idempotency_records")
    op.drop_index("ix_idempotency_records_tenant_id_expires_at", table_name="idempotency_records")
    op.drop_table("idempotency_records")
    idempotency_status.drop(op.get_bind(), checkfirst=True)
    idempotency_request_type.drop(op.get_bind(), checkfirst=True)
