"""Documents and waitlist tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001_documents_waitlist"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    upload_status = sa.Enum("pending", "completed", "failed", name="upload_status")

    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_email", sa.String(), nullable=False),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("s3_key", sa.String(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("file_type", sa.String(), nullable=True),
        sa.Column("upload_status", upload_status, nullable=False, server_default="pending"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("s3_key", name="uq_documents_s3_key"),
    )
    op.create_index("ix_documents_user_email", "documents", ["user_email"])
    op.create_index("ix_documents_created_at", "documents", ["created_at"])

    op.create_table(
        "waitlist",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("position", sa.String(), nullable=True),
        sa.Column("industry", sa.String(), nullable=True),
        sa.Column("leads_per_week", sa.Integer(), nullable=True),
        sa.Column("company_size", sa.String(), nullable=True),
        sa.Column("use_case", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_waitlist_email", "waitlist", ["email"])


def downgrade() -> None:
    op.drop_index("ix_waitlist_email", table_name="waitlist")
    op.drop_table("waitlist")
    op.drop_index("ix_documents_created_at", table_name="documents")
    op.drop_index("ix_documents_user_email", table_name="documents")
    op.drop_table("documents")
    sa.Enum(name="upload_status").drop(op.get_bind(), checkfirst=True)
