"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# create_type=False prevents create_table from auto-creating these
import_status_enum = postgresql.ENUM(
    "queued", "processing", "completed", "failed",
    name="import_status_enum",
    create_type=False,
)

row_status_enum = postgresql.ENUM(
    "pending", "processing", "success", "error",
    name="row_status_enum",
    create_type=False,
)


def upgrade() -> None:
    # Create enums explicitly with IF NOT EXISTS for idempotency
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE import_status_enum AS ENUM "
        "('queued','processing','completed','failed'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$;"
    ))
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE row_status_enum AS ENUM "
        "('pending','processing','success','error'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$;"
    ))

    op.create_table(
        "imports",
        sa.Column("id", sa.UUID(), nullable=False, default=sa.text("gen_random_uuid()")),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("status", import_status_enum, nullable=False, server_default="queued"),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("success_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("webhook_url", sa.String(2048), nullable=True),
        sa.Column("celery_task_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "import_rows",
        sa.Column("id", sa.UUID(), nullable=False, default=sa.text("gen_random_uuid()")),
        sa.Column("import_id", sa.UUID(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document", sa.String(14), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False, server_default=""),
        sa.Column("address", sa.String(255), nullable=False, server_default=""),
        sa.Column("number", sa.String(50), nullable=False, server_default=""),
        sa.Column("district", sa.String(255), nullable=False, server_default=""),
        sa.Column("state", sa.String(2), nullable=False, server_default=""),
        sa.Column("postal_code", sa.String(8), nullable=False, server_default=""),
        sa.Column("due_date", sa.String(10), nullable=False),
        sa.Column("status", row_status_enum, nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["import_id"], ["imports.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_rows_import_id", "import_rows", ["import_id"])
    op.create_index("ix_import_rows_status", "import_rows", ["status"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.UUID(), nullable=False, default=sa.text("gen_random_uuid()")),
        sa.Column("import_row_id", sa.UUID(), nullable=False),
        sa.Column("id_transaction", sa.String(255), nullable=False),
        sa.Column("boleto_url", sa.String(2048), nullable=False),
        sa.Column("boleto_code", sa.String(255), nullable=False),
        sa.Column("pdf", sa.Text(), nullable=False),
        sa.Column("due_date", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["import_row_id"], ["import_rows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("import_row_id"),
    )
    op.create_index("ix_transactions_id_transaction", "transactions", ["id_transaction"])


def downgrade() -> None:
    op.drop_table("transactions")
    op.drop_table("import_rows")
    op.drop_table("imports")
    op.execute(sa.text("DROP TYPE IF EXISTS row_status_enum"))
    op.execute(sa.text("DROP TYPE IF EXISTS import_status_enum"))
