"""initial pep schema

Revision ID: 5f2c9e1a7b30
Revises:
Create Date: 2025-11-03 09:12:44.118204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "5f2c9e1a7b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name_first", sa.String(length=100), nullable=False),
        sa.Column("name_last", sa.String(length=100), nullable=False),
        sa.Column("job_title", sa.String(length=200), nullable=True),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("reports_to", sa.Uuid(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_hr_admin", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["reports_to"], ["employees.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_employees_email", "employees", ["email"])
    op.create_index("ix_employees_reports_to", "employees", ["reports_to"])

    op.create_table(
        "pep_evaluations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("employee_info", sa.JSON(), nullable=True),
        sa.Column("quantitative", sa.JSON(), nullable=True),
        sa.Column("qualitative", sa.JSON(), nullable=True),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_by", sa.Uuid(), nullable=True),
        sa.Column("reopen_reason", sa.Text(), nullable=True),
        sa.Column("pdf_url", sa.String(length=1000), nullable=True),
        sa.Column("pdf_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft','reopened','submitted','reviewed','signed')",
            name="ck_pep_evaluations_status",
        ),
        sa.CheckConstraint(
            "(status NOT IN ('submitted','reviewed','signed')) OR (submitted_at IS NOT NULL)",
            name="ck_pep_eval_ts_submitted",
        ),
        sa.CheckConstraint(
            "(status <> 'reopened') OR (reopened_at IS NOT NULL)",
            name="ck_pep_eval_ts_reopened",
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reopened_by"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "period_year", name="uq_pep_evaluations_employee_period"),
    )
    op.create_index("ix_pep_evaluations_employee_id", "pep_evaluations", ["employee_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_employee_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("event_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["actor_employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_index("ix_pep_evaluations_employee_id", table_name="pep_evaluations")
    op.drop_table("pep_evaluations")
    op.drop_index("ix_employees_reports_to", table_name="employees")
    op.drop_index("ix_employees_email", table_name="employees")
    op.drop_table("employees")
