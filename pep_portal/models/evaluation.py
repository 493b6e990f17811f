import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from pep_portal.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Evaluation(Base):
    __tablename__ = "pep_evaluations"
    __table_args__ = (
        UniqueConstraint("employee_id", "period_year", name="uq_pep_evaluations_employee_period"),
        CheckConstraint(
            "status IN ('draft','reopened','submitted','reviewed','signed')",
            name="ck_pep_evaluations_status",
        ),
        # Submitted family => must have been submitted at least once
        CheckConstraint(
            "(status NOT IN ('submitted','reviewed','signed')) OR (submitted_at IS NOT NULL)",
            name="ck_pep_eval_ts_submitted",
        ),
        # REOPENED => reopen must be stamped
        CheckConstraint(
            "(status <> 'reopened') OR (reopened_at IS NOT NULL)",
            name="ck_pep_eval_ts_reopened",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    # Section payloads; NULL means never stored
    employee_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    quantitative: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    qualitative: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    reopen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    pdf_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    pdf_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
