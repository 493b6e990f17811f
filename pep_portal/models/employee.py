import uuid

from sqlalchemy import Boolean, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pep_portal.db.base import Base


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name_first: Mapped[str] = mapped_column(String(100), nullable=False)
    name_last: Mapped[str] = mapped_column(String(100), nullable=False)
    job_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)

    # Never null: the top of the company reports to itself
    reports_to: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_hr_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def full_name(self) -> str:
        return f"{self.name_first} {self.name_last}".strip()

    @property
    def has_manager(self) -> bool:
        return self.reports_to != self.id
