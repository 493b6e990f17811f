from datetime import datetime

from pydantic import BaseModel, Field


class DirectoryRecordOut(BaseModel):
    id: str
    name: str
    name_first: str
    name_last: str
    job_title: str | None
    department: str | None
    email: str | None
    # Equal to id for the top of the company (no manager)
    reports_to: str | None
    is_hr_admin: bool = False


class HierarchyNode(BaseModel):
    id: str
    name: str
    job_title: str | None = None
    department: str | None = None
    evaluation_status: str = "not_started"
    submitted_at: datetime | None = None
    pdf_url: str | None = None
    email: str | None = None
    children: list["HierarchyNode"] = Field(default_factory=list)


class HierarchyStats(BaseModel):
    total: int = 0
    submitted: int = 0  # submitted, reviewed, signed
    in_progress: int = 0  # draft, reopened
    not_started: int = 0


class HierarchyResponse(BaseModel):
    hierarchy: list[HierarchyNode]
    stats: HierarchyStats
    reminder_emails: list[str] = Field(default_factory=list)


class SubordinateCheck(BaseModel):
    has_subordinates: bool
