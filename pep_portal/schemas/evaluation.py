import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from pep_portal.core.status import DRAFT, is_read_only

EvaluationStatus = Literal["draft", "reopened", "submitted", "reviewed", "signed"]

OverallRating = Literal[
    "exceptional",
    "excellent",
    "fully_satisfactory",
    "marginal",
    "unacceptable",
    "cannot_evaluate",
]

# 1-5 Likert score; None means "not applicable"
Score = Annotated[int, Field(ge=1, le=5)]

RATING_LABELS: dict[str, str] = {
    "exceptional": "Exceptional (5)",
    "excellent": "Excellent (4)",
    "fully_satisfactory": "Fully Satisfactory (3)",
    "marginal": "Marginal (2)",
    "unacceptable": "Unacceptable (1)",
    "cannot_evaluate": "Cannot Evaluate",
}

QUALITATIVE_FACTOR_GROUPS: dict[str, tuple[tuple[str, str], ...]] = {
    "Planning & Organization": (
        ("forecasting_planning_skills", "Forecasting & Planning Skills"),
        ("administration_skills", "Administration Skills"),
        ("leadership", "Leadership"),
        ("safety", "Safety"),
        ("developing_employees", "Developing Employees"),
    ),
    "Interpersonal": (
        ("communication_skills", "Communication Skills"),
        ("developing_cooperation_teamwork", "Developing Cooperation & Teamwork"),
        ("customer_satisfaction", "Customer Satisfaction"),
        ("peer_relationships", "Peer Relationships"),
        ("subordinate_relationships", "Subordinate Relationships"),
    ),
    "Individual": (
        ("job_knowledge_know_how", "Job Knowledge/Know How"),
        ("quality_image", "Quality Image"),
        ("attitude", "Attitude"),
        ("decision_making", "Decision Making"),
        ("creativity_initiative", "Creativity/Initiative"),
    ),
}


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class EmployeeInfo(BaseModel):
    name: str = ""
    title: str = ""
    department: str = ""
    period_year: int | None = None
    supervisor_id: str | None = None
    supervisor_name: str | None = None


class PerformanceObjective(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    objective: str = ""
    measurable_target: str = ""
    actual: str = ""


class CompetencyRating(BaseModel):
    competency_id: str
    competency_name: str = ""
    score: Score | None = None
    comments: str = ""


class QuantitativeData(BaseModel):
    performance_objectives: list[PerformanceObjective] = Field(default_factory=list)
    work_accomplishments: str = ""
    personal_development: str = ""
    competencies: list[CompetencyRating] = Field(default_factory=list)
    overall_quantitative_rating: OverallRating | None = None


class QualitativeFactors(BaseModel):
    # Planning & Organization
    forecasting_planning_skills: Score | None = None
    administration_skills: Score | None = None
    leadership: Score | None = None
    safety: Score | None = None
    developing_employees: Score | None = None
    # Interpersonal
    communication_skills: Score | None = None
    developing_cooperation_teamwork: Score | None = None
    customer_satisfaction: Score | None = None
    peer_relationships: Score | None = None
    subordinate_relationships: Score | None = None
    # Individual
    job_knowledge_know_how: Score | None = None
    quality_image: Score | None = None
    attitude: Score | None = None
    decision_making: Score | None = None
    creativity_initiative: Score | None = None


class SummaryData(BaseModel):
    employee_summary: str = ""
    targets_for_next_year: str = ""
    qualitative_rating: OverallRating | None = None
    overall_rating: OverallRating | None = None


SECTION_MODELS: dict[str, type[BaseModel]] = {
    "employee_info": EmployeeInfo,
    "quantitative": QuantitativeData,
    "qualitative": QualitativeFactors,
    "summary": SummaryData,
}


class EvaluationSections(BaseModel):
    """
    Wire shape of the four sections. None means the section was never
    stored; an instance with blank fields was stored explicitly empty.
    """
    employee_info: EmployeeInfo | None = None
    quantitative: QuantitativeData | None = None
    qualitative: QualitativeFactors | None = None
    summary: SummaryData | None = None


# ---------------------------------------------------------------------------
# Remote procedure payloads
# ---------------------------------------------------------------------------

class EvaluationOut(EvaluationSections):
    id: str
    employee_id: str
    period_year: int
    status: EvaluationStatus
    submitted_at: datetime | None = None
    reopened_at: datetime | None = None
    reopened_by: str | None = None
    reopen_reason: str | None = None
    pdf_url: str | None = None
    pdf_generated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SaveEvaluationPayload(EvaluationSections):
    evaluation_id: str | None = None
    period_year: int
    status: EvaluationStatus = "draft"


class SaveResult(BaseModel):
    id: str


class SubmitEvaluationPayload(EvaluationSections):
    evaluation_id: str
    pdf_url: str | None = None


class ReopenEvaluationPayload(BaseModel):
    evaluation_id: str
    reason: str = Field(min_length=1, max_length=2000)


class DocumentUploadResult(BaseModel):
    pdf_url: str
    pdf_generated_at: datetime


# ---------------------------------------------------------------------------
# Client aggregate
# ---------------------------------------------------------------------------

class EvaluationRecord(BaseModel):
    id: str | None = None
    employee_id: str | None = None
    period_year: int
    status: EvaluationStatus = DRAFT

    employee_info: EmployeeInfo = Field(default_factory=EmployeeInfo)
    quantitative: QuantitativeData = Field(default_factory=QuantitativeData)
    qualitative: QualitativeFactors = Field(default_factory=QualitativeFactors)
    summary: SummaryData = Field(default_factory=SummaryData)

    submitted_at: datetime | None = None
    reopened_at: datetime | None = None
    reopened_by: str | None = None
    reopen_reason: str | None = None
    pdf_url: str | None = None
    pdf_generated_at: datetime | None = None

    # Advisory only: used to pick between the local cache and the store.
    last_saved_at: datetime | None = None

    @property
    def read_only(self) -> bool:
        return is_read_only(self.status)

    def sections(self) -> dict[str, BaseModel]:
        return {name: getattr(self, name) for name in SECTION_MODELS}

    def lifecycle_fields(self) -> dict:
        return {
            "status": self.status,
            "submitted_at": self.submitted_at,
            "reopened_at": self.reopened_at,
            "reopened_by": self.reopened_by,
            "reopen_reason": self.reopen_reason,
            "pdf_url": self.pdf_url,
            "pdf_generated_at": self.pdf_generated_at,
        }

    @classmethod
    def from_out(
        cls,
        out: EvaluationOut,
        *,
        default_employee_info: EmployeeInfo | None = None,
    ) -> "EvaluationRecord":
        """Hydrate a stored record; sections that were never stored get their defaults."""
        return cls(
            id=out.id,
            employee_id=out.employee_id,
            period_year=out.period_year,
            status=out.status,
            employee_info=out.employee_info or default_employee_info or EmployeeInfo(period_year=out.period_year),
            quantitative=out.quantitative or QuantitativeData(),
            qualitative=out.qualitative or QualitativeFactors(),
            summary=out.summary or SummaryData(),
            submitted_at=as_utc(out.submitted_at),
            reopened_at=as_utc(out.reopened_at),
            reopened_by=out.reopened_by,
            reopen_reason=out.reopen_reason,
            pdf_url=out.pdf_url,
            pdf_generated_at=as_utc(out.pdf_generated_at),
            last_saved_at=as_utc(out.updated_at),
        )
