import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from pep_portal.core.security import create_access_token
from pep_portal.models.employee import Employee
from pep_portal.models.evaluation import Evaluation


def create_employee(
    db: Session,
    first: str,
    last: str = "Tester",
    *,
    manager: Employee | None = None,
    job_title: str | None = "Engineer",
    department: str | None = "Engineering",
    email: str | None = None,
    is_hr_admin: bool = False,
    is_active: bool = True,
) -> Employee:
    emp_id = uuid.uuid4()
    e = Employee(
        id=emp_id,
        name_first=first,
        name_last=last,
        job_title=job_title,
        department=department,
        email=email if email is not None else f"{first.lower()}@local.test",
        reports_to=manager.id if manager else emp_id,
        is_hr_admin=is_hr_admin,
        is_active=is_active,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return e


def token_for(emp: Employee, **overrides) -> str:
    claims = {
        "employee_id": str(emp.id),
        "name": emp.full_name,
        "email": emp.email,
        "reports_to": str(emp.reports_to),
        "is_hr_admin": emp.is_hr_admin,
    }
    claims.update(overrides)
    return create_access_token(claims)


def auth_headers(emp: Employee, **overrides) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(emp, **overrides)}"}


def complete_sections(name: str = "Ada Tester") -> dict:
    """Section payloads that pass submit validation."""
    return {
        "employee_info": {
            "name": name,
            "title": "Engineer",
            "department": "Engineering",
            "period_year": 2025,
        },
        "quantitative": {
            "work_accomplishments": "Shipped the billing rewrite",
            "overall_quantitative_rating": "excellent",
        },
        "qualitative": {"leadership": 4, "safety": 5},
        "summary": {
            "employee_summary": "Strong year",
            "targets_for_next_year": "Mentor two engineers",
            "overall_rating": "excellent",
        },
    }


def create_evaluation(
    db: Session,
    emp: Employee,
    *,
    period_year: int = 2025,
    status: str = "draft",
    sections: dict | None = None,
    **fields,
) -> Evaluation:
    now = datetime.now(timezone.utc)
    if status in ("submitted", "reviewed", "signed"):
        fields.setdefault("submitted_at", now)
    if status == "reopened":
        fields.setdefault("submitted_at", now)
        fields.setdefault("reopened_at", now)
    e = Evaluation(
        employee_id=emp.id,
        period_year=period_year,
        status=status,
        **(sections if sections is not None else complete_sections(emp.full_name)),
        **fields,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return e
