from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pep_portal.core.access import get_employee_or_404, parse_uuid
from pep_portal.core.config import settings
from pep_portal.core.hierarchy import (
    build_hierarchy_tree,
    collect_pending_emails,
    count_by_status,
    find_subordinate_ids,
)
from pep_portal.core.security import get_current_identity, require_hr_admin
from pep_portal.db.session import get_db
from pep_portal.models.employee import Employee
from pep_portal.models.evaluation import Evaluation
from pep_portal.schemas.auth import TokenClaims
from pep_portal.schemas.directory import (
    DirectoryRecordOut,
    HierarchyResponse,
    SubordinateCheck,
)
from pep_portal.schemas.evaluation import as_utc

router = APIRouter(tags=["directory"])


def employee_to_out(emp: Employee) -> DirectoryRecordOut:
    return DirectoryRecordOut(
        id=str(emp.id),
        name=emp.full_name,
        name_first=emp.name_first,
        name_last=emp.name_last,
        job_title=emp.job_title,
        department=emp.department,
        email=emp.email,
        reports_to=str(emp.reports_to) if emp.reports_to else None,
        is_hr_admin=emp.is_hr_admin,
    )


def _active_employees(db: Session) -> list[Employee]:
    return db.query(Employee).filter(Employee.is_active.is_(True)).all()


def _hierarchy_records(db: Session, employees: list[Employee], period_year: int) -> list[dict]:
    ids = [emp.id for emp in employees]
    evaluations = {}
    if ids:
        rows = (
            db.query(Evaluation)
            .filter(Evaluation.employee_id.in_(ids), Evaluation.period_year == period_year)
            .all()
        )
        evaluations = {row.employee_id: row for row in rows}

    records = []
    for emp in employees:
        e = evaluations.get(emp.id)
        records.append({
            "id": str(emp.id),
            "name": emp.full_name,
            "reports_to": str(emp.reports_to) if emp.reports_to else None,
            "job_title": emp.job_title,
            "department": emp.department,
            "email": emp.email,
            "evaluation_status": e.status if e else None,
            "submitted_at": as_utc(e.submitted_at) if e else None,
            "pdf_url": e.pdf_url if e else None,
        })
    return records


def _hierarchy_response(records: list[dict], root_id: str | None) -> HierarchyResponse:
    tree = build_hierarchy_tree(records, root_id=root_id)
    return HierarchyResponse(
        hierarchy=tree,
        stats=count_by_status(tree),
        reminder_emails=collect_pending_emails(tree),
    )


@router.get("/directory/{employee_id}", response_model=DirectoryRecordOut)
def fetch_directory_record(
    employee_id: str,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    return employee_to_out(get_employee_or_404(db, employee_id))


@router.get("/team/check-subordinates", response_model=SubordinateCheck)
def check_subordinates(
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    me = parse_uuid(identity.employee_id, detail="Employee not found")
    exists = (
        db.query(Employee.id)
        .filter(
            Employee.reports_to == me,
            Employee.id != me,
            Employee.is_active.is_(True),
        )
        .first()
    )
    return SubordinateCheck(has_subordinates=exists is not None)


@router.get("/team/hierarchy", response_model=HierarchyResponse)
def team_hierarchy(
    year: int = Query(default=settings.DEFAULT_PERIOD_YEAR),
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    employees = _active_employees(db)
    everyone = [{"id": str(emp.id), "reports_to": str(emp.reports_to)} for emp in employees]
    below = find_subordinate_ids(everyone, identity.employee_id)
    team = [emp for emp in employees if str(emp.id) in below]
    return _hierarchy_response(_hierarchy_records(db, team, year), root_id=identity.employee_id)


@router.get("/company/hierarchy", response_model=HierarchyResponse)
def company_hierarchy(
    year: int = Query(default=settings.DEFAULT_PERIOD_YEAR),
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(require_hr_admin),
):
    return _hierarchy_response(_hierarchy_records(db, _active_employees(db), year), root_id=None)
