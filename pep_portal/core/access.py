import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from pep_portal.core.hierarchy import is_direct_manager
from pep_portal.models.employee import Employee
from pep_portal.models.evaluation import Evaluation
from pep_portal.schemas.auth import TokenClaims


def parse_uuid(value: str, *, detail: str = "Not found") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=404, detail=detail)


def get_employee_or_404(db: Session, employee_id) -> Employee:
    emp = db.get(Employee, parse_uuid(employee_id, detail="Employee not found"))
    if not emp or not emp.is_active:
        raise HTTPException(status_code=404, detail="Employee not found")
    return emp


def is_manager_above(db: Session, reviewer_id, subject: Employee) -> bool:
    """Walk the reporting line upwards; True if reviewer appears anywhere above subject."""
    reviewer = str(reviewer_id)
    seen = {subject.id}
    current = subject
    while current.reports_to is not None and current.reports_to not in seen:
        if str(current.reports_to) == reviewer:
            return True
        seen.add(current.reports_to)
        current = db.get(Employee, current.reports_to)
        if current is None:
            return False
    return False


def assert_user_owns_evaluation(identity: TokenClaims, evaluation: Evaluation):
    if str(evaluation.employee_id) != identity.employee_id:
        raise HTTPException(status_code=403, detail="Only the employee can modify their own evaluation")


def assert_user_is_direct_manager(db: Session, identity: TokenClaims, evaluation: Evaluation):
    subject = db.get(Employee, evaluation.employee_id)
    if not is_direct_manager(identity.employee_id, subject):
        raise HTTPException(status_code=403, detail="Only the direct manager can reopen this evaluation")


def assert_user_can_view_evaluation(db: Session, identity: TokenClaims, evaluation: Evaluation):
    if str(evaluation.employee_id) == identity.employee_id or identity.is_hr_admin:
        return
    subject = db.get(Employee, evaluation.employee_id)
    if subject is None or not is_manager_above(db, identity.employee_id, subject):
        raise HTTPException(status_code=403, detail="Not allowed to view this evaluation")
