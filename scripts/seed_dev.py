# seed_dev.py
import uuid

from sqlalchemy.orm import Session

from pep_portal.core.security import create_access_token
from pep_portal.db.base import Base
from pep_portal.db.session import SessionLocal, engine
from pep_portal.models.employee import Employee


def get_or_create_employee(
    db: Session,
    email: str,
    first: str,
    last: str,
    *,
    job_title: str,
    department: str,
    manager: Employee | None = None,
    is_hr_admin: bool = False,
) -> Employee:
    e = db.query(Employee).filter(Employee.email == email).one_or_none()
    if e:
        # keep these up to date in dev
        changed = False
        if manager is not None and e.reports_to != manager.id:
            e.reports_to = manager.id
            changed = True
        if e.is_hr_admin != is_hr_admin:
            e.is_hr_admin = is_hr_admin
            changed = True
        if not e.is_active:
            e.is_active = True
            changed = True
        if changed:
            db.commit()
            db.refresh(e)
        return e

    emp_id = uuid.uuid4()
    e = Employee(
        id=emp_id,
        name_first=first,
        name_last=last,
        job_title=job_title,
        department=department,
        email=email,
        is_hr_admin=is_hr_admin,
        # top of the chart reports to itself
        reports_to=manager.id if manager else emp_id,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return e


def dev_token(e: Employee) -> str:
    return create_access_token(
        {
            "employee_id": str(e.id),
            "name": e.full_name,
            "email": e.email,
            "reports_to": str(e.reports_to),
            "is_hr_admin": e.is_hr_admin,
        },
        expires_minutes=60 * 24 * 7,
    )


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        hr = get_or_create_employee(
            db, "hr@local.test", "Helen", "Ross",
            job_title="HR Director", department="People", is_hr_admin=True,
        )
        mgr = get_or_create_employee(
            db, "manager@local.test", "Marcus", "Lee",
            job_title="Engineering Manager", department="Engineering", manager=hr,
        )
        ada = get_or_create_employee(
            db, "ada@local.test", "Ada", "Byron",
            job_title="Software Engineer", department="Engineering", manager=mgr,
        )
        sam = get_or_create_employee(
            db, "sam@local.test", "Sam", "Okafor",
            job_title="QA Engineer", department="Engineering", manager=mgr,
        )

        print("Seeded employees:")
        for e in (hr, mgr, ada, sam):
            print(f"{e.full_name:<14} {e.email:<20} {e.id}")
            print(f"  token: {dev_token(e)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
