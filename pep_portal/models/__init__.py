from pep_portal.models.audit_event import AuditEvent
from pep_portal.models.employee import Employee
from pep_portal.models.evaluation import Evaluation

__all__ = ["AuditEvent", "Employee", "Evaluation"]
