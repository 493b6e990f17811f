from typing import Any

from pep_portal.schemas.evaluation import EmployeeInfo, QuantitativeData, SummaryData

# (section, field, label)
REQUIRED_FOR_SUBMIT: tuple[tuple[str, str, str], ...] = (
    ("employee_info", "name", "Employee name"),
    ("employee_info", "title", "Job title"),
    ("employee_info", "department", "Department"),
    ("quantitative", "work_accomplishments", "Work accomplishments"),
    ("summary", "employee_summary", "Employee summary"),
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def collect_submit_errors(
    employee_info: EmployeeInfo | None,
    quantitative: QuantitativeData | None,
    summary: SummaryData | None,
) -> list[dict[str, str]]:
    """
    Returns a list of {field, code, message}. Empty list means the record can be submitted.
    """
    sections = {
        "employee_info": employee_info,
        "quantitative": quantitative,
        "summary": summary,
    }
    errors: list[dict[str, str]] = []
    for section, field, label in REQUIRED_FOR_SUBMIT:
        model = sections[section]
        value = getattr(model, field, None) if model is not None else None
        if _blank(value):
            errors.append({
                "field": f"{section}.{field}",
                "code": "required",
                "message": f"{label} is required",
            })
    return errors
