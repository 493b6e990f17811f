"""
Evaluation status state machine.

    draft ──submit──> submitted ──review──> reviewed ──sign──> signed
                        │   ^
                  reopen│   │submit
                        v   │
                      reopened

reviewed/signed may also be reopened by the direct manager. review and sign
belong to the HR workflow; this portal only accepts them as read-only states.
"""

DRAFT = "draft"
REOPENED = "reopened"
SUBMITTED = "submitted"
REVIEWED = "reviewed"
SIGNED = "signed"

# Pseudo-status used by rollups for employees with no record yet.
NOT_STARTED = "not_started"

ALL_STATUSES = (DRAFT, REOPENED, SUBMITTED, REVIEWED, SIGNED)

EDITABLE_STATUSES = frozenset({DRAFT, REOPENED})
READ_ONLY_STATUSES = frozenset({SUBMITTED, REVIEWED, SIGNED})

SUBMIT = "submit"
REOPEN = "reopen"
REVIEW = "review"
SIGN = "sign"

TRANSITIONS: dict[tuple[str, str], str] = {
    (DRAFT, SUBMIT): SUBMITTED,
    (REOPENED, SUBMIT): SUBMITTED,
    (SUBMITTED, REOPEN): REOPENED,
    (REVIEWED, REOPEN): REOPENED,
    (SIGNED, REOPEN): REOPENED,
    (SUBMITTED, REVIEW): REVIEWED,
    (REVIEWED, SIGN): SIGNED,
}


class IllegalTransition(ValueError):
    def __init__(self, current: str, event: str):
        self.current = current
        self.event = event
        super().__init__(f"Cannot {event} an evaluation in status '{current}'")


def is_read_only(status: str | None) -> bool:
    return status in READ_ONLY_STATUSES


def can_transition(current: str, event: str) -> bool:
    return (current, event) in TRANSITIONS


def next_status(current: str, event: str) -> str:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise IllegalTransition(current, event) from None
