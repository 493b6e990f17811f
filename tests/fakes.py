import uuid
from datetime import datetime, timezone

from pep_portal.client.errors import RemoteError
from pep_portal.core.status import READ_ONLY_STATUSES
from pep_portal.schemas.directory import DirectoryRecordOut
from pep_portal.schemas.evaluation import (
    DocumentUploadResult,
    EvaluationOut,
    EvaluationRecord,
)

OWNER_ID = str(uuid.uuid4())
BOSS_ID = str(uuid.uuid4())
GRAND_ID = str(uuid.uuid4())


def directory_record(id: str, first: str, last: str = "Tester", reports_to: str | None = None, **extra) -> DirectoryRecordOut:
    return DirectoryRecordOut(
        id=id,
        name=f"{first} {last}",
        name_first=first,
        name_last=last,
        job_title=extra.pop("job_title", "Engineer"),
        department=extra.pop("department", "Engineering"),
        email=extra.pop("email", f"{first.lower()}@local.test"),
        reports_to=reports_to or id,
        **extra,
    )


class FakeRemote:
    """In-memory stand-in for RemoteStore. `failures` maps a method name to the exception it raises."""

    def __init__(self, owner_id: str, directory: list[DirectoryRecordOut]):
        self.owner_id = owner_id
        self.directory = {d.id: d for d in directory}
        self.evaluations: dict[str, EvaluationOut] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.uploads: list[bytes] = []
        self.beacons: list[EvaluationRecord] = []
        self.subordinates = False

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def seed(self, **fields) -> EvaluationOut:
        now = self._now()
        fields.setdefault("id", str(uuid.uuid4()))
        fields.setdefault("employee_id", self.owner_id)
        fields.setdefault("period_year", 2025)
        fields.setdefault("status", "draft")
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        out = EvaluationOut(**fields)
        self.evaluations[out.id] = out
        return out

    def _find(self, period_year: int) -> EvaluationOut | None:
        for e in self.evaluations.values():
            if e.employee_id == self.owner_id and e.period_year == period_year:
                return e
        return None

    def _update(self, evaluation_id: str, **changes) -> EvaluationOut:
        out = self.evaluations[evaluation_id].model_copy(update=changes)
        self.evaluations[evaluation_id] = out
        return out

    async def fetch_directory_record(self, employee_id: str) -> DirectoryRecordOut:
        self._call("fetch_directory_record")
        try:
            return self.directory[employee_id]
        except KeyError:
            raise RemoteError(404, "Employee not found") from None

    async def fetch_evaluation(self, period_year: int) -> EvaluationOut | None:
        self._call("fetch_evaluation")
        return self._find(period_year)

    async def fetch_evaluation_by_id(self, evaluation_id: str) -> EvaluationOut:
        self._call("fetch_evaluation_by_id")
        if evaluation_id not in self.evaluations:
            raise RemoteError(404, "Evaluation not found")
        return self.evaluations[evaluation_id]

    async def check_subordinates(self) -> bool:
        self._call("check_subordinates")
        return self.subordinates

    async def save_evaluation(self, record: EvaluationRecord) -> str:
        self._call("save_evaluation")
        existing = self.evaluations.get(record.id) if record.id else self._find(record.period_year)
        if existing is not None and existing.status in READ_ONLY_STATUSES:
            raise RemoteError(409, f"Evaluation is {existing.status} and read-only")
        if existing is not None:
            self._update(existing.id, updated_at=self._now(), **record.sections())
            return existing.id
        return self.seed(period_year=record.period_year, **record.sections()).id

    async def submit_evaluation(self, evaluation_id: str, record: EvaluationRecord, pdf_url: str | None = None) -> None:
        self._call("submit_evaluation")
        changes = {"status": "submitted", "submitted_at": self._now(), "updated_at": self._now(), **record.sections()}
        if pdf_url:
            changes["pdf_url"] = pdf_url
        self._update(evaluation_id, **changes)

    async def reopen_evaluation(self, evaluation_id: str, reason: str) -> None:
        self._call("reopen_evaluation")
        self._update(
            evaluation_id,
            status="reopened",
            reopened_at=self._now(),
            reopen_reason=reason,
            updated_at=self._now(),
        )

    async def upload_document(self, evaluation_id: str, data: bytes) -> DocumentUploadResult:
        self._call("upload_document")
        self.uploads.append(data)
        url = f"https://files.test/pdfs/{evaluation_id}/{len(self.uploads)}.pdf"
        out = self._update(evaluation_id, pdf_url=url, pdf_generated_at=self._now())
        return DocumentUploadResult(pdf_url=url, pdf_generated_at=out.pdf_generated_at)

    def send_beacon(self, record: EvaluationRecord) -> None:
        self.calls.append("send_beacon")
        self.beacons.append(record)
