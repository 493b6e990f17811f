"""
Client-resident persistence for the evaluation being edited.

Every edit is mirrored synchronously to the device cache and written
through to the durable store as an independent task. Write-throughs are
neither queued nor coalesced: the last one to land wins.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from pep_portal.client.error_log import ErrorLogger
from pep_portal.client.errors import CacheError, NotAuthenticatedError, RemoteError, ValidationFailed
from pep_portal.client.identity import IdentityProvider
from pep_portal.client.remote import RemoteStore
from pep_portal.client.storage import LocalStorage
from pep_portal.core.config import settings
from pep_portal.core.status import DRAFT
from pep_portal.schemas.directory import DirectoryRecordOut
from pep_portal.schemas.evaluation import (
    SECTION_MODELS,
    EmployeeInfo,
    EvaluationOut,
    EvaluationRecord,
)

logger = logging.getLogger(__name__)

CACHE_KEY = "pep_evaluation_draft"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_errors(section: str, exc: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join([section, *(str(p) for p in err["loc"])]),
            "code": err["type"],
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


class PersistenceEngine:
    def __init__(
        self,
        remote: RemoteStore,
        identity: IdentityProvider,
        storage: LocalStorage,
        error_log: ErrorLogger,
        period_year: int | None = None,
    ) -> None:
        self.remote = remote
        self.identity = identity
        self.storage = storage
        self.error_log = error_log
        self.period_year = period_year or settings.DEFAULT_PERIOD_YEAR

        self.record: EvaluationRecord | None = None
        self.employee: DirectoryRecordOut | None = None
        self.supervisor_name: str = ""
        self.is_manager = False
        # True while a manager is looking at someone else's evaluation
        self.reviewing = False
        self.last_saved_at: datetime | None = None

        self._tasks: set[asyncio.Task] = set()

    @property
    def read_only(self) -> bool:
        return self.record is None or self.record.read_only or self.reviewing

    # -- cache -----------------------------------------------------------------

    def mirror_locally(self, record: EvaluationRecord | None = None) -> None:
        record = record or self.record
        if record is None or self.reviewing:
            return
        stamped = record.model_copy(update={"last_saved_at": _utcnow()})
        try:
            self.storage.set(CACHE_KEY, stamped.model_dump(mode="json"))
        except CacheError as exc:
            logger.warning("Local mirror failed: %s", exc)

    def read_cache(self) -> EvaluationRecord | None:
        try:
            raw = self.storage.get(CACHE_KEY)
        except CacheError as exc:
            logger.warning("Local cache unreadable: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return EvaluationRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding malformed local cache: %s", exc)
            return None

    def clear_cache(self) -> None:
        try:
            self.storage.remove(CACHE_KEY)
        except CacheError as exc:
            logger.warning("Could not clear local cache: %s", exc)

    # -- durable writes --------------------------------------------------------

    async def write_through(self, record: EvaluationRecord | None = None) -> None:
        record = record or self.record
        if record is None or record.read_only or self.reviewing:
            return
        if self.identity.token is None or self.employee is None:
            # No credential or directory not loaded yet: local only
            self.mirror_locally(record)
            return

        try:
            new_id = await self.remote.save_evaluation(record)
        except (RemoteError, NotAuthenticatedError) as exc:
            self.error_log.log(
                "save",
                "Auto-save failed",
                {"evaluation_id": record.id, "error": str(exc)},
                notify=False,
            )
            return

        self.last_saved_at = _utcnow()
        if record.id is None and new_id:
            current = self.record
            if current is not None and current.id is None and current.employee_id == record.employee_id:
                self.record = current.model_copy(update={"id": new_id})
                self.mirror_locally()

    def _schedule_write_through(self, record: EvaluationRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; edit kept in the local cache only")
            return
        task = loop.create_task(self.write_through(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def flush_on_unload(self) -> None:
        record = self.record
        if record is None:
            return
        self.mirror_locally(record)
        if record.id is None or record.read_only or self.reviewing or self.identity.token is None:
            return
        self.remote.send_beacon(record)

    # -- loading ---------------------------------------------------------------

    def _directory_employee_info(self, period_year: int) -> EmployeeInfo:
        emp = self.employee
        if emp is None:
            return EmployeeInfo(period_year=period_year)
        return EmployeeInfo(
            name=emp.name,
            title=emp.job_title or "",
            department=emp.department or "",
            period_year=period_year,
            supervisor_id=emp.reports_to if emp.reports_to != emp.id else None,
            supervisor_name=self.supervisor_name,
        )

    def fresh_draft(self, employee_id: str | None = None, period_year: int | None = None) -> EvaluationRecord:
        period_year = period_year or self.period_year
        return EvaluationRecord(
            id=None,
            employee_id=employee_id or (self.employee.id if self.employee else None),
            period_year=period_year,
            status=DRAFT,
            employee_info=self._directory_employee_info(period_year),
        )

    async def _load_directory(self, employee_id: str) -> None:
        self.employee = await self.remote.fetch_directory_record(employee_id)
        self.supervisor_name = ""
        manager_id = self.employee.reports_to
        if manager_id and manager_id != self.employee.id:
            try:
                manager = await self.remote.fetch_directory_record(manager_id)
                self.supervisor_name = manager.name
            except RemoteError as exc:
                logger.warning("Supervisor %s not found: %s", manager_id, exc)

    def _cache_belongs_to(self, cached: EvaluationRecord, employee_id: str | None, period_year: int,
                          durable: EvaluationOut | None) -> bool:
        if employee_id is None:
            return False
        if cached.employee_id != employee_id or cached.period_year != period_year:
            return False
        if durable is not None and cached.id is not None and cached.id != durable.id:
            return False
        return True

    def reconcile(self, durable: EvaluationRecord | None, cached: EvaluationRecord | None) -> EvaluationRecord | None:
        """Pick between the durable record and the device cache. Returns None when neither exists."""
        if durable is not None and cached is not None:
            cache_newer = (
                cached.last_saved_at is not None
                and durable.last_saved_at is not None
                and not durable.read_only
                and cached.last_saved_at > durable.last_saved_at
            )
            if cache_newer:
                logger.info("Local cache is newer than stored evaluation %s; keeping local edits", durable.id)
                return cached.model_copy(update={
                    "id": durable.id,
                    "employee_id": durable.employee_id,
                    **durable.lifecycle_fields(),
                })
            self.clear_cache()
            return durable
        if durable is not None:
            return durable
        return cached

    async def load_and_reconcile(
        self,
        employee_id: str | None = None,
        period_year: int | None = None,
    ) -> EvaluationRecord:
        period_year = period_year or self.period_year
        self.period_year = period_year
        self.reviewing = False
        if employee_id is None:
            claims = self.identity.current()
            employee_id = claims.employee_id if claims else None

        out: EvaluationOut | None = None
        try:
            if employee_id is None:
                raise NotAuthenticatedError("No identity available")
            await self._load_directory(employee_id)
            out = await self.remote.fetch_evaluation(period_year)
            self.is_manager = await self.remote.check_subordinates()
        except (RemoteError, NotAuthenticatedError) as exc:
            self.error_log.log(
                "network",
                "Failed to load evaluation data",
                {"employee_id": employee_id, "period_year": period_year, "error": str(exc)},
            )

        durable = None
        if out is not None:
            durable = EvaluationRecord.from_out(
                out, default_employee_info=self._directory_employee_info(period_year)
            )
            self.last_saved_at = durable.last_saved_at

        cached = self.read_cache()
        if cached is not None and not self._cache_belongs_to(cached, employee_id, period_year, out):
            logger.info("Ignoring local cache that belongs to another evaluation")
            cached = None

        record = self.reconcile(durable, cached)
        self.record = record if record is not None else self.fresh_draft(employee_id, period_year)
        return self.record

    async def load_for_review(self, evaluation_id: str) -> EvaluationRecord:
        """Load someone else's evaluation, read-only, without touching the local cache."""
        out = await self.remote.fetch_evaluation_by_id(evaluation_id)
        self.reviewing = True
        self.record = EvaluationRecord.from_out(out)
        return self.record

    # -- edits -----------------------------------------------------------------

    def _apply_edit(self, section: str, changes: dict[str, Any]) -> bool:
        if self.read_only:
            return False
        model_cls: type[BaseModel] = SECTION_MODELS[section]
        unknown = sorted(set(changes) - set(model_cls.model_fields))
        if unknown:
            raise ValidationFailed(
                [
                    {"field": f"{section}.{name}", "code": "unknown_field", "message": f"Unknown field '{name}'"}
                    for name in unknown
                ],
                message=f"Unknown {section} field(s): {', '.join(unknown)}",
            )
        current: BaseModel = getattr(self.record, section)
        try:
            updated = model_cls.model_validate({**current.model_dump(), **changes})
        except ValidationError as exc:
            raise ValidationFailed(_field_errors(section, exc), message=f"Invalid {section} update") from exc

        self.record = self.record.model_copy(update={section: updated})
        self.mirror_locally()
        self._schedule_write_through(self.record)
        return True

    def update_employee_info(self, **changes) -> bool:
        return self._apply_edit("employee_info", changes)

    def update_quantitative(self, **changes) -> bool:
        return self._apply_edit("quantitative", changes)

    def update_qualitative(self, factor: str, value: int | None) -> bool:
        return self._apply_edit("qualitative", {factor: value})

    def update_summary(self, **changes) -> bool:
        return self._apply_edit("summary", changes)

    def apply_transition(self, record: EvaluationRecord) -> None:
        """Adopt a record produced by a lifecycle transition and mirror it."""
        self.record = record
        self.mirror_locally()

    def reset(self) -> EvaluationRecord:
        self.clear_cache()
        self.reviewing = False
        self.last_saved_at = None
        self.record = self.fresh_draft()
        return self.record

    def calculate_progress(self) -> dict[str, Any]:
        r = self.record or self.fresh_draft()
        info = r.employee_info
        q = r.quantitative
        s = r.summary
        filled_info = [info.name, info.title, info.department, info.period_year, info.supervisor_name]
        sections = {
            "employee_info": sum(1 for v in filled_info if v not in (None, "")) / 5,
            "quantitative": sum(map(bool, (
                q.performance_objectives,
                q.work_accomplishments,
                q.personal_development,
                q.overall_quantitative_rating,
            ))) / 4,
            "qualitative": sum(1 for v in r.qualitative.model_dump().values() if v is not None) / 15,
            "summary": sum(map(bool, (
                s.employee_summary,
                s.targets_for_next_year,
                s.qualitative_rating,
                s.overall_rating,
            ))) / 4,
        }
        total = sum(sections.values()) / len(sections)
        return {"sections": sections, "total": round(total * 100)}
