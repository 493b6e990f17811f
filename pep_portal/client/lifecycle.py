import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from pep_portal.client.documents import DocumentPublisher
from pep_portal.client.errors import (
    EngineError,
    NotAuthenticatedError,
    RemoteError,
    ReopenError,
    SubmitError,
    ValidationFailed,
)
from pep_portal.client.persistence import PersistenceEngine
from pep_portal.core.evaluation_validation import collect_submit_errors
from pep_portal.core.hierarchy import is_direct_manager
from pep_portal.core.status import REOPEN, SUBMIT, can_transition, next_status
from pep_portal.schemas.evaluation import EvaluationRecord

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    record: EvaluationRecord
    pdf_url: str | None
    local_path: Path | None
    document_reused: bool = False


class LifecycleStateMachine:
    """Guards and executes submit and reopen on top of a PersistenceEngine."""

    def __init__(self, engine: PersistenceEngine, publisher: DocumentPublisher) -> None:
        self.engine = engine
        self.publisher = publisher

    @property
    def error_log(self):
        return self.engine.error_log

    def _fail_submit(self, message: str, exc: Exception | None = None, **context) -> SubmitError:
        if exc is not None:
            context["error"] = str(exc)
        self.error_log.log("submit", message, context or None)
        return SubmitError(message)

    async def submit(self) -> SubmitResult:
        engine = self.engine
        if engine.identity.token is None:
            raise NotAuthenticatedError("You must be signed in to submit your evaluation")

        record = engine.record
        if record is None or engine.employee is None:
            raise self._fail_submit("Cannot submit: employee data not loaded")
        if engine.reviewing or not can_transition(record.status, SUBMIT):
            raise self._fail_submit(
                f"Cannot submit an evaluation that is {record.status}",
                evaluation_id=record.id,
            )

        errors = collect_submit_errors(record.employee_info, record.quantitative, record.summary)
        if errors:
            self.error_log.log("validation", "Please complete all required fields", {"errors": errors})
            raise ValidationFailed(errors)

        # Let pending auto-saves land before the status flip
        await engine.drain()
        record = engine.record

        evaluation_id = record.id
        if evaluation_id is None:
            try:
                evaluation_id = await engine.remote.save_evaluation(record)
            except (RemoteError, NotAuthenticatedError) as exc:
                raise self._fail_submit("Failed to create evaluation record", exc) from exc
            record = record.model_copy(update={"id": evaluation_id})
            engine.apply_transition(record)

        pdf_url = None
        pdf_generated_at = record.pdf_generated_at
        local_path = None
        reused = False
        try:
            published = await self.publisher.publish_for_submission(record)
            pdf_url = published.url
            local_path = published.local_path
            reused = published.reused
            if published.generated_at is not None:
                pdf_generated_at = published.generated_at
        except (EngineError, ValidationError, OSError) as exc:
            self.error_log.log(
                "submit",
                "Document generation failed, but evaluation will still be submitted",
                {"evaluation_id": evaluation_id, "error": str(exc)},
            )

        try:
            await engine.remote.submit_evaluation(evaluation_id, record, pdf_url=pdf_url)
        except (RemoteError, NotAuthenticatedError) as exc:
            raise self._fail_submit("Failed to submit evaluation", exc, evaluation_id=evaluation_id) from exc

        submitted = record.model_copy(update={
            "status": next_status(record.status, SUBMIT),
            "submitted_at": datetime.now(timezone.utc),
            "pdf_url": pdf_url or record.pdf_url,
            "pdf_generated_at": pdf_generated_at,
        })
        engine.apply_transition(submitted)
        logger.info("Evaluation %s submitted (document %s)", evaluation_id, "reused" if reused else pdf_url or "local only")
        return SubmitResult(record=submitted, pdf_url=pdf_url, local_path=local_path, document_reused=reused)

    async def reopen(self, reason: str) -> EvaluationRecord:
        engine = self.engine
        reason = (reason or "").strip()
        if not reason:
            raise ReopenError("A reason is required to reopen an evaluation")

        claims = engine.identity.current()
        if claims is None:
            raise NotAuthenticatedError("You must be signed in to reopen an evaluation")

        record = engine.record
        if record is None or record.id is None or record.employee_id is None:
            raise ReopenError("No evaluation loaded")
        if not can_transition(record.status, REOPEN):
            raise ReopenError(f"Cannot reopen an evaluation that is {record.status}")

        try:
            subject = await engine.remote.fetch_directory_record(record.employee_id)
        except RemoteError as exc:
            self.error_log.log("submit", "Failed to reopen evaluation", {"evaluation_id": record.id, "error": str(exc)})
            raise ReopenError("Could not verify reporting line") from exc

        if not is_direct_manager(claims.employee_id, subject):
            self.error_log.log(
                "submit",
                "Only the direct manager can reopen this evaluation",
                {"evaluation_id": record.id, "reviewer_id": claims.employee_id},
            )
            raise ReopenError("Only the direct manager can reopen this evaluation")

        try:
            await engine.remote.reopen_evaluation(record.id, reason)
        except (RemoteError, NotAuthenticatedError) as exc:
            self.error_log.log("submit", "Failed to reopen evaluation", {"evaluation_id": record.id, "error": str(exc)})
            raise ReopenError("Failed to reopen evaluation") from exc

        reopened = record.model_copy(update={
            "status": next_status(record.status, REOPEN),
            "reopened_at": datetime.now(timezone.utc),
            "reopened_by": claims.employee_id,
            "reopen_reason": reason,
        })
        engine.apply_transition(reopened)
        logger.info("Evaluation %s reopened by %s", record.id, claims.employee_id)
        return reopened
