import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pep_portal.core.access import (
    assert_user_can_view_evaluation,
    assert_user_is_direct_manager,
    assert_user_owns_evaluation,
    get_employee_or_404,
    parse_uuid,
)
from pep_portal.core.audit import log_event
from pep_portal.core.document_storage import DocumentStorage, document_filename, get_document_storage
from pep_portal.core.evaluation_validation import collect_submit_errors
from pep_portal.core.security import get_current_identity
from pep_portal.core.status import (
    EDITABLE_STATUSES,
    REOPEN,
    SUBMIT,
    can_transition,
    is_read_only,
    next_status,
)
from pep_portal.db.session import get_db
from pep_portal.models.evaluation import Evaluation
from pep_portal.schemas.auth import TokenClaims
from pep_portal.schemas.evaluation import (
    SECTION_MODELS,
    DocumentUploadResult,
    EmployeeInfo,
    EvaluationOut,
    EvaluationSections,
    QuantitativeData,
    ReopenEvaluationPayload,
    SaveEvaluationPayload,
    SaveResult,
    SubmitEvaluationPayload,
    SummaryData,
    as_utc,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


def eval_to_out(e: Evaluation) -> EvaluationOut:
    return EvaluationOut(
        id=str(e.id),
        employee_id=str(e.employee_id),
        period_year=e.period_year,
        status=e.status,
        employee_info=e.employee_info,
        quantitative=e.quantitative,
        qualitative=e.qualitative,
        summary=e.summary,
        submitted_at=as_utc(e.submitted_at),
        reopened_at=as_utc(e.reopened_at),
        reopened_by=str(e.reopened_by) if e.reopened_by else None,
        reopen_reason=e.reopen_reason,
        pdf_url=e.pdf_url,
        pdf_generated_at=as_utc(e.pdf_generated_at),
        created_at=as_utc(e.created_at),
        updated_at=as_utc(e.updated_at),
    )


def _get_evaluation_or_404(db: Session, evaluation_id: str) -> Evaluation:
    e = db.get(Evaluation, parse_uuid(evaluation_id, detail="Evaluation not found"))
    if not e:
        raise HTTPException(status_code=404, detail="Evaluation not found")
    return e


def _find_for_period(db: Session, employee_id, period_year: int) -> Evaluation | None:
    return (
        db.query(Evaluation)
        .filter(Evaluation.employee_id == employee_id, Evaluation.period_year == period_year)
        .one_or_none()
    )


def _apply_sections(e: Evaluation, payload: EvaluationSections) -> None:
    # Sections left out of the payload keep their stored value
    for name in SECTION_MODELS:
        section: BaseModel | None = getattr(payload, name)
        if section is not None:
            setattr(e, name, section.model_dump(mode="json"))


def _assert_editable(e: Evaluation) -> None:
    if e.status not in EDITABLE_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Evaluation is {e.status} and read-only",
        )


@router.get("/by-id/{evaluation_id}", response_model=EvaluationOut)
def fetch_evaluation_by_id(
    evaluation_id: str,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    e = _get_evaluation_or_404(db, evaluation_id)
    assert_user_can_view_evaluation(db, identity, e)
    return eval_to_out(e)


@router.get("/{period_year}", response_model=EvaluationOut | None)
def fetch_evaluation(
    period_year: int,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    employee_id = parse_uuid(identity.employee_id, detail="Employee not found")
    e = _find_for_period(db, employee_id, period_year)
    return eval_to_out(e) if e else None


@router.post("/save", response_model=SaveResult)
def save_evaluation(
    payload: SaveEvaluationPayload,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    if payload.status not in EDITABLE_STATUSES:
        raise HTTPException(status_code=409, detail="Only draft or reopened evaluations can be saved")

    if payload.evaluation_id:
        e = _get_evaluation_or_404(db, payload.evaluation_id)
        assert_user_owns_evaluation(identity, e)
        _assert_editable(e)
        _apply_sections(e, payload)
        db.flush()
        return SaveResult(id=str(e.id))

    employee = get_employee_or_404(db, identity.employee_id)
    e = _find_for_period(db, employee.id, payload.period_year)
    if e is not None:
        _assert_editable(e)
        _apply_sections(e, payload)
        db.flush()
        return SaveResult(id=str(e.id))

    e = Evaluation(employee_id=employee.id, period_year=payload.period_year, status="draft")
    _apply_sections(e, payload)
    db.add(e)
    try:
        db.flush()  # may raise IntegrityError if the other device won the insert
    except IntegrityError:
        db.rollback()
        e = _find_for_period(db, employee.id, payload.period_year)
        if e is None:
            raise
        _assert_editable(e)
        _apply_sections(e, payload)
        db.flush()
        return SaveResult(id=str(e.id))

    log_event(
        db=db,
        actor=identity,
        action="EVALUATION_CREATED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"period_year": e.period_year, "status": e.status},
    )
    logger.info("Created evaluation %s for employee %s (%s)", e.id, employee.id, e.period_year)
    return SaveResult(id=str(e.id))


@router.post("/submit")
def submit_evaluation(
    payload: SubmitEvaluationPayload,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    e = _get_evaluation_or_404(db, payload.evaluation_id)
    assert_user_owns_evaluation(identity, e)

    if not can_transition(e.status, SUBMIT):
        raise HTTPException(status_code=409, detail="Only draft or reopened evaluations can be submitted")

    _apply_sections(e, payload)

    errors = collect_submit_errors(
        EmployeeInfo.model_validate(e.employee_info) if e.employee_info else None,
        QuantitativeData.model_validate(e.quantitative) if e.quantitative else None,
        SummaryData.model_validate(e.summary) if e.summary else None,
    )
    if errors:
        raise HTTPException(
            status_code=400,
            detail={"message": "Submit validation failed", "errors": errors},
        )

    from_status = e.status
    e.status = next_status(e.status, SUBMIT)
    e.submitted_at = datetime.now(timezone.utc)
    if payload.pdf_url:
        e.pdf_url = payload.pdf_url

    log_event(
        db=db,
        actor=identity,
        action="EVALUATION_SUBMITTED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from_status": from_status, "to_status": e.status, "pdf_url": e.pdf_url},
    )
    logger.info("Evaluation %s submitted (%s -> %s)", e.id, from_status, e.status)
    return {}


@router.post("/reopen")
def reopen_evaluation(
    payload: ReopenEvaluationPayload,
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
):
    reason = payload.reason.strip()
    if not reason:
        raise HTTPException(status_code=400, detail="A reason is required to reopen an evaluation")

    e = _get_evaluation_or_404(db, payload.evaluation_id)
    assert_user_is_direct_manager(db, identity, e)

    if not can_transition(e.status, REOPEN):
        raise HTTPException(
            status_code=409,
            detail="Only submitted, reviewed or signed evaluations can be reopened",
        )

    from_status = e.status
    e.status = next_status(e.status, REOPEN)
    e.reopened_at = datetime.now(timezone.utc)
    e.reopened_by = parse_uuid(identity.employee_id)
    e.reopen_reason = reason

    log_event(
        db=db,
        actor=identity,
        action="EVALUATION_REOPENED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from_status": from_status, "reason": reason},
    )
    logger.info("Evaluation %s reopened by %s", e.id, identity.employee_id)
    return {}


@router.put("/{evaluation_id}/document", response_model=DocumentUploadResult)
def upload_document(
    evaluation_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    identity: TokenClaims = Depends(get_current_identity),
    storage: DocumentStorage = Depends(get_document_storage),
):
    e = _get_evaluation_or_404(db, evaluation_id)
    assert_user_owns_evaluation(identity, e)
    if is_read_only(e.status):
        raise HTTPException(status_code=409, detail="Documents can only be attached before submission")

    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Document body is empty")

    info = e.employee_info or {}
    name = info.get("name")
    if not name:
        name = get_employee_or_404(db, e.employee_id).full_name
    key = storage.key_for(e.id, document_filename(name, e.period_year))
    url = storage.save(key, data)

    e.pdf_url = url
    e.pdf_generated_at = datetime.now(timezone.utc)

    log_event(
        db=db,
        actor=identity,
        action="DOCUMENT_ATTACHED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"pdf_url": url, "size": len(data)},
    )
    return DocumentUploadResult(pdf_url=url, pdf_generated_at=e.pdf_generated_at)
