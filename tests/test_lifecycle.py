from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from pep_portal.client.errors import (
    DocumentError,
    NotAuthenticatedError,
    RemoteError,
    ReopenError,
    SubmitError,
    ValidationFailed,
)
from pep_portal.client.persistence import CACHE_KEY
from pep_portal.core.security import create_access_token
from pep_portal.schemas.evaluation import DocumentUploadResult

from tests.fakes import BOSS_ID, GRAND_ID, OWNER_ID

T1 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _fill_required(engine):
    engine.update_quantitative(work_accomplishments="Shipped the billing rewrite")
    engine.update_summary(employee_summary="Strong year")
    await engine.drain()


def _act_as(identity, employee_id):
    identity.acquire(create_access_token({"employee_id": employee_id}))


@pytest.mark.asyncio
async def test_submit_generates_uploads_and_freezes(engine, lifecycle, remote, storage):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.record.submitted_at is not None
    assert result.pdf_url.startswith("https://files.test/pdfs/")
    assert result.local_path.name == "PEP_Ada_Tester_2025.pdf"
    assert result.local_path.read_bytes().startswith(b"%PDF")
    assert not result.document_reused

    assert engine.read_only
    assert engine.update_summary(employee_summary="too late") is False
    stored = remote.evaluations[result.record.id]
    assert stored.status == "submitted"
    assert stored.pdf_url == result.pdf_url
    assert storage.get(CACHE_KEY)["status"] == "submitted"


@pytest.mark.asyncio
async def test_submit_creates_record_first_when_it_has_no_id(engine, lifecycle, remote, identity):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    # edits made while signed out never reached the store
    token = identity.token
    identity.clear()
    await _fill_required(engine)
    identity.acquire(token)
    assert engine.record.id is None

    result = await lifecycle.submit()

    assert result.record.id in remote.evaluations
    assert remote.calls.index("save_evaluation") < remote.calls.index("submit_evaluation")


@pytest.mark.asyncio
async def test_submit_validation_blocks_transition(engine, lifecycle, remote, error_log):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    engine.update_employee_info(department="")
    await engine.drain()

    with pytest.raises(ValidationFailed) as exc:
        await lifecycle.submit()

    fields = [e["field"] for e in exc.value.errors]
    assert fields == ["employee_info.department", "quantitative.work_accomplishments", "summary.employee_summary"]
    assert engine.record.status == "draft"
    assert "submit_evaluation" not in remote.calls
    assert error_log.by_type("validation")


@pytest.mark.asyncio
async def test_submit_requires_credential(engine, lifecycle, identity):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    identity.clear()

    with pytest.raises(NotAuthenticatedError):
        await lifecycle.submit()
    assert engine.record.status == "draft"


@pytest.mark.asyncio
async def test_retry_after_failed_status_flip_reuses_document(engine, lifecycle, remote, error_log):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    remote.failures["submit_evaluation"] = RemoteError(503, "unavailable")

    with pytest.raises(SubmitError):
        await lifecycle.submit()
    assert engine.record.status == "draft"
    assert len(remote.uploads) == 1
    assert error_log.by_type("submit")

    del remote.failures["submit_evaluation"]
    result = await lifecycle.submit()

    assert result.document_reused
    assert len(remote.uploads) == 1
    assert result.pdf_url == remote.evaluations[result.record.id].pdf_url


@pytest.mark.asyncio
async def test_document_failure_does_not_block_submission(engine, lifecycle, error_log, monkeypatch):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)

    def broken_render(record):
        raise DocumentError("renderer exploded")

    monkeypatch.setattr(lifecycle.publisher.generator, "render", broken_render)

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.pdf_url is None
    messages = [e.message for e in error_log.by_type("submit")]
    assert messages == ["Document generation failed, but evaluation will still be submitted"]


@pytest.mark.asyncio
async def test_upload_failure_keeps_local_copy(engine, lifecycle, remote, error_log):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    remote.failures["upload_document"] = RemoteError(500, "bucket down")

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.pdf_url is None
    assert result.local_path.exists()
    assert error_log.by_type("submit")


def _malformed_upload_response() -> ValidationError:
    try:
        DocumentUploadResult.model_validate({})
    except ValidationError as exc:
        return exc
    raise AssertionError("empty upload body should not validate")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [
        lambda: NotAuthenticatedError("No credential held"),
        _malformed_upload_response,
    ],
    ids=["signed-out", "malformed-response"],
)
async def test_unexpected_upload_errors_keep_local_copy(engine, lifecycle, remote, error_log, failure):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    remote.failures["upload_document"] = failure()

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.pdf_url is None
    assert result.local_path.exists()
    messages = [e.message for e in error_log.by_type("submit")]
    assert messages == ["Document upload failed; a local copy was saved instead"]


@pytest.mark.asyncio
async def test_malformed_reuse_check_falls_back_to_fresh_document(engine, lifecycle, remote):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    remote.failures["fetch_evaluation_by_id"] = _malformed_upload_response()

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.pdf_url.startswith("https://files.test/pdfs/")
    assert not result.document_reused


@pytest.mark.asyncio
async def test_any_publish_error_still_submits(engine, lifecycle, error_log, monkeypatch):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)

    async def broken_publish(record):
        raise _malformed_upload_response()

    monkeypatch.setattr(lifecycle.publisher, "publish_for_submission", broken_publish)

    result = await lifecycle.submit()

    assert result.record.status == "submitted"
    assert result.pdf_url is None
    messages = [e.message for e in error_log.by_type("submit")]
    assert messages == ["Document generation failed, but evaluation will still be submitted"]


@pytest.mark.asyncio
async def test_reopen_by_direct_manager_then_resubmit_regenerates(engine, lifecycle, remote, identity):
    await engine.load_and_reconcile(OWNER_ID, 2025)
    await _fill_required(engine)
    first = await lifecycle.submit()
    evaluation_id = first.record.id

    _act_as(identity, BOSS_ID)
    await engine.load_for_review(evaluation_id)
    reopened = await lifecycle.reopen("  Please add Q4 numbers ")

    assert reopened.status == "reopened"
    assert reopened.reopened_by == BOSS_ID
    assert reopened.reopen_reason == "Please add Q4 numbers"
    assert remote.evaluations[evaluation_id].status == "reopened"
    # the old artifact is kept until a new one replaces it
    assert remote.evaluations[evaluation_id].pdf_url == first.pdf_url

    _act_as(identity, OWNER_ID)
    await engine.load_and_reconcile(OWNER_ID, 2025)
    assert not engine.read_only
    engine.update_summary(targets_for_next_year="More Q4 numbers")
    await engine.drain()

    second = await lifecycle.submit()

    assert not second.document_reused
    assert len(remote.uploads) == 2
    assert second.pdf_url != first.pdf_url


@pytest.mark.asyncio
async def test_reopen_rejects_skip_level_manager(engine, lifecycle, remote, identity):
    seeded = remote.seed(status="submitted", submitted_at=T1)
    _act_as(identity, GRAND_ID)
    await engine.load_for_review(seeded.id)

    with pytest.raises(ReopenError):
        await lifecycle.reopen("redo")

    assert remote.evaluations[seeded.id].status == "submitted"
    assert "reopen_evaluation" not in remote.calls


@pytest.mark.asyncio
async def test_reopen_requires_reason_and_read_only_record(engine, lifecycle, remote, identity):
    draft = remote.seed()
    _act_as(identity, BOSS_ID)
    await engine.load_for_review(draft.id)

    with pytest.raises(ReopenError):
        await lifecycle.reopen("   ")
    with pytest.raises(ReopenError):
        await lifecycle.reopen("not submitted yet")
    assert "reopen_evaluation" not in remote.calls
