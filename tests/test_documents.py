from datetime import datetime, timedelta, timezone

import pytest
from reportlab.pdfbase.pdfmetrics import stringWidth

from pep_portal.client.documents import (
    FONT,
    DocumentGenerator,
    DocumentPublisher,
    can_reuse_document,
    wrap_text,
)
from pep_portal.client.errors import RemoteError
from pep_portal.core.document_storage import DocumentStorage, document_filename
from pep_portal.schemas.evaluation import (
    EmployeeInfo,
    EvaluationRecord,
    PerformanceObjective,
    QuantitativeData,
    SummaryData,
)

from tests.fakes import OWNER_ID

T1 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(**fields) -> EvaluationRecord:
    fields.setdefault("employee_id", OWNER_ID)
    fields.setdefault("period_year", 2025)
    fields.setdefault("employee_info", EmployeeInfo(name="Ada Tester", title="Engineer", department="Engineering",
                                                    period_year=2025, supervisor_name="Boss Tester"))
    return EvaluationRecord(**fields)


def test_wrap_text_respects_width():
    text = "the quick brown fox jumps over the lazy dog " * 10
    lines = wrap_text(text, FONT, 10, 120)

    assert len(lines) > 1
    assert all(stringWidth(line, FONT, 10) <= 120 for line in lines)
    assert " ".join(lines) == text.strip()


def test_wrap_text_breaks_long_tokens_and_keeps_blank_lines():
    lines = wrap_text("x" * 200 + "\n\nend", FONT, 10, 50)

    assert "".join(lines[:-2]) == "x" * 200
    assert lines[-2:] == ["", "end"]
    assert wrap_text("", FONT, 10, 50) == []
    assert wrap_text(None, FONT, 10, 50) == []


def test_can_reuse_document():
    url = "https://files.test/a.pdf"
    assert can_reuse_document(url, T1, None)
    assert can_reuse_document(url, None, None)
    assert can_reuse_document(url, T1 + timedelta(minutes=1), T1)
    assert not can_reuse_document(url, T1 - timedelta(minutes=1), T1)
    assert not can_reuse_document(url, None, T1)
    assert not can_reuse_document(None, T1, None)
    assert not can_reuse_document("blob:local", T1, None)


def test_document_filename_is_sanitized():
    assert document_filename("Ada O'Tester-Smith", 2025) == "PEP_Ada_O_Tester_Smith_2025.pdf"


def test_render_produces_pdf():
    gen = DocumentGenerator()
    data = gen.render(_record(summary=SummaryData(employee_summary="Strong year", overall_rating="excellent")))

    assert data.startswith(b"%PDF")
    assert gen.page_count >= 1


def test_render_flows_long_content_across_pages():
    objectives = [
        PerformanceObjective(objective=f"Objective {n}", measurable_target="Ship " * 40, actual="Done " * 40)
        for n in range(12)
    ]
    record = _record(
        quantitative=QuantitativeData(performance_objectives=objectives, work_accomplishments="Lots of work. " * 200),
    )
    gen = DocumentGenerator()

    gen.render(record)

    assert gen.page_count > 1


@pytest.mark.asyncio
async def test_publish_without_id_saves_locally_only(remote, error_log, tmp_path):
    publisher = DocumentPublisher(remote, error_log, downloads_dir=tmp_path)

    result = await publisher.publish(_record())

    assert result.url is None
    assert result.local_path == tmp_path / "PEP_Ada_Tester_2025.pdf"
    assert result.local_path.read_bytes().startswith(b"%PDF")
    assert "upload_document" not in remote.calls


@pytest.mark.asyncio
async def test_publish_uploads_when_record_has_id(remote, publisher):
    seeded = remote.seed()

    result = await publisher.publish(_record(id=seeded.id))

    assert result.url == remote.evaluations[seeded.id].pdf_url
    assert result.generated_at is not None
    assert remote.uploads[0].startswith(b"%PDF")


@pytest.mark.asyncio
async def test_upload_failure_is_logged_and_local_copy_kept(remote, publisher, error_log):
    seeded = remote.seed()
    remote.failures["upload_document"] = RemoteError(500, "bucket down")

    result = await publisher.publish(_record(id=seeded.id))

    assert result.url is None
    assert result.local_path.exists()
    entries = error_log.by_type("submit")
    assert len(entries) == 1
    assert entries[0].context["local_path"] == str(result.local_path)


@pytest.mark.asyncio
async def test_find_reusable_honours_reopen(remote, publisher):
    reused = remote.seed(status="submitted", submitted_at=T1, pdf_url="https://files.test/a.pdf",
                         pdf_generated_at=T1)
    stale = remote.seed(period_year=2024, status="reopened", submitted_at=T1, reopened_at=T1 + timedelta(days=1),
                        pdf_url="https://files.test/b.pdf", pdf_generated_at=T1)

    found = await publisher.find_reusable(reused.id)
    assert found.reused and found.url == "https://files.test/a.pdf"
    assert await publisher.find_reusable(stale.id) is None


def test_document_storage_keys_and_escape(tmp_path):
    store = DocumentStorage(tmp_path, "http://docs.test/")
    key = store.key_for("abc", "PEP_Ada_2025.pdf")

    url = store.save(key, b"%PDF-1.4")

    assert key == "pdfs/abc/PEP_Ada_2025.pdf"
    assert url == "http://docs.test/documents/pdfs/abc/PEP_Ada_2025.pdf"
    assert store.resolve(key).read_bytes() == b"%PDF-1.4"
    with pytest.raises(ValueError):
        store.resolve("../outside.pdf")
