"""
Fixed-layout PDF rendering of an evaluation, and publishing of the result.

Layout is a single vertical cursor: each block is wrapped first, and a new
page starts when the wrapped block does not fit in what is left.
"""
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from pep_portal.client.config import client_settings
from pep_portal.client.error_log import ErrorLogger
from pep_portal.client.errors import DocumentError, NotAuthenticatedError, RemoteError
from pep_portal.client.remote import RemoteStore
from pep_portal.core.document_storage import document_filename
from pep_portal.schemas.evaluation import (
    QUALITATIVE_FACTOR_GROUPS,
    RATING_LABELS,
    EvaluationRecord,
    as_utc,
)

logger = logging.getLogger(__name__)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

MARGIN = 50
FOOTER_HEIGHT = 30


def wrap_text(text: str | None, font_name: str, font_size: float, max_width: float) -> list[str]:
    """
    Word-wrap to max_width. Tokens wider than a full line are broken per
    character. Explicit newlines are kept; blank lines become "".
    """
    if not text:
        return []

    def width(s: str) -> float:
        return stringWidth(s, font_name, font_size)

    lines: list[str] = []
    for paragraph in text.splitlines():
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if width(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
                current = ""
            while width(word) > max_width:
                cut = 1
                while cut < len(word) and width(word[: cut + 1]) <= max_width:
                    cut += 1
                lines.append(word[:cut])
                word = word[cut:]
            current = word
        if current:
            lines.append(current)
    return lines


def can_reuse_document(
    pdf_url: str | None,
    pdf_generated_at: datetime | None,
    reopened_at: datetime | None,
) -> bool:
    """An artifact is reusable only if it is an absolute http(s) URL produced in the current submission cycle."""
    if not pdf_url or not pdf_url.startswith(("http://", "https://")):
        return False
    if reopened_at is None:
        return True
    if pdf_generated_at is None:
        return False
    return pdf_generated_at >= reopened_at


def _score(value: int | None) -> str:
    return "N/A" if value is None else str(value)


def _rating(code: str | None) -> str:
    return RATING_LABELS.get(code, "Not rated") if code else "Not rated"


class DocumentGenerator:
    def __init__(self, pagesize=A4) -> None:
        self.pagesize = pagesize
        self.page_width, self.page_height = pagesize
        self.content_width = self.page_width - 2 * MARGIN
        self.page_count = 0
        self._canvas: canvas.Canvas | None = None
        self._y = 0.0
        self._generated_on = ""

    # -- flow layout ---------------------------------------------------------

    @property
    def _bottom(self) -> float:
        return MARGIN + FOOTER_HEIGHT

    def _new_page(self) -> None:
        if self.page_count:
            self._draw_footer()
            self._canvas.showPage()
        self.page_count += 1
        self._y = self.page_height - MARGIN

    def _draw_footer(self) -> None:
        c = self._canvas
        c.setFont(FONT, 8)
        c.drawString(MARGIN, MARGIN, f"Generated {self._generated_on}")
        c.drawRightString(self.page_width - MARGIN, MARGIN, f"Page {self.page_count}")

    def _ensure(self, height: float) -> None:
        if self._y - height < self._bottom:
            self._new_page()

    def _lines(self, lines: list[str], font: str, size: float, indent: float = 0) -> None:
        leading = size * 1.4
        # Keep short blocks together; long ones flow across pages line by line
        page_capacity = self.page_height - MARGIN - self._bottom
        if len(lines) * leading <= page_capacity:
            self._ensure(len(lines) * leading)
        c = self._canvas
        for line in lines:
            self._ensure(leading)
            c.setFont(font, size)
            self._y -= leading
            c.drawString(MARGIN + indent, self._y, line)

    def _paragraph(self, text: str | None, font: str = FONT, size: float = 10, indent: float = 0,
                   placeholder: str = "Not provided") -> None:
        lines = wrap_text(text, font, size, self.content_width - indent)
        if not lines:
            lines = wrap_text(placeholder, FONT_ITALIC, size, self.content_width - indent)
            font = FONT_ITALIC
        self._lines(lines, font, size, indent)

    def _heading(self, text: str, size: float = 12) -> None:
        # Heading plus at least one following line on the same page
        self._ensure(size * 1.4 * 2 + 6)
        self._y -= 6
        self._lines(wrap_text(text, FONT_BOLD, size, self.content_width), FONT_BOLD, size)

    def _field(self, label: str, value: str | None) -> None:
        text = f"{label}: {value}" if value else f"{label}: -"
        self._lines(wrap_text(text, FONT, 10, self.content_width), FONT, 10)

    def _spacer(self, height: float = 8) -> None:
        self._y -= height

    def _rule(self) -> None:
        self._ensure(10)
        self._y -= 5
        self._canvas.line(MARGIN, self._y, self.page_width - MARGIN, self._y)
        self._y -= 5

    # -- sections ----------------------------------------------------------

    def _header(self, record: EvaluationRecord) -> None:
        c = self._canvas
        c.setFont(FONT_BOLD, 16)
        self._y -= 16
        c.drawCentredString(self.page_width / 2, self._y, "Performance Evaluation Plan (PEP)")
        self._y -= 18
        c.setFont(FONT, 11)
        c.drawCentredString(self.page_width / 2, self._y, f"Assessment Period {record.period_year}")
        self._rule()

    def _employee_info(self, record: EvaluationRecord) -> None:
        info = record.employee_info
        self._heading("Employee Information")
        self._field("Name", info.name)
        self._field("Title", info.title)
        self._field("Department", info.department)
        self._field("Supervisor", info.supervisor_name)
        self._field("Period", str(info.period_year or record.period_year))
        self._spacer()

    def _quantitative(self, record: EvaluationRecord) -> None:
        q = record.quantitative
        self._heading("Section I - Quantitative Performance")

        self._heading("Performance Objectives", size=10)
        if not q.performance_objectives:
            self._paragraph(None, indent=10)
        for n, obj in enumerate(q.performance_objectives, start=1):
            self._paragraph(f"{n}. {obj.objective}", font=FONT_BOLD, indent=10, placeholder=f"{n}. -")
            self._paragraph(f"Target: {obj.measurable_target or '-'}", indent=20)
            self._paragraph(f"Actual: {obj.actual or '-'}", indent=20)

        self._heading("Work Accomplishments", size=10)
        self._paragraph(q.work_accomplishments, indent=10)

        self._heading("Personal Development", size=10)
        self._paragraph(q.personal_development, indent=10)

        if q.competencies:
            self._heading("Competencies", size=10)
            for comp in q.competencies:
                self._paragraph(
                    f"{comp.competency_name or comp.competency_id}: {_score(comp.score)}",
                    indent=10,
                )
                if comp.comments:
                    self._paragraph(comp.comments, font=FONT_ITALIC, size=9, indent=20)

        self._field("Quantitative Rating", _rating(q.overall_quantitative_rating))
        self._spacer()

    def _qualitative(self, record: EvaluationRecord) -> None:
        scores = record.qualitative
        self._heading("Section II - Qualitative Factors")
        c = self._canvas
        score_x = self.page_width - MARGIN - 40
        for group, factors in QUALITATIVE_FACTOR_GROUPS.items():
            # group title and its rows stay together
            self._ensure(14 * (len(factors) + 1) + 6)
            self._heading(group, size=10)
            for name, label in factors:
                self._y -= 14
                c.setFont(FONT, 10)
                c.drawString(MARGIN + 10, self._y, label)
                c.drawRightString(score_x + 30, self._y, _score(getattr(scores, name)))
        self._field("Qualitative Rating", _rating(record.summary.qualitative_rating))
        self._spacer()

    def _summary(self, record: EvaluationRecord) -> None:
        s = record.summary
        self._heading("Section III - Summary")
        self._heading("Employee Summary", size=10)
        self._paragraph(s.employee_summary, indent=10)
        self._heading("Targets for Next Year", size=10)
        self._paragraph(s.targets_for_next_year, indent=10)
        self._field("Overall Rating", _rating(s.overall_rating))
        self._spacer()

    def _signatures(self) -> None:
        c = self._canvas
        self._ensure(150)
        self._heading("Signatures")
        for role in ("Employee", "Supervisor", "HR"):
            self._y -= 28
            c.setFont(FONT, 10)
            c.line(MARGIN, self._y, MARGIN + 250, self._y)
            c.line(MARGIN + 300, self._y, self.page_width - MARGIN, self._y)
            c.drawString(MARGIN, self._y - 11, f"{role} Signature")
            c.drawString(MARGIN + 300, self._y - 11, "Date")
            self._y -= 11

    # -- entry point ---------------------------------------------------------

    def render(self, record: EvaluationRecord) -> bytes:
        buffer = io.BytesIO()
        self._canvas = canvas.Canvas(buffer, pagesize=self.pagesize)
        self._canvas.setTitle(f"PEP {record.employee_info.name} {record.period_year}")
        self._generated_on = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        self.page_count = 0
        try:
            self._new_page()
            self._header(record)
            self._employee_info(record)
            self._quantitative(record)
            self._qualitative(record)
            self._summary(record)
            self._signatures()
            self._draw_footer()
            self._canvas.save()
        except Exception as exc:
            raise DocumentError(f"Could not render evaluation document: {exc}") from exc
        finally:
            self._canvas = None
        return buffer.getvalue()


@dataclass
class PublishedDocument:
    local_path: Path | None
    url: str | None = None
    generated_at: datetime | None = None
    reused: bool = False


class DocumentPublisher:
    """Decides reuse, renders, saves a local copy, then uploads when the record has an id."""

    def __init__(
        self,
        remote: RemoteStore,
        error_log: ErrorLogger,
        generator: DocumentGenerator | None = None,
        downloads_dir: str | Path | None = None,
    ) -> None:
        self.remote = remote
        self.error_log = error_log
        self.generator = generator or DocumentGenerator()
        self.downloads_dir = Path(downloads_dir or client_settings.DOWNLOADS_DIR)

    async def find_reusable(self, evaluation_id: str) -> PublishedDocument | None:
        try:
            stored = await self.remote.fetch_evaluation_by_id(evaluation_id)
        except (RemoteError, NotAuthenticatedError, ValidationError) as exc:
            logger.warning("Could not check stored document for %s: %s", evaluation_id, exc)
            return None
        if can_reuse_document(stored.pdf_url, as_utc(stored.pdf_generated_at), as_utc(stored.reopened_at)):
            logger.info("Reusing stored document for evaluation %s", evaluation_id)
            return PublishedDocument(
                local_path=None,
                url=stored.pdf_url,
                generated_at=as_utc(stored.pdf_generated_at),
                reused=True,
            )
        return None

    def save_local(self, record: EvaluationRecord, data: bytes) -> Path:
        name = document_filename(record.employee_info.name, record.employee_info.period_year or record.period_year)
        path = self.downloads_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise DocumentError(f"Could not save document to {path}: {exc}") from exc
        return path

    async def publish(self, record: EvaluationRecord) -> PublishedDocument:
        data = self.generator.render(record)
        result = PublishedDocument(local_path=self.save_local(record, data))
        if record.id is None:
            return result
        try:
            uploaded = await self.remote.upload_document(record.id, data)
        except (RemoteError, NotAuthenticatedError, ValidationError) as exc:
            self.error_log.log(
                "submit",
                "Document upload failed; a local copy was saved instead",
                {"evaluation_id": record.id, "error": str(exc), "local_path": str(result.local_path)},
            )
            return result
        result.url = uploaded.pdf_url
        result.generated_at = uploaded.pdf_generated_at
        return result

    async def publish_for_submission(self, record: EvaluationRecord) -> PublishedDocument:
        if record.id is not None:
            reusable = await self.find_reusable(record.id)
            if reusable is not None:
                return reusable
        return await self.publish(record)
