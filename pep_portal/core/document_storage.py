"""
Durable storage for rendered evaluation documents.

Blobs are written under DOCUMENT_STORAGE_DIR and served back by the
/documents route, so the URL handed to clients is absolute and stable.
Uploading to an existing key overwrites it.
"""
import re
from pathlib import Path

from pep_portal.core.config import settings

_UNSAFE = re.compile(r"[^a-zA-Z0-9]")


def document_filename(employee_name: str | None, period_year: int | None) -> str:
    sanitized = _UNSAFE.sub("_", employee_name or "") or "Employee"
    return f"PEP_{sanitized}_{period_year if period_year is not None else ''}.pdf"


class DocumentStorage:
    def __init__(self, root: str | Path | None = None, public_base_url: str | None = None) -> None:
        self.root = Path(root or settings.DOCUMENT_STORAGE_DIR)
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def key_for(self, evaluation_id, filename: str) -> str:
        return f"pdfs/{evaluation_id}/{filename}"

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/documents/{key}"

    def save(self, key: str, data: bytes) -> str:
        path = self.resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return self.url_for(key)

    def resolve(self, key: str) -> Path:
        """Map a key to a path under root. Raises ValueError for keys that escape it."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"Invalid document key: {key}")
        return path


def get_document_storage() -> DocumentStorage:
    return DocumentStorage()
