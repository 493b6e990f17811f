import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from pep_portal.client.config import client_settings
from pep_portal.client.errors import CacheError
from pep_portal.client.storage import LocalStorage

logger = logging.getLogger(__name__)

ERROR_LOG_KEY = "pep_error_logs"

ErrorType = Literal["validation", "save", "submit", "network", "unknown"]

_LEVELS = {
    "validation": logging.WARNING,
    "save": logging.WARNING,
    "network": logging.WARNING,
    "submit": logging.ERROR,
    "unknown": logging.ERROR,
}


class ErrorLogEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: ErrorType
    message: str
    context: dict[str, Any] | None = None
    resolved: bool = False


class ErrorLogger:
    """
    Persistent, dismissible error log. Oldest entries are evicted first once
    max_entries is reached. `notify` is called for entries meant to be shown
    to the user (auto-save failures are logged with notify=False).
    """

    def __init__(
        self,
        storage: LocalStorage,
        max_entries: int | None = None,
        notify: Callable[[ErrorLogEntry], None] | None = None,
    ) -> None:
        self.storage = storage
        self.max_entries = max_entries or client_settings.ERROR_LOG_MAX_ENTRIES
        self.notify = notify
        self._entries = self._load()

    def _load(self) -> list[ErrorLogEntry]:
        try:
            raw = self.storage.get(ERROR_LOG_KEY) or []
            return [ErrorLogEntry.model_validate(item) for item in raw]
        except (CacheError, ValidationError, TypeError) as exc:
            logger.warning("Discarding unreadable error log: %s", exc)
            return []

    def _save(self) -> None:
        self._entries = self._entries[-self.max_entries:]
        try:
            self.storage.set(ERROR_LOG_KEY, [e.model_dump(mode="json") for e in self._entries])
        except CacheError as exc:
            logger.warning("Failed to save error logs: %s", exc)

    def log(
        self,
        type: ErrorType,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        notify: bool = True,
    ) -> str:
        entry = ErrorLogEntry(type=type, message=message, context=context)
        logger.log(_LEVELS.get(type, logging.ERROR), "[PEP %s] %s %s", type, message, context or "")
        self._entries.append(entry)
        self._save()
        if notify and self.notify is not None:
            self.notify(entry)
        return entry.id

    @property
    def entries(self) -> list[ErrorLogEntry]:
        return list(self._entries)

    def resolve(self, entry_id: str) -> bool:
        for i, entry in enumerate(self._entries):
            if entry.id == entry_id:
                self._entries[i] = entry.model_copy(update={"resolved": True})
                self._save()
                return True
        return False

    def clear(self) -> None:
        self._entries = []
        try:
            self.storage.remove(ERROR_LOG_KEY)
        except CacheError as exc:
            logger.warning("Failed to clear error logs: %s", exc)

    def unresolved(self) -> list[ErrorLogEntry]:
        return [e for e in self._entries if not e.resolved]

    def by_type(self, type: ErrorType) -> list[ErrorLogEntry]:
        return [e for e in self._entries if e.type == type]
