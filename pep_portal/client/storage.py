import json
import os
import re
from pathlib import Path
from typing import Any

from pep_portal.client.errors import CacheError

_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStorage:
    """Device-local key/value store: one JSON file per key."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY.match(key):
            raise CacheError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"Could not read {key}: {exc}") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CacheError(f"Corrupt entry {key}: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"Value for {key} is not JSON serializable: {exc}") from exc
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise CacheError(f"Could not write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"Could not remove {key}: {exc}") from exc
