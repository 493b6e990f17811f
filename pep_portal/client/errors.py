from typing import Any


class EngineError(Exception):
    """Base class for everything the evaluation engine raises to its caller."""


class ValidationFailed(EngineError):
    def __init__(self, errors: list[dict[str, str]], message: str = "Please complete all required fields"):
        self.errors = errors
        super().__init__(message)


class SubmitError(EngineError):
    pass


class ReopenError(EngineError):
    pass


class NotAuthenticatedError(EngineError):
    pass


class RemoteError(EngineError):
    """Non-2xx response or transport failure. status_code is None when the request never completed."""

    def __init__(self, status_code: int | None, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"[{status_code}] {detail}" if status_code else str(detail))


class CacheError(EngineError):
    pass


class DocumentError(EngineError):
    pass
