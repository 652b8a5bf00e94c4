"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to consistent HTTP responses.

Usage:
    from clause2case.core.exceptions import GenerationError, GenerationErrorKind

    raise GenerationError(GenerationErrorKind.TIMEOUT, "Generation timed out after 90s")
"""

from enum import Enum


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Document", "ProcessingJob").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request is malformed (missing field, bad id format).

    Always raised before any side effect, so the caller can simply reject
    the request.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class GenerationErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNREPAIRABLE = "unrepairable"
    NO_VALID_RESULTS = "no_valid_results"
    PROVIDER = "provider"


class GenerationError(Exception):
    """Raised when test-case generation cannot produce in-contract drafts.

    The owning job is moved to ``failed`` with ``str(error)`` as its
    error message. Never retried automatically.
    """

    def __init__(self, kind: GenerationErrorKind, message: str) -> None:
        self.kind = GenerationErrorKind(kind)
        super().__init__(message)

    def __repr__(self):
        return f"GenerationError(kind={self.kind.value!r}, message={str(self)!r})"


class CSVImportErrorKind(str, Enum):
    MISSING_COLUMN = "missing_column"
    EMPTY_FILE = "empty_file"


class CSVImportError(Exception):
    """Fatal CSV import failure; aborts the whole import.

    Row-level problems are never raised as this type: they are collected as
    soft errors in the import result.
    """

    def __init__(self, kind: CSVImportErrorKind, message: str) -> None:
        self.kind = CSVImportErrorKind(kind)
        super().__init__(message)


class PersistenceError(Exception):
    """Raised by the storage capability when a write or read fails.

    Fatal for the current operation and propagated without retry.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Persistence failure during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
