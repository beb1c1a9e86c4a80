"""
Custom exception classes for the application.

Every domain failure derives from AppError so callers can render
a uniform error payload with to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "STORE_MAPPING_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} with ID {identifier} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# CONSOLIDATED RECORD ERRORS
# ===================

class ConsolidatedRecordNotFoundError(NotFoundError):
    """Consolidated sell-out record not found."""

    def __init__(self, record_id: Any):
        super().__init__(
            resource="Consolidated record",
            identifier=str(record_id),
            code="CONSOLIDATED_RECORD_NOT_FOUND"
        )


# ===================
# MASTER MAPPING ERRORS
# ===================

class MappingNotFoundError(NotFoundError):
    """Product or store master mapping not found."""

    def __init__(self, kind: str, identifier: Any):
        super().__init__(
            resource=f"{kind.capitalize()} mapping",
            identifier=str(identifier),
            code=f"{kind.upper()}_MAPPING_NOT_FOUND"
        )


class DuplicateMappingError(DuplicateError):
    """A master mapping with the same search key already exists."""

    def __init__(self, kind: str, search_key: str):
        ConflictError.__init__(
            self,
            code=f"{kind.upper()}_MAPPING_EXISTS",
            message=f"A {kind} master mapping already exists for these distributor values",
            details={"kind": kind, "search_key": search_key}
        )


class UnknownCanonicalCodeError(ValidationError):
    """Canonical code is not present in the internal catalog."""

    def __init__(self, kind: str, code: Any):
        super().__init__(
            code=f"UNKNOWN_{kind.upper()}_CODE",
            message=f"The {kind} {code} does not exist in the {kind} catalog",
            details={"kind": kind, "code": str(code)}
        )


# ===================
# UPLOAD ERRORS
# ===================

class InvalidDataBlockError(ValidationError):
    """Bulk payload lacks the expected array block."""

    def __init__(self, block_name: str):
        super().__init__(
            code="INVALID_DATA_BLOCK",
            message=f"Block '{block_name}' has no records or is not an array",
            details={"block": block_name}
        )


class ExcelParseError(ValidationError):
    """Excel file parsing failed."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="EXCEL_PARSE_ERROR",
            message=message,
            details=details
        )
