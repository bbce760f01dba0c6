"""
Custom exception classes for the application.

Every error the engine reports to an operator is an AppError with a
stable code, so routes can render it without knowing its type.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "TERM_NOT_FOUND")
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
        self.timestamp = datetime.utcnow().isoformat()
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
            message=f"{resource} not found",
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


class ConfigurationError(AppError):
    """Required configuration is missing (500)."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=message,
            status_code=500,
            details=details
        )


class AdminAccessDeniedError(AppError):
    """Admin password missing or wrong (403)."""

    def __init__(self):
        super().__init__(
            code="ADMIN_ACCESS_DENIED",
            message="Admin password required for catalog editing",
            status_code=403
        )


# ===================
# IMPORT ERRORS
# ===================

class EmptyImportError(ValidationError):
    """Pasted text has no content."""

    def __init__(self):
        super().__init__(
            code="IMPORT_EMPTY",
            message="Please paste some data first"
        )


class ImportFileError(ValidationError):
    """Uploaded spreadsheet could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_FILE_ERROR",
            message=message,
            details=details
        )


class NoColumnsMappedError(ValidationError):
    """No column is mapped to a matchable field."""

    def __init__(self):
        super().__init__(
            code="NO_COLUMNS_MAPPED",
            message="Map at least one column to Device Type, Manufacturer, or Model",
            details={"valid": ["Device Type", "Manufacturer", "Model"]}
        )


# ===================
# CATALOG ERRORS
# ===================

class TermNotFoundError(NotFoundError):
    """Canonical term not found."""

    def __init__(self, term_id: str):
        super().__init__(
            resource="Term",
            identifier=term_id,
            code="TERM_NOT_FOUND"
        )


class SystemNotFoundError(NotFoundError):
    """Nomenclature system not found."""

    def __init__(self, system_id: str):
        super().__init__(
            resource="Nomenclature system",
            identifier=system_id,
            code="SYSTEM_NOT_FOUND"
        )


class SystemExistsError(ConflictError):
    """Nomenclature system id or name already taken."""

    def __init__(self, name: str):
        super().__init__(
            code="SYSTEM_EXISTS",
            message=f"Nomenclature system '{name}' already exists",
            details={"name": name}
        )


class TermExistsError(ConflictError):
    """A term with this standard already exists in the list."""

    def __init__(self, standard: str):
        super().__init__(
            code="TERM_EXISTS",
            message=f"A term named '{standard}' already exists",
            details={"standard": standard}
        )


class InvalidReferenceFieldError(ValidationError):
    """Field is not a global reference field."""

    def __init__(self, field: str):
        super().__init__(
            code="INVALID_REFERENCE_FIELD",
            message=(
                "Device Type terms belong to a nomenclature system, not the reference table"
                if field == "Device Type"
                else f"Invalid field value: '{field}'. Must be 'Manufacturer' or 'Model'"
            ),
            details={"provided": field, "valid": ["Manufacturer", "Model"]}
        )


class EmptyTermNameError(ValidationError):
    """New canonical name is blank."""

    def __init__(self):
        super().__init__(
            code="TERM_NAME_EMPTY",
            message="Standard term name cannot be empty"
        )


class InvalidMergeError(ValidationError):
    """Merge target missing or same as source."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_MERGE",
            message=message,
            details=details
        )


class MergeIncompleteError(AppError):
    """A merge step failed after earlier steps were applied."""

    def __init__(self, failed_step: str, completed_steps: list[str], error: str):
        super().__init__(
            code="MERGE_INCOMPLETE",
            message=f"Merge failed at step '{failed_step}': {error}",
            status_code=500,
            details={
                "failed_step": failed_step,
                "completed_steps": completed_steps,
                "retry": "Repeat the same merge to finish it"
            }
        )


class OperationInProgressError(ConflictError):
    """Another create or merge is still pending."""

    def __init__(self, operation: str):
        super().__init__(
            code="OPERATION_IN_PROGRESS",
            message=f"A {operation} is already in progress",
            details={"operation": operation}
        )


# ===================
# REVIEW ERRORS
# ===================

class ReviewSessionNotFoundError(NotFoundError):
    """Review session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Review session",
            identifier=session_id,
            code="REVIEW_SESSION_NOT_FOUND"
        )


class MatchNotFoundError(NotFoundError):
    """Suggestion index out of range for the current item."""

    def __init__(self, index: int):
        super().__init__(
            resource="Suggested match",
            identifier=str(index),
            code="MATCH_NOT_FOUND"
        )


class ReviewCompleteError(ValidationError):
    """Every queue item is already resolved."""

    def __init__(self):
        super().__init__(
            code="REVIEW_COMPLETE",
            message="All review items have been processed"
        )


class StaleReviewItemError(ConflictError):
    """Decision was made against an item that is no longer current."""

    def __init__(self, expected_index: int, current_index: int):
        super().__init__(
            code="REVIEW_ITEM_STALE",
            message="This item was already resolved; refresh the session and try again",
            details={"expected_index": expected_index, "current_index": current_index}
        )


class LowConfidenceMatchError(ValidationError):
    """Low-confidence suggestion accepted without confirmation."""

    def __init__(self, score: float, threshold: float):
        super().__init__(
            code="LOW_CONFIDENCE_MATCH",
            message="This suggestion has low confidence; confirm to accept it",
            details={"score": round(score, 4), "threshold": threshold}
        )
