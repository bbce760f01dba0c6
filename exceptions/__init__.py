"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DatabaseError,
    ConfigurationError,
    AdminAccessDeniedError,

    # Import
    EmptyImportError,
    ImportFileError,
    NoColumnsMappedError,

    # Catalog
    TermNotFoundError,
    SystemNotFoundError,
    SystemExistsError,
    TermExistsError,
    InvalidReferenceFieldError,
    EmptyTermNameError,
    InvalidMergeError,
    MergeIncompleteError,
    OperationInProgressError,

    # Review
    ReviewSessionNotFoundError,
    MatchNotFoundError,
    ReviewCompleteError,
    StaleReviewItemError,
    LowConfidenceMatchError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DatabaseError",
    "ConfigurationError",
    "AdminAccessDeniedError",

    # Import
    "EmptyImportError",
    "ImportFileError",
    "NoColumnsMappedError",

    # Catalog
    "TermNotFoundError",
    "SystemNotFoundError",
    "SystemExistsError",
    "TermExistsError",
    "InvalidReferenceFieldError",
    "EmptyTermNameError",
    "InvalidMergeError",
    "MergeIncompleteError",
    "OperationInProgressError",

    # Review
    "ReviewSessionNotFoundError",
    "MatchNotFoundError",
    "ReviewCompleteError",
    "StaleReviewItemError",
    "LowConfidenceMatchError",
]
