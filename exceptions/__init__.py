"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    DatabaseError,

    # Consolidated records
    ConsolidatedRecordNotFoundError,

    # Master mappings
    MappingNotFoundError,
    DuplicateMappingError,
    UnknownCanonicalCodeError,

    # Uploads
    InvalidDataBlockError,
    ExcelParseError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "DatabaseError",

    # Consolidated records
    "ConsolidatedRecordNotFoundError",

    # Master mappings
    "MappingNotFoundError",
    "DuplicateMappingError",
    "UnknownCanonicalCodeError",

    # Uploads
    "InvalidDataBlockError",
    "ExcelParseError",
]
