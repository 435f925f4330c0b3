"""Error handling framework for Data Portrait.

This package provides:
- Error code registry with E-XXXX format codes
- Application error type and formatting
- Brand-layer exceptions that map onto registry codes

Error categories:
- E-1xxx: Purchase data errors
- E-2xxx: Validation errors
- E-3xxx: Connector errors
- E-4xxx: System/internal errors
"""

from src.errors.domain import (
    BrandConfigError,
    DomainError,
    UnknownBrandError,
    UnsupportedOperationError,
)
from src.errors.formatter import (
    DataPortraitError,
    error_envelope,
    format_error,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "DataPortraitError",
    "error_envelope",
    "format_error",
    # Domain
    "BrandConfigError",
    "DomainError",
    "UnknownBrandError",
    "UnsupportedOperationError",
]
