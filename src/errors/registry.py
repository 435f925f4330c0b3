"""Error code registry with E-XXXX format codes.

This module defines the error code system for Data Portrait, organizing
errors into categories:
- E-1xxx: Purchase data errors
- E-2xxx: Validation errors
- E-3xxx: Connector errors
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx: Purchase data errors
    VALIDATION = "validation"  # E-2xxx: Validation errors
    CONNECTOR = "connector"  # E-3xxx: Connector errors
    SYSTEM = "system"  # E-4xxx: System/internal errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
        http_status: Status code used when the error reaches the HTTP API.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str  # Short title for display
    message_template: str  # Message with {placeholders}
    remediation: str  # Action user should take
    is_retryable: bool = False  # Can be retried without user action
    http_status: int = 500


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Purchase data errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Unreadable Connector Payload",
        message_template="{brand} returned data that could not be read.",
        remediation="Retry the connection. Contact support if the issue persists.",
        http_status=502,
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Invalid Order Batch",
        message_template="Order batch for '{brand}' is invalid: {details}",
        remediation="Send a list of orders with order_id values.",
        http_status=400,
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Unknown Brand",
        message_template="Brand '{brand_id}' is not supported.",
        remediation="Choose one of the listed brands.",
        http_status=404,
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Operation Not Supported",
        message_template="Brand '{brand_id}' does not support {operation}.",
        remediation="This brand only provides its order list.",
        http_status=400,
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Invalid Brand Configuration",
        message_template="Brand configuration is invalid: {details}",
        remediation="Fix the brands file and restart the server.",
    ),
    # Connector errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.CONNECTOR,
        title="Connector Unavailable",
        message_template="Could not reach the data connector for {brand_id}.",
        remediation="Wait a moment and try connecting again.",
        is_retryable=True,
        http_status=503,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.CONNECTOR,
        title="Connector Request Failed",
        message_template="The data connector failed while running '{tool_name}'.",
        remediation="Try connecting again. Contact support if the issue persists.",
        is_retryable=True,
        http_status=502,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.CONNECTOR,
        title="Sign-in Timed Out",
        message_template="Sign-in to {brand} did not complete within {seconds} seconds.",
        remediation="Close this window and start the connection again.",
        http_status=504,
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.CONNECTOR,
        title="Sign-in Rejected",
        message_template="Sign in failed: {details}",
        remediation="Check your credentials and try again.",
        http_status=401,
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.CONNECTOR,
        title="Sign-in Surface Missing",
        message_template="No sign-in form was returned for {brand}.",
        remediation="Try connecting again later.",
        http_status=502,
    ),
    "E-3006": ErrorCode(
        code="E-3006",
        category=ErrorCategory.CONNECTOR,
        title="Sign-in Could Not Start",
        message_template="Could not start the connection to {brand}: {details}",
        remediation="Close this window and try again.",
        http_status=502,
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Internal Error",
        message_template="Unexpected error during {operation}.",
        remediation="This is a system error. Retry the operation. Contact support if issue persists.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
