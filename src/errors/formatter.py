"""Application error type and display formatting.

This module provides:
- DataPortraitError exception class for application errors
- Error formatting for user display and API envelopes
"""

from dataclasses import dataclass, field

from src.errors.registry import get_error


@dataclass
class DataPortraitError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
        http_status: Status code for API responses.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    is_retryable: bool = False
    http_status: int = 500
    details: dict = field(default_factory=dict)  # Additional context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "DataPortraitError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                The special key 'extra' is stored in ``details`` instead.

        Returns:
            DataPortraitError instance with formatted message.
        """
        extra = kwargs.pop("extra", {})
        details = dict(kwargs)
        if isinstance(extra, dict):
            details.update(extra)

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                details=details,
            )

        message = error_def.message_template
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            is_retryable=error_def.is_retryable,
            http_status=error_def.http_status,
            details=details,
        )


def format_error(error: DataPortraitError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The DataPortraitError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for user display.
    """
    lines = [f"{error.code}: {error.message}"]
    if include_remediation:
        lines.append(f"  Action: {error.remediation}")
    return "\n".join(lines)


def error_envelope(error: DataPortraitError) -> dict:
    """Build the JSON error body returned by the API."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
            "retryable": error.is_retryable,
        }
    }
