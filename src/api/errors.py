"""JSON error envelopes shared by route modules.

Every error body has the shape ``{"error": {"code", "message", ...}}``.
Messages pass through ``sanitize_error_message`` before leaving the server.
"""

import logging

from starlette.responses import JSONResponse

from src.errors import DataPortraitError, DomainError, error_envelope
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


def app_error_response(e: DataPortraitError) -> JSONResponse:
    """Envelope for a registry-coded application error."""
    body = error_envelope(e)
    body["error"]["message"] = sanitize_error_message(e.message)
    return JSONResponse(status_code=e.http_status, content=body)


def domain_error_response(e: DomainError) -> JSONResponse:
    """Envelope for a brand-layer exception, via its registry code."""
    return app_error_response(e.to_app_error())


def internal_error(e: Exception, operation: str) -> JSONResponse:
    """Build a structured 500 response and log the full traceback.

    Args:
        e: The exception that was raised.
        operation: Human-readable operation name for the log message.

    Returns:
        JSONResponse with error envelope.
    """
    logger.error(
        "Unexpected error during %s: %s: %s",
        operation, type(e).__name__, e,
        exc_info=True,
    )
    error = DataPortraitError.from_code("E-4001", operation=operation)
    return JSONResponse(
        status_code=500,
        content={"error": {
            "code": error.code,
            "message": sanitize_error_message(f"{error.message} {e}"),
        }},
    )
