"""Cookie-backed anonymous sessions.

Every request gets ``request.state.session_id``. New visitors (or cookies
that do not look like one of ours) are issued a fresh random id, which
keys their pooled connector sessions and purchase aggregate.
"""

import logging
import re
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import Response

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

SESSION_MAX_AGE_SECONDS = 24 * 60 * 60


def new_session_id() -> str:
    return uuid.uuid4().hex


def is_valid_session_id(value: str | None) -> bool:
    return bool(value) and bool(_SESSION_ID_PATTERN.match(value))


def make_session_middleware(
    cookie_name: str = "dp_session",
    secure: bool = False,
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Build the HTTP middleware that reads or issues the session cookie.

    Args:
        cookie_name: Name of the session cookie.
        secure: Mark the cookie Secure (HTTPS deployments).

    Returns:
        Middleware function for ``app.middleware("http")``.
    """
    async def session_middleware(request: Request, call_next) -> Response:
        session_id = request.cookies.get(cookie_name)
        issued = not is_valid_session_id(session_id)
        if issued:
            session_id = new_session_id()
            logger.debug("Issued session %s for %s", session_id, request.url.path)
        request.state.session_id = session_id

        response = await call_next(request)
        if issued:
            response.set_cookie(
                cookie_name,
                session_id,
                max_age=SESSION_MAX_AGE_SECONDS,
                httponly=True,
                samesite="lax",
                secure=secure,
            )
        return response

    return session_middleware
