"""HTTP boundary between the sign-in orchestrator and the connector routes.

SignInGateway is the protocol the orchestrator depends on. HttpSignInGateway
implements it with httpx against the ``/getgather`` routes. Error responses
raise SignInGatewayError so the gateway is reusable outside the CLI.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx

from src.utils.redaction import mask_form_values

logger = logging.getLogger(__name__)

SIGNIN_FINISHED_MARKER = "Finished! You can close this window now"


class SignInGatewayError(Exception):
    """Request across the sign-in boundary failed.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status when one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class SignInDescriptor:
    """What the server returned when a connection was started."""

    link_id: str = ""
    url: str = ""
    content: Any = field(default_factory=list)

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    @classmethod
    def from_api(cls, data: dict) -> "SignInDescriptor":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            link_id=data.get("link_id") or "",
            url=data.get("hosted_link_url") or "",
            content=data.get("content") or [],
        )


@dataclass(frozen=True)
class ResourceCheck:
    """Result of checking an embedded sign-in."""

    completed: bool
    content: Any = None

    @classmethod
    def from_api(cls, data: dict) -> "ResourceCheck":
        return cls(
            completed=bool(data.get("auth_completed")),
            content=data.get("content"),
        )


class SignInGateway(Protocol):
    """Operations the orchestrator needs from the server."""

    async def start_signin(self, brand_id: str) -> SignInDescriptor:
        """Start a hosted-link or form sign-in (may already carry data)."""
        ...

    async def start_resource_signin(self, brand_id: str) -> SignInDescriptor:
        """Start an embedded-resource sign-in."""
        ...

    async def poll_auth(self, brand_id: str, link_id: str) -> bool:
        """Whether a hosted-link sign-in has finished."""
        ...

    async def check_resource_signin(self, brand_id: str, link_id: str) -> ResourceCheck:
        """Whether an embedded sign-in has finished, with its data."""
        ...

    async def fetch_purchase_history(self, brand_id: str) -> SignInDescriptor:
        """Fetch the raw records after sign-in."""
        ...

    async def submit_credentials(self, url: str, values: Mapping[str, str]) -> bool:
        """Post credential form values; True if the page reports it finished."""
        ...


class HttpSignInGateway:
    """SignInGateway over HTTP using httpx.

    Use as an async context manager, or pass an existing AsyncClient (for
    example one built on ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize with the API base URL.

        Args:
            base_url: Data Portrait API base URL.
            client: Optional pre-built client; not closed by this gateway.
            timeout: Request timeout for a client this gateway creates.
        """
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    async def __aenter__(self) -> "HttpSignInGateway":
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise SignInGatewayError("Gateway is not open; use 'async with'")
        return self._client

    def _raise_for_status(self, resp: httpx.Response) -> None:
        """Raise SignInGatewayError on non-2xx responses.

        Raises:
            SignInGatewayError: On non-2xx status codes.
        """
        if resp.status_code >= 400:
            try:
                body = resp.json()
                error = body.get("error") if isinstance(body, dict) else None
                detail = error.get("message") if isinstance(error, dict) else (error or resp.text)
            except ValueError:
                detail = resp.text
            raise SignInGatewayError(message=str(detail), status_code=resp.status_code)

    async def _get_json(self, path: str) -> dict:
        try:
            resp = await self._http().get(path)
        except httpx.HTTPError as e:
            raise SignInGatewayError(f"Request to {path} failed: {e}") from e
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise SignInGatewayError(
                f"Response from {path} was not JSON", status_code=resp.status_code,
            ) from e
        return data if isinstance(data, dict) else {}

    async def start_signin(self, brand_id: str) -> SignInDescriptor:
        data = await self._get_json(f"/getgather/purchase-history/{brand_id}")
        return SignInDescriptor.from_api(data)

    async def start_resource_signin(self, brand_id: str) -> SignInDescriptor:
        data = await self._get_json(f"/getgather/dpage-url/{brand_id}")
        return SignInDescriptor.from_api(data)

    async def poll_auth(self, brand_id: str, link_id: str) -> bool:
        data = await self._get_json(f"/getgather/mcp-poll/{brand_id}/{link_id}")
        return bool(data.get("auth_completed"))

    async def check_resource_signin(self, brand_id: str, link_id: str) -> ResourceCheck:
        data = await self._get_json(f"/getgather/dpage-signin-check/{brand_id}/{link_id}")
        return ResourceCheck.from_api(data)

    async def fetch_purchase_history(self, brand_id: str) -> SignInDescriptor:
        data = await self._get_json(f"/getgather/purchase-history/{brand_id}")
        return SignInDescriptor.from_api(data)

    async def submit_credentials(self, url: str, values: Mapping[str, str]) -> bool:
        """Post credentials as a form to the hosted sign-in page.

        Returns:
            True if the response reports the sign-in as finished.

        Raises:
            SignInGatewayError: "Sign in failed: ..." when the page rejects
                the submission.
        """
        logger.info("Submitting sign-in form to %s: %s", url, mask_form_values(values))
        try:
            resp = await self._http().post(url, data=dict(values))
        except httpx.HTTPError as e:
            raise SignInGatewayError(f"Sign in failed: {e}") from e

        text = resp.text
        if resp.status_code >= 400:
            raise SignInGatewayError(f"Sign in failed: {text}", status_code=resp.status_code)
        finished = SIGNIN_FINISHED_MARKER in text
        logger.debug("Sign-in form accepted for %s (finished=%s)", url, finished)
        return finished
