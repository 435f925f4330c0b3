"""Async MCP session to the data-connector service for one brand.

One ConnectorSessionClient wraps a single MCP session over streamable HTTP
for a (user session, brand) pair. Tool calls that raise are retried after
a full reconnect; results flagged ``isError`` are not retried.

Tool calls can run for many minutes because the connector drives a real
browser on the retailer's site, so the per-call read timeout is long.

Each reconnect starts a new session generation. An attempt that fails
after another caller has already reconnected belongs to a stale
generation and is cancelled with StaleSessionError instead of being
retried against a session it did not start on.

Example:
    client = ConnectorSessionClient(
        session_id="sess-1", client_ip="203.0.113.9", brand_id="amazon",
        base_url="https://getgather.example", mcp_path="mcp-shopping",
    )
    await client.connect()
    result = await client.call_tool("amazon_get_purchase_history")
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation, TextContent

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TTL_SECONDS = 60 * 60
DEFAULT_TOOL_TIMEOUT_SECONDS = 6000.0
CLIENT_VERSION = "1.0.0"


class ConnectorConnectionError(Exception):
    """Failed to open an MCP session to the connector service.

    Attributes:
        brand_id: Brand the session was for.
        url: Connector endpoint.
        reason: Description of why the connection failed.
    """

    def __init__(self, brand_id: str, url: str, reason: str) -> None:
        self.brand_id = brand_id
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to connect to connector '{url}' for {brand_id}: {reason}")


class ConnectorToolError(Exception):
    """Tool returned isError=True.

    Attributes:
        tool_name: Name of the tool that failed.
        error_text: Raw error text from the tool response.
    """

    def __init__(self, tool_name: str, error_text: str) -> None:
        self.tool_name = tool_name
        self.error_text = error_text
        super().__init__(f"Connector tool '{tool_name}' failed: {error_text}")


class StaleSessionError(Exception):
    """A call failed on a session generation that has since been replaced.

    Attributes:
        tool_name: Tool that was in flight.
        generation: Generation the attempt started on.
        current_generation: Generation at the time of failure.
    """

    def __init__(self, tool_name: str, generation: int, current_generation: int) -> None:
        self.tool_name = tool_name
        self.generation = generation
        self.current_generation = current_generation
        super().__init__(
            f"Connector tool '{tool_name}' cancelled: session generation "
            f"{generation} replaced by {current_generation}"
        )


def _dump_content_item(item: Any) -> dict[str, Any]:
    if hasattr(item, "model_dump"):
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(item, dict):
        return dict(item)
    return {"type": getattr(item, "type", "unknown")}


@dataclass
class ToolResult:
    """Decoded result of one tool call.

    Attributes:
        structured: ``structuredContent`` when present, otherwise the first
            text block decoded as a JSON object (None if neither).
        content: Raw content blocks as plain dicts.
        text: Text of the first text block ("" if none).
        is_error: Whether the tool flagged the result as an error.
    """

    structured: dict[str, Any] | None
    content: list[dict[str, Any]] = field(default_factory=list)
    text: str = ""
    is_error: bool = False

    @classmethod
    def from_call_result(cls, result: Any) -> "ToolResult":
        """Build from an ``mcp.types.CallToolResult``."""
        blocks = list(getattr(result, "content", None) or [])
        text = ""
        for item in blocks:
            if isinstance(item, TextContent):
                text = item.text
                break

        structured = getattr(result, "structuredContent", None)
        if not isinstance(structured, dict):
            structured = None
            if text:
                try:
                    decoded = json.loads(text)
                except ValueError:
                    decoded = None
                if isinstance(decoded, dict):
                    structured = decoded

        return cls(
            structured=structured,
            content=[_dump_content_item(item) for item in blocks],
            text=text,
            is_error=bool(getattr(result, "isError", False)),
        )


class ConnectorSessionClient:
    """MCP session to the connector service for one (session, brand) pair.

    Attributes:
        session_id: HTTP session the client belongs to.
        client_ip: Caller IP, used for the location header.
        brand_id: Brand this session talks to.
    """

    def __init__(
        self,
        session_id: str,
        client_ip: str,
        brand_id: str,
        *,
        base_url: str,
        mcp_path: str = "mcp",
        app_name: str = "data-portrait",
        location_header: str = "",
        incognito: bool = True,
        max_retries: int = 3,
        tool_timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
        http_timeout_seconds: float = 30.0,
        idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize without connecting.

        Args:
            session_id: HTTP session identifier.
            client_ip: Caller IP address.
            brand_id: Brand identifier.
            base_url: Connector service root URL.
            mcp_path: Brand-specific sub-path on the connector service.
            app_name: Custom client identifier sent to the connector.
            location_header: Serialized caller location ("" if unknown).
            incognito: Ask the connector not to retain browsing data.
            max_retries: Default retry count for call_tool.
            tool_timeout_seconds: Read timeout for a single tool call.
            http_timeout_seconds: Timeout for plain HTTP operations.
            idle_ttl_seconds: Idle time after which the client expires.
            clock: Monotonic clock, injectable for tests.
        """
        self.session_id = session_id
        self.client_ip = client_ip
        self.brand_id = brand_id
        self._url = f"{base_url.rstrip('/')}/{mcp_path.strip('/')}"
        self._app_name = app_name
        self._location_header = location_header
        self._incognito = incognito
        self._max_retries = max_retries
        self._tool_timeout = timedelta(seconds=tool_timeout_seconds)
        self._http_timeout = timedelta(seconds=http_timeout_seconds)
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._last_accessed = clock()
        self._generation = 0
        self._reconnect_lock = asyncio.Lock()
        self._session: ClientSession | None = None
        self._transport_context: Any = None
        self._session_context: Any = None
        self._retry_attempts_total = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def generation(self) -> int:
        """Current session generation; bumped by every reconnect."""
        return self._generation

    @property
    def last_accessed(self) -> float:
        return self._last_accessed

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def is_expired(self) -> bool:
        """True once the client has been idle longer than the idle TTL."""
        return self._clock() - self._last_accessed > self._idle_ttl

    @property
    def retry_attempts_total(self) -> int:
        """Total number of reconnect-and-retry cycles performed."""
        return self._retry_attempts_total

    def touch(self) -> None:
        """Mark the client as used now."""
        self._last_accessed = self._clock()

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-getgather-custom-app": self._app_name,
            "x-location": self._location_header,
            "x-incognito": "1" if self._incognito else "0",
        }

    async def connect(self) -> None:
        """Open the transport and initialize the MCP session.

        No-op when already connected.

        Raises:
            ConnectorConnectionError: If the transport or handshake fails.
        """
        if self._session is not None:
            return

        try:
            await self._cleanup()
            self._transport_context = streamablehttp_client(
                self._url,
                headers=self._build_headers(),
                timeout=self._http_timeout,
                sse_read_timeout=self._tool_timeout,
            )
            read_stream, write_stream, _ = await self._transport_context.__aenter__()
            self._session_context = ClientSession(
                read_stream,
                write_stream,
                client_info=Implementation(name=self._app_name, version=CLIENT_VERSION),
            )
            self._session = await self._session_context.__aenter__()
            await self._session.initialize()
            logger.info(
                "Connector session opened: brand=%s session=%s generation=%d",
                self.brand_id, self.session_id, self._generation,
            )
        except Exception as e:
            await self._cleanup()
            raise ConnectorConnectionError(
                brand_id=self.brand_id,
                url=self._url,
                reason=str(e),
            ) from e

    async def reconnect(self) -> None:
        """Close the current session and open a new generation.

        Close errors are suppressed; connect errors propagate.

        Raises:
            ConnectorConnectionError: If the new session cannot be opened.
        """
        async with self._reconnect_lock:
            self.touch()
            await self._cleanup()
            self._generation += 1
            logger.info(
                "Reconnecting connector session: brand=%s session=%s generation=%d",
                self.brand_id, self.session_id, self._generation,
            )
            await self.connect()

    async def close(self) -> None:
        """Close the session. Best effort; never raises."""
        await self._cleanup()

    async def _cleanup(self) -> None:
        """Tear down session and transport contexts."""
        if self._session_context is not None:
            try:
                await self._session_context.__aexit__(None, None, None)
            except Exception as e:
                logger.debug("Ignoring session close error for %s: %s", self.brand_id, e)
            self._session_context = None
        self._session = None

        if self._transport_context is not None:
            try:
                await self._transport_context.__aexit__(None, None, None)
            except Exception as e:
                logger.debug("Ignoring transport close error for %s: %s", self.brand_id, e)
            self._transport_context = None

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> ToolResult:
        """Call a connector tool, reconnecting and retrying on failure.

        Args:
            name: Tool name (e.g., "amazon_get_purchase_history").
            arguments: Tool arguments.
            max_retries: Retries after the first attempt; defaults to the
                client's configured value.

        Returns:
            Decoded ToolResult.

        Raises:
            ConnectorToolError: Tool returned isError=True.
            StaleSessionError: Attempt failed on a replaced generation.
            ConnectorConnectionError: Reconnect failed.
            Exception: The last transport error once retries are exhausted.
        """
        retries = self._max_retries if max_retries is None else max_retries
        self.touch()

        for attempt in range(retries + 1):
            generation = self._generation
            logger.info(
                "Calling connector tool '%s' (attempt %d/%d): brand=%s session=%s",
                name, attempt + 1, retries + 1, self.brand_id, self.session_id,
            )
            try:
                if self._session is None:
                    raise ConnectorConnectionError(
                        brand_id=self.brand_id,
                        url=self._url,
                        reason="Session not connected",
                    )
                raw = await self._session.call_tool(
                    name, arguments, read_timeout_seconds=self._tool_timeout,
                )
            except Exception as e:
                if generation != self._generation:
                    raise StaleSessionError(name, generation, self._generation) from e
                if attempt >= retries:
                    raise
                logger.warning(
                    "Connector tool '%s' failed (attempt %d/%d), reconnecting: "
                    "brand=%s session=%s error=%s",
                    name, attempt + 1, retries + 1, self.brand_id, self.session_id, e,
                )
                self._retry_attempts_total += 1
                await self.reconnect()
                continue

            result = ToolResult.from_call_result(raw)
            if result.is_error:
                raise ConnectorToolError(tool_name=name, error_text=result.text)
            return result

        # Loop always returns or raises; kept for type checkers
        raise RuntimeError(f"Connector tool '{name}' failed after {retries + 1} attempts")
