"""Server-side connector operations behind the ``/getgather`` routes.

Each operation resolves the caller's pooled connector session for a brand,
invokes one tool and reshapes the structured result for the UI. Connector
failures are wrapped in DataPortraitError so routes can return the JSON
error envelope; unknown brands raise UnknownBrandError.

Example:
    service = ConnectorService(pool, registry, analytics, config.connector)
    result = await service.purchase_history("sess-1", "203.0.113.9", "amazon")
"""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.brands.models import BrandConfig
from src.brands.registry import BrandRegistry
from src.config import ConnectorConfig
from src.errors import DataPortraitError, UnsupportedOperationError
from src.services.analytics_service import (
    CONNECTION_SUCCESSFUL,
    DATA_RETRIEVED_SUCCESSFUL,
    AnalyticsService,
)
from src.services.connector_client import (
    ConnectorConnectionError,
    ConnectorToolError,
    ToolResult,
)
from src.services.connector_pool import ConnectorSessionPool
from src.services.connector_types import (
    CHECK_SIGNIN_TOOL,
    CHECK_STATUS_SUCCESS,
    FINALIZE_SIGNIN_TOOL,
    POLL_SIGNIN_TOOL,
    POLL_STATUS_FINISHED,
    ConnectorResponse,
    PurchaseHistoryDetailsResponse,
    PurchaseHistoryResponse,
    SignInCheckResponse,
    SignInPollResponse,
    decode_content,
)
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


class ConnectorService:
    """Connector operations for one process, shared across requests."""

    def __init__(
        self,
        pool: ConnectorSessionPool,
        registry: BrandRegistry,
        analytics: AnalyticsService,
        config: ConnectorConfig,
    ) -> None:
        self._pool = pool
        self._registry = registry
        self._analytics = analytics
        self._getgather_url = config.getgather_url
        self._app_host = config.app_host
        self._background: set[asyncio.Task[None]] = set()

    def rewrite_hosted_url(self, url: str | None) -> str:
        """Point a connector-hosted sign-in URL at this app's host."""
        if not url:
            return ""
        if self._getgather_url and self._app_host:
            return url.replace(self._getgather_url, self._app_host)
        return url

    @staticmethod
    def _require_tool(brand: BrandConfig, tool_name: str | None, operation: str) -> str:
        if tool_name is None:
            raise UnsupportedOperationError(brand.brand_id, operation)
        return tool_name

    async def _call(
        self,
        session_id: str,
        client_ip: str,
        brand_id: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Call a tool on the pooled session, wrapping connector failures.

        Raises:
            DataPortraitError: E-3001 when no session can be opened, E-3002
                when the tool fails.
        """
        try:
            client = await self._pool.get(session_id, client_ip, brand_id)
            return await client.call_tool(tool_name, arguments)
        except ConnectorConnectionError as e:
            logger.error("Connector unavailable for %s: %s", brand_id, e)
            raise DataPortraitError.from_code(
                "E-3001", brand_id=brand_id, extra={"reason": sanitize_error_message(e.reason)},
            ) from e
        except ConnectorToolError as e:
            logger.error("Connector tool %s failed for %s: %s", tool_name, brand_id, e.error_text)
            raise DataPortraitError.from_code(
                "E-3002", tool_name=tool_name, extra={"reason": sanitize_error_message(e.error_text)},
            ) from e
        except Exception as e:
            logger.error("Connector call %s failed for %s: %s", tool_name, brand_id, e)
            raise DataPortraitError.from_code(
                "E-3002", tool_name=tool_name, extra={"reason": sanitize_error_message(str(e))},
            ) from e

    def _parse_response(self, brand: BrandConfig, result: ToolResult) -> ConnectorResponse:
        try:
            return ConnectorResponse.model_validate(result.structured or {})
        except PydanticValidationError as e:
            logger.error("Unreadable %s payload: %s", brand.brand_id, e)
            raise DataPortraitError.from_code("E-1001", brand=brand.brand_name) from e

    def _decode(self, brand: BrandConfig, raw: Any) -> Any:
        try:
            return decode_content(raw)
        except ValueError as e:
            logger.error("Could not decode %s content: %s", brand.brand_id, e)
            raise DataPortraitError.from_code("E-1001", brand=brand.brand_name) from e

    async def purchase_history(
        self, session_id: str, client_ip: str, brand_id: str,
    ) -> PurchaseHistoryResponse:
        """Start a connection or fetch history for a brand.

        Returns the hosted sign-in link when the connector needs the user to
        sign in, and the raw records once it has them.

        Raises:
            UnknownBrandError: Unknown brand.
            UnsupportedOperationError: Brand has no history tool.
            DataPortraitError: Connector or payload failure.
        """
        brand = self._registry.get(brand_id)
        tool_name = self._require_tool(brand, brand.history_tool, "purchase history")
        result = await self._call(session_id, client_ip, brand_id, tool_name)
        parsed = self._parse_response(brand, result)

        response = PurchaseHistoryResponse(
            link_id=parsed.link_id or "",
            hosted_link_url=self.rewrite_hosted_url(parsed.url),
        )
        raw = parsed.raw_content()
        if raw is None:
            return response

        content = self._decode(brand, raw)
        response.content = content if content else []

        if isinstance(content, list) and content:
            self._analytics.track(session_id, DATA_RETRIEVED_SUCCESSFUL, {
                "brand_name": brand_id,
                "data_count": len(content),
                "purchase_history": content,
                "client_ip": client_ip,
            })
        return response

    async def purchase_history_details(
        self, session_id: str, client_ip: str, brand_id: str, order_id: str,
    ) -> PurchaseHistoryDetailsResponse | None:
        """Fetch line-item details for one order.

        Returns:
            Details response, or None when the connector returned none.
        """
        brand = self._registry.get(brand_id)
        tool_name = self._require_tool(brand, brand.details_tool, "order details")
        result = await self._call(
            session_id, client_ip, brand_id, tool_name, {"order_id": order_id},
        )
        parsed = self._parse_response(brand, result)
        if not parsed.purchase_history_details:
            return None
        return PurchaseHistoryDetailsResponse(content=parsed.purchase_history_details)

    async def poll_signin(
        self, session_id: str, client_ip: str, brand_id: str, link_id: str,
    ) -> SignInPollResponse:
        """Check whether a hosted-link sign-in has finished."""
        self._registry.get(brand_id)
        result = await self._call(
            session_id, client_ip, brand_id, POLL_SIGNIN_TOOL, {"link_id": link_id},
        )
        status = (result.structured or {}).get("status")
        completed = status == POLL_STATUS_FINISHED
        if completed:
            self._analytics.track(session_id, CONNECTION_SUCCESSFUL, {
                "link_id": link_id,
                "client_ip": client_ip,
            })
        return SignInPollResponse(auth_completed=completed, link_id=link_id)

    async def dpage_url(
        self, session_id: str, client_ip: str, brand_id: str,
    ) -> PurchaseHistoryResponse:
        """Request the embedded sign-in resource for a brand.

        The returned content holds only ``resource`` blocks from the tool
        result.
        """
        brand = self._registry.get(brand_id)
        tool_name = self._require_tool(brand, brand.history_tool, "embedded sign-in")
        result = await self._call(session_id, client_ip, brand_id, tool_name)
        structured = result.structured or {}
        resources = [item for item in result.content if item.get("type") == "resource"]
        return PurchaseHistoryResponse(
            link_id=structured.get("signin_id") or "",
            hosted_link_url=self.rewrite_hosted_url(structured.get("url")),
            content=resources,
        )

    async def dpage_signin_check(
        self, session_id: str, client_ip: str, brand_id: str, link_id: str,
    ) -> SignInCheckResponse:
        """Check an embedded sign-in and return its records once complete.

        A successful check schedules ``finalize_signin`` in the background.
        """
        brand = self._registry.get(brand_id)
        result = await self._call(
            session_id, client_ip, brand_id, CHECK_SIGNIN_TOOL, {"signin_id": link_id},
        )
        structured = result.structured or {}
        completed = structured.get("status") == CHECK_STATUS_SUCCESS
        if completed:
            self._analytics.track(session_id, CONNECTION_SUCCESSFUL, {
                "link_id": link_id,
                "client_ip": client_ip,
            })

        raw = structured.get("result")
        content = self._decode(brand, raw) if isinstance(raw, str) else (raw or [])

        if isinstance(content, list) and content:
            self._analytics.track(session_id, DATA_RETRIEVED_SUCCESSFUL, {
                "brand_name": brand_id,
                "data_count": len(content),
                "purchase_history": content,
                "client_ip": client_ip,
            })

        if completed:
            self._schedule_finalize(session_id, client_ip, brand_id, link_id)

        return SignInCheckResponse(auth_completed=completed, link_id=link_id, content=content)

    def _schedule_finalize(
        self, session_id: str, client_ip: str, brand_id: str, signin_id: str,
    ) -> None:
        task = asyncio.create_task(
            self.finalize_signin(session_id, client_ip, brand_id, signin_id),
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def finalize_signin(
        self, session_id: str, client_ip: str, brand_id: str, signin_id: str,
    ) -> None:
        """Tell the connector a sign-in has been consumed. Errors are logged."""
        try:
            await self._call(
                session_id, client_ip, brand_id, FINALIZE_SIGNIN_TOOL, {"signin_id": signin_id},
            )
            logger.info("Finalized sign-in %s for %s", signin_id, brand_id)
        except DataPortraitError as e:
            logger.warning("Failed to finalize sign-in %s for %s: %s", signin_id, brand_id, e)

    @property
    def pending_background_tasks(self) -> int:
        return len(self._background)

    async def shutdown(self) -> None:
        """Cancel background finalize calls still in flight."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
