"""Drives one brand connection from INITIAL to COMPLETED or FAILED.

SignInOrchestrator owns a SignInSnapshot and advances it only through
``transition``. Side effects (opening the popup, rendering a resource,
starting the poll task, handing orders off) run after the snapshot has
moved, based on the resulting state.

Three sign-in variants are supported, chosen from the BrandConfig:

- resource: the connector returns an embeddable UI resource; completion is
  checked via ``check_resource_signin`` after a short delay and that check
  returns the records.
- form: the user enters credentials inline; they are posted to the hosted
  link and completion is polled via ``poll_auth``.
- hosted_link: the hosted link opens in a popup and ``poll_auth`` is polled.

Initiation failures, rejected credentials and poll timeouts end in FAILED;
nothing retries automatically. Closing the surface cancels polling but
leaves the server-side connector session pooled for a later retry.

Example:
    orchestrator = SignInOrchestrator(gateway, surface, aggregator=aggregator)
    await orchestrator.open(registry.get("amazon"))
    snapshot = await orchestrator.wait()
"""

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from src.brands.models import BrandConfig
from src.config import SignInConfig
from src.errors import DataPortraitError
from src.orchestrator.models.purchase import PurchaseHistory
from src.orchestrator.signin.gateway import SignInGateway, SignInGatewayError
from src.orchestrator.signin.polling import PollTimeoutError, poll_until_complete
from src.orchestrator.signin.states import (
    AuthCompleted,
    AuthPending,
    ConnectRequested,
    CredentialsSubmitted,
    DataRetrieved,
    Failed,
    FormReceived,
    HostedLinkReceived,
    InvalidTransitionError,
    Reset,
    ResourceReceived,
    SignInEvent,
    SignInSnapshot,
    SignInState,
    transition,
)
from src.orchestrator.signin.surface import RESOURCE_SANDBOX, SignInSurface
from src.services.analytics_service import (
    CONNECTION_ATTEMPT,
    CONNECTION_FAILED,
    AnalyticsService,
)
from src.services.data_transform import to_purchase_history, transform_data
from src.services.purchase_aggregator import PurchaseAggregator

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[list[PurchaseHistory]], None]

# Returned by the hosted-link check once the connector reports completion
_HOSTED_DONE = object()


class SignInOrchestrator:
    """State machine driver for one sign-in surface."""

    def __init__(
        self,
        gateway: SignInGateway,
        surface: SignInSurface,
        *,
        aggregator: PurchaseAggregator | None = None,
        on_success: SuccessCallback | None = None,
        analytics: AnalyticsService | None = None,
        session_id: str = "",
        config: SignInConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize in INITIAL.

        Args:
            gateway: Server operations.
            surface: User-facing sign-in surface.
            aggregator: Receives orders from every successful connection.
            on_success: Called with the orders after the surface closes.
            analytics: Sink for attempt and failure events.
            session_id: Analytics user id.
            config: Polling settings.
            sleep: Sleep function for polling, injectable for tests.
            clock: Monotonic clock for polling, injectable for tests.
        """
        self._gateway = gateway
        self._surface = surface
        self._aggregator = aggregator
        self._on_success = on_success
        self._analytics = analytics
        self._session_id = session_id
        self._config = config or SignInConfig()
        self._sleep = sleep
        self._clock = clock
        self._snapshot = SignInSnapshot()
        self._brand: BrandConfig | None = None
        self._loaded_brand_id: str | None = None
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def snapshot(self) -> SignInSnapshot:
        return self._snapshot

    @property
    def state(self) -> SignInState:
        return self._snapshot.state

    @property
    def brand(self) -> BrandConfig | None:
        return self._brand

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _apply(self, event: SignInEvent) -> SignInSnapshot:
        previous = self._snapshot.state
        self._snapshot = transition(self._snapshot, event)
        if self._snapshot.state is not previous:
            logger.info(
                "Sign-in %s: %s -> %s",
                self._snapshot.brand_id or "-", previous.value, self._snapshot.state.value,
            )
            if self._snapshot.is_busy:
                self._surface.show_progress(self._snapshot.state)
        return self._snapshot

    def _track(self, event: str, properties: dict[str, Any]) -> None:
        if self._analytics is not None:
            self._analytics.track(self._session_id, event, properties)

    def _fail(self, message: str) -> SignInSnapshot:
        if self._snapshot.is_terminal:
            return self._snapshot
        brand_name = self._brand.brand_name if self._brand else None
        logger.warning("Sign-in %s failed: %s", self._snapshot.brand_id, message)
        self._apply(Failed(message))
        self._surface.show_error(message)
        self._track(CONNECTION_FAILED, {"brand_name": brand_name, "error": message})
        return self._snapshot

    # --- Dismissal ---

    def can_dismiss(self) -> bool:
        """False while an attempt is in flight."""
        return not self._snapshot.is_busy

    async def request_dismiss(self) -> bool:
        """Close the surface if dismissal is currently allowed.

        Returns:
            True if the surface was closed.
        """
        if not self.can_dismiss():
            logger.debug("Ignoring dismiss while %s", self._snapshot.state.value)
            return False
        await self.close()
        return True

    async def dismiss_error(self) -> SignInSnapshot:
        """Acknowledge a FAILED attempt: reset to INITIAL and close the surface."""
        if self._snapshot.state is SignInState.FAILED:
            await self.close()
        return self._snapshot

    async def close(self) -> None:
        """Stop polling, discard attempt state and close the surface."""
        await self._cancel_poll()
        self._apply(Reset())
        self._loaded_brand_id = None
        self._surface.close()

    async def _cancel_poll(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def wait(self) -> SignInSnapshot:
        """Wait for the running poll task, if any, and return the snapshot."""
        task = self._poll_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return self._snapshot

    # --- Initiation ---

    async def open(self, brand: BrandConfig) -> SignInSnapshot:
        """Open the surface for a brand and start a connection attempt.

        Re-opening the brand that is already loaded does nothing. Opening a
        different brand discards the current attempt first.

        Args:
            brand: Brand to connect.

        Returns:
            Snapshot after initiation.
        """
        if self._loaded_brand_id == brand.brand_id:
            logger.debug("Sign-in for %s already loaded", brand.brand_id)
            return self._snapshot

        await self._cancel_poll()
        self._brand = brand
        self._loaded_brand_id = brand.brand_id
        self._apply(Reset())
        self._apply(ConnectRequested(brand.brand_id))
        self._track(CONNECTION_ATTEMPT, {"brand_name": brand.brand_name})

        try:
            if brand.signin_variant == "resource":
                await self._start_resource(brand)
            else:
                await self._start_link(brand)
        except Exception as e:
            if not isinstance(e, SignInGatewayError):
                logger.exception("Unexpected error starting sign-in for %s", brand.brand_id)
            details = e.message if isinstance(e, SignInGatewayError) else str(e)
            self._fail(
                DataPortraitError.from_code(
                    "E-3006", brand=brand.brand_name, details=details,
                ).message
            )
        return self._snapshot

    async def _start_resource(self, brand: BrandConfig) -> None:
        descriptor = await self._gateway.start_resource_signin(brand.brand_id)
        if not descriptor.has_content:
            self._fail(DataPortraitError.from_code("E-3005", brand=brand.brand_name).message)
            return
        self._apply(ResourceReceived(descriptor.content, descriptor.link_id))
        self._surface.render_resource(descriptor.content, sandbox=RESOURCE_SANDBOX)
        self._start_poll(
            self._check_resource, initial_delay=self._config.resource_poll_delay_seconds,
        )

    async def _start_link(self, brand: BrandConfig) -> None:
        descriptor = await self._gateway.start_signin(brand.brand_id)

        if descriptor.has_content:
            # Connector session is already signed in
            self._apply(HostedLinkReceived(descriptor.url, descriptor.link_id))
            await self._retrieve(descriptor.content)
            return

        if brand.signin_variant == "form":
            self._apply(FormReceived(brand.credential_fields, descriptor.url, descriptor.link_id))
            self._surface.show_form(brand.credential_fields)
            return

        if not descriptor.url:
            self._fail(DataPortraitError.from_code("E-3005", brand=brand.brand_name).message)
            return
        self._apply(HostedLinkReceived(descriptor.url, descriptor.link_id))
        self._surface.open_popup(descriptor.url)
        self._start_poll(self._check_hosted)

    async def submit_credentials(self, values: Mapping[str, str]) -> SignInSnapshot:
        """Post credential form values and start polling.

        Args:
            values: Field name to value, for the brand's credential fields.

        Returns:
            Snapshot after submission.

        Raises:
            InvalidTransitionError: If no credential form is showing.
        """
        if not self._snapshot.awaiting_credentials:
            raise InvalidTransitionError(self._snapshot.state, CredentialsSubmitted())

        self._apply(CredentialsSubmitted())
        try:
            await self._gateway.submit_credentials(self._snapshot.url or "", values)
        except SignInGatewayError as e:
            message = e.message
            if not message.startswith("Sign in failed"):
                message = DataPortraitError.from_code("E-3004", details=message).message
            self._fail(message)
            return self._snapshot

        self._start_poll(self._check_hosted)
        return self._snapshot

    # --- Polling ---

    def _start_poll(self, check: Callable[[], Awaitable[Any]], initial_delay: float = 0.0) -> None:
        self._poll_task = asyncio.create_task(self._run_poll(check, initial_delay))

    async def _check_hosted(self) -> Any:
        brand_id = self._snapshot.brand_id or ""
        if await self._gateway.poll_auth(brand_id, self._snapshot.link_id or ""):
            return _HOSTED_DONE
        return None

    async def _check_resource(self) -> Any:
        brand_id = self._snapshot.brand_id or ""
        check = await self._gateway.check_resource_signin(brand_id, self._snapshot.link_id or "")
        return check if check.completed else None

    def _on_pending(self, attempt: int) -> None:
        self._apply(AuthPending())

    async def _run_poll(self, check: Callable[[], Awaitable[Any]], initial_delay: float) -> None:
        brand = self._brand
        try:
            outcome = await poll_until_complete(
                check,
                interval=self._config.poll_interval_seconds,
                backoff=self._config.poll_backoff,
                max_interval=self._config.poll_max_interval_seconds,
                max_wait=self._config.poll_max_wait_seconds,
                initial_delay=initial_delay,
                on_pending=self._on_pending,
                sleep=self._sleep,
                clock=self._clock,
            )
        except PollTimeoutError as e:
            self._fail(DataPortraitError.from_code(
                "E-3003",
                brand=brand.brand_name if brand else "",
                seconds=int(e.waited_seconds),
            ).message)
            return

        content = None if outcome is _HOSTED_DONE else getattr(outcome, "content", None)
        await self._retrieve(content, fetch=outcome is _HOSTED_DONE)

    # --- Completion ---

    async def _retrieve(self, content: Any, fetch: bool = False) -> None:
        """Move to RETRIEVING, load and transform records, then complete."""
        brand = self._brand
        if brand is None:
            return
        self._apply(AuthCompleted())

        if fetch:
            try:
                descriptor = await self._gateway.fetch_purchase_history(brand.brand_id)
            except SignInGatewayError as e:
                self._fail(e.message)
                return
            except Exception as e:
                logger.exception("Unexpected error fetching orders for %s", brand.brand_id)
                self._fail(DataPortraitError.from_code("E-4001", operation="order retrieval").message)
                return
            content = descriptor.content

        records = transform_data(content if content is not None else [], brand.data_transform)
        orders = to_purchase_history(records, brand.brand_name)
        self._apply(DataRetrieved(tuple(orders)))

        self._surface.close()
        self._loaded_brand_id = None
        logger.info("Sign-in %s completed with %d orders", brand.brand_id, len(orders))

        if self._on_success is not None:
            self._on_success(list(orders))
        if self._aggregator is not None:
            self._aggregator.on_brand_connected(brand.brand_name, orders)
