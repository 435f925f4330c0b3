"""Tests for SignInOrchestrator across the three sign-in variants."""

import asyncio

import httpx
import pytest

from src.config import SignInConfig
from src.orchestrator.signin.gateway import (
    HttpSignInGateway,
    ResourceCheck,
    SignInDescriptor,
    SignInGatewayError,
)
from src.orchestrator.signin.orchestrator import SignInOrchestrator
from src.orchestrator.signin.states import InvalidTransitionError, SignInSnapshot, SignInState
from src.orchestrator.signin.surface import RESOURCE_SANDBOX
from src.services.analytics_service import CONNECTION_ATTEMPT, CONNECTION_FAILED
from src.services.purchase_aggregator import PurchaseAggregator
from tests.helpers import FakeClock, FakeGateway, FakeSleep, FakeSurface, raw_orders

RESOURCE_BLOCK = {"type": "resource", "resource": {"uri": "ui://signin/S1"}}


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def aggregator() -> PurchaseAggregator:
    return PurchaseAggregator()


def _orchestrator(gateway, surface, aggregator=None, analytics=None, config=None, **kwargs):
    clock = FakeClock()
    return SignInOrchestrator(
        gateway,
        surface,
        aggregator=aggregator,
        analytics=analytics,
        session_id="sess",
        config=config,
        sleep=FakeSleep(clock),
        clock=clock,
        **kwargs,
    )


class TestHostedLinkFlow:
    """Tests for the popup + poll_auth variant."""

    @pytest.mark.asyncio
    async def test_completes_and_hands_off_orders(
        self, hosted_brand, surface, aggregator, analytics, recorder,
    ):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L1", url="https://app/link/L1"),
            poll_results=[False, True],
            history=SignInDescriptor(content=raw_orders("o1", "o2")),
        )
        orchestrator = _orchestrator(gateway, surface, aggregator, analytics)

        snapshot = await orchestrator.open(hosted_brand)
        assert snapshot.state is SignInState.AUTHENTICATING
        assert ("open_popup", "https://app/link/L1") in surface.calls

        snapshot = await orchestrator.wait()

        assert snapshot.state is SignInState.COMPLETED
        assert [o.order_id for o in snapshot.orders] == ["o1", "o2"]
        assert [o.order_id for o in aggregator.orders] == ["o1", "o2"]
        assert aggregator.connected_brands == ["Acme"]
        assert gateway.call_names() == [
            "start_signin", "poll_auth", "poll_auth", "fetch_purchase_history",
        ]
        assert gateway.calls[1] == ("poll_auth", ("acme", "L1"))
        assert surface.call_names()[-1] == "close"
        assert surface.progress == [
            SignInState.CONNECTING, SignInState.AUTHENTICATING, SignInState.RETRIEVING,
        ]
        assert recorder.names() == [CONNECTION_ATTEMPT]

    @pytest.mark.asyncio
    async def test_existing_content_skips_polling(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInDescriptor(content=raw_orders("o1")))
        received = []
        orchestrator = _orchestrator(gateway, surface, on_success=received.append)

        snapshot = await orchestrator.open(hosted_brand)

        assert snapshot.state is SignInState.COMPLETED
        assert gateway.call_names() == ["start_signin"]
        assert not orchestrator.is_polling
        assert [o.order_id for o in received[0]] == ["o1"]

    @pytest.mark.asyncio
    async def test_missing_link_fails(self, hosted_brand, surface):
        orchestrator = _orchestrator(FakeGateway(start=SignInDescriptor()), surface)

        snapshot = await orchestrator.open(hosted_brand)

        assert snapshot.state is SignInState.FAILED
        assert "No sign-in form was returned for Acme" in snapshot.error

    @pytest.mark.asyncio
    async def test_poll_timeout_fails(self, hosted_brand, surface):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L1", url="https://app/link/L1"),
            poll_results=[False],
        )
        orchestrator = _orchestrator(
            gateway, surface, config=SignInConfig(poll_max_wait_seconds=5),
        )

        await orchestrator.open(hosted_brand)
        snapshot = await orchestrator.wait()

        assert snapshot.state is SignInState.FAILED
        assert "did not complete within 5 seconds" in snapshot.error
        assert surface.errors == [snapshot.error]

    @pytest.mark.asyncio
    async def test_fetch_failure_after_auth_fails(self, hosted_brand, surface):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L1", url="https://app/link/L1"),
            poll_results=[True],
            history=SignInGatewayError("Connector unavailable", 503),
        )
        orchestrator = _orchestrator(gateway, surface)

        await orchestrator.open(hosted_brand)
        snapshot = await orchestrator.wait()

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error == "Connector unavailable"

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_fails(self, hosted_brand, surface):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L1", url="https://app/link/L1"),
            poll_results=[True],
            history=KeyError("content"),
        )
        orchestrator = _orchestrator(gateway, surface)

        await orchestrator.open(hosted_brand)
        snapshot = await orchestrator.wait()

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error == "Unexpected error during order retrieval."
        assert orchestrator.can_dismiss()


class TestResourceFlow:
    """Tests for the embedded-resource variant."""

    @pytest.mark.asyncio
    async def test_renders_resource_and_completes(self, resource_brand, surface, aggregator):
        gateway = FakeGateway(
            resource=SignInDescriptor(link_id="S1", content=[RESOURCE_BLOCK]),
            check_results=[
                ResourceCheck(completed=False),
                ResourceCheck(completed=True, content=raw_orders("b1")),
            ],
        )
        orchestrator = _orchestrator(gateway, surface, aggregator)

        snapshot = await orchestrator.open(resource_brand)
        assert snapshot.state is SignInState.AWAITING_RESOURCE
        assert ("render_resource", ([RESOURCE_BLOCK], RESOURCE_SANDBOX)) in surface.calls

        snapshot = await orchestrator.wait()

        assert snapshot.state is SignInState.COMPLETED
        assert [o.brand for o in aggregator.orders] == ["Shelf"]
        assert "fetch_purchase_history" not in gateway.call_names()
        assert orchestrator._sleep.delays[0] == SignInConfig().resource_poll_delay_seconds

    @pytest.mark.asyncio
    async def test_no_resource_fails(self, resource_brand, surface, analytics, recorder):
        gateway = FakeGateway(resource=SignInDescriptor(link_id="S1"))
        orchestrator = _orchestrator(gateway, surface, analytics=analytics)

        snapshot = await orchestrator.open(resource_brand)

        assert snapshot.state is SignInState.FAILED
        assert recorder.names() == [CONNECTION_ATTEMPT, CONNECTION_FAILED]
        assert recorder.properties(CONNECTION_FAILED)[0]["brand_name"] == "Shelf"


class TestFormFlow:
    """Tests for the inline credential form variant."""

    @pytest.mark.asyncio
    async def test_submit_then_poll(self, form_brand, surface):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L2", url="https://app/link/L2"),
            poll_results=[True],
            history=SignInDescriptor(content=raw_orders("s1")),
        )
        orchestrator = _orchestrator(gateway, surface)

        snapshot = await orchestrator.open(form_brand)

        assert snapshot.awaiting_credentials
        [(_, fields)] = [c for c in surface.calls if c[0] == "show_form"]
        assert [f.name for f in fields] == ["email", "password"]

        snapshot = await orchestrator.submit_credentials({"email": "a@b.c", "password": "pw"})
        assert snapshot.state is SignInState.AUTHENTICATING
        assert ("submit_credentials", ("https://app/link/L2", {"email": "a@b.c", "password": "pw"})) \
            in gateway.calls

        snapshot = await orchestrator.wait()
        assert snapshot.state is SignInState.COMPLETED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,expected", [
        (SignInGatewayError("Sign in failed: wrong password", 401), "Sign in failed: wrong password"),
        (SignInGatewayError("Request timed out"), "Sign in failed: Request timed out"),
    ])
    async def test_rejected_credentials_fail(self, form_brand, surface, error, expected):
        gateway = FakeGateway(
            start=SignInDescriptor(link_id="L2", url="https://app/link/L2"),
            submit_result=error,
        )
        orchestrator = _orchestrator(gateway, surface)
        await orchestrator.open(form_brand)

        snapshot = await orchestrator.submit_credentials({"email": "a@b.c", "password": "x"})

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error == expected
        assert not orchestrator.is_polling

    @pytest.mark.asyncio
    async def test_submit_without_form_is_rejected(self, hosted_brand, surface):
        orchestrator = _orchestrator(FakeGateway(), surface)
        with pytest.raises(InvalidTransitionError):
            await orchestrator.submit_credentials({"email": "a@b.c"})


class TestInitiationFailure:
    """Initiation errors end in FAILED and dismissal clears the attempt."""

    @pytest.mark.asyncio
    async def test_gateway_error_reaches_failed_then_resets(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInGatewayError("connector returned 502", 502))
        orchestrator = _orchestrator(gateway, surface)

        snapshot = await orchestrator.open(hosted_brand)

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error == "Could not start the connection to Acme: connector returned 502"
        assert snapshot.brand_id == "acme"
        assert orchestrator.can_dismiss()

        snapshot = await orchestrator.dismiss_error()

        assert snapshot == SignInSnapshot()
        assert surface.call_names()[-1] == "close"

    @pytest.mark.asyncio
    async def test_html_response_fails_instead_of_hanging(self, resource_brand, surface):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text="<html>maintenance</html>", headers={"content-type": "text/html"},
            )

        client = httpx.AsyncClient(
            base_url="http://portrait.test", transport=httpx.MockTransport(handler),
        )
        orchestrator = _orchestrator(HttpSignInGateway("http://portrait.test", client=client), surface)

        snapshot = await orchestrator.open(resource_brand)

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error.startswith("Could not start the connection to Shelf")
        assert orchestrator.can_dismiss()
        assert (await orchestrator.dismiss_error()).state is SignInState.INITIAL
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_error_reaches_failed(self, hosted_brand, surface):
        gateway = FakeGateway(start=RuntimeError("boom"))
        orchestrator = _orchestrator(gateway, surface)

        snapshot = await orchestrator.open(hosted_brand)

        assert snapshot.state is SignInState.FAILED
        assert snapshot.error == "Could not start the connection to Acme: boom"
        assert surface.errors == [snapshot.error]

        gateway.start = SignInDescriptor(content=raw_orders("o1"))
        await orchestrator.dismiss_error()
        assert (await orchestrator.open(hosted_brand)).state is SignInState.COMPLETED

    @pytest.mark.asyncio
    async def test_reopen_after_failure_starts_new_attempt(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInGatewayError("down"))
        orchestrator = _orchestrator(gateway, surface)
        await orchestrator.open(hosted_brand)
        await orchestrator.dismiss_error()

        gateway.start = SignInDescriptor(content=raw_orders("o1"))
        snapshot = await orchestrator.open(hosted_brand)

        assert snapshot.state is SignInState.COMPLETED
        assert snapshot.error is None


class TestDismissal:
    """Tests for open/close lifecycle and dismissal guards."""

    @pytest.mark.asyncio
    async def test_cannot_dismiss_while_busy(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInDescriptor(link_id="L1", url="https://app/l"))
        orchestrator = SignInOrchestrator(
            gateway, surface, config=SignInConfig(poll_interval_seconds=60),
        )
        await orchestrator.open(hosted_brand)

        assert not orchestrator.can_dismiss()
        assert await orchestrator.request_dismiss() is False
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_close_cancels_polling(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInDescriptor(link_id="L1", url="https://app/l"))
        orchestrator = SignInOrchestrator(
            gateway, surface, config=SignInConfig(poll_interval_seconds=60),
        )
        await orchestrator.open(hosted_brand)
        await asyncio.sleep(0)
        assert orchestrator.is_polling

        await orchestrator.close()

        assert not orchestrator.is_polling
        assert orchestrator.state is SignInState.INITIAL
        assert gateway.call_names().count("poll_auth") == 1

    @pytest.mark.asyncio
    async def test_reopening_loaded_brand_is_noop(self, hosted_brand, surface):
        gateway = FakeGateway(start=SignInDescriptor(link_id="L1", url="https://app/l"))
        orchestrator = SignInOrchestrator(
            gateway, surface, config=SignInConfig(poll_interval_seconds=60),
        )
        await orchestrator.open(hosted_brand)
        await orchestrator.open(hosted_brand)

        assert gateway.call_names().count("start_signin") == 1
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_opening_other_brand_discards_attempt(self, hosted_brand, form_brand, surface):
        gateway = FakeGateway(start=SignInDescriptor(link_id="L1", url="https://app/l"))
        orchestrator = SignInOrchestrator(
            gateway, surface, config=SignInConfig(poll_interval_seconds=60),
        )
        await orchestrator.open(hosted_brand)

        snapshot = await orchestrator.open(form_brand)

        assert snapshot.brand_id == "supply"
        assert snapshot.awaiting_credentials
        assert not orchestrator.is_polling
