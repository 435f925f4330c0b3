"""Tests for the sign-in transition function."""

import pytest

from src.brands.models import SchemaField
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
    SignInSnapshot,
    SignInState,
    transition,
)
from tests.helpers import make_order

FIELDS = (SchemaField(name="email", type="email"), SchemaField(name="password", type="password"))


def _run(*events) -> SignInSnapshot:
    snapshot = SignInSnapshot()
    for event in events:
        snapshot = transition(snapshot, event)
    return snapshot


NON_TERMINAL_PATHS = {
    SignInState.INITIAL: (),
    SignInState.CONNECTING: (ConnectRequested("acme"),),
    SignInState.AUTHENTICATING: (ConnectRequested("acme"), HostedLinkReceived("https://x", "L1")),
    SignInState.AWAITING_RESOURCE: (ConnectRequested("acme"), ResourceReceived([{}], "S1")),
    SignInState.RETRIEVING: (
        ConnectRequested("acme"), HostedLinkReceived("https://x", "L1"), AuthCompleted(),
    ),
}


class TestHappyPaths:
    """Tests for each sign-in variant reaching COMPLETED."""

    def test_hosted_link_flow(self):
        order = make_order("o1")
        snapshot = _run(
            ConnectRequested("acme"),
            HostedLinkReceived("https://gg/link/L1", "L1"),
            AuthPending(),
            AuthCompleted(),
            DataRetrieved((order,)),
        )
        assert snapshot.state is SignInState.COMPLETED
        assert snapshot.orders == (order,)
        assert snapshot.link_id == "L1"
        assert snapshot.is_terminal

    def test_resource_flow(self):
        snapshot = _run(ConnectRequested("shelf"), ResourceReceived([{"type": "resource"}], "S1"))
        assert snapshot.state is SignInState.AWAITING_RESOURCE
        assert snapshot.resource == [{"type": "resource"}]
        assert snapshot.is_busy

    def test_form_flow_returns_to_initial_with_fields(self):
        snapshot = _run(ConnectRequested("supply"), FormReceived(FIELDS, "https://gg/l", "L2"))
        assert snapshot.state is SignInState.INITIAL
        assert snapshot.awaiting_credentials
        assert snapshot.url == "https://gg/l"

        snapshot = transition(snapshot, CredentialsSubmitted())
        assert snapshot.state is SignInState.AUTHENTICATING
        assert snapshot.link_id == "L2"

    def test_auth_pending_keeps_snapshot(self):
        snapshot = _run(*NON_TERMINAL_PATHS[SignInState.AUTHENTICATING])
        assert transition(snapshot, AuthPending()) is snapshot


class TestFailureAndReset:
    """Tests for the terminal guarantee."""

    @pytest.mark.parametrize("state", list(NON_TERMINAL_PATHS))
    def test_failure_from_any_non_terminal_state(self, state):
        snapshot = _run(*NON_TERMINAL_PATHS[state])
        assert snapshot.state is state

        failed = transition(snapshot, Failed("Could not start"))

        assert failed.state is SignInState.FAILED
        assert failed.error == "Could not start"

    def test_failed_only_leaves_via_reset_which_clears_attempt(self):
        failed = _run(*NON_TERMINAL_PATHS[SignInState.AUTHENTICATING], Failed("boom"))

        for event in (ConnectRequested("acme"), AuthCompleted(), CredentialsSubmitted()):
            with pytest.raises(InvalidTransitionError):
                transition(failed, event)

        reset = transition(failed, Reset())
        assert reset == SignInSnapshot()
        assert reset.error is None
        assert reset.link_id is None
        assert reset.url is None

    def test_failed_cannot_fail_again(self):
        failed = _run(Failed("first"))
        with pytest.raises(InvalidTransitionError):
            transition(failed, Failed("second"))

    def test_completed_rejects_events(self):
        completed = _run(
            *NON_TERMINAL_PATHS[SignInState.RETRIEVING], DataRetrieved(()),
        )
        with pytest.raises(InvalidTransitionError):
            transition(completed, Failed("late"))


class TestInvalidTransitions:
    """Tests for rejected events."""

    @pytest.mark.parametrize("state,event", [
        (SignInState.INITIAL, AuthCompleted()),
        (SignInState.INITIAL, CredentialsSubmitted()),
        (SignInState.CONNECTING, AuthCompleted()),
        (SignInState.AUTHENTICATING, DataRetrieved(())),
        (SignInState.RETRIEVING, AuthPending()),
    ])
    def test_rejected(self, state, event):
        snapshot = _run(*NON_TERMINAL_PATHS[state])
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(snapshot, event)
        assert exc_info.value.state is state

    def test_connect_requested_clears_previous_fields(self):
        stale = SignInSnapshot(error="old", url="https://old", link_id="X")
        snapshot = transition(stale, ConnectRequested("acme"))
        assert snapshot == SignInSnapshot(state=SignInState.CONNECTING, brand_id="acme")
