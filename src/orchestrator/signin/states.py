"""Sign-in flow states and the pure transition function.

A connection attempt moves through:

    INITIAL -> CONNECTING -> AUTHENTICATING | AWAITING_RESOURCE
            -> RETRIEVING -> COMPLETED

Credential-form brands return to INITIAL with the form attached after
CONNECTING, then move to AUTHENTICATING on submit. FAILED is reachable
from every non-terminal state. COMPLETED and FAILED only accept Reset,
which clears every per-attempt field.

``transition`` has no side effects; callers react to the resulting state.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union

from src.brands.models import SchemaField
from src.orchestrator.models.purchase import PurchaseHistory


class SignInState(str, Enum):
    """Lifecycle of one brand connection attempt."""

    INITIAL = "initial"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AWAITING_RESOURCE = "awaiting_resource"
    RETRIEVING = "retrieving"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SignInState.COMPLETED, SignInState.FAILED})

# States waiting on an external completion signal
WAITING_STATES = frozenset({SignInState.AUTHENTICATING, SignInState.AWAITING_RESOURCE})


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed in the current state."""

    def __init__(self, state: SignInState, event: object) -> None:
        self.state = state
        self.event = event
        super().__init__(f"Event {type(event).__name__} not allowed in state {state.value}")


@dataclass(frozen=True)
class SignInSnapshot:
    """Immutable view of one attempt.

    Attributes:
        state: Current state.
        brand_id: Brand being connected.
        link_id: Correlation id for polling.
        url: Hosted sign-in URL (popup and form flows).
        resource: Embedded UI resource blocks (resource flow).
        form_fields: Credential inputs to render (form flow).
        error: Message shown while FAILED.
        orders: Normalized orders once COMPLETED.
    """

    state: SignInState = SignInState.INITIAL
    brand_id: str | None = None
    link_id: str | None = None
    url: str | None = None
    resource: Any = None
    form_fields: tuple[SchemaField, ...] = ()
    error: str | None = None
    orders: tuple[PurchaseHistory, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_busy(self) -> bool:
        """True while an attempt is in flight (non-initial, non-terminal)."""
        return self.state is not SignInState.INITIAL and not self.is_terminal

    @property
    def awaiting_credentials(self) -> bool:
        return self.state is SignInState.INITIAL and bool(self.form_fields)


# --- Events ---


@dataclass(frozen=True)
class ConnectRequested:
    brand_id: str


@dataclass(frozen=True)
class FormReceived:
    fields: tuple[SchemaField, ...]
    url: str = ""
    link_id: str = ""


@dataclass(frozen=True)
class CredentialsSubmitted:
    pass


@dataclass(frozen=True)
class HostedLinkReceived:
    url: str
    link_id: str


@dataclass(frozen=True)
class ResourceReceived:
    resource: Any
    link_id: str


@dataclass(frozen=True)
class AuthPending:
    pass


@dataclass(frozen=True)
class AuthCompleted:
    pass


@dataclass(frozen=True)
class DataRetrieved:
    orders: tuple[PurchaseHistory, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Failed:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


SignInEvent = Union[
    ConnectRequested, FormReceived, CredentialsSubmitted, HostedLinkReceived,
    ResourceReceived, AuthPending, AuthCompleted, DataRetrieved, Failed, Reset,
]

# Events accepted per state; Failed and Reset are handled separately
VALID_TRANSITIONS: dict[SignInState, frozenset[type]] = {
    SignInState.INITIAL: frozenset({ConnectRequested, CredentialsSubmitted}),
    SignInState.CONNECTING: frozenset({FormReceived, HostedLinkReceived, ResourceReceived}),
    SignInState.AUTHENTICATING: frozenset({AuthPending, AuthCompleted}),
    SignInState.AWAITING_RESOURCE: frozenset({AuthPending, AuthCompleted}),
    SignInState.RETRIEVING: frozenset({DataRetrieved}),
    SignInState.COMPLETED: frozenset(),
    SignInState.FAILED: frozenset(),
}


def transition(snapshot: SignInSnapshot, event: SignInEvent) -> SignInSnapshot:
    """Apply one event.

    Args:
        snapshot: Current snapshot.
        event: Event to apply.

    Returns:
        New snapshot.

    Raises:
        InvalidTransitionError: If the event is not allowed in this state.
    """
    state = snapshot.state

    if isinstance(event, Reset):
        return SignInSnapshot()

    if isinstance(event, Failed):
        if state in TERMINAL_STATES:
            raise InvalidTransitionError(state, event)
        return replace(snapshot, state=SignInState.FAILED, error=event.message)

    if type(event) not in VALID_TRANSITIONS[state]:
        raise InvalidTransitionError(state, event)

    if isinstance(event, ConnectRequested):
        return SignInSnapshot(state=SignInState.CONNECTING, brand_id=event.brand_id)

    if isinstance(event, CredentialsSubmitted):
        if not snapshot.form_fields:
            raise InvalidTransitionError(state, event)
        return replace(snapshot, state=SignInState.AUTHENTICATING)

    if isinstance(event, FormReceived):
        return replace(
            snapshot,
            state=SignInState.INITIAL,
            form_fields=tuple(event.fields),
            url=event.url or None,
            link_id=event.link_id or None,
        )

    if isinstance(event, HostedLinkReceived):
        return replace(
            snapshot, state=SignInState.AUTHENTICATING, url=event.url, link_id=event.link_id,
        )

    if isinstance(event, ResourceReceived):
        return replace(
            snapshot,
            state=SignInState.AWAITING_RESOURCE,
            resource=event.resource,
            link_id=event.link_id,
        )

    if isinstance(event, AuthPending):
        return snapshot

    if isinstance(event, AuthCompleted):
        return replace(snapshot, state=SignInState.RETRIEVING)

    if isinstance(event, DataRetrieved):
        return replace(snapshot, state=SignInState.COMPLETED, orders=tuple(event.orders))

    raise InvalidTransitionError(state, event)
