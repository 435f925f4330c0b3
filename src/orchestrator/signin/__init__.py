"""Sign-in state machine, polling and orchestration."""

from src.orchestrator.signin.gateway import (
    HttpSignInGateway,
    ResourceCheck,
    SignInDescriptor,
    SignInGateway,
    SignInGatewayError,
)
from src.orchestrator.signin.orchestrator import SignInOrchestrator
from src.orchestrator.signin.polling import PollTimeoutError, poll_until_complete
from src.orchestrator.signin.states import (
    InvalidTransitionError,
    SignInSnapshot,
    SignInState,
    transition,
)
from src.orchestrator.signin.surface import RESOURCE_SANDBOX, SignInSurface

__all__ = [
    "HttpSignInGateway",
    "InvalidTransitionError",
    "PollTimeoutError",
    "RESOURCE_SANDBOX",
    "ResourceCheck",
    "SignInDescriptor",
    "SignInGateway",
    "SignInGatewayError",
    "SignInOrchestrator",
    "SignInSnapshot",
    "SignInState",
    "SignInSurface",
    "poll_until_complete",
    "transition",
]
