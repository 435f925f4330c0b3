"""Protocol for the user-facing sign-in surface.

The orchestrator drives whatever presents sign-in to the user (a browser
popup, an embedded resource frame, an inline credential form) through this
interface. Methods are synchronous UI callbacks.
"""

from typing import Any, Protocol

from src.brands.models import SchemaField
from src.orchestrator.signin.states import SignInState

# Embedded resources may run their own scripts and submit forms
RESOURCE_SANDBOX = "allow-same-origin allow-scripts allow-forms"


class SignInSurface(Protocol):
    """Presentation side of a sign-in attempt."""

    def open_popup(self, url: str) -> None:
        """Open a hosted sign-in URL in a new browsing context."""
        ...

    def render_resource(self, resource: Any, sandbox: str = RESOURCE_SANDBOX) -> None:
        """Render an embedded sign-in resource in a sandboxed frame."""
        ...

    def show_form(self, fields: tuple[SchemaField, ...]) -> None:
        """Render a credential form for the given inputs."""
        ...

    def show_progress(self, state: SignInState) -> None:
        """Show an in-progress indicator for a busy state."""
        ...

    def show_error(self, message: str) -> None:
        """Show a dismissible error."""
        ...

    def close(self) -> None:
        """Close the surface."""
        ...
