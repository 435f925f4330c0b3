"""Terminal implementation of the sign-in surface.

Hosted links open in the default browser. Embedded resources cannot be
rendered in a terminal, so their URIs are printed for the user to open.
Credential forms are collected by the ``connect`` command with
``typer.prompt`` after ``show_form`` records the fields.
"""

import logging
import webbrowser
from typing import Any

from rich.console import Console

from src.brands.models import SchemaField
from src.cli.output import format_state
from src.orchestrator.signin.states import SignInState
from src.orchestrator.signin.surface import RESOURCE_SANDBOX

logger = logging.getLogger(__name__)


class TerminalSignInSurface:
    """SignInSurface that talks to a Rich console."""

    def __init__(self, console: Console | None = None, open_browser: bool = True) -> None:
        self._console = console or Console()
        self._open_browser = open_browser
        self.form_fields: tuple[SchemaField, ...] = ()
        self.error: str | None = None
        self.closed = False

    def open_popup(self, url: str) -> None:
        self._console.print(f"Sign in at: [link={url}]{url}[/link]")
        if self._open_browser:
            webbrowser.open(url, new=2)

    def render_resource(self, resource: Any, sandbox: str = RESOURCE_SANDBOX) -> None:
        items = resource if isinstance(resource, list) else [resource]
        for item in items:
            inner = item.get("resource", {}) if isinstance(item, dict) else {}
            uri = inner.get("uri") if isinstance(inner, dict) else None
            self._console.print(f"Sign-in resource: {uri or '(inline content)'}")
        logger.debug("Resource sandbox: %s", sandbox)

    def show_form(self, fields: tuple[SchemaField, ...]) -> None:
        self.form_fields = tuple(fields)

    def show_progress(self, state: SignInState) -> None:
        self._console.print(f"  {format_state(state)}…")

    def show_error(self, message: str) -> None:
        self.error = message
        self._console.print(f"[red]{message}[/red]")

    def close(self) -> None:
        self.closed = True
