"""Tests for the terminal sign-in surface."""

import io
from unittest.mock import patch

from rich.console import Console

from src.brands.models import SchemaField
from src.cli.surface import TerminalSignInSurface
from src.orchestrator.signin.states import SignInState


def _surface(open_browser: bool = False) -> tuple[TerminalSignInSurface, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=120)
    return TerminalSignInSurface(console=console, open_browser=open_browser), buffer


class TestTerminalSignInSurface:

    def test_open_popup_launches_browser(self):
        surface, buffer = _surface(open_browser=True)

        with patch("src.cli.surface.webbrowser.open") as mock_open:
            surface.open_popup("https://app.example/link/L1")

        mock_open.assert_called_once_with("https://app.example/link/L1", new=2)
        assert "https://app.example/link/L1" in buffer.getvalue()

    def test_open_popup_without_browser(self):
        surface, _ = _surface()

        with patch("src.cli.surface.webbrowser.open") as mock_open:
            surface.open_popup("https://app.example/link/L1")

        mock_open.assert_not_called()

    def test_render_resource_prints_uris(self):
        surface, buffer = _surface()

        surface.render_resource([
            {"type": "resource", "resource": {"uri": "ui://signin/S1"}},
            {"type": "text", "text": "hello"},
        ])

        output = buffer.getvalue()
        assert "Sign-in resource: ui://signin/S1" in output
        assert "(inline content)" in output

    def test_show_form_records_fields(self):
        surface, _ = _surface()
        fields = (SchemaField(name="email", type="email"),)

        surface.show_form(fields)

        assert surface.form_fields == fields

    def test_progress_error_and_close(self):
        surface, buffer = _surface()

        surface.show_progress(SignInState.AUTHENTICATING)
        surface.show_error("Sign in failed: bad password")
        surface.close()

        output = buffer.getvalue()
        assert "authenticating" in output
        assert "Sign in failed: bad password" in output
        assert surface.error == "Sign in failed: bad password"
        assert surface.closed
