"""Data Portrait CLI: developer tooling for the connector core.

Usage:
    dataportrait serve                      Run the API with uvicorn
    dataportrait brands                     List connectable brands
    dataportrait transform amazon raw.json  Normalize a saved connector payload
    dataportrait connect amazon             Connect a brand through a running API
    dataportrait config show                Show resolved configuration
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.brands.registry import BrandRegistry, load_brands
from src.cli.output import format_brand_table, format_orders_table, format_state
from src.cli.surface import TerminalSignInSurface
from src.config import AppConfig, load_config
from src.errors import UnknownBrandError
from src.orchestrator.signin.gateway import HttpSignInGateway
from src.orchestrator.signin.orchestrator import SignInOrchestrator
from src.orchestrator.signin.states import SignInState
from src.services.data_transform import to_purchase_history, transform_data
from src.services.purchase_aggregator import PurchaseAggregator

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="dataportrait",
    help="Data Portrait connector tooling",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to dataportrait.yaml config file"
    ),
):
    """Data Portrait CLI."""
    global _config_path
    _config_path = config


def _load() -> AppConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)


def _registry(cfg: AppConfig) -> BrandRegistry:
    return load_brands(cfg.connector.brands_file, hidden=cfg.connector.hidden_brands)


# --- Version ---


@app.command()
def version():
    """Show Data Portrait version."""
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("data-portrait")
    except Exception:
        v = "unknown"
    console.print(f"[bold]Data Portrait[/bold] v{v}")


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Run the API server with uvicorn."""
    import uvicorn

    cfg = _load()
    uvicorn.run(
        "src.api.main:app",
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_level=cfg.server.log_level,
    )


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration (secrets masked)."""
    cfg = _load()

    console.print("[bold]Server:[/bold]")
    console.print(f"  host: {cfg.server.host}")
    console.print(f"  port: {cfg.server.port}")
    console.print(f"  trust_proxy: {cfg.server.trust_proxy}")

    console.print("\n[bold]Connector:[/bold]")
    console.print(f"  getgather_url: {cfg.connector.getgather_url or '(unset)'}")
    console.print(f"  app_host: {cfg.connector.app_host or '(unset)'}")
    console.print(f"  max_retries: {cfg.connector.max_retries}")
    console.print(f"  idle_ttl: {cfg.connector.idle_ttl_seconds:.0f}s")

    console.print("\n[bold]Sign-in polling:[/bold]")
    console.print(f"  interval: {cfg.signin.poll_interval_seconds}s x{cfg.signin.poll_backoff}")
    console.print(f"  max_wait: {cfg.signin.poll_max_wait_seconds:.0f}s")

    console.print("\n[bold]Features:[/bold]")
    console.print(f"  allow_face_upload: {cfg.features.allow_face_upload}")
    console.print(f"  sentry_dsn: {'***' if cfg.features.sentry_dsn else '(unset)'}")


# --- Brand commands ---


@app.command()
def brands(
    all_brands: bool = typer.Option(False, "--all", help="Include hidden brands"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List connectable brands."""
    registry = _registry(_load())
    selected = registry.all() if all_brands else registry.visible()
    console.print(format_brand_table(selected, as_json=json_output))


@app.command()
def transform(
    brand_id: str = typer.Argument(help="Brand whose transform schema to apply"),
    payload: Path = typer.Argument(help="JSON file with a raw connector payload"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Normalize a saved connector payload into orders."""
    registry = _registry(_load())
    try:
        brand = registry.get(brand_id)
    except UnknownBrandError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    try:
        raw = json.loads(payload.read_text())
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read payload:[/red] {e}")
        raise typer.Exit(1)

    records = transform_data(raw, brand.data_transform)
    orders = to_purchase_history(records, brand.brand_name)
    console.print(format_orders_table(orders, as_json=json_output))


@app.command()
def connect(
    brand_id: str = typer.Argument(help="Brand to connect"),
    api_url: str = typer.Option("http://127.0.0.1:8000", "--api-url", help="Data Portrait API URL"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Print sign-in links only"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Connect a brand through a running API and print its orders."""
    cfg = _load()
    registry = _registry(cfg)
    try:
        brand = registry.get(brand_id)
    except UnknownBrandError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    surface = TerminalSignInSurface(console=console, open_browser=not no_browser)
    aggregator = PurchaseAggregator(excluded_brands=cfg.aggregation.dedup_excluded_brands)

    async def _run() -> SignInState:
        async with HttpSignInGateway(api_url) as gateway:
            orchestrator = SignInOrchestrator(
                gateway, surface, aggregator=aggregator, config=cfg.signin,
            )
            snapshot = await orchestrator.open(brand)
            if snapshot.awaiting_credentials:
                values = {
                    f.name: typer.prompt(
                        f.prompt or f.name, hide_input=f.type == "password",
                    )
                    for f in surface.form_fields
                }
                await orchestrator.submit_credentials(values)
            snapshot = await orchestrator.wait()
            return snapshot.state

    state = asyncio.run(_run())
    if state is not SignInState.COMPLETED:
        console.print(f"Result: {format_state(state)}")
        raise typer.Exit(1)
    console.print(format_orders_table(aggregator.orders, as_json=json_output))


if __name__ == "__main__":
    app()
