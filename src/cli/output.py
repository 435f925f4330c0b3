"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json

from rich.table import Table

from src.brands.models import BrandConfig
from src.orchestrator.models.purchase import PurchaseHistory
from src.orchestrator.signin.states import SignInState

# State color map for sign-in progress lines
STATE_COLORS = {
    SignInState.CONNECTING: "blue",
    SignInState.AUTHENTICATING: "yellow",
    SignInState.AWAITING_RESOURCE: "yellow",
    SignInState.RETRIEVING: "blue",
    SignInState.COMPLETED: "green",
    SignInState.FAILED: "red",
}


def format_brand_table(brands: list[BrandConfig], as_json: bool = False) -> Table | str:
    """Format brands as a Rich table or JSON.

    Args:
        brands: Brands to display.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Rich Table or JSON string.
    """
    if as_json:
        return json.dumps(
            [
                {
                    "brand_id": b.brand_id,
                    "brand_name": b.brand_name,
                    "signin_variant": b.signin_variant,
                    "tools": list(b.tools),
                }
                for b in brands
            ],
            indent=2,
        )

    table = Table(title="Brands")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Sign-in")
    table.add_column("MCP path", style="dim")
    table.add_column("Tools", style="dim")
    for b in brands:
        table.add_row(b.brand_id, b.brand_name, b.signin_variant, b.mcp_path, ", ".join(b.tools))
    return table


def format_orders_table(orders: list[PurchaseHistory], as_json: bool = False) -> Table | str:
    """Format orders as a Rich table or JSON.

    Args:
        orders: Normalized orders.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Rich Table, JSON string, or a message when there are no orders.
    """
    if as_json:
        return json.dumps([o.model_dump(mode="json") for o in orders], indent=2)

    if not orders:
        return "No orders found."

    table = Table(title=f"Orders ({len(orders)})", show_lines=True)
    table.add_column("Brand", style="cyan")
    table.add_column("Order ID", no_wrap=True)
    table.add_column("Date")
    table.add_column("Total", justify="right", style="green")
    table.add_column("Products")
    for o in orders:
        table.add_row(
            o.brand,
            o.order_id,
            o.order_date.strftime("%Y-%m-%d") if o.order_date else "-",
            o.order_total or "-",
            "\n".join(o.product_names) or "-",
        )
    return table


def format_state(state: SignInState) -> str:
    """Rich markup for a sign-in state."""
    color = STATE_COLORS.get(state, "white")
    return f"[{color}]{state.value.replace('_', ' ')}[/{color}]"
