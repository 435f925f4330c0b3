"""Session-scoped aggregated orders.

The UI posts each brand's normalized orders here after a successful
connection; the server keeps the merged, de-duplicated set per session.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.deps import get_session_id, get_session_store
from src.api.errors import app_error_response, internal_error
from src.errors import DataPortraitError
from src.services.purchase_aggregator import PurchaseAggregator, PurchaseSessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


# --- Pydantic request models ---


class BrandOrdersRequest(BaseModel):
    """Request body for merging one brand's orders."""

    brand: str = Field(..., description="Brand display name")
    orders: list[dict[str, Any]] = Field(default_factory=list, description="Normalized orders")


class ItemToggleRequest(BaseModel):
    """Request body for selecting or expanding one product."""

    order_id: str = Field(..., min_length=1)
    product_name: str
    selected: bool | None = Field(None, description="Explicit value; toggles when omitted")


EMPTY_AGGREGATE = {
    "orders": [],
    "connected_brands": [],
    "selected_items": [],
    "expanded_items": [],
}


def _aggregate_view(aggregator: PurchaseAggregator | None, selected_only: bool = False) -> dict:
    if aggregator is None:
        return dict(EMPTY_AGGREGATE)
    orders = aggregator.selected_orders() if selected_only else aggregator.orders
    return {
        "orders": [order.model_dump(mode="json") for order in orders],
        "connected_brands": aggregator.connected_brands,
        "selected_items": sorted(aggregator.selected_items),
        "expanded_items": sorted(aggregator.expanded_items),
    }


@router.get("")
def get_orders(
    selected_only: bool = Query(False, description="Only selected products"),
    session_id: str = Depends(get_session_id),
    store: PurchaseSessionStore = Depends(get_session_store),
) -> dict:
    """Current aggregate for this session (empty when nothing was merged)."""
    return _aggregate_view(store.get(session_id), selected_only)


@router.post("")
def add_orders(
    body: BrandOrdersRequest,
    session_id: str = Depends(get_session_id),
    store: PurchaseSessionStore = Depends(get_session_store),
):
    """Merge one brand's orders into the session aggregate."""
    try:
        brand = body.brand.strip()
        if not brand:
            raise DataPortraitError.from_code(
                "E-1002", brand=body.brand, details="brand name is empty",
            )
        aggregator = store.get_or_create(session_id)
        aggregator.on_brand_connected(brand, body.orders)
        return _aggregate_view(aggregator)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "merge orders")


@router.delete("")
def clear_orders(
    session_id: str = Depends(get_session_id),
    store: PurchaseSessionStore = Depends(get_session_store),
) -> dict:
    """Clear orders, brands, selection and expansion for this session."""
    aggregator = store.get(session_id)
    if aggregator is not None:
        aggregator.clear()
    return _aggregate_view(aggregator)


@router.post("/selection")
def toggle_selection(
    body: ItemToggleRequest,
    session_id: str = Depends(get_session_id),
    store: PurchaseSessionStore = Depends(get_session_store),
) -> dict:
    """Select, deselect or toggle one product."""
    aggregator = store.get_or_create(session_id)
    if body.selected is None:
        selected = aggregator.toggle_selection(body.order_id, body.product_name)
    else:
        aggregator.set_selection(body.order_id, body.product_name, body.selected)
        selected = body.selected
    return {"order_id": body.order_id, "product_name": body.product_name, "selected": selected}


@router.post("/expansion")
def toggle_expansion(
    body: ItemToggleRequest,
    session_id: str = Depends(get_session_id),
    store: PurchaseSessionStore = Depends(get_session_store),
) -> dict:
    aggregator = store.get_or_create(session_id)
    expanded = aggregator.toggle_expansion(body.order_id, body.product_name)
    return {"order_id": body.order_id, "product_name": body.product_name, "expanded": expanded}
