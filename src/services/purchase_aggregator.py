"""Session-scoped merge of purchase history across connected brands.

Each successful brand connection hands its normalized orders to
``PurchaseAggregator.on_brand_connected``. Batches are concatenated and
de-duplicated by ``(brand, order_id)`` with the first occurrence winning.
Brands in the exclusion set (activity-style sources without stable order
ids) are always concatenated.

Selection and expansion state are keyed ``"{order_id}__{product_name}"``.
Products from a newly connected brand start selected.

All mutations are synchronous and build new lists before assigning them,
so two brands completing on the same event loop never lose an update.

Example:
    aggregator = PurchaseAggregator(excluded_brands={"Garmin"})
    aggregator.on_brand_connected("Amazon", orders)
    for order in aggregator.selected_orders():
        ...
"""

import logging
import time
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from src.orchestrator.models.purchase import PurchaseHistory
from src.services.analytics_service import (
    BRAND_CONNECTED_SUCCESSFUL,
    DATA_CLEARED,
    AnalyticsService,
)

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_EXCLUDED_BRANDS = frozenset({"Garmin"})
DEFAULT_SESSION_TTL_SECONDS = 60 * 60


def item_key(order_id: str, product_name: str) -> str:
    """Selection/expansion key for one product in one order."""
    return f"{order_id}__{product_name}"


def filter_unique_orders(
    orders: Iterable[PurchaseHistory],
    excluded_brands: Iterable[str] = DEFAULT_DEDUP_EXCLUDED_BRANDS,
) -> list[PurchaseHistory]:
    """Drop repeated (brand, order_id) pairs, keeping the first occurrence.

    Orders from excluded brands are kept unconditionally.
    """
    excluded = frozenset(excluded_brands)
    seen: set[tuple[str, str]] = set()
    unique: list[PurchaseHistory] = []
    for order in orders:
        if order.brand in excluded:
            unique.append(order)
            continue
        if order.dedup_key in seen:
            continue
        seen.add(order.dedup_key)
        unique.append(order)
    return unique


def _coerce_order(record: Any, brand_name: str) -> PurchaseHistory | None:
    if isinstance(record, PurchaseHistory):
        return record
    if isinstance(record, Mapping):
        data = dict(record)
        data.setdefault("brand", brand_name)
        try:
            return PurchaseHistory.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(
                "Skipping malformed %s order %r: %d validation errors",
                brand_name, data.get("order_id"), e.error_count(),
            )
            return None
    logger.warning("Skipping %s order of type %s", brand_name, type(record).__name__)
    return None


class PurchaseAggregator:
    """Running order collection for one user session.

    Attributes:
        session_id: Session the aggregate belongs to (analytics user id).
    """

    def __init__(
        self,
        excluded_brands: Iterable[str] = DEFAULT_DEDUP_EXCLUDED_BRANDS,
        analytics: AnalyticsService | None = None,
        session_id: str = "",
    ) -> None:
        """Initialize an empty aggregate.

        Args:
            excluded_brands: Brand names exempt from de-duplication.
            analytics: Optional sink for connection and clear events.
            session_id: Analytics user id.
        """
        self.session_id = session_id
        self._excluded = frozenset(excluded_brands)
        self._analytics = analytics
        self._orders: list[PurchaseHistory] = []
        self._connected_brands: list[str] = []
        self._selected: frozenset[str] = frozenset()
        self._expanded: frozenset[str] = frozenset()

    @property
    def orders(self) -> list[PurchaseHistory]:
        return list(self._orders)

    @property
    def connected_brands(self) -> list[str]:
        return list(self._connected_brands)

    @property
    def selected_items(self) -> frozenset[str]:
        return self._selected

    @property
    def expanded_items(self) -> frozenset[str]:
        return self._expanded

    @property
    def excluded_brands(self) -> frozenset[str]:
        return self._excluded

    def on_brand_connected(
        self,
        brand_name: str,
        new_orders: Iterable[PurchaseHistory | Mapping[str, Any]],
    ) -> list[PurchaseHistory]:
        """Merge one brand's batch into the aggregate.

        The brand is appended to the connected list even when it is already
        present. Malformed records are skipped.

        Args:
            brand_name: Display name of the connected brand.
            new_orders: Orders as models or plain dicts.

        Returns:
            The merged order list.
        """
        accepted = [
            order for order in (_coerce_order(r, brand_name) for r in new_orders)
            if order is not None
        ]

        if self._analytics is not None:
            self._analytics.track(self.session_id, BRAND_CONNECTED_SUCCESSFUL, {
                "brand_name": brand_name,
                "orders_count": len(accepted),
                "connected_brands_count": len(self._connected_brands),
                "connected_brands": list(self._connected_brands),
            })

        merged = filter_unique_orders([*self._orders, *accepted], self._excluded)
        new_keys = {
            item_key(order.order_id, name)
            for order in accepted
            for name in order.product_names
        }

        self._connected_brands = [*self._connected_brands, brand_name]
        self._orders = merged
        self._selected = self._selected | new_keys

        logger.info(
            "Merged %d %s orders (%d total, %d brands)",
            len(accepted), brand_name, len(merged), len(self._connected_brands),
        )
        return list(merged)

    def clear(self) -> None:
        """Reset orders, brands, selection and expansion together."""
        if self._analytics is not None:
            self._analytics.track(self.session_id, DATA_CLEARED, {
                "orders_count": len(self._orders),
                "connected_brands_count": len(self._connected_brands),
            })
        self._orders = []
        self._connected_brands = []
        self._selected = frozenset()
        self._expanded = frozenset()

    def toggle_selection(self, order_id: str, product_name: str) -> bool:
        """Flip selection for one product.

        Returns:
            True if the product is now selected.
        """
        key = item_key(order_id, product_name)
        if key in self._selected:
            self._selected = self._selected - {key}
            return False
        self._selected = self._selected | {key}
        return True

    def set_selection(self, order_id: str, product_name: str, selected: bool) -> None:
        key = item_key(order_id, product_name)
        self._selected = (self._selected | {key}) if selected else (self._selected - {key})

    def toggle_expansion(self, order_id: str, product_name: str) -> bool:
        """Flip expansion for one product.

        Returns:
            True if the product is now expanded.
        """
        key = item_key(order_id, product_name)
        if key in self._expanded:
            self._expanded = self._expanded - {key}
            return False
        self._expanded = self._expanded | {key}
        return True

    def is_selected(self, order_id: str, product_name: str) -> bool:
        return item_key(order_id, product_name) in self._selected

    def selected_orders(self) -> list[PurchaseHistory]:
        """Orders narrowed to their selected products.

        Image URLs stay aligned with product names by index. Orders with no
        selected products are dropped.
        """
        result: list[PurchaseHistory] = []
        for order in self._orders:
            indices = [
                i for i, name in enumerate(order.product_names)
                if item_key(order.order_id, name) in self._selected
            ]
            if not indices:
                continue
            if len(indices) == len(order.product_names):
                result.append(order)
                continue
            result.append(order.model_copy(update={
                "product_names": [order.product_names[i] for i in indices],
                "image_urls": [
                    order.image_urls[i] for i in indices if i < len(order.image_urls)
                ],
            }))
        return result


class PurchaseSessionStore:
    """Per-session aggregators for the HTTP API.

    Single-process, in-memory; nothing is persisted. Aggregates untouched
    for longer than ``idle_ttl_seconds`` are evicted whenever a new one is
    created.
    """

    def __init__(
        self,
        excluded_brands: Iterable[str] = DEFAULT_DEDUP_EXCLUDED_BRANDS,
        analytics: AnalyticsService | None = None,
        idle_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._excluded = frozenset(excluded_brands)
        self._analytics = analytics
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._aggregators: dict[str, PurchaseAggregator] = {}
        self._last_accessed: dict[str, float] = {}

    def get(self, session_id: str) -> PurchaseAggregator | None:
        """Existing aggregate for a session, or None; never creates one."""
        aggregator = self._aggregators.get(session_id)
        if aggregator is not None:
            self._last_accessed[session_id] = self._clock()
        return aggregator

    def get_or_create(self, session_id: str) -> PurchaseAggregator:
        aggregator = self.get(session_id)
        if aggregator is not None:
            return aggregator

        self.sweep()
        aggregator = PurchaseAggregator(
            excluded_brands=self._excluded,
            analytics=self._analytics,
            session_id=session_id,
        )
        self._aggregators[session_id] = aggregator
        self._last_accessed[session_id] = self._clock()
        logger.debug("Created purchase aggregate for session %s", session_id)
        return aggregator

    def sweep(self) -> list[str]:
        """Drop aggregates idle longer than the TTL.

        Returns:
            Session ids that were evicted.
        """
        cutoff = self._clock() - self._idle_ttl
        expired = [sid for sid, seen in self._last_accessed.items() if seen < cutoff]
        for session_id in expired:
            self.remove(session_id)
        if expired:
            logger.info("Evicted %d idle purchase aggregates", len(expired))
        return expired

    def remove(self, session_id: str) -> None:
        self._aggregators.pop(session_id, None)
        self._last_accessed.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._aggregators)
