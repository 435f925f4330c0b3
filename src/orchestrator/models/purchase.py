"""Normalized purchase-history record."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PurchaseHistory(BaseModel):
    """One order from a connected brand.

    ``product_names`` and ``image_urls`` are index-aligned by convention
    but not enforced; some connectors return names without images.

    Attributes:
        brand: Display name of the brand the order came from.
        order_date: Order date when the connector exposes one.
        order_total: Formatted total (e.g., "$19.99").
        order_id: Connector order identifier, unique within a brand.
        product_names: Product names in the order.
        image_urls: Product image URLs.
    """

    model_config = ConfigDict(frozen=True)

    brand: str = Field(..., description="Brand display name")
    order_date: Optional[datetime] = Field(default=None, description="Order date")
    order_total: str = Field(default="", description="Formatted order total")
    order_id: str = Field(..., min_length=1, description="Connector order identifier")
    product_names: list[str] = Field(default_factory=list, description="Product names")
    image_urls: list[str] = Field(default_factory=list, description="Product image URLs")

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Identity used when merging batches."""
        return (self.brand, self.order_id)
