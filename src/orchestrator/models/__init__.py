"""Pydantic models for purchase data and payload transforms."""

from src.orchestrator.models.purchase import PurchaseHistory
from src.orchestrator.models.transform import (
    DataTransformSchema,
    FieldMapping,
    TransformType,
)

__all__ = [
    "DataTransformSchema",
    "FieldMapping",
    "PurchaseHistory",
    "TransformType",
]
