"""Exceptions raised by the brand registry and connector service.

These stay free of HTTP concerns so the CLI can catch them too. Each one
knows the registry code it becomes once it reaches an API route:

    try:
        brand = registry.get(brand_id)
    except DomainError as e:
        return app_error_response(e.to_app_error())
"""

from typing import Any

from src.errors.formatter import DataPortraitError


class DomainError(Exception):
    """Base for brand-layer failures."""

    code = "E-4001"

    def context(self) -> dict[str, Any]:
        """Template values for the registry message."""
        return {"operation": str(self)}

    def to_app_error(self) -> DataPortraitError:
        return DataPortraitError.from_code(self.code, **self.context())


class UnknownBrandError(DomainError):
    """No brand is registered under the requested id."""

    code = "E-2001"

    def __init__(self, brand_id: str) -> None:
        super().__init__(f"Brand '{brand_id}' not found")
        self.brand_id = brand_id

    def context(self) -> dict[str, Any]:
        return {"brand_id": self.brand_id}


class BrandConfigError(DomainError):
    """The brands file is malformed or repeats a brand id."""

    code = "E-2003"

    def __init__(self, details: str) -> None:
        super().__init__(details)
        self.details = details

    def context(self) -> dict[str, Any]:
        return {"details": self.details}


class UnsupportedOperationError(DomainError):
    """The brand has no connector tool for the requested operation."""

    code = "E-2002"

    def __init__(self, brand_id: str, operation: str) -> None:
        super().__init__(f"Brand '{brand_id}' does not support {operation}")
        self.brand_id = brand_id
        self.operation = operation

    def context(self) -> dict[str, Any]:
        return {"brand_id": self.brand_id, "operation": self.operation}
