"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import app_config, connectors, orders

__all__ = [
    "app_config",
    "connectors",
    "orders",
]
