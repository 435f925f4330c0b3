"""Test helpers for Data Portrait."""

from tests.helpers.builders import SIMPLE_TRANSFORM, make_brand, make_order, raw_orders
from tests.helpers.fakes import (
    FakeClock,
    FakeConnectorClient,
    FakeGateway,
    FakePool,
    FakeSleep,
    FakeSurface,
    RecordingObserver,
)

__all__ = [
    "SIMPLE_TRANSFORM",
    "make_brand",
    "make_order",
    "raw_orders",
    "FakeClock",
    "FakeConnectorClient",
    "FakeGateway",
    "FakePool",
    "FakeSleep",
    "FakeSurface",
    "RecordingObserver",
]
