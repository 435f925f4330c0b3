"""Fire-and-forget lifecycle analytics.

Connector and sign-in code emit semantically named events
(``connection_attempt``, ``brand_connected_successful``, ...) through
AnalyticsService. Delivery is delegated to observers; the default observer
writes a log line. Observer failures are logged and never reach the caller.

Example:
    analytics = AnalyticsService()
    analytics.subscribe(my_observer)
    analytics.track(session_id, "connection_attempt", {"brand_name": "Amazon"})
"""

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from src.utils.redaction import scrub_properties

logger = logging.getLogger(__name__)

CONNECTION_ATTEMPT = "connection_attempt"
CONNECTION_SUCCESSFUL = "connection_successful"
CONNECTION_FAILED = "connection_failed"
BRAND_CONNECTED_SUCCESSFUL = "brand_connected_successful"
DATA_RETRIEVED_SUCCESSFUL = "data_retrieved_successful"
DATA_CLEARED = "data_cleared"

EVENT_SOURCE = "data-portrait"


class AnalyticsObserver(Protocol):
    """Receives tracked events.

    Implementations forward events to an analytics backend, collect them
    in tests, or log them.
    """

    def on_event(self, user_id: str, event: str, properties: dict[str, Any]) -> None:
        """Called once per tracked event.

        Args:
            user_id: Session or user identifier.
            event: Event name.
            properties: Event properties including ``source`` and ``timestamp``.
        """
        ...


class LoggingAnalyticsObserver:
    """Writes a summary of each event to the log.

    List-valued properties (such as raw purchase history) are logged as
    counts to keep log lines small.
    """

    def on_event(self, user_id: str, event: str, properties: dict[str, Any]) -> None:
        summary = {
            key: (f"<{len(value)} items>" if isinstance(value, list) else value)
            for key, value in properties.items()
        }
        logger.info(
            "analytics event=%s user=%s properties=%s",
            event, user_id, scrub_properties(summary),
        )


class AnalyticsService:
    """Dispatches lifecycle events to registered observers."""

    def __init__(self, observers: list[AnalyticsObserver] | None = None) -> None:
        self._observers: list[AnalyticsObserver] = (
            list(observers) if observers is not None else [LoggingAnalyticsObserver()]
        )

    def subscribe(self, observer: AnalyticsObserver) -> None:
        """Register an observer. Duplicate registrations are ignored."""
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: AnalyticsObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def track(
        self,
        user_id: str,
        event: str,
        properties: dict[str, Any] | None = None,
    ) -> None:
        """Emit an event to every observer.

        Events without a user id or name are dropped.

        Args:
            user_id: Session or user identifier.
            event: Event name.
            properties: Optional event properties.
        """
        if not user_id or not event:
            return

        payload = {
            **(properties or {}),
            "source": EVENT_SOURCE,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for observer in list(self._observers):
            try:
                observer.on_event(user_id, event, payload)
            except Exception as e:
                logger.error(
                    "Analytics observer %s failed for event %s: %s",
                    type(observer).__name__, event, e,
                )
