"""Tests for AnalyticsService."""

import logging

from src.services.analytics_service import (
    CONNECTION_ATTEMPT,
    EVENT_SOURCE,
    AnalyticsService,
    LoggingAnalyticsObserver,
)
from tests.helpers import RecordingObserver


class TestTrack:
    """Tests for event dispatch."""

    def test_adds_source_and_timestamp(self, analytics, recorder):
        analytics.track("sess", CONNECTION_ATTEMPT, {"brand_name": "Amazon"})

        [(user_id, event, props)] = recorder.events
        assert user_id == "sess"
        assert event == CONNECTION_ATTEMPT
        assert props["brand_name"] == "Amazon"
        assert props["source"] == EVENT_SOURCE
        assert "timestamp" in props

    def test_drops_events_without_user_or_name(self, analytics, recorder):
        analytics.track("", CONNECTION_ATTEMPT)
        analytics.track("sess", "")
        assert recorder.events == []

    def test_observer_failure_is_logged_not_raised(self, recorder, caplog):
        class Broken:
            def on_event(self, user_id, event, properties):
                raise RuntimeError("backend down")

        service = AnalyticsService(observers=[Broken(), recorder])

        with caplog.at_level(logging.ERROR, logger="src.services.analytics_service"):
            service.track("sess", CONNECTION_ATTEMPT)

        assert "backend down" in caplog.text
        assert recorder.names() == [CONNECTION_ATTEMPT]


class TestObservers:
    """Tests for observer registration."""

    def test_default_observer_logs(self):
        service = AnalyticsService()
        assert service.observer_count == 1

    def test_subscribe_ignores_duplicates(self):
        service = AnalyticsService(observers=[])
        observer = RecordingObserver()
        service.subscribe(observer)
        service.subscribe(observer)
        assert service.observer_count == 1
        service.unsubscribe(observer)
        assert service.observer_count == 0

    def test_logging_observer_summarizes_lists_and_redacts(self, caplog):
        observer = LoggingAnalyticsObserver()
        with caplog.at_level(logging.INFO, logger="src.services.analytics_service"):
            observer.on_event("sess", "data_retrieved_successful", {
                "purchase_history": [{"id": 1}, {"id": 2}],
                "token": "abc123",
            })

        assert "<2 items>" in caplog.text
        assert "abc123" not in caplog.text
