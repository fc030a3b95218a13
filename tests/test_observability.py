"""Tests for vigil.observability — relay events, the event log, and logging."""

import logging
import threading

from vigil.observability import (
    ConnectorStateChanged,
    EventLog,
    EventPublished,
    NotificationDropped,
    RelayCollector,
    SessionClosed,
    SessionOpened,
    configure_logging,
    now_ns,
)


def _published(channel: str = "logs") -> EventPublished:
    return EventPublished(
        channel=channel, action="INSERT", delivered=1, dropped=0, timestamp_ns=now_ns(),
    )


# ---------------------------------------------------------------------------
# EventLog
# ---------------------------------------------------------------------------


class TestEventLog:
    """Tests for the event log store."""

    def test_append_and_len(self) -> None:
        log = EventLog()
        assert len(log) == 0
        log.append(_published())
        assert len(log) == 1

    def test_max_events_enforced(self) -> None:
        log = EventLog(max_events=5)
        for _ in range(10):
            log.append(_published())
        assert len(log) == 5

    def test_recent(self) -> None:
        log = EventLog()
        for channel in ("logs", "alerts", "logs"):
            log.append(_published(channel))
        recent = log.recent(2)
        assert [e.channel for e in recent] == ["alerts", "logs"]

    def test_query_by_type_most_recent_first(self) -> None:
        log = EventLog()
        log.append(_published("logs"))
        log.append(SessionOpened(client_id="c1", endpoint="logs", timestamp_ns=now_ns()))
        log.append(_published("alerts"))

        results = log.query(event_type=EventPublished)
        assert [e.channel for e in results] == ["alerts", "logs"]

    def test_query_by_channel(self) -> None:
        log = EventLog()
        log.append(_published("logs"))
        log.append(_published("alerts"))
        assert len(log.query(channel="alerts")) == 1

    def test_query_since(self) -> None:
        log = EventLog()
        log.append(EventPublished(channel="logs", action="INSERT", delivered=0, dropped=0, timestamp_ns=10))
        log.append(EventPublished(channel="logs", action="INSERT", delivered=0, dropped=0, timestamp_ns=20))
        assert len(log.query(since_ns=15)) == 1

    def test_query_limit(self) -> None:
        log = EventLog()
        for _ in range(10):
            log.append(_published())
        assert len(log.query(limit=3)) == 3

    def test_query_by_client(self) -> None:
        log = EventLog()
        log.append(SessionOpened(client_id="c1", endpoint="logs", timestamp_ns=now_ns()))
        log.append(SessionOpened(client_id="c2", endpoint="logs", timestamp_ns=now_ns()))
        log.append(_published())
        assert [e.client_id for e in log.query(client_id="c2")] == ["c2"]

    def test_clear_keeps_lifetime_counters(self) -> None:
        log = EventLog()
        log.append(_published())
        assert log.clear() == 1
        assert len(log) == 0
        assert log.stats()["recorded"] == 1

    def test_counters_survive_rotation(self) -> None:
        log = EventLog(max_events=2)
        for _ in range(5):
            log.append(_published())
        stats = log.stats()
        assert stats["total"] == 2
        assert stats["recorded"] == 5
        assert stats["by_type"] == {"EventPublished": 5}

    def test_stats(self) -> None:
        log = EventLog(max_events=50)
        log.append(_published())
        log.append(_published())
        stats = log.stats()
        assert stats["total"] == 2
        assert stats["max_events"] == 50
        assert stats["by_type"] == {"EventPublished": 2}

    def test_concurrent_appends(self) -> None:
        log = EventLog()

        def writer() -> None:
            for _ in range(200):
                log.append(_published())

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(log) == 800


# ---------------------------------------------------------------------------
# RelayCollector
# ---------------------------------------------------------------------------


class TestRelayCollector:
    def test_default_log(self) -> None:
        assert isinstance(RelayCollector().log, EventLog)

    def test_record_passes_server_events_through(self) -> None:
        collector = RelayCollector()
        marker = object()
        collector.record(marker)
        assert collector.log.recent(1) == [marker]

    def test_state_change(self) -> None:
        collector = RelayCollector()
        collector.record_state_change("connecting", "listening", detail="ok")
        event = collector.log.recent(1)[0]
        assert isinstance(event, ConnectorStateChanged)
        assert event.current == "listening"

    def test_dropped_payload_truncated(self) -> None:
        collector = RelayCollector()
        collector.record_dropped("nginx_log_changes", "parse", raw_payload="x" * 2000)
        event = collector.log.recent(1)[0]
        assert isinstance(event, NotificationDropped)
        assert len(event.raw_payload) == 500

    def test_session_lifecycle(self) -> None:
        collector = RelayCollector()
        collector.record_session_opened("c1", "alerts")
        collector.record_session_closed("c1", "alerts", events_sent=3, duration_ms=12.5)
        closed = collector.log.query(event_type=SessionClosed)[0]
        assert closed.events_sent == 3


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_sets_level(self) -> None:
        logger = configure_logging("debug")
        assert logger.name == "vigil"
        assert logger.level == logging.DEBUG
        configure_logging("INFO")

    def test_installs_handler_once(self) -> None:
        configure_logging()
        configure_logging()
        logger = logging.getLogger("vigil")
        named = [h for h in logger.handlers if h.get_name() == "vigil-stderr"]
        assert len(named) == 1
