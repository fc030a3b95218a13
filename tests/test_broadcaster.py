"""Tests for vigil.relay.broadcaster — subscription registry and fan-out."""

from __future__ import annotations

import asyncio
import gc

import pytest

from vigil.observability import EventLog, EventPublished, RelayCollector, SubscriberRemoved
from vigil.relay.broadcaster import Broadcaster, SubscriptionHandle
from vigil.relay.events import Channel, ChangeEvent

from .conftest import alert_event, log_event


def _logs_only(event: ChangeEvent) -> bool:
    return event.channel is Channel.LOGS


def _everything(event: ChangeEvent) -> bool:
    return True


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class TestSubscriptions:
    def test_subscribe_returns_unique_handles(self) -> None:
        b = Broadcaster()
        q1, q2 = asyncio.Queue(), asyncio.Queue()
        h1 = b.subscribe(_everything, q1, label="c1")
        h2 = b.subscribe(_everything, q2, label="c2")

        assert h1 != h2
        assert h1.label == "c1"
        assert b.subscriber_count == 2
        assert b.handles() == (h1, h2)

    def test_handle_is_frozen(self) -> None:
        handle = SubscriptionHandle(id=1)
        with pytest.raises(AttributeError):
            handle.id = 2  # type: ignore[misc]

    def test_unsubscribe(self) -> None:
        b = Broadcaster()
        q = asyncio.Queue()
        h = b.subscribe(_everything, q)

        assert b.unsubscribe(h) is True
        assert b.subscriber_count == 0
        assert not b.is_subscribed(h)

    def test_unsubscribe_twice_is_noop(self) -> None:
        b = Broadcaster()
        q = asyncio.Queue()
        h = b.subscribe(_everything, q)
        b.unsubscribe(h)
        assert b.unsubscribe(h) is False

    def test_unsubscribe_unknown_handle(self) -> None:
        assert Broadcaster().unsubscribe(SubscriptionHandle(id=999)) is False


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


class TestPublish:
    def test_no_subscribers(self) -> None:
        assert Broadcaster().publish(log_event()) == 0

    def test_delivers_to_matching_filters_only(self) -> None:
        b = Broadcaster()
        logs_q, all_q = asyncio.Queue(), asyncio.Queue()
        b.subscribe(_logs_only, logs_q)
        b.subscribe(_everything, all_q)

        assert b.publish(alert_event()) == 1
        assert logs_q.empty()
        assert all_q.qsize() == 1

    def test_same_event_object_to_every_sink(self) -> None:
        b = Broadcaster()
        q1, q2 = asyncio.Queue(), asyncio.Queue()
        b.subscribe(_everything, q1)
        b.subscribe(_everything, q2)

        event = log_event()
        b.publish(event)
        assert q1.get_nowait() is event
        assert q2.get_nowait() is event

    def test_publish_order_preserved_per_subscriber(self) -> None:
        b = Broadcaster()
        q = asyncio.Queue()
        b.subscribe(_everything, q)
        events = [log_event(i) for i in range(5)]
        for event in events:
            b.publish(event)

        assert [q.get_nowait() for _ in range(5)] == events

    def test_subscribe_during_publish_takes_effect_next_time(self) -> None:
        b = Broadcaster()
        late = asyncio.Queue()

        def subscribe_late(event: ChangeEvent) -> bool:
            if b.subscriber_count == 1:
                b.subscribe(_everything, late)
            return False

        first = asyncio.Queue()
        b.subscribe(subscribe_late, first)
        b.publish(log_event(1))
        assert late.empty()

        b.publish(log_event(2))
        assert late.qsize() == 1

    def test_records_publish(self) -> None:
        collector = RelayCollector(EventLog())
        b = Broadcaster(collector=collector)
        b.subscribe(_everything, asyncio.Queue())
        b.publish(log_event())

        published = collector.log.query(event_type=EventPublished)
        assert len(published) == 1
        assert published[0].channel == "logs"
        assert published[0].action == "INSERT"
        assert published[0].delivered == 1


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestEviction:
    def test_full_sink_is_evicted_others_still_receive(self) -> None:
        collector = RelayCollector(EventLog())
        b = Broadcaster(collector=collector)
        slow = asyncio.Queue(maxsize=1)
        fast = asyncio.Queue()
        evicted: list[SubscriptionHandle] = []
        slow_handle = b.subscribe(_everything, slow, label="slow", on_evict=evicted.append)
        b.subscribe(_everything, fast, label="fast")

        b.publish(log_event(1))
        delivered = b.publish(log_event(2))

        assert delivered == 1
        assert fast.qsize() == 2
        assert evicted == [slow_handle]
        assert not b.is_subscribed(slow_handle)
        removed = collector.log.query(event_type=SubscriberRemoved)
        assert removed[0].label == "slow"

    def test_raising_filter_is_evicted(self) -> None:
        b = Broadcaster()

        def broken(event: ChangeEvent) -> bool:
            raise KeyError("boom")

        bad_q = asyncio.Queue()
        bad = b.subscribe(broken, bad_q)
        good_q = asyncio.Queue()
        b.subscribe(_everything, good_q)

        assert b.publish(log_event()) == 1
        assert not b.is_subscribed(bad)
        assert good_q.qsize() == 1

    def test_collected_sink_is_evicted(self) -> None:
        """The broadcaster holds sinks weakly and never keeps them alive."""
        b = Broadcaster()
        q = asyncio.Queue()
        handle = b.subscribe(_everything, q)
        del q
        gc.collect()

        assert b.publish(log_event()) == 0
        assert not b.is_subscribed(handle)

    def test_collected_sink_is_evicted_even_when_filtered_out(self) -> None:
        b = Broadcaster()
        q = asyncio.Queue()
        handle = b.subscribe(_logs_only, q, label="logs-client")
        del q
        gc.collect()

        assert b.publish(alert_event()) == 0
        assert not b.is_subscribed(handle)

    def test_unsubscribed_sink_not_reported_as_evicted(self) -> None:
        b = Broadcaster()
        evicted: list[SubscriptionHandle] = []
        handle = b.subscribe(_everything, asyncio.Queue(maxsize=1), on_evict=evicted.append)
        b.unsubscribe(handle)
        b.publish(log_event())
        assert evicted == []
