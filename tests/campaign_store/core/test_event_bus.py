from __future__ import annotations

import asyncio
import logging

from campaign_store.core.event_bus import EventBus, Events


def test_publish_delivers_in_subscription_order():
    bus = EventBus()
    seen = []

    bus.subscribe("evt", lambda d: seen.append(("a", d)))
    bus.subscribe("evt", lambda d: seen.append(("b", d)))

    bus.publish("evt", 1)

    assert seen == [("a", 1), ("b", 1)]


def test_unsubscribe_function_removes_subscription():
    bus = EventBus()
    seen = []

    unsubscribe = bus.subscribe("evt", seen.append)
    bus.publish("evt", 1)
    unsubscribe()
    bus.publish("evt", 2)

    assert seen == [1]
    assert bus.subscriber_count("evt") == 0
    assert "evt" not in bus.event_names()


def test_throwing_subscriber_does_not_stop_delivery(caplog):
    bus = EventBus()
    received = []

    def boom(_data):
        raise RuntimeError("subscriber failure")

    bus.subscribe(Events.DATA_UPDATED, boom)
    bus.subscribe(Events.DATA_UPDATED, received.append)

    with caplog.at_level(logging.ERROR):
        bus.publish(Events.DATA_UPDATED, {"action": "add"})

    assert received == [{"action": "add"}]
    assert "Error in subscriber" in caplog.text


def test_subscribe_during_dispatch_uses_snapshot():
    bus = EventBus()
    late = []

    def first(_data):
        bus.subscribe("evt", late.append)

    bus.subscribe("evt", first)
    bus.publish("evt", "x")

    # the subscriber added mid-dispatch only sees later events
    assert late == []
    bus.publish("evt", "y")
    assert late == ["y"]


def test_unsubscribe_during_dispatch_still_delivers_current_event():
    bus = EventBus()
    seen = []
    unsub_second = None

    def first(_data):
        unsub_second()

    bus.subscribe("evt", first)
    unsub_second = bus.subscribe("evt", seen.append)

    bus.publish("evt", 1)
    bus.publish("evt", 2)

    assert seen == [1]


def test_once_fires_a_single_time():
    bus = EventBus()
    seen = []

    bus.once("evt", seen.append)
    bus.publish("evt", 1)
    bus.publish("evt", 2)

    assert seen == [1]


def test_context_is_bound_method_style():
    class Listener:
        def __init__(self):
            self.seen = []

    def handler(self, data):
        self.seen.append(data)

    bus = EventBus()
    listener = Listener()

    bus.subscribe("evt", handler, listener)
    bus.publish("evt", 5)
    bus.unsubscribe("evt", handler, listener)
    bus.publish("evt", 6)

    assert listener.seen == [5]


def test_clear_one_event_or_all():
    bus = EventBus()
    bus.subscribe("a", lambda d: None)
    bus.subscribe("b", lambda d: None)

    bus.clear("a")
    assert bus.event_names() == ["b"]

    bus.clear()
    assert bus.event_names() == []


def test_publish_without_subscribers_is_a_no_op():
    EventBus().publish("nobody-listens", {"x": 1})


def test_publish_async_defers_to_next_tick():
    bus = EventBus()
    seen = []
    bus.subscribe("evt", seen.append)

    async def run():
        task = asyncio.ensure_future(bus.publish_async("evt", 1))
        # not dispatched until the loop gets a turn
        assert seen == []
        await task
        return list(seen)

    assert asyncio.run(run()) == [1]


def test_unsubscribe_handle_removes_its_own_subscription():
    bus = EventBus()
    log = []

    def cb(_data):
        log.append("cb")

    def other(_data):
        log.append("other")

    bus.subscribe("evt", cb)
    bus.subscribe("evt", other)
    remove_second_cb = bus.subscribe("evt", cb)

    remove_second_cb()
    remove_second_cb()
    bus.publish("evt")

    assert log == ["cb", "other"]
    assert bus.subscriber_count("evt") == 2
