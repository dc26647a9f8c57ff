from darkmode.services.event_bus import EngineEvent, EventBus


def test_subscribe_publish_basic():
    bus = EventBus()
    received = []
    bus.subscribe(EngineEvent.RENDERED, lambda evt: received.append((evt.name, evt.payload)))
    bus.publish(EngineEvent.RENDERED, {"state": "on"})
    assert received == [("rendered", {"state": "on"})]


def test_string_and_enum_names_share_a_channel():
    bus = EventBus()
    seen = []
    bus.subscribe("state_changed", lambda evt: seen.append(evt.payload))
    bus.publish(EngineEvent.STATE_CHANGED, 1)
    assert seen == [1]
    assert bus.subscriber_count(EngineEvent.STATE_CHANGED) == 1


def test_once_subscription():
    bus = EventBus()
    count = 0

    def incr(_):
        nonlocal count
        count += 1

    bus.subscribe(EngineEvent.SETTINGS_CHANGED, incr, once=True)
    bus.publish(EngineEvent.SETTINGS_CHANGED)
    bus.publish(EngineEvent.SETTINGS_CHANGED)
    assert count == 1
    assert bus.subscriber_count(EngineEvent.SETTINGS_CHANGED) == 0


def test_error_isolation():
    bus = EventBus()
    order = []

    def bad(_):
        order.append("bad")
        raise RuntimeError("boom")

    bus.subscribe("custom", bad)
    bus.subscribe("custom", lambda _: order.append("good"))
    bus.publish("custom", 123)
    assert order == ["bad", "good"]
    assert len(bus.errors) == 1
    assert str(bus.errors[0][1]) == "boom"


def test_unsubscribe_and_cancel():
    bus = EventBus()
    hits = []
    sub = bus.subscribe("x", lambda _: hits.append("a"))
    cancelled = bus.subscribe("x", lambda _: hits.append("b"))
    cancelled.cancel()
    bus.publish("x")
    bus.unsubscribe(sub)
    bus.publish("x")
    assert hits == ["a"]


def test_tracing_ring_buffer():
    bus = EventBus()
    bus.publish("before")
    bus.enable_tracing(True, capacity=2)
    bus.publish("one", "x" * 60)
    bus.publish("two")
    bus.publish("three", {"a": 1})
    entries = bus.recent_trace_entries()
    assert [e.name for e in entries] == ["two", "three"]
    assert entries[0].summary == "-"
    bus.enable_tracing(False)
    bus.publish("four")
    assert len(bus.recent_trace_entries()) == 2
