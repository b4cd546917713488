from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup


def test_publish_delivers_in_subscription_order(bus):
    calls = []
    bus.subscribe(EventType.TURN_END, lambda e: calls.append("first"))
    bus.subscribe(EventType.TURN_END, lambda e: calls.append("second"))

    bus.publish(EventType.TURN_END, {"week": 2})

    assert calls == ["first", "second"]


def test_publish_returns_event_with_payload(bus):
    event = bus.publish(EventType.ELECTION, {"result": "victory"})
    assert isinstance(event, GameEvent)
    assert event.type == EventType.ELECTION
    assert event.payload == {"result": "victory"}


def test_unsubscribe_handle_removes_listener(bus):
    received = []
    unsubscribe = bus.subscribe(EventType.TURN_START, received.append)

    bus.publish(EventType.TURN_START)
    unsubscribe()
    bus.publish(EventType.TURN_START)

    assert len(received) == 1
    assert bus.subscriber_count(EventType.TURN_START) == 0


def test_faulty_listener_does_not_block_others(bus):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(EventType.CRISIS_GENERATED, broken)
    bus.subscribe(EventType.CRISIS_GENERATED, received.append)

    bus.publish(EventType.CRISIS_GENERATED, {"crisis": {}})

    assert len(received) == 1


def test_subscribing_during_dispatch_only_affects_later_events(bus):
    late = []

    def subscriber(event):
        bus.subscribe(EventType.TURN_END, late.append)

    bus.subscribe(EventType.TURN_END, subscriber)
    bus.publish(EventType.TURN_END)
    assert late == []

    bus.publish(EventType.TURN_END)
    assert len(late) == 1


def test_enqueued_events_wait_for_drain(bus):
    received = []
    bus.subscribe(EventType.OPPOSITION_ACTION, received.append)

    bus.enqueue(EventType.OPPOSITION_ACTION, {"n": 1})
    bus.enqueue(EventType.OPPOSITION_ACTION, {"n": 2})
    assert received == []
    assert bus.pending == 2

    assert bus.drain() == 2
    assert [e.payload["n"] for e in received] == [1, 2]
    assert bus.pending == 0


def test_events_enqueued_while_draining_are_delivered_by_same_drain(bus):
    received = []

    def chain(event):
        received.append(event.payload["n"])
        if event.payload["n"] < 3:
            bus.enqueue(EventType.OPPOSITION_ACTION, {"n": event.payload["n"] + 1})

    bus.subscribe(EventType.OPPOSITION_ACTION, chain)
    bus.enqueue(EventType.OPPOSITION_ACTION, {"n": 1})

    assert bus.drain() == 3
    assert received == [1, 2, 3]


def test_subscriber_count_totals_all_types(bus):
    bus.subscribe(EventType.TURN_END, lambda e: None)
    bus.subscribe(EventType.TURN_START, lambda e: None)
    bus.subscribe(EventType.TURN_START, lambda e: None)

    assert bus.subscriber_count(EventType.TURN_START) == 2
    assert bus.subscriber_count() == 3


def test_subscription_group_disposes_everything(bus):
    group = SubscriptionGroup(bus)
    group.subscribe(EventType.TURN_END, lambda e: None)
    group.subscribe(EventType.ELECTION, lambda e: None)
    assert len(group) == 2

    group.dispose()

    assert len(group) == 0
    assert bus.subscriber_count() == 0


def test_separate_buses_are_isolated():
    first, second = EventBus(), EventBus()
    received = []
    first.subscribe(EventType.TURN_END, received.append)

    second.publish(EventType.TURN_END)

    assert received == []
