import queue

import pytest

from netcontrol.services.broadcast import ChangeBroadcaster, event_topic, operator_topic


def test_sequence_numbers_increase_per_topic() -> None:
    broadcaster = ChangeBroadcaster()
    subscription = broadcaster.subscribe(event_topic("a"), event_topic("b"))

    broadcaster.publish(event_topic("a"), "eventUpdated", {"n": 1})
    broadcaster.publish(event_topic("b"), "eventUpdated", {"n": 2})
    broadcaster.publish(event_topic("a"), "eventUpdated", {"n": 3})

    received = subscription.drain()
    assert [(delta.topic, delta.sequence) for delta in received] == [
        ("event:a", 1),
        ("event:b", 1),
        ("event:a", 2),
    ]
    assert [delta.payload["n"] for delta in received] == [1, 2, 3]


def test_subscribers_only_see_their_topics() -> None:
    broadcaster = ChangeBroadcaster()
    mine = broadcaster.subscribe(operator_topic("op-1"))
    theirs = broadcaster.subscribe(operator_topic("op-2"))

    broadcaster.publish(operator_topic("op-1"), "checkInDue", {"eventId": "a"})

    assert mine.get(timeout=1).type == "checkInDue"
    with pytest.raises(queue.Empty):
        theirs.get(timeout=0.01)


def test_failing_sink_is_dropped_without_affecting_others() -> None:
    broadcaster = ChangeBroadcaster()

    def broken(delta):
        raise RuntimeError("socket closed")

    bad = broadcaster.subscribe("events", sink=broken)
    good = broadcaster.subscribe("events")
    assert broadcaster.subscriber_count("events") == 2

    broadcaster.publish("events", "newEvent", {"id": "a"})
    broadcaster.publish("events", "newEvent", {"id": "b"})

    assert bad.closed
    assert broadcaster.subscriber_count("events") == 1
    assert [delta.payload["id"] for delta in good.drain()] == ["a", "b"]


def test_topics_can_be_added_and_removed() -> None:
    broadcaster = ChangeBroadcaster()
    with broadcaster.subscribe() as subscription:
        subscription.add_topic(event_topic("a"))
        broadcaster.publish(event_topic("a"), "newLog", {})
        subscription.remove_topic(event_topic("a"))
        broadcaster.publish(event_topic("a"), "newLog", {})
        assert len(subscription.drain()) == 1
    assert subscription.closed
    assert broadcaster.subscriber_count(event_topic("a")) == 0


def test_to_message_shape() -> None:
    broadcaster = ChangeBroadcaster()
    delta = broadcaster.publish(event_topic("a"), "eventDeleted", {"id": "a"})
    message = delta.to_message()
    assert set(message) == {"type", "topic", "payload", "timestamp", "sequence"}
    assert message["type"] == "eventDeleted"


def test_forget_resets_event_bookkeeping() -> None:
    broadcaster = ChangeBroadcaster()
    with broadcaster.ordered("a"):
        # re-entrant for nested writes on the same event
        with broadcaster.ordered("a"):
            broadcaster.publish(event_topic("a"), "eventUpdated", {})
    broadcaster.forget("a")
    assert broadcaster.publish(event_topic("a"), "eventUpdated", {}).sequence == 1


def test_operator_sequences_are_dropped_with_last_listener() -> None:
    broadcaster = ChangeBroadcaster()
    topic = operator_topic("op-1")

    broadcaster.publish(topic, "checkInDue", {})
    assert topic not in broadcaster._sequences

    with broadcaster.subscribe(topic) as subscription:
        broadcaster.publish(topic, "checkInDue", {})
        broadcaster.publish(topic, "welfareCheckDue", {})
        assert [delta.sequence for delta in subscription.drain()] == [1, 2]
    assert topic not in broadcaster._sequences

    broadcaster.publish(event_topic("a"), "eventUpdated", {})
    assert broadcaster._sequences[event_topic("a")] == 1
