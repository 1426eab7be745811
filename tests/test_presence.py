import logging
import threading

import pytest

from netcontrol.engine import build_engine
from netcontrol.errors import Forbidden, NotAssigned, StoreUnavailable, ValidationError
from netcontrol.persistence.documents import ASSIGNMENTS, LOGS, InMemoryDocumentStore


class FailingInsertStore(InMemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    def insert(self, collection, doc_id, data):
        if collection in self.failing:
            raise StoreUnavailable(f"{collection} table is unreachable")
        return super().insert(collection, doc_id, data)


@pytest.fixture
def staffed_event(engine, make_event, owner, operator):
    event = make_event()
    engine.events.add_operator(event.id, operator.id, owner)
    return engine.events.get(event.id)


def test_add_operator_creates_offline_assignment_once(engine, make_event, owner, operator) -> None:
    event = make_event()
    with engine.broadcaster.subscribe(f"event:{event.id}") as feed:
        first = engine.events.add_operator(event.id, operator.id, owner)
        second = engine.events.add_operator(event.id, operator.id, owner)
        types = [delta.type for delta in feed.drain()]

    assert first.status == "OFFLINE"
    assert first.current_zone is None
    assert second.key == first.key
    assert engine.events.get(event.id).operators == [operator.id]
    assert types == ["eventUpdated", "operatorStatusChanged"]


def test_add_operator_requires_owner(engine, make_event, other) -> None:
    event = make_event()
    with pytest.raises(Forbidden):
        engine.events.add_operator(event.id, other.id, other)


def test_failed_assignment_insert_rolls_back_roster(clock, owner, operator, make_payload) -> None:
    store = FailingInsertStore()
    engine = build_engine(store, clock=clock, run_scheduler=False)
    event = engine.events.create(make_payload(), owner)
    store.failing.add(ASSIGNMENTS)

    with pytest.raises(StoreUnavailable):
        engine.events.add_operator(event.id, operator.id, owner)

    store.failing.clear()
    assert engine.events.get(event.id).operators == []
    engine.shutdown()


def test_read_restores_missing_assignment(engine, documents, staffed_event, operator) -> None:
    key = f"{staffed_event.id}:{operator.id}"
    documents.delete(ASSIGNMENTS, key)

    engine.events.get(staffed_event.id)

    restored = engine.presence.get_assignment(staffed_event.id, operator.id)
    assert restored.status == "OFFLINE"


def test_check_in_marks_active_and_stamps_time(engine, clock, staffed_event, operator) -> None:
    clock.advance(minutes=5)
    with engine.broadcaster.subscribe(f"event:{staffed_event.id}") as feed:
        assignment, suggestion = engine.presence.check_in(staffed_event.id, operator.id, operator)
        deltas = feed.drain()

    assert assignment.status == "ACTIVE"
    assert assignment.last_check_in == clock.now
    assert suggestion is None
    assert [delta.type for delta in deltas] == ["operatorStatusChanged"]
    assert deltas[0].payload["status"] == "ACTIVE"
    assert deltas[0].payload["lastCheckIn"] == clock.now.isoformat()


def test_check_in_with_position_suggests_zone_without_moving(engine, staffed_event, operator) -> None:
    assignment, suggestion = engine.presence.check_in(
        staffed_event.id, operator.id, operator, position=(10.025, 45.005)
    )
    assert suggestion is not None
    assert suggestion.id == "z-finish"
    assert assignment.current_zone is None


def test_check_in_rejects_bad_position(engine, staffed_event, operator) -> None:
    with pytest.raises(ValidationError):
        engine.presence.check_in(staffed_event.id, operator.id, operator, position=(10.0, 95.0))


def test_check_in_requires_assignment_and_self(engine, staffed_event, operator, other, admin) -> None:
    with pytest.raises(NotAssigned):
        engine.presence.check_in(staffed_event.id, other.id, other)
    with pytest.raises(Forbidden):
        engine.presence.check_in(staffed_event.id, operator.id, other)
    assignment, _ = engine.presence.check_in(staffed_event.id, operator.id, admin)
    assert assignment.status == "ACTIVE"


def test_welfare_check_keeps_status_and_writes_log(engine, clock, staffed_event, operator) -> None:
    engine.presence.set_status(staffed_event.id, operator.id, "BREAK", operator)
    clock.advance(minutes=12)

    with engine.broadcaster.subscribe(f"event:{staffed_event.id}") as feed:
        assignment, entry = engine.presence.welfare_check(staffed_event.id, operator.id, operator)
        types = [delta.type for delta in feed.drain()]

    assert assignment.status == "BREAK"
    assert assignment.last_check_in == clock.now
    assert entry.message_type == "CHECK-IN"
    assert entry.message == "Welfare check"
    assert entry.callsign == operator.callsign
    assert entry.talkgroup == "TG-Ops"
    assert entry.channel == "Net 1"
    assert entry.timestamp == clock.now
    assert types == ["operatorStatusChanged", "newLog"]


def test_welfare_check_prefers_assigned_channel(engine, staffed_event, owner, operator) -> None:
    channels = [
        {"name": "Net 1", "frequency": "145.500", "mode": "FM", "purpose": "Primary"},
        {"name": "Medical", "frequency": "446.100", "mode": "DMR", "purpose": "Aid", "assigned_to": operator.id},
    ]
    engine.events.update(staffed_event.id, {"channels": channels}, owner)

    _, entry = engine.presence.welfare_check(staffed_event.id, operator.id, operator)
    assert entry.channel == "Medical"


def test_set_status_validates_status_and_zone(engine, staffed_event, operator) -> None:
    with pytest.raises(ValidationError):
        engine.presence.set_status(staffed_event.id, operator.id, "LUNCH", operator)
    with pytest.raises(ValidationError):
        engine.presence.set_status(staffed_event.id, operator.id, "ACTIVE", operator, zone_id="z-nowhere")

    assignment = engine.presence.set_status(staffed_event.id, operator.id, "ACTIVE", operator, zone_id="z-start")
    assert (assignment.status, assignment.current_zone) == ("ACTIVE", "z-start")


def test_set_status_to_same_value_publishes_nothing(engine, clock, staffed_event, operator) -> None:
    engine.presence.set_status(staffed_event.id, operator.id, "BREAK", operator)
    with engine.broadcaster.subscribe(f"event:{staffed_event.id}") as feed:
        engine.presence.set_status(staffed_event.id, operator.id, "BREAK", operator)
        assert feed.drain() == []


def test_concurrent_status_writes_each_publish_once(engine, staffed_event, operator) -> None:
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def write(status: str) -> None:
        barrier.wait()
        try:
            engine.presence.set_status(staffed_event.id, operator.id, status, operator)
        except Exception as exc:
            errors.append(exc)

    with engine.broadcaster.subscribe(f"event:{staffed_event.id}") as feed:
        threads = [threading.Thread(target=write, args=(status,)) for status in ("ACTIVE", "BREAK")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)
        deltas = [delta for delta in feed.drain() if delta.type == "operatorStatusChanged"]

    assert errors == []
    final = engine.presence.get_assignment(staffed_event.id, operator.id)
    assert final.status in {"ACTIVE", "BREAK"}
    assert len(deltas) == 2
    assert deltas[-1].payload["status"] == final.status
    assert [delta.sequence for delta in deltas] == sorted(delta.sequence for delta in deltas)


def test_removing_a_zone_clears_assignment_reference(engine, staffed_event, owner, operator) -> None:
    engine.presence.set_status(staffed_event.id, operator.id, "ACTIVE", operator, zone_id="z-start")
    remaining = [zone for zone in staffed_event.to_document()["zones"] if zone["id"] != "z-start"]

    with engine.broadcaster.subscribe(f"event:{staffed_event.id}") as feed:
        engine.events.update(staffed_event.id, {"zones": remaining}, owner)
        deltas = feed.drain()

    assignment = engine.presence.get_assignment(staffed_event.id, operator.id)
    assert assignment.current_zone is None
    assert assignment.status == "ACTIVE"
    assert [delta.type for delta in deltas] == ["eventUpdated", "operatorStatusChanged"]
    assert deltas[1].payload["zoneId"] is None


def test_remove_operator_clears_channel_and_assignment(engine, staffed_event, owner, operator) -> None:
    channels = [
        {"name": "Net 1", "frequency": "145.500", "mode": "FM", "purpose": "Primary", "assigned_to": operator.id}
    ]
    engine.events.update(staffed_event.id, {"channels": channels}, owner)

    engine.events.remove_operator(staffed_event.id, operator.id, owner)

    event = engine.events.get(staffed_event.id)
    assert event.operators == []
    assert event.channels[0].assigned_to is None
    with pytest.raises(NotAssigned):
        engine.presence.get_assignment(staffed_event.id, operator.id)
    with pytest.raises(NotAssigned):
        engine.events.remove_operator(staffed_event.id, operator.id, owner)


def test_list_assignments_sorted_by_operator(engine, staffed_event, owner) -> None:
    engine.events.add_operator(staffed_event.id, "op-0", owner)
    assert [item.operator_id for item in engine.presence.list_assignments(staffed_event.id)] == ["op-0", "op-1"]


def test_zone_removed_while_status_change_is_pending(engine, monkeypatch, staffed_event, owner, operator) -> None:
    remaining = [zone for zone in staffed_event.to_document()["zones"] if zone["id"] != "z-start"]
    real_get = engine.events.get
    removed = []

    def get_then_remove_zone(event_id):
        event = real_get(event_id)
        if not removed:
            removed.append(True)
            engine.events.update(event_id, {"zones": remaining}, owner)
        return event

    monkeypatch.setattr(engine.events, "get", get_then_remove_zone)

    with pytest.raises(ValidationError, match="z-start"):
        engine.presence.set_status(staffed_event.id, operator.id, "ACTIVE", operator, zone_id="z-start")

    assert [zone.id for zone in engine.events.get(staffed_event.id).zones] == ["z-finish"]
    assert engine.presence.get_assignment(staffed_event.id, operator.id).current_zone is None


def test_zone_removal_and_status_change_race(engine, staffed_event, owner, operator) -> None:
    remaining = [zone for zone in staffed_event.to_document()["zones"] if zone["id"] != "z-start"]
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def remove_zone() -> None:
        barrier.wait()
        engine.events.update(staffed_event.id, {"zones": remaining}, owner)

    def move_operator() -> None:
        barrier.wait()
        try:
            engine.presence.set_status(staffed_event.id, operator.id, "ACTIVE", operator, zone_id="z-start")
        except ValidationError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=remove_zone), threading.Thread(target=move_operator)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    zones = {zone.id for zone in engine.events.get(staffed_event.id).zones}
    assignment = engine.presence.get_assignment(staffed_event.id, operator.id)
    assert zones == {"z-finish"}
    assert assignment.current_zone is None
    assert len(errors) <= 1


def test_welfare_check_reports_missing_log_entry(clock, caplog, owner, operator, make_payload) -> None:
    store = FailingInsertStore()
    engine = build_engine(store, clock=clock, run_scheduler=False)
    event = engine.events.create(make_payload(), owner)
    engine.events.add_operator(event.id, operator.id, owner)
    store.failing.add(LOGS)

    with caplog.at_level(logging.ERROR, logger="netcontrol.services.presence"):
        with pytest.raises(StoreUnavailable):
            engine.presence.welfare_check(event.id, operator.id, operator)

    assert "log entry was not written" in caplog.text
    assert engine.presence.get_assignment(event.id, operator.id).last_check_in == clock.now
    engine.shutdown()
