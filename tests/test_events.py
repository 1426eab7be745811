import pytest

from netcontrol.errors import Forbidden, NotFound, ValidationError
from netcontrol.persistence.documents import ASSIGNMENTS, LOGS


def test_create_applies_defaults_and_publishes(engine, owner, make_payload) -> None:
    payload = make_payload()
    del payload["check_in_interval"], payload["welfare_check_interval"]
    with engine.broadcaster.subscribe("events") as feed:
        event = engine.events.create(payload, owner)
        deltas = feed.drain()

    assert event.created_by == owner.id
    assert event.status == "ACTIVE"
    assert (event.check_in_interval, event.welfare_check_interval) == (30, 60)
    assert event.revision == 1
    assert [zone.id for zone in event.zones] == ["z-start", "z-finish"]
    assert [delta.type for delta in deltas] == ["newEvent"]
    assert deltas[0].payload["id"] == event.id


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": "  "}, "name is required"),
        ({"start_date": None}, "start_date is required"),
        ({"end_date": "2025-05-31T00:00:00+00:00"}, "end_date"),
        ({"location": {"coordinates": [200, 10]}}, "longitude"),
        ({"location": {"coordinates": [10, 95]}}, "latitude"),
        ({"check_in_interval": 0}, "at least 1 minute"),
        ({"welfare_check_interval": 2.5}, "whole number"),
        ({"status": "PAUSED"}, "status must be one of"),
    ],
)
def test_create_rejects_invalid_input(engine, owner, make_payload, overrides, message) -> None:
    with pytest.raises(ValidationError, match=message):
        engine.events.create(make_payload(**overrides), owner)
    assert engine.events.list() == []


def test_create_rejects_channel_assignment_outside_roster(engine, owner, make_payload) -> None:
    channels = [{"name": "Net 1", "frequency": "145.500", "mode": "FM", "purpose": "Net", "assigned_to": "op-1"}]
    with pytest.raises(ValidationError, match="roster"):
        engine.events.create(make_payload(channels=channels), owner)


def test_create_rejects_duplicate_zone_ids(engine, owner, make_payload) -> None:
    payload = make_payload()
    payload["zones"][1]["id"] = "z-start"
    with pytest.raises(ValidationError, match="more than one zone"):
        engine.events.create(payload, owner)


def test_update_by_owner_bumps_revision(engine, make_event, owner) -> None:
    event = make_event()
    with engine.broadcaster.subscribe(f"event:{event.id}", "events") as feed:
        updated = engine.events.update(event.id, {"name": "Harbour Marathon 2025"}, owner)
        deltas = feed.drain()

    assert updated.name == "Harbour Marathon 2025"
    assert updated.revision == event.revision + 1
    assert [(delta.topic, delta.type) for delta in deltas] == [
        (f"event:{event.id}", "eventUpdated"),
        ("events", "eventUpdated"),
    ]


def test_update_by_non_creator_is_forbidden_but_admin_succeeds(engine, make_event, other, admin) -> None:
    event = make_event()
    with pytest.raises(Forbidden):
        engine.events.update(event.id, {"name": "Hijacked"}, other)
    assert engine.events.get(event.id).name == "Harbour Marathon"

    updated = engine.events.update(event.id, {"name": "Renamed by admin"}, admin)
    assert updated.name == "Renamed by admin"


def test_update_rejects_unknown_and_immutable_fields(engine, make_event, owner) -> None:
    event = make_event()
    with pytest.raises(ValidationError, match="created_by"):
        engine.events.update(event.id, {"created_by": "someone-else"}, owner)
    with pytest.raises(ValidationError, match="check_in_interval is required"):
        engine.events.update(event.id, {"check_in_interval": None}, owner)


def test_update_missing_event(engine, owner) -> None:
    with pytest.raises(NotFound):
        engine.events.update("nope", {"name": "x"}, owner)


def test_list_filters_by_status_newest_first(engine, make_event, owner) -> None:
    early = make_event(name="Early", start_date="2025-01-01T00:00:00+00:00")
    late = make_event(name="Late", start_date="2025-09-01T00:00:00+00:00")
    done = make_event(name="Done", status="COMPLETED", start_date="2025-03-01T00:00:00+00:00")

    assert [event.id for event in engine.events.list()] == [late.id, done.id, early.id]
    assert [event.id for event in engine.events.list(status="COMPLETED")] == [done.id]


def test_delete_removes_assignments_but_keeps_logs(engine, documents, make_event, owner, operator) -> None:
    event = make_event()
    engine.events.add_operator(event.id, operator.id, owner)
    engine.logbook.create(
        {"event_id": event.id, "message": "Net open", "talkgroup": "TG-Ops", "channel": "Net 1"}, operator
    )

    with engine.broadcaster.subscribe("events") as feed:
        engine.events.delete(event.id, owner)
        assert [delta.type for delta in feed.drain()] == ["eventDeleted"]

    with pytest.raises(NotFound):
        engine.events.get(event.id)
    assert documents.find(ASSIGNMENTS, event_id=event.id) == []
    assert len(documents.find(LOGS, event_id=event.id)) == 1


def test_delete_by_non_creator_is_forbidden(engine, make_event, other) -> None:
    event = make_event()
    with pytest.raises(Forbidden):
        engine.events.delete(event.id, other)
    assert engine.events.get(event.id).id == event.id
