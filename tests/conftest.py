from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt
import pytest

from netcontrol.config import settings
from netcontrol.engine import Engine, build_engine
from netcontrol.models.domain import Event, Principal
from netcontrol.persistence.documents import InMemoryDocumentStore

T0 = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)

START_ZONE = [[10.0, 45.0], [10.01, 45.0], [10.01, 45.01], [10.0, 45.01]]
FINISH_ZONE = [[10.02, 45.0], [10.03, 45.0], [10.03, 45.01], [10.02, 45.01]]


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    secret = "test-secret-for-signing-bearer-tokens-0123456789"
    monkeypatch.setattr(settings, "jwt_secret", secret)
    monkeypatch.setattr(settings, "jwt_algorithm", "HS256")
    return secret


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def engine(documents, clock) -> Engine:
    engine = build_engine(documents, clock=clock, run_scheduler=False)
    yield engine
    engine.shutdown()


@pytest.fixture
def owner() -> Principal:
    return Principal(id="owner-1", callsign="N0OWN")


@pytest.fixture
def operator() -> Principal:
    return Principal(id="op-1", callsign="K1OPR")


@pytest.fixture
def other() -> Principal:
    return Principal(id="op-2", callsign="W2OTH")


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin-1", role="admin", callsign="NC0AD")


@pytest.fixture
def make_payload() -> Callable[..., dict]:
    def factory(**overrides) -> dict:
        payload = {
            "name": "Harbour Marathon",
            "description": "Course support net",
            "start_date": "2025-06-01T07:00:00+00:00",
            "location": {"coordinates": [10.0, 45.0], "radius": 500},
            "zones": [
                {"id": "z-start", "name": "Start line", "type": "MEDICAL", "coordinates": START_ZONE},
                {"id": "z-finish", "name": "Finish line", "type": "COMMS", "coordinates": FINISH_ZONE},
            ],
            "channels": [{"name": "Net 1", "frequency": "145.500", "mode": "FM", "purpose": "Primary net"}],
            "talkgroups": [{"name": "TG-Ops", "description": "Operations"}],
            "check_in_interval": 30,
            "welfare_check_interval": 60,
        }
        payload.update(overrides)
        return payload

    return factory


@pytest.fixture
def make_event(engine, owner, make_payload) -> Callable[..., Event]:
    def factory(principal: Principal = None, **overrides) -> Event:
        return engine.events.create(make_payload(**overrides), principal or owner)

    return factory


@pytest.fixture
def make_token(jwt_secret) -> Callable[..., str]:
    def factory(sub: str, role: str = "operator", callsign: str = None) -> str:
        claims = {"sub": sub, "role": role}
        if callsign:
            claims["callsign"] = callsign
        return jwt.encode(claims, jwt_secret, algorithm="HS256")

    return factory
