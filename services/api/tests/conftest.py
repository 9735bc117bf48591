from __future__ import annotations

import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="bikebusters-tests-")
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_tmp}/test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_POLLER"] = "0"
os.environ["TRACKER_API_KEY"] = ""
os.environ["ROUTING_URL"] = ""
os.environ["BOOTSTRAP_ADMIN_EMAIL"] = ""
os.environ["BOOTSTRAP_ADMIN_PASSWORD"] = ""

from collections.abc import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from starlette.testclient import TestClient  # noqa: E402

import bikebusters.models  # noqa: E402,F401
from bikebusters.core.security import create_access_token, hash_password  # noqa: E402
from bikebusters.db.base import Base  # noqa: E402
from bikebusters.db.session import SessionLocal, engine  # noqa: E402
from bikebusters.models.bike import Bike  # noqa: E402
from bikebusters.models.recovery import ReturnLocation  # noqa: E402
from bikebusters.models.user import User  # noqa: E402
from bikebusters.services.ingestion import LocationIngestor  # noqa: E402
from bikebusters.services.notifications import NotificationDispatcher  # noqa: E402
from bikebusters.services.recovery import RecoveryStateMachine  # noqa: E402
from bikebusters.services.ws import LocationBroadcaster, LocationUpdated  # noqa: E402


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))


class RecordingBroadcaster(LocationBroadcaster):
    def __init__(self) -> None:
        super().__init__()
        self.published: list[LocationUpdated] = []

    def publish(self, event: LocationUpdated) -> None:
        self.published.append(event)
        super().publish(event)


@pytest.fixture(autouse=True)
def _schema() -> Iterator[None]:
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def state_machine(mailer: RecordingMailer) -> RecoveryStateMachine:
    return RecoveryStateMachine(NotificationDispatcher(mailer))


@pytest.fixture
def ingestor(state_machine: RecoveryStateMachine, broadcaster: RecordingBroadcaster) -> LocationIngestor:
    return LocationIngestor(state_machine, broadcaster)


@pytest.fixture
def make_bike(db: Session) -> Callable[..., Bike]:
    counter = {"n": 0}

    def _make(**kw) -> Bike:
        counter["n"] += 1
        values = {
            "make": "Gazelle",
            "model": "Ultimate C8",
            "serial_number": f"SN-{counter['n']:04d}",
            "owner_id": "owner-1",
        }
        values.update(kw)
        bike = Bike(**values)
        db.add(bike)
        db.commit()
        return bike

    return _make


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    def _make(email: str = "agent@example.com", role: str = "agent", password: str = "secret123") -> User:
        user = User(email=email, password_hash=hash_password(password), role=role, is_active=True)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def agent(make_user) -> User:
    return make_user()


@pytest.fixture
def return_location(db: Session) -> ReturnLocation:
    location = ReturnLocation(name="BikeBusters Depot", address="Keizersgracht 1, Amsterdam")
    db.add(location)
    db.commit()
    return location


@pytest.fixture
def client() -> Iterator[TestClient]:
    from bikebusters.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(agent: User) -> dict[str, str]:
    token = create_access_token(subject=str(agent.id), role=agent.role)
    return {"authorization": f"Bearer {token}"}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
