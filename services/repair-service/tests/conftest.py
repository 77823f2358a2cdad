import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.api.deps import get_line_client, get_storage
from app.core.db import Base, get_db
from app.main import app
from app.models import ChannelLink, User
from app.models.enums import LinkStatus, UserRole
from app.schemas.notification import BroadcastResult, NotificationResult
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.line_client import LineApiError
from app.services.notifications.renderer import RenderLinks
from app.services.storage import LocalDiskStorage
from app.services.tickets import TicketService

# Setup an in-memory SQLite database shared by every connection
SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

LINKS = RenderLinks(frontend_url="https://repairs.example.org", liff_id="1650000000-abcdEFGH")


class FakeLineClient:
    """Records push/multicast calls; raises LineApiError while fail is set."""

    def __init__(self):
        self.pushed = []
        self.multicasts = []
        self.fail = False

    def push_message(self, to, messages):
        if self.fail:
            raise LineApiError("LINE API returned 500", status_code=500)
        self.pushed.append((to, messages))

    def multicast(self, to, messages):
        if self.fail:
            raise LineApiError("LINE API returned 500", status_code=500)
        self.multicasts.append((list(to), messages))

    @property
    def call_count(self):
        return len(self.pushed) + len(self.multicasts)


class RecordingDispatcher(NotificationDispatcher):
    """Real notify wrappers; send_to_user/broadcast_to_role only record their payloads."""

    def __init__(self, db):
        super().__init__(db, client=None, links=LINKS)
        self.sent = []
        self.broadcasts = []

    def send_to_user(self, user_id, payload):
        self.sent.append((user_id, payload))
        return NotificationResult(success=True)

    def broadcast_to_role(self, role, payload):
        self.broadcasts.append((role, payload))
        return BroadcastResult(success=True, count=1)


class ExplodingDispatcher(NotificationDispatcher):
    def __init__(self, db):
        super().__init__(db, client=None, links=LINKS)

    def send_to_user(self, user_id, payload):
        raise RuntimeError("dispatcher exploded")

    def broadcast_to_role(self, role, payload):
        raise RuntimeError("dispatcher exploded")


@pytest.fixture(scope="function")
def db_session():
    # Create the tables
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop the tables after the test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def line_client():
    return FakeLineClient()


@pytest.fixture
def dispatcher(db_session, line_client):
    return NotificationDispatcher(db_session, line_client, LINKS, retry_limit=3, retry_batch=10)


@pytest.fixture
def recording_dispatcher(db_session):
    return RecordingDispatcher(db_session)


@pytest.fixture
def exploding_dispatcher(db_session):
    return ExplodingDispatcher(db_session)


@pytest.fixture
def storage(tmp_path):
    return LocalDiskStorage(tmp_path / "uploads", "/uploads")


@pytest.fixture
def ticket_service(db_session, recording_dispatcher, storage):
    return TicketService(db_session, recording_dispatcher, storage=storage)


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(name=None, role=UserRole.USER, line_user_id=None, link_status=LinkStatus.VERIFIED):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=f"user{counter['n']}@example.org",
            password_hash="not-a-real-hash",
            role=role.value,
        )
        db_session.add(user)
        db_session.flush()
        if line_user_id:
            db_session.add(ChannelLink(user_id=user.id, line_user_id=line_user_id, status=link_status.value))
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def client(db_session, line_client, storage):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_line_client] = lambda: line_client
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
