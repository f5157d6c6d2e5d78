"""Pytest configuration: in-memory database, memory storage and an API client."""

import os

# Set test environment BEFORE any imports from encore
# so the engine and settings pick up the in-memory database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STORAGE_PROVIDERS"] = '["memory"]'
os.environ["TIMEZONE"] = "UTC"
os.environ["LOCALE"] = "en_US"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from encore.database import SessionLocal, engine, get_db  # noqa: E402
from encore.main import app  # noqa: E402
from encore.models import Base, Event, EventStatus, User, UserRole  # noqa: E402
from encore.services.notification_service import (  # noqa: E402
    NotificationDispatcher,
    init_notification_dispatcher,
)
from encore.services.storage import (  # noqa: E402
    AttachmentFile,
    AttachmentStorage,
    MemoryStorageProvider,
    init_attachment_storage,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def memory_provider():
    return MemoryStorageProvider()


@pytest.fixture
def storage(memory_provider):
    """Attachment storage backed by memory, installed globally."""
    attachment_storage = AttachmentStorage([memory_provider], max_attempts=2, retry_delay=0)
    init_attachment_storage(attachment_storage)
    return attachment_storage


@pytest.fixture
def dispatcher():
    """Notification dispatcher with an empty queue, installed globally."""
    notification_dispatcher = NotificationDispatcher(session_factory=SessionLocal)
    init_notification_dispatcher(notification_dispatcher)
    return notification_dispatcher


@pytest.fixture
def member(db_session):
    user = User(full_name="Maya Member", email="maya@example.com", role=UserRole.MEMBER.value)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_member(db_session):
    user = User(full_name="Otto Other", email="otto@example.com", role=UserRole.MEMBER.value)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def finance_manager(db_session):
    user = User(
        full_name="Fiona Finance",
        email="fiona@example.com",
        role=UserRole.FINANCE_MANAGER.value,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def confirmed_event(db_session):
    event = Event(name="Spring Recital", status=EventStatus.CONFIRMED.value)
    db_session.add(event)
    db_session.commit()
    return event


@pytest.fixture
def pending_event(db_session):
    event = Event(name="Summer Gala", status=EventStatus.PENDING.value)
    db_session.add(event)
    db_session.commit()
    return event


@pytest.fixture
def slip():
    return AttachmentFile(filename="slip.png", content_type="image/png", data=PNG_BYTES)


@pytest.fixture
def client(db_session, storage, dispatcher):
    """TestClient sharing the test session; lifespan is not started."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
