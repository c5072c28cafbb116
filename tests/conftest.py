"""Pytest configuration and fixtures."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from webhook_engine.config import WebhookConfig
from webhook_engine.database import Base, get_db
from webhook_engine.main import app
from webhook_engine.models import WebhookDelivery, WebhookEndpoint
from webhook_engine.services import endpoint_registry, url_safety
from webhook_engine.services.delivery_store import DeliveryStore
from webhook_engine.services.dispatcher import Dispatcher
from webhook_engine.services.engine import get_dispatcher
from webhook_engine.services.queue_claimer import QueueClaimer
from webhook_engine.services.sender import Sender, SendResult


class RecordingSender(Sender):
    """Sender double that records every claim and returns a canned result."""

    def __init__(self):
        self.calls = []
        self.result = SendResult(success=True, response_code=200)

    def send(self, claim):
        self.calls.append(claim)
        return self.result


@pytest.fixture(autouse=True)
def public_dns(monkeypatch):
    """Keep URL validation off the network: every hostname is public."""
    monkeypatch.setattr(url_safety, "resolve_hostname", lambda host: ["93.184.216.34"])


@pytest.fixture
def test_db(tmp_path):
    """Create a file-backed SQLite database per test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'webhooks.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config():
    return WebhookConfig()


@pytest.fixture
def store(session_factory, config):
    return DeliveryStore(session_factory, config)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def claimer(store, sender, session_factory):
    return QueueClaimer(store, sender, session_factory)


@pytest.fixture
def scheduled():
    """Delivery ids handed to the immediate-delivery hook."""
    return []


@pytest.fixture
def dispatcher(session_factory, store, scheduled):
    return Dispatcher(session_factory, store, schedule=scheduled.append)


@pytest.fixture
def make_endpoint(db):
    def _make(tenant_id="t1", events=("bio.*",), url="https://example.com/webhook"):
        return endpoint_registry.create_endpoint(db, tenant_id, url, list(events))

    return _make


@pytest.fixture
def load_delivery(session_factory):
    """Read a delivery through a fresh session so no stale state leaks in."""

    def _load(delivery_id):
        with session_factory() as session:
            return session.get(WebhookDelivery, delivery_id)

    return _load


@pytest.fixture
def load_endpoint(session_factory):
    def _load(endpoint_id):
        with session_factory() as session:
            return session.get(WebhookEndpoint, endpoint_id)

    return _load


@pytest.fixture
def client(session_factory, dispatcher):
    """API client bound to the test database and dispatcher."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    yield TestClient(app)

    app.dependency_overrides.clear()
