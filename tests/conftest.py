import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hookrelay.models  # noqa: F401  (registers tables on Base.metadata)
from hookrelay.api.deps import get_executor, get_scheduler
from hookrelay.db.base import Base
from hookrelay.db.session import get_db
from hookrelay.main import app
from hookrelay.repositories import ConsumerRepository, RestRouteRepository, WebhookRepository
from hookrelay.schemas.consumer_schemas import ConsumerCreate
from hookrelay.schemas.delivery_schemas import HttpResponse
from hookrelay.schemas.rest_route_schemas import RestRouteCreate
from hookrelay.schemas.webhook_schemas import WebhookCreate

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class FakeScheduler:
    """Records scheduler calls instead of enqueueing anything."""

    def __init__(self):
        self.calls = []
        self.recurring = []
        self.cancelled = []

    def run_at(self, timestamp, handler_key, args):
        self.calls.append((timestamp, handler_key, list(args)))
        return f"task-{len(self.calls)}"

    def run_recurring(self, interval_seconds, handler_key):
        self.recurring.append((interval_seconds, handler_key))
        return handler_key

    def cancel(self, handler_key, args):
        self.cancelled.append((handler_key, list(args)))
        return 0

    def keys(self):
        return [handler_key for _, handler_key, _ in self.calls]


class StubExecutor:
    """Delivery executor returning scripted responses; the last one repeats."""

    def __init__(self, *responses):
        self.responses = list(responses) or [HttpResponse(code=200, body="ok")]
        self.requests = []

    def script(self, *responses):
        self.responses = list(responses)

    def send(self, url, method, headers, body=None):
        self.requests.append({
            "url": url,
            "method": method,
            "headers": dict(headers),
            "body": body,
        })
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def executor():
    return StubExecutor()


@pytest.fixture
def client(db, scheduler, executor):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_executor] = lambda: executor
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def public_dns(monkeypatch):
    """Resolve every host to a public address."""
    import hookrelay.services.egress_guard as egress_guard_module
    monkeypatch.setattr(egress_guard_module.socket, "gethostbyname", lambda host: "93.184.216.34")


@pytest.fixture
def make_webhook(db):
    def _make(**overrides):
        data = {
            "name": "Order hook",
            "trigger_key": "post_published",
            "endpoint_url": "https://example.com/hook",
            "retry_count": 0,
            "retry_delay_seconds": 10,
        }
        data.update(overrides)
        return WebhookRepository(db).create(WebhookCreate(**data))
    return _make


@pytest.fixture
def make_route(db):
    def _make(**overrides):
        data = {
            "name": "Leads",
            "route_path": "leads",
            "methods": ["POST"],
            "actions": [],
        }
        data.update(overrides)
        return RestRouteRepository(db).create(RestRouteCreate(**data))
    return _make


@pytest.fixture
def make_consumer(db):
    def _make(**overrides):
        data = {
            "name": "Product feed",
            "source_url": "https://feeds.example.com/products.json",
            "schedule": "hourly",
            "actions": [],
        }
        data.update(overrides)
        return ConsumerRepository(db).create(ConsumerCreate(**data))
    return _make
