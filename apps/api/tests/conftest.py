"""
Test configuration and fixtures.

Provides:
- SQLite database file (tables created once, rows wiped after each test)
- Client / assistant users and their ActorContexts
- In-memory payment gateway with Stripe-like intent semantics
- HTTPX AsyncClient bound to the app, with identity headers per actor
"""
import os
import tempfile
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable, Generator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

_DB_DIR = tempfile.mkdtemp(prefix="missionhub-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from missionhub.core.deps import get_db, get_payment_gateway
from missionhub.db.base import Base
from missionhub.db.enums import GatewayIntentStatus, Role
from missionhub.db.models import Mission, User
from missionhub.db.session import SessionLocal, engine
from missionhub.main import app
from missionhub.schemas.auth import ActorContext
from missionhub.schemas.mission import MissionCreate
from missionhub.services import mission_lifecycle_service, mission_service
from missionhub.services.payment_gateway import GatewayIntent, GatewayRefund


# =============================================================================
# Fake gateway
# =============================================================================

class FakePaymentGateway:
    """
    In-memory PaymentGateway.

    Behaves like Stripe where the orchestrator cares: idempotency keys
    replay the first result, cancelling a succeeded intent returns it
    unchanged. `fail_with[method]` makes the next calls of that method raise.
    """

    key = "fake"

    def __init__(self):
        self.intents: dict[str, GatewayIntent] = {}
        self.amounts: dict[str, int] = {}
        self.refunds: dict[str, GatewayRefund] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.fail_with: dict[str, Exception] = {}
        self.on_create: Callable[[GatewayIntent], None] | None = None
        self._by_key: dict[str, GatewayIntent] = {}
        self._counter = 0

    def _maybe_fail(self, method: str) -> None:
        exc = self.fail_with.get(method)
        if exc is not None:
            raise exc

    def set_status(self, intent_id: str, status: str, last_error: str | None = None) -> None:
        self.intents[intent_id] = replace(
            self.intents[intent_id], status=status, last_error=last_error
        )

    def create_intent(self, *, amount_minor, currency, metadata, idempotency_key):
        self.calls.append(("create_intent", idempotency_key))
        self._maybe_fail("create_intent")
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        self._counter += 1
        intent = GatewayIntent(
            intent_id=f"pi_test_{self._counter}",
            status=GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value,
            client_secret=f"pi_test_{self._counter}_secret",
        )
        self.intents[intent.intent_id] = intent
        self.amounts[intent.intent_id] = amount_minor
        self._by_key[idempotency_key] = intent
        if self.on_create:
            self.on_create(intent)
        return intent

    def retrieve_intent(self, intent_id):
        self.calls.append(("retrieve_intent", None))
        self._maybe_fail("retrieve_intent")
        return self.intents[intent_id]

    def cancel_intent(self, intent_id, *, idempotency_key):
        self.calls.append(("cancel_intent", idempotency_key))
        self._maybe_fail("cancel_intent")
        intent = self.intents[intent_id]
        if intent.succeeded:
            return intent
        self.set_status(intent_id, GatewayIntentStatus.CANCELED.value)
        return self.intents[intent_id]

    def refund(self, intent_id, *, reason, idempotency_key):
        self.calls.append(("refund", idempotency_key))
        self._maybe_fail("refund")
        if idempotency_key not in self.refunds:
            self.refunds[idempotency_key] = GatewayRefund(
                refund_id=f"re_test_{len(self.refunds) + 1}", status="succeeded"
            )
        return self.refunds[idempotency_key]

    def calls_of(self, method: str) -> list[str | None]:
        return [key for name, key in self.calls if name == method]


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def _create_schema() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Database session for one test.

    Services commit, so isolation comes from wiping every table afterwards.
    """
    session = SessionLocal()
    yield session
    session.close()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def other_session(db: Session) -> Generator[Session, None, None]:
    """A second, independent session (concurrent caller)."""
    session = SessionLocal()
    yield session
    session.close()


def _make_user(db: Session, role: Role, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{name}-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name.title(),
        role=role.value,
        is_verified=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def client_user(db: Session) -> User:
    return _make_user(db, Role.CLIENT, "client")


@pytest.fixture(scope="function")
def assistant_user(db: Session) -> User:
    return _make_user(db, Role.ASSISTANT, "assistant")


@pytest.fixture(scope="function")
def other_assistant_user(db: Session) -> User:
    return _make_user(db, Role.ASSISTANT, "other-assistant")


@pytest.fixture(scope="function")
def other_client_user(db: Session) -> User:
    return _make_user(db, Role.CLIENT, "other-client")


def actor_for(user: User) -> ActorContext:
    return ActorContext(user_id=user.id, role=Role(user.role))


@pytest.fixture(scope="function")
def client_actor(client_user: User) -> ActorContext:
    return actor_for(client_user)


@pytest.fixture(scope="function")
def assistant_actor(assistant_user: User) -> ActorContext:
    return actor_for(assistant_user)


@pytest.fixture(scope="function")
def other_assistant_actor(other_assistant_user: User) -> ActorContext:
    return actor_for(other_assistant_user)


@pytest.fixture(scope="function")
def other_client_actor(other_client_user: User) -> ActorContext:
    return actor_for(other_client_user)


# =============================================================================
# Mission Fixtures
# =============================================================================

def mission_data(**overrides) -> MissionCreate:
    start = datetime.now(timezone.utc) + timedelta(days=1)
    fields = {
        "title": "Pick up dry cleaning",
        "description": "Two suits, ticket in the mailbox",
        "pickup_address": "12 Rue de Rivoli, Paris",
        "time_window_start": start,
        "time_window_end": start + timedelta(hours=3),
        "price_estimate": Decimal("45.00"),
        "currency": "EUR",
    }
    fields.update(overrides)
    return MissionCreate(**fields)


@pytest.fixture(scope="function")
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture(scope="function")
def pending_mission(db: Session, client_actor: ActorContext) -> Mission:
    return mission_service.create_mission(db, client_actor, mission_data())


@pytest.fixture(scope="function")
def accepted_mission(
    db: Session, pending_mission: Mission, assistant_actor: ActorContext
) -> Mission:
    return mission_lifecycle_service.accept_mission(db, pending_mission.id, assistant_actor)


@pytest.fixture(scope="function")
def in_progress_mission(
    db: Session, accepted_mission: Mission, assistant_actor: ActorContext
) -> Mission:
    return mission_lifecycle_service.start_mission(db, accepted_mission.id, assistant_actor)


# =============================================================================
# Client Fixtures
# =============================================================================

def auth_headers(actor: ActorContext) -> dict[str, str]:
    return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role.value}


@pytest.fixture(scope="function")
async def client(
    db: Session, gateway: FakePaymentGateway
) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient bound to the app, sharing the test session and fake gateway.

    Pass identity with `headers=auth_headers(actor)`.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
