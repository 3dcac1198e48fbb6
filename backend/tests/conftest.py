"""
Pytest configuration and fixtures
"""

import os
import tempfile
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Set test environment variables before importing the app
_DB_PATH = os.path.join(tempfile.gettempdir(), f"eventswap_test_{os.getpid()}.db")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["JWT_SECRET"] = "test-jwt-secret-min-32-chars-for-testing-only"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret-for-testing-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RL_PARTNER_API_PER_MIN"] = "3"
os.environ["LOG_LEVEL"] = "DEBUG"

from eventswap.core.common.clock import utcnow
from eventswap.core.listings.models import Category, Listing, ListingStatus
from eventswap.core.security.models import Actor, Role
from eventswap.core.users.models import User, UserStatus
from eventswap.infrastructure.database import Base, SessionLocal, engine, get_db
from eventswap.infrastructure.redis_client import get_redis
from eventswap.main import app
from eventswap.services.payments.gateway import get_payment_gateway


class FakeRedis:
    """In-memory stand-in for the sorted-set commands the rate limiter uses"""

    def __init__(self):
        self.sets = {}

    def zremrangebyscore(self, key, minimum, maximum):
        members = self.sets.get(key, {})
        for member, score in list(members.items()):
            if minimum <= score <= maximum:
                del members[member]

    def zcard(self, key):
        return len(self.sets.get(key, {}))

    def zrange(self, key, start, end, withscores=False):
        ordered = sorted(self.sets.get(key, {}).items(), key=lambda item: item[1])
        selected = ordered[start:end + 1] if end >= 0 else ordered[start:]
        return selected if withscores else [member for member, _ in selected]

    def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)

    def expire(self, key, seconds):
        return True

    def ping(self):
        return True


class RecordingGateway:
    """Payment gateway double that records every call"""

    def __init__(self):
        self.charges = []
        self.refunds = []

    def create_charge(self, *, transaction_id, payer_id, amount, due_at, description):
        self.charges.append({
            "transaction_id": transaction_id,
            "payer_id": payer_id,
            "amount": amount,
            "due_at": due_at,
            "description": description,
        })
        return f"pay_{len(self.charges)}"

    def refund(self, *, provider_payment_id, amount, reason):
        self.refunds.append({"provider_payment_id": provider_payment_id, "amount": amount, "reason": reason})
        return f"ref_{len(self.refunds)}"


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Fresh database session for each test.
    Drops and recreates all tables around the test.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture(scope="function")
def client(db_session: Session, fake_redis: FakeRedis, gateway: RecordingGateway):
    """
    FastAPI test client with database, redis and gateway overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: Session):
    """
    Factory for users. trusted=True gives an old, fully verified account
    that the fraud engine scores as low risk.
    """
    def _make_user(trusted: bool = True, **overrides) -> User:
        values = {
            "id": uuid4(),
            "email": f"user-{uuid4().hex[:8]}@example.com",
            "status": UserStatus.ACTIVE,
            "email_verified": trusted,
            "phone_verified": trusted,
            "kyc_verified": trusted,
        }
        if trusted:
            values["created_at"] = utcnow() - timedelta(days=400)
        values.update(overrides)
        user = User(**values)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def category(db_session: Session) -> Category:
    category = Category(slug="concerts", name="Concerts")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def make_listing(db_session: Session, category: Category):
    """Factory for ACTIVE listings published two days ago"""
    def _make_listing(seller: User, **overrides) -> Listing:
        values = {
            "slug": f"listing-{uuid4().hex[:8]}",
            "title": "Front row reservation",
            "seller_id": seller.id,
            "category_id": category.id,
            "original_price": Decimal("1000.00"),
            "asking_price": Decimal("900.00"),
            "city": "Sao Paulo",
            "status": ListingStatus.ACTIVE,
            "published_at": utcnow() - timedelta(days=2),
        }
        values.update(overrides)
        listing = Listing(**values)
        db_session.add(listing)
        db_session.commit()
        db_session.refresh(listing)
        return listing

    return _make_listing


@pytest.fixture
def seller(make_user) -> User:
    return make_user(email="seller@example.com")


@pytest.fixture
def buyer(make_user) -> User:
    return make_user(email="buyer@example.com")


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(email="admin@example.com")


@pytest.fixture
def admin_actor(admin_user: User) -> Actor:
    return Actor(user_id=admin_user.id, roles=(Role.ADMIN,))


@pytest.fixture
def mediator_actor(make_user) -> Actor:
    return Actor(user_id=make_user(email="mediator@example.com").id, roles=(Role.MEDIATOR,))

