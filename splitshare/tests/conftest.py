"""
Pytest configuration and fixtures for splitshare tests.
"""
import pytest
import jwt
from datetime import datetime
from decimal import Decimal
from typing import List
from unittest.mock import Mock
from sqlalchemy.pool import StaticPool

from splitshare.core.config import Settings
from splitshare.db.database import create_db_engine, create_session_factory, init_db
from splitshare.models.groups import Group, GroupMember, MemberRole
from splitshare.models.users import User
from splitshare.schemas.expense_schema import ExpenseCreate, ParticipantIn
from splitshare.services.notification_service import ExpenseNotifier
from splitshare.services.split_calculator import ParticipantSpec, SplitType

TEST_SECRET = "test-secret"
EXPENSE_DATE = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across connections."""
    test_engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Database session for one test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db_session):
    """Alice, Bob, Carol and Dave; Dave belongs to no group."""
    created = {}
    for name in ("alice", "bob", "carol", "dave"):
        user = User(id=name, name=name.title(), email=f"{name}@example.com")
        db_session.add(user)
        created[name] = user
    db_session.commit()
    return created


@pytest.fixture
def group(db_session, users):
    """
    Trip group created by Alice.

    Members: alice (admin, creator), bob (admin), carol (member).
    """
    trip = Group(id="trip", name="Trip", created_by="alice")
    db_session.add(trip)
    db_session.add_all([
        GroupMember(group_id="trip", user_id="alice", role=MemberRole.admin),
        GroupMember(group_id="trip", user_id="bob", role=MemberRole.admin),
        GroupMember(group_id="trip", user_id="carol", role=MemberRole.member),
    ])
    db_session.commit()
    return trip


@pytest.fixture
def notifier():
    """Notifier double recording every event."""
    return Mock(spec=ExpenseNotifier)


@pytest.fixture
def settings():
    return Settings(secret_key=TEST_SECRET, notifications_enabled=False, database_url="sqlite://")


@pytest.fixture
def client(settings, notifier, engine):
    """TestClient bound to the in-memory database."""
    from fastapi.testclient import TestClient
    from splitshare.main import create_app

    return TestClient(create_app(settings=settings, notifier=notifier, engine=engine))


def make_token(user_id: str, secret: str = TEST_SECRET) -> str:
    return jwt.encode({"user_id": user_id}, secret, algorithm="HS256")


def auth_headers(user_id: str) -> dict:
    return {"access-token": f"Bearer {make_token(user_id)}"}


def specs(*pairs, field: str) -> List[ParticipantSpec]:
    """Build participant specs from (user_id, value) pairs for one field."""
    return [ParticipantSpec(user_id=user_id, **{field: value}) for user_id, value in pairs]


def expense_create(
    amount="100",
    split_type=SplitType.equal,
    participants=None,
    group_id=None,
    paid_by=None,
    description="Dinner",
    **extra
) -> ExpenseCreate:
    participants = participants if participants is not None else [
        ParticipantIn(user_id="alice"), ParticipantIn(user_id="bob")
    ]
    return ExpenseCreate(
        description=description,
        amount=Decimal(amount),
        currency="USD",
        date=extra.pop("date", EXPENSE_DATE),
        group_id=group_id,
        paid_by=paid_by,
        split_type=split_type,
        participants=participants,
        **extra
    )
