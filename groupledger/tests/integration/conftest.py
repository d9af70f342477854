"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    defaults to an in-memory SQLite database. Set TEST_DATABASE_URL to run
    the same suite against PostgreSQL.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Users live in an external identity provider, so there is no register/login
API to call. Tests mint their own bearer tokens with the testing secret and
seed groups and memberships straight through the session.

Helper functions (not fixtures):
  - make_token(user_id, ...)           → signed JWT string
  - auth_headers(user_id)              → {"Authorization": "Bearer <token>"}
  - make_group(app, group_id, members) → seeds a group and its members
  - add_member(app, group_id, user_id) → seeds one membership
  - remove_member(app, group_id, user_id)
  - add_settlement(app, ...)           → seeds a settlement row
  - make_transaction(client, user_id, ...) → HTTP response of POST /transactions
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import delete, text

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.app.models.group import Group
from groupledger.app.models.membership import GroupMember
from groupledger.app.models.settlement import Settlement
from groupledger.config import TestingConfig


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the testing app and its tables once for the whole session."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM transaction_splits"))
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM transactions"))
            conn.execute(text("DELETE FROM group_members"))
            conn.execute(text("DELETE FROM groups"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(
    user_id: str,
    expires_in: timedelta = timedelta(minutes=15),
    secret: str = TestingConfig.JWT_SECRET_KEY,
) -> str:
    """Signs an access token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": user_id, "iat": now, "exp": now + expires_in},
        secret,
        algorithm="HS256",
    )


def auth_headers(user_id: str) -> dict:
    """Returns the Authorization header dict for user_id."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def make_group(app, group_id: str = "g1", members=("alice", "bob"), name: str = "Test Group") -> str:
    """Seeds a group with its members and returns the group id."""
    with app.app_context():
        _db.session.add(Group(id=group_id, name=name))
        for user_id in members:
            _db.session.add(GroupMember(group_id=group_id, user_id=user_id))
        _db.session.commit()
    return group_id


def add_member(app, group_id: str, user_id: str) -> None:
    with app.app_context():
        _db.session.add(GroupMember(group_id=group_id, user_id=user_id))
        _db.session.commit()


def remove_member(app, group_id: str, user_id: str) -> None:
    with app.app_context():
        _db.session.execute(
            delete(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        _db.session.commit()


def add_settlement(
    app,
    group_id: str,
    from_user_id: str,
    to_user_id: str,
    amount: str,
    currency: str = "USD",
) -> None:
    with app.app_context():
        _db.session.add(Settlement(
            group_id=group_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=Decimal(amount),
            currency=currency,
        ))
        _db.session.commit()


def make_transaction(
    client,
    user_id: str,
    amount: str,
    group_id: str | None = "g1",
    split_participants: list[str] | None = None,
    paid_by: str | None = None,
    type: str = "expense",
    currency: str = "USD",
    description: str = "Test transaction",
):
    """POSTs a transaction as user_id and returns the HTTP response."""
    payload: dict = {
        "type": type,
        "amount": amount,
        "currency": currency,
        "description": description,
    }
    if group_id is not None:
        payload["group_id"] = group_id
    if split_participants is not None:
        payload["split_participants"] = split_participants
    if paid_by is not None:
        payload["paid_by"] = paid_by

    return client.post("/api/v1/transactions", json=payload, headers=auth_headers(user_id))
