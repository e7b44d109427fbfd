"""Shared test fixtures for the spacegate test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, inline roles)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- make_user / admin / member: user factory and two ready-made users
- auth: builds an Authorization header for a user or service account
- make_ssh_key: a well-formed OpenSSH public key of a given type
"""

import base64
import os
import struct

import pytest
from werkzeug.security import generate_password_hash

from spacegate import create_app
from spacegate.extensions import db as _db
from spacegate.models.user import User
from spacegate.services import token_service

PASSWORD = "correct-horse"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def make_user(app, db_session):
    """Factory: make_user("alice", level=10, invites=2) -> committed User."""

    def _make(name, level=0, invites=0, password=PASSWORD, invited_by=None):
        user = User(
            name=name,
            password_hash=generate_password_hash(
                password, method=app.config["PASSWORD_HASH_METHOD"]
            ),
            access_level=level,
            invites_remaining=invites,
            invited_by=invited_by,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", level=100)


@pytest.fixture
def member(make_user):
    """A user with the `spaces` and `services` permissions."""
    return make_user("member", level=10)


@pytest.fixture
def auth(db_session):
    """Factory: auth(user_or_service) -> {"Authorization": "Bearer ..."}."""

    def _header(subject):
        if subject.is_service:
            token = token_service.issue_service_token(subject)
        else:
            token = token_service.issue_user_token(subject)
        _db.session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _header


@pytest.fixture
def make_ssh_key():
    """Factory: make_ssh_key("ssh-ed25519") -> (type, base64 blob)."""

    def _make(key_type="ssh-ed25519"):
        name = key_type.encode("ascii")
        body = os.urandom(32)
        blob = struct.pack(">I", len(name)) + name + struct.pack(">I", len(body)) + body
        return key_type, base64.b64encode(blob).decode("ascii")

    return _make
