"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy import event
from sqlalchemy.engine import Engine

from spacegate.roles import PermissionTable

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
permission_table = PermissionTable()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, limits are per-route
    storage_uri="memory://",
)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@login_manager.request_loader
def load_principal(request):
    """Resolve `Authorization: Bearer <token>` to a user or service account.

    Imports lazily to avoid circular deps. The failure reason is kept on
    flask.g so the unauthorized handler can report it.
    """
    from flask import g

    from spacegate.errors import InvalidTokenError, ExpiredTokenError
    from spacegate.services import token_service

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        g.auth_error = InvalidTokenError(
            "Expected header `Authorization: Bearer <TOKEN>`."
        )
        return None

    try:
        principal = token_service.validate(header[len("Bearer "):].strip())
    except (InvalidTokenError, ExpiredTokenError) as e:
        g.auth_error = e
        return None

    g.token = principal.token
    return principal.subject
