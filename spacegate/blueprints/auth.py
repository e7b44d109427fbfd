"""Auth blueprint — /auth/*

Handles invite-gated registration, password login and logout.
All responses are JSON; tokens are returned in the body and sent back
as `Authorization: Bearer <token>`.
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from spacegate.decorators import user_required
from spacegate.errors import ValidationError
from spacegate.extensions import db, limiter
from spacegate.services import credential_service, token_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text_field(data, name):
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"`{name}` must be a string.")
    return value


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Create an account from {name, password, invite}.

    An empty invite is only accepted while no user exists yet.
    """
    data = _json()
    user, token = credential_service.register(
        _text_field(data, "name").strip(),
        _text_field(data, "password"),
        _text_field(data, "invite").strip(),
    )
    db.session.commit()
    return jsonify(ok=True, user=user.to_dict(private=True), token=token), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    data = _json()
    user, token = credential_service.login(
        _text_field(data, "name").strip(),
        _text_field(data, "password"),
    )
    db.session.commit()
    return jsonify(ok=True, user=user.to_dict(private=True), token=token)


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@user_required
def logout():
    """Revoke the token used for this request, or every token with {all: true}."""
    data = _json()
    if data.get("all"):
        revoked = token_service.revoke_all(current_user)
    else:
        revoked = token_service.revoke_one(g.token.issued_at, g.token.nonce)
    db.session.commit()
    logger.info(f"User {current_user.id} logged out ({revoked} token(s))")
    return jsonify(ok=True, revoked=revoked)
