"""Users blueprint — /users/*

Own account (password, invites, SSH keys, spaces) under /users/me,
administration of other users under /users/<id>. Every route needs a
personal token. Permission checks happen in the services, apart from
the role lookup, which is gated on `promote` at the route.
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from spacegate.decorators import permission_required, user_required
from spacegate.errors import ValidationError
from spacegate.extensions import db, permission_table
from spacegate.services import (
    authz_service,
    credential_service,
    invite_service,
    space_service,
    user_service,
)

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/users")


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


def _page():
    return request.args.get("page", 0, type=int)


def _int_field(data, name, default=None):
    value = data.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"`{name}` must be an integer.")
    return value


@users_bp.route("", methods=["GET"])
@user_required
def list_users():
    users = user_service.list_users(_page())
    return jsonify(ok=True, users=[u.to_dict() for u in users])


@users_bp.route("/roles", methods=["GET"])
@user_required
def list_roles():
    return jsonify(ok=True, roles=[r.to_dict() for r in permission_table.roles])


# ──────────────────────────────────────────────
# Own account
# ──────────────────────────────────────────────

@users_bp.route("/me", methods=["GET"])
@user_required
def me():
    role = authz_service.role_of(current_user)
    return jsonify(ok=True, user=current_user.to_dict(private=True), role=role.to_dict())


@users_bp.route("/me", methods=["PATCH"])
@user_required
def change_password():
    """Body: {old_password, new_password, logout?}. logout revokes other tokens."""
    data = _json()
    revoked = credential_service.change_password(
        current_user,
        _text_field(data, "old_password"),
        _text_field(data, "new_password"),
        keep=g.token,
        logout=bool(data.get("logout")),
    )
    db.session.commit()
    return jsonify(ok=True, revoked=revoked)


@users_bp.route("/me/invites", methods=["GET"])
@user_required
def list_invites():
    invites = invite_service.list_invites(current_user)
    return jsonify(
        ok=True,
        remaining=current_user.invites_remaining,
        invites=[i.to_dict() for i in invites],
    )


@users_bp.route("/me/invites", methods=["POST"])
@user_required
def create_invite():
    invite = invite_service.issue_invite(current_user)
    db.session.commit()
    return jsonify(ok=True, invite=invite.to_dict(), remaining=current_user.invites_remaining), 201


@users_bp.route("/invite-wave", methods=["POST"])
@user_required
def invite_wave():
    """Body: {min_level, count}."""
    data = _json()
    users = invite_service.invite_wave(
        current_user,
        min_level=_int_field(data, "min_level", 0),
        count=_int_field(data, "count", 1),
    )
    db.session.commit()
    return jsonify(ok=True, users=users)


@users_bp.route("/me/ssh-keys", methods=["GET"])
@user_required
def list_ssh_keys():
    keys = credential_service.list_ssh_keys(current_user)
    return jsonify(ok=True, keys=[k.to_dict() for k in keys])


@users_bp.route("/me/ssh-keys", methods=["POST"])
@user_required
def add_ssh_key():
    """Body: {public_key: "<type> <base64> [comment]"} or {type, value}."""
    data = _json()
    public_key = _text_field(data, "public_key")
    if public_key:
        key_type, value = credential_service.parse_public_key(public_key)
    else:
        key_type, value = _text_field(data, "type"), _text_field(data, "value")
    key = credential_service.register_ssh_key(current_user, key_type, value)
    db.session.commit()
    return jsonify(ok=True, key=key.to_dict()), 201


@users_bp.route("/me/ssh-keys/<key_id>", methods=["DELETE"])
@user_required
def remove_ssh_key(key_id):
    credential_service.remove_ssh_key(current_user, key_id)
    db.session.commit()
    return jsonify(ok=True)


@users_bp.route("/me/spaces", methods=["GET"])
@user_required
def my_spaces():
    spaces = space_service.list_spaces(current_user, _page())
    return jsonify(ok=True, spaces=[s.to_dict() for s in spaces])


# ──────────────────────────────────────────────
# Other users
# ──────────────────────────────────────────────

@users_bp.route("/<user_id>", methods=["GET"])
@user_required
def get_user(user_id):
    user = user_service.get_user(user_id)
    return jsonify(ok=True, user=user.to_dict())


@users_bp.route("/<user_id>", methods=["DELETE"])
@user_required
def delete_user(user_id):
    user_service.delete_user(current_user, user_id)
    db.session.commit()
    return jsonify(ok=True)


@users_bp.route("/<user_id>/spaces", methods=["GET"])
@user_required
def user_spaces(user_id):
    spaces = space_service.list_user_spaces(current_user, user_id, _page())
    return jsonify(ok=True, spaces=[s.to_dict() for s in spaces])


@users_bp.route("/<user_id>/password", methods=["POST"])
@user_required
def reset_password(user_id):
    password, revoked = credential_service.reset_password(current_user, user_id)
    db.session.commit()
    return jsonify(ok=True, password=password, revoked=revoked)


@users_bp.route("/<user_id>/level", methods=["GET"])
@permission_required("promote")
def get_level(user_id):
    user = user_service.get_user(user_id)
    role = authz_service.role_of(user)
    return jsonify(ok=True, level=user.access_level, role=role.to_dict())


@users_bp.route("/<user_id>/level", methods=["PUT"])
@user_required
def set_level(user_id):
    """Body: {level}."""
    data = _json()
    level = _int_field(data, "level")
    user = user_service.get_user(user_id)
    authz_service.set_access_level(current_user, user, level)
    db.session.commit()
    return jsonify(ok=True, level=user.access_level, role=authz_service.role_of(user).to_dict())
