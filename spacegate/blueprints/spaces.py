"""Spaces blueprint — /spaces/*

Spaces, their platform accounts and items, and the space log.
Access to a space (owner with `spaces`, anyone else with
`spaces_manage`) is checked in space_service.get_space().
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from spacegate.decorators import user_required
from spacegate.errors import ValidationError
from spacegate.extensions import db
from spacegate.models.space import SpaceItemKind
from spacegate.services import audit_service, service_account_service, space_service

spaces_bp = Blueprint("spaces", __name__, url_prefix="/spaces")


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _page():
    return request.args.get("page", 0, type=int)


# ──────────────────────────────────────────────
# Spaces
# ──────────────────────────────────────────────

@spaces_bp.route("", methods=["POST"])
@user_required
def create_space():
    space = space_service.create_space(current_user, _json().get("title"))
    db.session.commit()
    return jsonify(ok=True, space=space.to_dict()), 201


@spaces_bp.route("/<space_id>", methods=["GET"])
@user_required
def get_space(space_id):
    space = space_service.get_space(current_user, space_id)
    return jsonify(ok=True, space=space.to_dict())


@spaces_bp.route("/<space_id>", methods=["PATCH"])
@user_required
def rename_space(space_id):
    space = space_service.rename_space(current_user, space_id, _json().get("title"))
    db.session.commit()
    return jsonify(ok=True, space=space.to_dict())


@spaces_bp.route("/<space_id>", methods=["DELETE"])
@user_required
def delete_space(space_id):
    space_service.delete_space(current_user, space_id)
    db.session.commit()
    return jsonify(ok=True)


# ──────────────────────────────────────────────
# Platform accounts
# ──────────────────────────────────────────────

@spaces_bp.route("/<space_id>/accounts", methods=["GET"])
@user_required
def list_accounts(space_id):
    accounts = space_service.list_accounts(current_user, space_id, _page())
    return jsonify(ok=True, accounts=[a.to_dict() for a in accounts])


@spaces_bp.route("/<space_id>/accounts/<platform_id>", methods=["PUT"])
@user_required
def upsert_account(space_id, platform_id):
    """Body: {platform_name?, display_name?}. Omitted fields keep their value."""
    data = _json()
    account = space_service.upsert_account(
        current_user,
        space_id,
        platform_id,
        platform_name=data.get("platform_name", space_service.UNSET),
        display_name=data.get("display_name", space_service.UNSET),
    )
    db.session.commit()
    return jsonify(ok=True, account=account.to_dict())


@spaces_bp.route("/<space_id>/accounts/<platform_id>", methods=["GET"])
@user_required
def get_account(space_id, platform_id):
    account = space_service.get_account(current_user, space_id, platform_id)
    return jsonify(ok=True, account=account.to_dict())


@spaces_bp.route("/<space_id>/accounts/<platform_id>", methods=["DELETE"])
@user_required
def delete_account(space_id, platform_id):
    space_service.delete_account(current_user, space_id, platform_id)
    db.session.commit()
    return jsonify(ok=True)


# ──────────────────────────────────────────────
# Items
# ──────────────────────────────────────────────

@spaces_bp.route("/<space_id>/items", methods=["GET"])
@user_required
def list_items(space_id):
    items = space_service.list_items(
        current_user, space_id, _page(), owner_id=request.args.get("owner")
    )
    return jsonify(ok=True, items=[i.to_dict() for i in items])


@spaces_bp.route("/<space_id>/items", methods=["POST"])
@user_required
def create_item(space_id):
    """Body: {title, serial, kind?, owner_id?}."""
    data = _json()
    kind = data.get("kind", SpaceItemKind.NORMAL)
    if isinstance(kind, bool) or not isinstance(kind, int):
        raise ValidationError("`kind` must be an integer.")
    item = space_service.create_item(
        current_user,
        space_id,
        data.get("title"),
        data.get("serial"),
        kind=kind,
        owner_id=data.get("owner_id"),
    )
    db.session.commit()
    return jsonify(ok=True, item=item.to_dict()), 201


@spaces_bp.route("/<space_id>/items/<item_id>", methods=["GET"])
@user_required
def get_item(space_id, item_id):
    item = space_service.get_item(current_user, space_id, item_id)
    return jsonify(ok=True, item=item.to_dict())


@spaces_bp.route("/<space_id>/items/<item_id>", methods=["PATCH"])
@user_required
def update_item(space_id, item_id):
    item = space_service.update_item(current_user, space_id, item_id, _json().get("title"))
    db.session.commit()
    return jsonify(ok=True, item=item.to_dict())


@spaces_bp.route("/<space_id>/items/<item_id>/owner", methods=["PUT"])
@user_required
def assign_item_owner(space_id, item_id):
    """Body: {owner_id}. null clears the owner (not allowed for keycards)."""
    item = space_service.assign_item_owner(
        current_user, space_id, item_id, _json().get("owner_id")
    )
    db.session.commit()
    return jsonify(ok=True, item=item.to_dict())


@spaces_bp.route("/<space_id>/items/<item_id>", methods=["DELETE"])
@user_required
def delete_item(space_id, item_id):
    space_service.delete_item(current_user, space_id, item_id)
    db.session.commit()
    return jsonify(ok=True)


# ──────────────────────────────────────────────
# Logs
# ──────────────────────────────────────────────

@spaces_bp.route("/<space_id>/logs", methods=["GET"])
@user_required
def space_logs(space_id):
    """Query: since, until (epoch ms), page."""
    space = space_service.get_space(current_user, space_id)
    entries = audit_service.entries_for_space(
        space.id,
        since=request.args.get("since", type=int),
        until=request.args.get("until", type=int),
        page=_page(),
    )
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])


@spaces_bp.route("/<space_id>/accounts/<platform_id>/logs", methods=["GET"])
@user_required
def account_logs(space_id, platform_id):
    space = space_service.get_space(current_user, space_id)
    entries = audit_service.entries_for_account(space.id, platform_id, page=_page())
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])


@spaces_bp.route("/<space_id>/items/<item_id>/logs", methods=["GET"])
@user_required
def item_logs(space_id, item_id):
    space = space_service.get_space(current_user, space_id)
    entries = audit_service.entries_for_item(space.id, item_id, page=_page())
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])


# ──────────────────────────────────────────────
# Services
# ──────────────────────────────────────────────

@spaces_bp.route("/<space_id>/services", methods=["GET"])
@user_required
def space_services(space_id):
    services = service_account_service.list_space_services(current_user, space_id, _page())
    return jsonify(ok=True, services=[s.to_dict() for s in services])
