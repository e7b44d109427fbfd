"""Services blueprint — /services/*

Two halves:
- management routes, called by users with a personal token;
- ssh/lookup, actions and logs, called by the service itself with its
  own `acs_` token.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from spacegate.decorators import service_required, user_required
from spacegate.extensions import db
from spacegate.services import service_account_service

services_bp = Blueprint("services", __name__, url_prefix="/services")


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _page():
    return request.args.get("page", 0, type=int)


# ──────────────────────────────────────────────
# Management (personal token)
# ──────────────────────────────────────────────

@services_bp.route("", methods=["GET"])
@user_required
def list_services():
    """Query: all=1 lists every service (needs services_manage)."""
    services = service_account_service.list_services(
        current_user, _page(), all=request.args.get("all", 0, type=int) == 1
    )
    return jsonify(ok=True, services=[s.to_dict() for s in services])


@services_bp.route("", methods=["POST"])
@user_required
def create_service():
    """Body: {name, kind, space_id?}."""
    data = _json()
    service = service_account_service.create_service(
        current_user,
        data.get("name"),
        data.get("kind"),
        space_id=data.get("space_id"),
    )
    db.session.commit()
    return jsonify(ok=True, service=service.to_dict()), 201


@services_bp.route("/<service_id>", methods=["DELETE"])
@user_required
def delete_service(service_id):
    service_account_service.delete_service(current_user, service_id)
    db.session.commit()
    return jsonify(ok=True)


@services_bp.route("/<service_id>/tokens", methods=["GET"])
@user_required
def count_tokens(service_id):
    count = service_account_service.count_service_tokens(current_user, service_id)
    return jsonify(ok=True, count=count)


@services_bp.route("/<service_id>/tokens", methods=["POST"])
@user_required
def issue_token(service_id):
    token = service_account_service.issue_service_token(current_user, service_id)
    db.session.commit()
    return jsonify(ok=True, token=token), 201


@services_bp.route("/<service_id>/tokens", methods=["DELETE"])
@user_required
def revoke_tokens(service_id):
    revoked = service_account_service.revoke_service_tokens(current_user, service_id)
    db.session.commit()
    return jsonify(ok=True, revoked=revoked)


# ──────────────────────────────────────────────
# Service-authenticated
# ──────────────────────────────────────────────

@services_bp.route("/ssh/lookup", methods=["GET"])
@service_required
def ssh_lookup():
    """Query: fingerprint (OpenSSH SHA256, with or without prefix)."""
    keys = service_account_service.lookup_ssh_keys(
        current_user, request.args.get("fingerprint", "")
    )
    return jsonify(
        ok=True,
        keys=[dict(k.to_dict(), user=k.owner.to_dict()) for k in keys],
    )


@services_bp.route("/actions", methods=["POST"])
@service_required
def report_action():
    """Body: {action, account_id?, item_id?}."""
    data = _json()
    entry = service_account_service.report_action(
        current_user,
        data.get("action"),
        account_id=data.get("account_id"),
        item_id=data.get("item_id"),
    )
    db.session.commit()
    return jsonify(ok=True, entry=entry.to_dict()), 201


@services_bp.route("/logs", methods=["GET"])
@service_required
def read_logs():
    entries = service_account_service.read_log(
        current_user,
        since=request.args.get("since", type=int),
        until=request.args.get("until", type=int),
        page=_page(),
    )
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])
