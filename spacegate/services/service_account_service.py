"""Service accounts — non-human identities and what each kind may do.

Kinds:
- SSH_AUTHORITY: global, looks users up by SSH key fingerprint.
- SPACE_EVENT_WATCHER: scoped to a space, reads its log.
- SPACE_ACTOR: scoped to a space, reads its log and reports
  keycard scans and item movements into it.

Managing a service requires `services_manage`, or owning the space the
service is scoped to.

Functions flush but do NOT commit — the caller commits.
"""

import logging

import bleach
from flask import current_app

from spacegate.errors import ForbiddenError, NotFoundError, ValidationError
from spacegate.extensions import db
from spacegate.models.audit import SpaceLogAction
from spacegate.models.service_account import ServiceAccount, ServiceAccountKind
from spacegate.models.space import Space
from spacegate.services import (
    audit_service,
    authz_service,
    credential_service,
    space_service,
    token_service,
)

logger = logging.getLogger(__name__)


def _parse_kind(kind):
    try:
        return ServiceAccountKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown service kind {kind!r}.")


def create_service(actor, name, kind, space_id=None):
    """Create a service account.

    Raises:
        ForbiddenError: actor lacks `services`, lacks `services_manage` for
            a global kind, or does not own the space and lacks `spaces_manage`.
        ValidationError: bad name or kind, or space given/missing for the kind.
        NotFoundError: no such space.
    """
    authz_service.authorize(actor, "services")
    kind = _parse_kind(kind)

    if name is not None and not isinstance(name, str):
        raise ValidationError("Service name must be a string.")
    name = bleach.clean(name or "", tags=[], strip=True).strip()
    if not name or len(name) > 255:
        raise ValidationError("Service name is required.")
    if space_id is not None and not isinstance(space_id, str):
        raise ValidationError("Space id must be a string.")

    if kind.is_admin:
        authz_service.authorize(actor, "services_manage")
        if space_id:
            raise ValidationError(f"A {kind.name.lower()} service cannot belong to a space.")
        space_id = None
    elif kind.requires_space:
        if not space_id:
            raise ValidationError(f"A {kind.name.lower()} service needs a space.")
        space = db.session.get(Space, space_id)
        if space is None:
            raise NotFoundError("Space not found.")
        if space.owner_id != actor.id:
            authz_service.authorize(actor, "spaces_manage")

    service = ServiceAccount(name=name, kind=int(kind), space_id=space_id)
    db.session.add(service)
    db.session.flush()

    logger.info(f"User {actor.id} created {kind.name} service {service.id}")
    return service


def get_service(actor, service_id):
    """Load a service the actor may manage."""
    service = db.session.get(ServiceAccount, service_id)
    if service is None:
        raise NotFoundError("Service not found.")
    if authz_service.has_permission(actor, "services_manage"):
        return service
    if service.space is not None and service.space.owner_id == actor.id:
        return service
    raise ForbiddenError("You cannot manage this service.")


def list_services(actor, page=0, all=False):
    """Services scoped to the actor's spaces, or every service with `all`."""
    query = ServiceAccount.query
    if all:
        authz_service.authorize(actor, "services_manage")
    else:
        query = query.join(Space, ServiceAccount.space_id == Space.id).filter(
            Space.owner_id == actor.id
        )
    limit = current_app.config["PAGE_SIZE"]
    return (
        query.order_by(ServiceAccount.created_at, ServiceAccount.id)
        .offset(max(page, 0) * limit)
        .limit(limit)
        .all()
    )


def list_space_services(actor, space_id, page=0):
    """Services scoped to one space, for anyone who may work with that space."""
    space = space_service.get_space(actor, space_id)
    query = ServiceAccount.query.filter_by(space_id=space.id)
    limit = current_app.config["PAGE_SIZE"]
    return (
        query.order_by(ServiceAccount.created_at, ServiceAccount.id)
        .offset(max(page, 0) * limit)
        .limit(limit)
        .all()
    )


def delete_service(actor, service_id):
    service = get_service(actor, service_id)
    db.session.delete(service)
    db.session.flush()
    db.session.expire_all()
    logger.warning(f"User {actor.id} deleted service {service_id}")


def issue_service_token(actor, service_id):
    service = get_service(actor, service_id)
    return token_service.issue_service_token(service)


def revoke_service_tokens(actor, service_id):
    service = get_service(actor, service_id)
    return token_service.revoke_all(service)


def count_service_tokens(actor, service_id):
    service = get_service(actor, service_id)
    return token_service.count_tokens(service)


# ──────────────────────────────────────────────
# Service-authenticated operations
# ──────────────────────────────────────────────

def _require_kind(service, *kinds):
    if service.account_kind not in kinds:
        raise ForbiddenError(f"Not allowed for a {service.account_kind.name.lower()} service.")


def lookup_ssh_keys(service, fingerprint):
    """Registered keys (with owners) matching an OpenSSH SHA256 fingerprint."""
    _require_kind(service, ServiceAccountKind.SSH_AUTHORITY)
    if fingerprint.startswith("SHA256:"):
        fingerprint = fingerprint[len("SHA256:"):]
    return credential_service.find_keys_by_fingerprint(fingerprint)


def report_action(service, action, account_id=None, item_id=None):
    """Append a physical-world event reported by a space actor."""
    _require_kind(service, ServiceAccountKind.SPACE_ACTOR)
    try:
        action = SpaceLogAction(action)
    except ValueError:
        raise ValidationError(f"Unknown log action {action!r}.")
    if not action.is_reportable:
        raise ValidationError(f"Action {action.name} cannot be reported by a service.")
    for field, value in (("account_id", account_id), ("item_id", item_id)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"`{field}` must be a string.")

    return audit_service.append(service.space_id, action, account_id=account_id, item_id=item_id)


def read_log(service, since=None, until=None, page=0):
    _require_kind(
        service,
        ServiceAccountKind.SPACE_EVENT_WATCHER,
        ServiceAccountKind.SPACE_ACTOR,
    )
    return audit_service.entries_for_space(service.space_id, since=since, until=until, page=page)
