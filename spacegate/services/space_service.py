"""Space service — spaces, platform accounts and items.

Access rule for every operation: the space owner needs `spaces`, anyone
else needs `spaces_manage`. Each successful mutation appends exactly one
log entry in the same transaction. Deleting a space is the exception:
its log goes with it, so that event is only written to the app log.

All free text is sanitized with bleach.clean() to strip HTML tags.

Functions flush but do NOT commit — the caller commits.
"""

import logging

import bleach
from flask import current_app
from sqlalchemy.exc import IntegrityError

from spacegate.errors import NotFoundError, SerialConflictError, ValidationError
from spacegate.extensions import db
from spacegate.models.audit import SpaceLogAction
from spacegate.models.space import Space, SpaceAccount, SpaceItem, SpaceItemKind
from spacegate.models.user import User
from spacegate.services import audit_service, authz_service

logger = logging.getLogger(__name__)

UNSET = object()  # "field not supplied", as opposed to an explicit None


def _sanitize(text, field="Text"):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    if not isinstance(text, str):
        raise ValidationError(f"{field} must be a string.")
    return bleach.clean(text, tags=[], strip=True).strip()


def _required_text(value, field):
    value = _sanitize(value, field)
    if not value:
        raise ValidationError(f"{field} is required.")
    if len(value) > 255:
        raise ValidationError(f"{field} is too long.")
    return value


def _identifier(value, field):
    """Client-chosen ids are stored as given, only trimmed."""
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    value = (value or "").strip()
    if not value or len(value) > 255:
        raise ValidationError(f"{field} is required.")
    return value


def _page(query, page):
    limit = current_app.config["PAGE_SIZE"]
    return query.offset(max(page, 0) * limit).limit(limit).all()


def get_space(actor, space_id):
    """Load a space the actor may work with.

    Raises:
        NotFoundError: no such space.
        ForbiddenError: actor is not the owner and lacks `spaces_manage`,
            or is the owner and lacks `spaces`.
    """
    space = db.session.get(Space, space_id)
    if space is None:
        raise NotFoundError("Space not found.")
    required = "spaces" if space.owner_id == actor.id else "spaces_manage"
    authz_service.authorize(actor, required)
    return space


# ──────────────────────────────────────────────
# Spaces
# ──────────────────────────────────────────────

def create_space(actor, title):
    authz_service.authorize(actor, "spaces")
    space = Space(title=_required_text(title, "Title"), owner_id=actor.id)
    db.session.add(space)
    db.session.flush()

    audit_service.append(space.id, SpaceLogAction.SPACE_CREATED)
    return space


def list_spaces(owner, page=0):
    query = Space.query.filter_by(owner_id=owner.id).order_by(Space.created_at, Space.id)
    return _page(query, page)


def list_user_spaces(actor, user_id, page=0):
    """Spaces owned by another user. Needs `spaces_manage`."""
    authz_service.authorize(actor, "spaces_manage")
    owner = db.session.get(User, user_id)
    if owner is None:
        raise NotFoundError("User not found.")
    return list_spaces(owner, page)


def rename_space(actor, space_id, title):
    space = get_space(actor, space_id)
    space.title = _required_text(title, "Title")
    db.session.flush()

    audit_service.append(space.id, SpaceLogAction.SPACE_RENAMED)
    return space


def delete_space(actor, space_id):
    """Delete a space with its accounts, items, log and services."""
    space = get_space(actor, space_id)
    db.session.delete(space)
    db.session.flush()
    db.session.expire_all()

    logger.warning(f"User {actor.id} deleted space {space_id}")


# ──────────────────────────────────────────────
# Platform accounts
# ──────────────────────────────────────────────

def upsert_account(actor, space_id, platform_id, platform_name=UNSET, display_name=UNSET):
    """Create a platform account, or reconcile its names if it exists.

    Fields left as UNSET are not touched on an existing account.
    """
    space = get_space(actor, space_id)
    platform_id = _identifier(platform_id, "Platform id")

    account = db.session.get(SpaceAccount, (space.id, platform_id))
    if account is None:
        account = SpaceAccount(space_id=space.id, platform_id=platform_id)
        db.session.add(account)
    if platform_name is not UNSET:
        account.platform_name = _sanitize(platform_name, "Platform name") or None
    if display_name is not UNSET:
        account.display_name = _sanitize(display_name, "Display name") or None
    db.session.flush()

    audit_service.append(space.id, SpaceLogAction.ACCOUNT_UPSERTED, account_id=platform_id)
    return account


def get_account(actor, space_id, platform_id):
    space = get_space(actor, space_id)
    account = db.session.get(SpaceAccount, (space.id, platform_id))
    if account is None:
        raise NotFoundError("Account not found.")
    return account


def list_accounts(actor, space_id, page=0):
    space = get_space(actor, space_id)
    query = SpaceAccount.query.filter_by(space_id=space.id).order_by(SpaceAccount.platform_id)
    return _page(query, page)


def delete_account(actor, space_id, platform_id):
    """Delete an account and, through the database, every item it owns.

    Log entries naming the account are left as they are.
    """
    account = get_account(actor, space_id, platform_id)
    db.session.delete(account)
    db.session.flush()
    db.session.expire_all()

    audit_service.append(space_id, SpaceLogAction.ACCOUNT_DELETED, account_id=platform_id)


# ──────────────────────────────────────────────
# Items
# ──────────────────────────────────────────────

def _owner_in_space(space_id, owner_id):
    if not isinstance(owner_id, str):
        raise ValidationError("Owner id must be a string.")
    if db.session.get(SpaceAccount, (space_id, owner_id)) is None:
        raise NotFoundError("Account with the given owner id does not exist in this space.")


def create_item(actor, space_id, title, serial, kind=SpaceItemKind.NORMAL, owner_id=None):
    """Create an item with a serial unique within the space.

    Raises:
        ValidationError: bad title/serial/kind, or a keycard without owner.
        NotFoundError: owner_id is not an account of this space.
        SerialConflictError: (serial, space) already taken.
    """
    space = get_space(actor, space_id)
    title = _required_text(title, "Title")
    serial = _identifier(serial, "Serial")
    try:
        kind = SpaceItemKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown item kind {kind!r}.")
    if owner_id is None and kind.requires_owner:
        raise ValidationError(f"Items of kind {kind.name.lower()} need an owner.")
    if owner_id is not None:
        _owner_in_space(space.id, owner_id)

    if SpaceItem.query.filter_by(space_id=space.id, serial=serial).first() is not None:
        raise SerialConflictError()

    item = SpaceItem(
        title=title,
        kind=int(kind),
        serial=serial,
        owner_id=owner_id,
        space_id=space.id,
    )
    db.session.add(item)
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        message = str(e.orig)
        # Lost a race with a concurrent insert of the same serial.
        if "uq_item_serial_space" in message or "space_items.serial" in message:
            raise SerialConflictError()
        # The owning account went away after it was checked.
        if "foreign key" in message.lower():
            raise NotFoundError("Account with the given owner id does not exist in this space.")
        raise

    audit_service.append(space.id, SpaceLogAction.ITEM_CREATED, account_id=owner_id, item_id=item.id)
    return item


def get_item(actor, space_id, item_id):
    space = get_space(actor, space_id)
    item = db.session.get(SpaceItem, item_id)
    if item is None or item.space_id != space.id:
        raise NotFoundError("Item not found.")
    return item


def list_items(actor, space_id, page=0, owner_id=None):
    space = get_space(actor, space_id)
    query = SpaceItem.query.filter_by(space_id=space.id)
    if owner_id is not None:
        query = query.filter_by(owner_id=owner_id)
    return _page(query.order_by(SpaceItem.serial), page)


def update_item(actor, space_id, item_id, title):
    item = get_item(actor, space_id, item_id)
    item.title = _required_text(title, "Title")
    db.session.flush()

    audit_service.append(item.space_id, SpaceLogAction.ITEM_UPDATED, item_id=item.id)
    return item


def assign_item_owner(actor, space_id, item_id, owner_id):
    """Hand an item to another account of the same space, or clear its owner."""
    item = get_item(actor, space_id, item_id)
    if owner_id is None:
        if SpaceItemKind(item.kind).requires_owner:
            raise ValidationError("This item must always have an owner.")
    else:
        _owner_in_space(item.space_id, owner_id)

    previous = item.owner_id
    item.owner_id = owner_id
    db.session.flush()

    audit_service.append(
        item.space_id,
        SpaceLogAction.ITEM_OWNER_CHANGED,
        account_id=owner_id if owner_id is not None else previous,
        item_id=item.id,
    )
    return item


def delete_item(actor, space_id, item_id):
    item = get_item(actor, space_id, item_id)
    item_space_id, deleted_id = item.space_id, item.id
    db.session.delete(item)
    db.session.flush()

    audit_service.append(item_space_id, SpaceLogAction.ITEM_DELETED, item_id=deleted_id)
