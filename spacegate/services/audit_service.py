"""Audit log — append and read space log entries.

Entries are written in the same transaction as the mutation they record.
A failed append raises and takes the mutation down with it; nothing here
swallows errors. There is no update or delete: entries only disappear
when their space is deleted.

Functions flush but do NOT commit — the caller commits.
"""

import logging

from flask import current_app

from spacegate.errors import ValidationError
from spacegate.extensions import db
from spacegate.models.audit import SpaceLogAction, SpaceLogEntry

logger = logging.getLogger(__name__)


def append(space_id, action, account_id=None, item_id=None):
    """Record an action in a space's log.

    Args:
        space_id: Space UUID string.
        action: SpaceLogAction (or its integer code).
        account_id: platform_id of the account involved, if any. Not checked.
        item_id: id of the item involved, if any. Not checked.

    Returns:
        The created SpaceLogEntry.
    """
    try:
        action = SpaceLogAction(action)
    except ValueError:
        raise ValidationError(f"Unknown log action {action!r}.")

    entry = SpaceLogEntry(
        space_id=space_id,
        action=int(action),
        account_id=account_id,
        item_id=item_id,
    )
    db.session.add(entry)
    db.session.flush()

    logger.info(
        f"AUDIT space={space_id} action={action.name} "
        f"account={account_id} item={item_id}"
    )
    return entry


def _page(query, page):
    limit = current_app.config["PAGE_SIZE"]
    return (
        query.order_by(SpaceLogEntry.created_at.desc(), SpaceLogEntry.id)
        .offset(max(page, 0) * limit)
        .limit(limit)
        .all()
    )


def entries_for_space(space_id, since=None, until=None, page=0):
    """Entries of a space, newest first, optionally within [since, until] (ms)."""
    query = SpaceLogEntry.query.filter_by(space_id=space_id)
    if since is not None:
        query = query.filter(SpaceLogEntry.created_at >= since)
    if until is not None:
        query = query.filter(SpaceLogEntry.created_at <= until)
    return _page(query, page)


def entries_for_account(space_id, account_id, page=0):
    """Entries naming an account, whether or not it still exists."""
    query = SpaceLogEntry.query.filter_by(space_id=space_id, account_id=account_id)
    return _page(query, page)


def entries_for_item(space_id, item_id, page=0):
    """Entries naming an item, whether or not it still exists."""
    query = SpaceLogEntry.query.filter_by(space_id=space_id, item_id=item_id)
    return _page(query, page)
