"""Invite service — issuing, listing and consuming invites.

Handles the full lifecycle of registration invites:
- issue: spend one unit of a user's allowance on a new invite
- consume: delete an invite during registration, returning its owner
- wave: hand every user above a level more invites

Functions flush but do NOT commit — the caller commits.
"""

import logging

from flask import current_app
from sqlalchemy import delete, select, update

from spacegate.errors import InvalidInviteError, NoInvitesLeftError, ValidationError
from spacegate.extensions import db
from spacegate.models.invite import Invite
from spacegate.models.user import User
from spacegate.services import authz_service

logger = logging.getLogger(__name__)


def issue_invite(owner):
    """Create an invite owned by `owner`, spending one of their invites.

    The allowance is decremented with a conditional UPDATE so two
    concurrent requests can never spend the same unit twice.

    Raises:
        NoInvitesLeftError: owner has no invites remaining.
    """
    result = db.session.execute(
        update(User)
        .where(User.id == owner.id, User.invites_remaining > 0)
        .values(invites_remaining=User.invites_remaining - 1)
    )
    if result.rowcount != 1:
        raise NoInvitesLeftError()

    invite = Invite(owner_id=owner.id)
    db.session.add(invite)
    db.session.flush()
    db.session.refresh(owner)

    logger.info(f"User {owner.id} issued invite {invite.id}")
    return invite


def create_orphan_invite():
    """Create an invite with no owner (operator tooling)."""
    invite = Invite(owner_id=None)
    db.session.add(invite)
    db.session.flush()
    logger.info(f"Created ownerless invite {invite.id}")
    return invite


def list_invites(owner):
    """Unconsumed invites issued by `owner`."""
    limit = current_app.config["PAGE_SIZE"]
    return (
        Invite.query.filter_by(owner_id=owner.id)
        .order_by(Invite.created_at)
        .limit(limit)
        .all()
    )


def consume(invite_id):
    """Consume an invite by deleting it.

    The DELETE's rowcount decides the outcome, so of two registrations
    racing for the same invite only one can succeed.

    Args:
        invite_id: Invite UUID string.

    Returns:
        The owner's user id, or None for an ownerless invite.

    Raises:
        InvalidInviteError: invite does not exist or was already used.
    """
    if not invite_id:
        raise InvalidInviteError()

    row = db.session.execute(
        select(Invite.owner_id).where(Invite.id == invite_id)
    ).first()
    if row is None:
        raise InvalidInviteError()

    result = db.session.execute(delete(Invite).where(Invite.id == invite_id))
    if result.rowcount != 1:
        raise InvalidInviteError()

    db.session.flush()
    return row.owner_id


def grant_invites(min_level=0, count=1):
    """Give `count` invites to every user with level >= min_level.

    No permission check; callers are invite_wave() and the CLI.

    Returns:
        Number of users who received invites.
    """
    if count < 1:
        raise ValidationError("Invite wave count must be at least 1.")

    result = db.session.execute(
        update(User)
        .where(User.access_level >= min_level)
        .values(invites_remaining=User.invites_remaining + count)
    )
    db.session.flush()
    logger.info(
        f"Invite wave (+{count}, level >= {min_level}) reached {result.rowcount} user(s)"
    )
    return result.rowcount


def invite_wave(actor, min_level=0, count=1):
    """Invite wave on behalf of a user.

    Raises:
        ForbiddenError: actor lacks the `wave` permission.
    """
    authz_service.authorize(actor, "wave")
    users = grant_invites(min_level=min_level, count=count)
    logger.info(f"User {actor.id} sent the invite wave")
    return users
