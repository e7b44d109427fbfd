"""User administration — lookup, listing and deletion."""

import logging

from flask import current_app

from spacegate.errors import ForbiddenError, NotFoundError
from spacegate.extensions import db
from spacegate.models.user import User
from spacegate.services import authz_service

logger = logging.getLogger(__name__)


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def get_user_by_name(name):
    user = User.query.filter_by(name=name).first()
    if user is None:
        raise NotFoundError("User not found.")
    return user


def list_users(page=0):
    limit = current_app.config["PAGE_SIZE"]
    return (
        User.query.order_by(User.created_at, User.name)
        .offset(max(page, 0) * limit)
        .limit(limit)
        .all()
    )


def delete_user(actor, target_id):
    """Delete a user.

    The database cascades the user's tokens, SSH keys and spaces, and nulls
    `invited_by` on invitees and `owner_id` on unconsumed invites.

    Raises:
        ForbiddenError: actor lacks `manage`, or target is a peer/superior.
        NotFoundError: no such user.
    """
    authz_service.authorize(actor, "manage")
    target = get_user(target_id)
    if target.id != actor.id and target.access_level >= actor.access_level:
        raise ForbiddenError("Cannot delete a peer or superior.")

    db.session.delete(target)
    db.session.flush()
    # Rows removed or nulled by ON DELETE are still cached in the session.
    db.session.expire_all()

    logger.warning(f"User {actor.id} deleted user {target_id}")
