"""Authorization — resolve a user's permissions and gate actions on them.

Permissions come from the role table tier matching the user's access
level. Promotion is the only way access levels change.
"""

import logging

from spacegate.errors import ForbiddenError, ValidationError
from spacegate.extensions import db, permission_table

logger = logging.getLogger(__name__)


def role_of(user):
    return permission_table.role_for(user.access_level)


def permissions_for(user):
    return permission_table.resolve(user.access_level)


def has_permission(user, permission):
    return permission in permissions_for(user)


def authorize(user, permission):
    """Raise ForbiddenError unless `user` holds `permission`."""
    if not has_permission(user, permission):
        raise ForbiddenError(f"Missing permission `{permission}`.")


def set_access_level(actor, target, new_level):
    """Change `target`'s access level.

    The actor needs `promote`, cannot grant more than their own level, and
    can only change users currently below them.

    Raises:
        ValidationError: negative level.
        ForbiddenError: any of the rules above is broken.
    """
    if new_level < 0:
        raise ValidationError("Access level cannot be negative.")

    authorize(actor, "promote")

    if new_level > actor.access_level:
        raise ForbiddenError("Cannot grant a level above your own.")
    if target.access_level >= actor.access_level:
        raise ForbiddenError("Cannot change the level of a peer or superior.")

    old_level = target.access_level
    target.access_level = new_level
    db.session.flush()

    logger.info(
        f"User {actor.id} changed level of {target.id} from {old_level} to {new_level}"
    )
    return target
