"""
Custom route decorators for access control.

- user_required: bearer token must belong to a human user (acp token).
- service_required: bearer token must belong to a service account (acs token).
- permission_required: user_required + a named permission from the role table.
"""

from functools import wraps

from flask_login import current_user, login_required

from spacegate.errors import ForbiddenError


def user_required(f):
    """Require a valid personal token."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if current_user.is_service:
            raise ForbiddenError("This endpoint needs a personal token.")
        return f(*args, **kwargs)

    return decorated


def service_required(f):
    """Require a valid service token."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_service:
            raise ForbiddenError("This endpoint needs a service token.")
        return f(*args, **kwargs)

    return decorated


def permission_required(permission):
    """Require a personal token whose user holds `permission`."""

    def wrapper(f):
        @wraps(f)
        @user_required
        def decorated(*args, **kwargs):
            # Imported lazily: services import extensions, which import roles.
            from spacegate.services import authz_service

            authz_service.authorize(current_user._get_current_object(), permission)
            return f(*args, **kwargs)

        return decorated

    return wrapper
