"""Error types raised by the core services.

Every per-request failure is a SpacegateError subclass carrying a stable
`code` (the error kind reported to callers) and the HTTP status the JSON
surface answers with. ConfigError is deliberately outside that hierarchy:
it only happens while the app is being built and aborts startup.
"""


class SpacegateError(Exception):
    """Base class for recoverable, per-request failures."""

    code = "Error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message=None, detail=None):
        self.message = message or self.default_message
        self.detail = detail or {}
        super().__init__(self.message)

    def to_dict(self):
        body = {"ok": False, "error": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(SpacegateError):
    """400: malformed input (bad user name, short password, bad SSH key)"""

    code = "ValidationError"
    status_code = 400
    default_message = "Invalid input."


class NotFoundError(SpacegateError):
    code = "NotFound"
    status_code = 404
    default_message = "Not found."


class NameTakenError(SpacegateError):
    code = "NameTaken"
    status_code = 409
    default_message = "This user name is already taken."


class KeyTakenError(SpacegateError):
    code = "KeyTaken"
    status_code = 409
    default_message = "This public key is already registered."


class InvalidInviteError(SpacegateError):
    code = "InvalidInvite"
    status_code = 400
    default_message = "Invalid invite."


class NoInvitesLeftError(SpacegateError):
    code = "NoInvitesLeft"
    status_code = 403
    default_message = "You have no invites left."


class InvalidCredentialsError(SpacegateError):
    """401: unknown identity or wrong secret, indistinguishable on purpose"""

    code = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid credentials."


class InvalidTokenError(SpacegateError):
    code = "InvalidToken"
    status_code = 401
    default_message = "Unknown or malformed token."


class ExpiredTokenError(SpacegateError):
    code = "ExpiredToken"
    status_code = 401
    default_message = "Token has expired."


class ForbiddenError(SpacegateError):
    code = "Forbidden"
    status_code = 403
    default_message = "Access denied."


class SerialConflictError(SpacegateError):
    code = "SerialConflict"
    status_code = 409
    default_message = "An item with this serial already exists in the space."


class ConfigError(Exception):
    """Malformed configuration. Raised at startup only."""
