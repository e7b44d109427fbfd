"""Credential service — registration, passwords and SSH keys.

Registration is invite-gated, with one exception: while the users table
is empty, registering without an invite creates the first user at the
highest configured level. That check runs on every empty-invite attempt,
so it closes for good as soon as one user exists.

Functions flush but do NOT commit — the caller commits.
"""

import base64
import binascii
import hashlib
import logging
import re
import secrets
import string
import struct

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from spacegate.errors import (
    ForbiddenError,
    InvalidCredentialsError,
    InvalidInviteError,
    KeyTakenError,
    NameTakenError,
    NotFoundError,
    ValidationError,
)
from spacegate.extensions import db, permission_table
from spacegate.models.ssh_key import SSHKey
from spacegate.models.user import User
from spacegate.services import authz_service, invite_service, token_service

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9.]{3,31}$")

SSH_KEY_TYPES = (
    "ssh-ed25519",
    "ssh-rsa",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "sk-ssh-ed25519@openssh.com",
    "sk-ecdsa-sha2-nistp256@openssh.com",
)

_dummy_hashes = {}


def _hash_password(password):
    return generate_password_hash(
        password, method=current_app.config["PASSWORD_HASH_METHOD"]
    )


def _dummy_hash():
    """A throwaway hash so unknown names cost as much as wrong passwords."""
    method = current_app.config["PASSWORD_HASH_METHOD"]
    if method not in _dummy_hashes:
        _dummy_hashes[method] = generate_password_hash(
            secrets.token_urlsafe(16), method=method
        )
    return _dummy_hashes[method]


def validate_username(name):
    if not name or not USERNAME_RE.match(name):
        raise ValidationError(
            "User name must be 3-31 characters of letters, digits and dots."
        )


def validate_password(password):
    low = current_app.config["PASSWORD_MIN_LENGTH"]
    high = current_app.config["PASSWORD_MAX_LENGTH"]
    if not password or not low <= len(password) <= high:
        raise ValidationError(f"Password must be {low}-{high} characters.")


def user_count():
    return db.session.execute(select(func.count()).select_from(User)).scalar_one()


def register(name, password, invite_id=""):
    """Create a user, consuming an invite.

    Args:
        name: Unique login name.
        password: Plain password (hashed before storage).
        invite_id: Invite UUID string, or "" for the bootstrap admin.

    Returns:
        tuple: (User, bearer token string)

    Raises:
        ValidationError: malformed name or password.
        NameTakenError: the name is in use.
        InvalidInviteError: invite missing/used, or empty while users exist.
    """
    validate_username(name)
    validate_password(password)

    if User.query.filter_by(name=name).first() is not None:
        raise NameTakenError()

    if invite_id:
        invited_by = invite_service.consume(invite_id)
        level = permission_table.lowest.level
    else:
        # Bootstrap: only the very first user may register without an invite.
        if user_count() > 0:
            raise InvalidInviteError()
        invited_by = None
        level = permission_table.highest.level

    user = User(
        name=name,
        password_hash=_hash_password(password),
        invited_by=invited_by,
        access_level=level,
    )
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise NameTakenError()

    token = token_service.issue_user_token(user)

    if invite_id:
        logger.info(f"User {user.name} ({user.id}) registered, invited by {invited_by}")
    else:
        logger.warning(f"Bootstrap admin {user.name} ({user.id}) registered at level {level}")
    return user, token


def verify_password(name, password):
    """Return the user if name and password match.

    Raises:
        InvalidCredentialsError: unknown name or wrong password (same error).
    """
    user = User.query.filter_by(name=name).first() if name else None
    if user is None:
        check_password_hash(_dummy_hash(), password or "")
        raise InvalidCredentialsError()

    if not check_password_hash(user.password_hash, password or ""):
        logger.warning(f"Failed password login for user {user.id}")
        raise InvalidCredentialsError()

    return user


def login(name, password):
    """Verify a password and issue a personal token."""
    user = verify_password(name, password)
    return user, token_service.issue_user_token(user)


def change_password(user, old_password, new_password, keep=None, logout=False):
    """Change a user's own password.

    Args:
        keep: The caller's BearerToken, spared when logging out others.
        logout: Revoke every other token of the user.

    Returns:
        Number of tokens revoked.
    """
    if not check_password_hash(user.password_hash, old_password or ""):
        raise InvalidCredentialsError()
    validate_password(new_password)

    user.password_hash = _hash_password(new_password)
    db.session.flush()

    if not logout:
        return 0
    return token_service.revoke_all(user, keep=keep)


def reset_password(actor, target_id):
    """Give another user a fresh random password and log them out.

    Returns:
        tuple: (new password, number of tokens revoked)
    """
    authz_service.authorize(actor, "manage")

    target = db.session.get(User, target_id)
    if target is None:
        raise NotFoundError("User not found.")
    if target.id != actor.id and target.access_level >= actor.access_level:
        raise ForbiddenError("Cannot reset the password of a peer or superior.")

    alphabet = string.ascii_letters + string.digits
    password = "".join(secrets.choice(alphabet) for _ in range(12))
    target.password_hash = _hash_password(password)
    db.session.flush()

    revoked = token_service.revoke_all(target)
    logger.info(f"User {actor.id} reset the password of {target.id}")
    return password, revoked


# ──────────────────────────────────────────────
# SSH keys
# ──────────────────────────────────────────────

def parse_public_key(line):
    """Split an authorized_keys style line into (type, base64 blob)."""
    parts = (line or "").split()
    if len(parts) < 2:
        raise ValidationError("Public key must look like `<type> <base64> [comment]`.")
    return parts[0], parts[1]


def _decode_key(key_type, value):
    if key_type not in SSH_KEY_TYPES:
        raise ValidationError(f"Unsupported key type `{key_type}`.")
    try:
        blob = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Public key is not valid base64.")

    # The blob starts with its own type as a length-prefixed string.
    if len(blob) < 4:
        raise ValidationError("Public key is truncated.")
    (length,) = struct.unpack(">I", blob[:4])
    if blob[4:4 + length].decode("ascii", "replace") != key_type:
        raise ValidationError("Public key does not match its declared type.")
    return blob


def fingerprint(key_type, value):
    """OpenSSH SHA256 fingerprint without the `SHA256:` prefix."""
    blob = _decode_key(key_type, value)
    digest = hashlib.sha256(blob).digest()
    return base64.b64encode(digest).decode("ascii").rstrip("=")


def register_ssh_key(user, key_type, value):
    """Attach a public key to `user`.

    Raises:
        ValidationError: unknown type or malformed key.
        KeyTakenError: the key is already registered (by anyone).
    """
    key_fingerprint = fingerprint(key_type, value)

    existing = SSHKey.query.filter_by(key_type=key_type, key_value=value).first()
    if existing is not None:
        raise KeyTakenError()

    key = SSHKey(
        key_type=key_type,
        key_value=value,
        fingerprint=key_fingerprint,
        owner_id=user.id,
    )
    db.session.add(key)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise KeyTakenError()

    logger.info(f"User {user.id} added SSH key SHA256:{key_fingerprint}")
    return key


def verify_ssh_key(key_type, value):
    """Return the owner of a registered public key.

    Raises:
        InvalidCredentialsError: no such key.
    """
    key = SSHKey.query.filter_by(key_type=key_type, key_value=value).first()
    if key is None:
        raise InvalidCredentialsError()
    return key.owner


def list_ssh_keys(user):
    return SSHKey.query.filter_by(owner_id=user.id).order_by(SSHKey.created_at).all()


def remove_ssh_key(user, key_id):
    key = db.session.get(SSHKey, key_id)
    if key is None or key.owner_id != user.id:
        raise NotFoundError("SSH key not found.")
    db.session.delete(key)
    db.session.flush()
    logger.info(f"User {user.id} removed SSH key SHA256:{key.fingerprint}")


def find_keys_by_fingerprint(key_fingerprint):
    return SSHKey.query.filter_by(fingerprint=key_fingerprint).all()
