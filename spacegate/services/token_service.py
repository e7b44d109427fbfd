"""Token service — issue, validate and revoke bearer tokens.

Bearer string layout:

    <prefix>_<base64url(issued_at:u64le | nonce:u64le | crc32:u32le)>

`acp` tokens belong to users, `acs` tokens to service accounts, so the
prefix alone routes validation to the right table. The CRC only catches
mangled strings before they reach the database; authenticity comes from
the random nonce and the row existing.

Functions flush but do NOT commit — the caller commits.
"""

import base64
import logging
import secrets
import struct
import zlib
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import and_, delete, func, not_, select

from spacegate.errors import ExpiredTokenError, InvalidTokenError
from spacegate.extensions import db
from spacegate.models.token import ServiceToken, Token, now_ms

logger = logging.getLogger(__name__)

PERSONAL = "acp"
SERVICE = "acs"

_PAYLOAD = struct.Struct("<QQ")
_CHECKSUM = struct.Struct("<I")
_RAW_LENGTH = _PAYLOAD.size + _CHECKSUM.size
_MAX_FIELD = 2**63 - 1


@dataclass(frozen=True)
class BearerToken:
    kind: str
    issued_at: int
    nonce: int

    def __str__(self):
        payload = _PAYLOAD.pack(self.issued_at, self.nonce)
        raw = payload + _CHECKSUM.pack(zlib.crc32(payload))
        encoded = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
        return f"{self.kind}_{encoded}"

    @classmethod
    def parse(cls, value):
        """Decode a bearer string. Raises InvalidTokenError on any defect."""
        kind, sep, encoded = (value or "").partition("_")
        if not sep or kind not in (PERSONAL, SERVICE):
            raise InvalidTokenError("Unknown token prefix.")

        try:
            raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        except (ValueError, TypeError):
            raise InvalidTokenError("Malformed token.")
        if len(raw) != _RAW_LENGTH:
            raise InvalidTokenError("Malformed token.")

        payload, checksum = raw[:_PAYLOAD.size], raw[_PAYLOAD.size:]
        if _CHECKSUM.unpack(checksum)[0] != zlib.crc32(payload):
            raise InvalidTokenError("Token checksum mismatch.")

        issued_at, nonce = _PAYLOAD.unpack(payload)
        # Token columns are signed BIGINT.
        if issued_at > _MAX_FIELD or nonce > _MAX_FIELD:
            raise InvalidTokenError("Malformed token.")
        return cls(kind, issued_at, nonce)


@dataclass(frozen=True)
class Principal:
    """A validated token and the identity it belongs to."""

    subject: object  # User or ServiceAccount
    issued_at: int
    token: BearerToken


def _new_token(kind):
    # 63 bits keeps the nonce inside a signed BIGINT column.
    return BearerToken(kind, now_ms(), secrets.randbits(63))


def issue_user_token(user):
    """Create a personal token row for `user` and return the bearer string."""
    token = _new_token(PERSONAL)
    db.session.add(Token(issued_at=token.issued_at, nonce=token.nonce, user_id=user.id))
    db.session.flush()
    logger.info(f"Issued personal token for user {user.id}")
    return str(token)


def issue_service_token(service):
    """Create a service token row for `service` and return the bearer string."""
    token = _new_token(SERVICE)
    db.session.add(
        ServiceToken(issued_at=token.issued_at, nonce=token.nonce, service_id=service.id)
    )
    db.session.flush()
    logger.info(f"Issued service token for service {service.id}")
    return str(token)


def validate(bearer, max_age=None):
    """Resolve a bearer string to its subject.

    Args:
        bearer: The token string from the Authorization header.
        max_age: Max token age in seconds. Defaults to TOKEN_MAX_AGE;
            0 or None disables the check.

    Returns:
        Principal

    Raises:
        InvalidTokenError: malformed, unknown or revoked token.
        ExpiredTokenError: token older than max_age.
    """
    token = BearerToken.parse(bearer)

    # Always ask the database: the row existing is what makes a token valid.
    model = Token if token.kind == PERSONAL else ServiceToken
    row = db.session.execute(
        select(model).where(model.issued_at == token.issued_at, model.nonce == token.nonce)
    ).scalar_one_or_none()
    if row is None:
        subject = None
    elif token.kind == PERSONAL:
        subject = row.user
    else:
        subject = row.service

    if subject is None:
        raise InvalidTokenError("Unknown token.")

    if max_age is None:
        max_age = current_app.config.get("TOKEN_MAX_AGE") or 0
    if max_age and now_ms() - token.issued_at > max_age * 1000:
        raise ExpiredTokenError()

    return Principal(subject=subject, issued_at=token.issued_at, token=token)


def revoke_one(issued_at, nonce, kind=PERSONAL):
    """Delete exactly one token row. Idempotent; returns rows removed."""
    model = Token if kind == PERSONAL else ServiceToken
    result = db.session.execute(
        delete(model).where(model.issued_at == issued_at, model.nonce == nonce)
    )
    db.session.flush()
    return result.rowcount


def _rows_for(subject):
    if subject.is_service:
        return ServiceToken, ServiceToken.service_id == subject.id
    return Token, Token.user_id == subject.id


def revoke_all(subject, keep=None):
    """Delete every token of a user or service account.

    Args:
        subject: User or ServiceAccount.
        keep: Optional BearerToken to spare (e.g. the caller's own session).

    Returns:
        Number of tokens revoked.
    """
    model, clause = _rows_for(subject)
    stmt = delete(model).where(clause)
    if keep is not None:
        stmt = stmt.where(
            not_(and_(model.issued_at == keep.issued_at, model.nonce == keep.nonce))
        )
    result = db.session.execute(stmt)
    db.session.flush()
    logger.info(f"Revoked {result.rowcount} token(s) of {subject!r}")
    return result.rowcount


def count_tokens(subject):
    model, clause = _rows_for(subject)
    return db.session.execute(select(func.count()).select_from(model).where(clause)).scalar_one()
