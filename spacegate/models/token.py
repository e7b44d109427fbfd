"""Bearer token rows.

A token is identified by (issued_at, nonce): issue time in milliseconds
plus a random 63-bit integer. The row is the only source of truth: a
token is valid exactly as long as its row exists.
"""

import time

from spacegate.extensions import db


def now_ms():
    """Current UNIX time in milliseconds."""
    return time.time_ns() // 1_000_000


class Token(db.Model):
    __tablename__ = "tokens"

    issued_at = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    nonce = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="tokens")

    def __repr__(self):
        return f"<Token iat={self.issued_at} user={self.user_id}>"


class ServiceToken(db.Model):
    __tablename__ = "service_tokens"

    issued_at = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    nonce = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    service_id = db.Column(
        db.String(36),
        db.ForeignKey("service_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # --- Relationships ---
    service = db.relationship("ServiceAccount", back_populates="tokens")

    def __repr__(self):
        return f"<ServiceToken iat={self.issued_at} service={self.service_id}>"
