"""SSH public keys registered by users.

A (key_type, key_value) pair belongs to at most one user. The fingerprint
is derived from the key blob and indexed so SSH-authority services can
look keys up by the fingerprint sshd hands them.
"""

import uuid

from spacegate.extensions import db


class SSHKey(db.Model):
    __tablename__ = "users_ssh_keys"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    key_type = db.Column(db.String(64), nullable=False)  # e.g. "ssh-ed25519"
    key_value = db.Column(db.Text, nullable=False)  # base64 key blob
    fingerprint = db.Column(db.String(64), nullable=False, index=True)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint("key_type", "key_value", name="uq_ssh_key_type_value"),
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="ssh_keys")

    @property
    def public_key(self):
        """OpenSSH authorized_keys form, without comment."""
        return f"{self.key_type} {self.key_value}"

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.key_type,
            "public_key": self.public_key,
            "fingerprint": self.fingerprint,
        }

    def __repr__(self):
        return f"<SSHKey {self.key_type} SHA256:{self.fingerprint}>"
