"""User model.

Stores the login name, password hash, invite allowance and access level.
Flask-Login integration via UserMixin; requests authenticate with bearer
tokens, not sessions.
"""

import uuid

from flask_login import UserMixin

from spacegate.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    is_service = False

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(31), unique=True, nullable=False)
    invites_remaining = db.Column(
        "invites", db.Integer, nullable=False, default=0
    )
    invited_by = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )  # weak: nulled when the inviter is deleted
    access_level = db.Column("level", db.Integer, nullable=False, default=0)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    # Children are removed or nulled by the database (ON DELETE), so the
    # ORM never loads them just to delete a user.
    inviter = db.relationship(
        "User", remote_side=[id], back_populates="invitees"
    )
    invitees = db.relationship(
        "User", back_populates="inviter", lazy="dynamic", passive_deletes="all"
    )
    invites_issued = db.relationship(
        "Invite", back_populates="owner", lazy="dynamic", passive_deletes="all"
    )
    ssh_keys = db.relationship(
        "SSHKey", back_populates="owner", lazy="dynamic", passive_deletes="all"
    )
    tokens = db.relationship(
        "Token", back_populates="user", lazy="dynamic", passive_deletes="all"
    )
    spaces = db.relationship(
        "Space", back_populates="owner", lazy="dynamic", passive_deletes="all"
    )

    def to_dict(self, private=False):
        data = {
            "id": self.id,
            "name": self.name,
            "invited_by": self.invited_by,
        }
        if private:
            data["invites"] = self.invites_remaining
            data["level"] = self.access_level
        return data

    def __repr__(self):
        return f"<User {self.name}>"
