"""Invite model.

Invite-only registration: a user spends one unit of their allowance to
create an invite; whoever registers with its id consumes it. Consumption
deletes the row, so an invite can be used at most once. If the issuing
user is deleted the invite stays valid with no owner.
"""

import uuid

from spacegate.extensions import db


class Invite(db.Model):
    __tablename__ = "invites"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="invites_issued")

    def to_dict(self):
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Invite {self.id} owner={self.owner_id}>"
