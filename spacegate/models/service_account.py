"""Service account model.

Non-human identities that authenticate with service tokens. A service
is either global (space_id is NULL) or scoped to one space, in which
case it disappears together with that space.
"""

import enum
import uuid

from flask_login import UserMixin

from spacegate.extensions import db


class ServiceAccountKind(enum.IntEnum):
    SSH_AUTHORITY = 1  # may look users up by SSH key
    SPACE_EVENT_WATCHER = 1000  # may read its space's log
    SPACE_ACTOR = 1001  # may report actions into its space's log

    @property
    def requires_space(self):
        return self in (
            ServiceAccountKind.SPACE_EVENT_WATCHER,
            ServiceAccountKind.SPACE_ACTOR,
        )

    @property
    def is_admin(self):
        """Only holders of services_manage may create these."""
        return self is ServiceAccountKind.SSH_AUTHORITY


class ServiceAccount(UserMixin, db.Model):
    __tablename__ = "service_accounts"

    is_service = True

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    space_id = db.Column(
        db.String(36),
        db.ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    kind = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    space = db.relationship("Space", back_populates="service_accounts")
    tokens = db.relationship(
        "ServiceToken", back_populates="service", lazy="dynamic", passive_deletes="all"
    )

    @property
    def account_kind(self):
        return ServiceAccountKind(self.kind)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "space_id": self.space_id,
            "kind": self.kind,
        }

    def __repr__(self):
        return f"<ServiceAccount {self.name} kind={self.kind}>"
