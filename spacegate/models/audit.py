"""Space log model.

Append-only record of what happened inside a space. The account and item
columns are plain identifiers, not foreign keys: deleting an account or
item must not remove or rewrite history, so an entry may point at
something that no longer exists. Use `account` / `item` to resolve them;
None means the referent was deleted.
"""

import enum
import uuid

from spacegate.extensions import db
from spacegate.models.token import now_ms


class SpaceLogAction(enum.IntEnum):
    SPACE_CREATED = 1
    SPACE_RENAMED = 2
    ACCOUNT_UPSERTED = 10
    ACCOUNT_DELETED = 11
    ITEM_CREATED = 20
    ITEM_UPDATED = 21
    ITEM_OWNER_CHANGED = 22
    ITEM_DELETED = 23
    # Reported by space actor services
    KEYCARD_SCANNED = 100
    ITEM_TAKEN = 200
    ITEM_RETURNED = 300

    @property
    def is_reportable(self):
        return self >= 100


class SpaceLogEntry(db.Model):
    __tablename__ = "space_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    space_id = db.Column(
        db.String(36),
        db.ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)  # ms
    action = db.Column(db.Integer, nullable=False)
    account_id = db.Column(db.String(255), nullable=True, index=True)  # soft ref
    item_id = db.Column(db.String(36), nullable=True, index=True)  # soft ref

    __table_args__ = (
        db.Index("ix_space_logs_space_created", "space_id", "created_at"),
    )

    # --- Relationships ---
    space = db.relationship("Space", back_populates="log_entries")

    @property
    def account(self):
        """The referenced SpaceAccount, or None if it was deleted."""
        if self.account_id is None:
            return None
        from spacegate.models.space import SpaceAccount

        return db.session.get(SpaceAccount, (self.space_id, self.account_id))

    @property
    def item(self):
        """The referenced SpaceItem, or None if it was deleted."""
        if self.item_id is None:
            return None
        from spacegate.models.space import SpaceItem

        item = db.session.get(SpaceItem, self.item_id)
        if item is None or item.space_id != self.space_id:
            return None
        return item

    def to_dict(self):
        return {
            "id": self.id,
            "space_id": self.space_id,
            "created_at": self.created_at,
            "action": self.action,
            "account_id": self.account_id,
            "item_id": self.item_id,
        }

    def __repr__(self):
        return f"<SpaceLogEntry {self.action} space={self.space_id}>"
