"""Space models.

- Space: a container of member accounts, items and audit history, owned
  by one user.
- SpaceAccount: an identity from an external platform bound to a space,
  keyed by (space_id, platform_id).
- SpaceItem: something tracked in a space, optionally owned by one of the
  space's accounts. Deleting the owning account deletes the item.
"""

import enum
import uuid

from spacegate.extensions import db


class SpaceItemKind(enum.IntEnum):
    NORMAL = 0
    KEYCARD = 1  # always belongs to an account

    @property
    def requires_owner(self):
        return self is SpaceItemKind.KEYCARD


class Space(db.Model):
    __tablename__ = "spaces"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="spaces")
    accounts = db.relationship(
        "SpaceAccount", back_populates="space", lazy="dynamic", passive_deletes="all"
    )
    items = db.relationship(
        "SpaceItem", back_populates="space", lazy="dynamic", passive_deletes="all"
    )
    log_entries = db.relationship(
        "SpaceLogEntry", back_populates="space", lazy="dynamic", passive_deletes="all"
    )
    service_accounts = db.relationship(
        "ServiceAccount", back_populates="space", lazy="dynamic", passive_deletes="all"
    )

    def to_dict(self):
        return {"id": self.id, "title": self.title, "owner_id": self.owner_id}

    def __repr__(self):
        return f"<Space {self.title}>"


class SpaceAccount(db.Model):
    __tablename__ = "space_accounts"

    space_id = db.Column(
        db.String(36),
        db.ForeignKey("spaces.id", ondelete="CASCADE"),
        primary_key=True,
    )
    platform_id = db.Column(db.String(255), primary_key=True)
    platform_name = db.Column(db.String(255), nullable=True)  # formal name
    display_name = db.Column(db.String(255), nullable=True)

    # --- Relationships ---
    space = db.relationship("Space", back_populates="accounts")

    def to_dict(self):
        return {
            "space_id": self.space_id,
            "platform_id": self.platform_id,
            "platform_name": self.platform_name,
            "display_name": self.display_name,
        }

    def __repr__(self):
        return f"<SpaceAccount {self.platform_id} space={self.space_id}>"


class SpaceItem(db.Model):
    __tablename__ = "space_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.Integer, nullable=False, default=SpaceItemKind.NORMAL)
    serial = db.Column(db.String(255), nullable=False)  # given by the platform
    owner_id = db.Column(db.String(255), nullable=True)  # platform_id of owner
    space_id = db.Column(
        db.String(36),
        db.ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        db.UniqueConstraint("serial", "space_id", name="uq_item_serial_space"),
        db.ForeignKeyConstraint(
            ["owner_id", "space_id"],
            ["space_accounts.platform_id", "space_accounts.space_id"],
            ondelete="CASCADE",
            name="fk_item_owner_account",
        ),
    )

    # --- Relationships ---
    space = db.relationship(
        "Space", back_populates="items", foreign_keys=[space_id]
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "serial": self.serial,
            "owner_id": self.owner_id,
            "space_id": self.space_id,
        }

    def __repr__(self):
        return f"<SpaceItem {self.serial} space={self.space_id}>"
