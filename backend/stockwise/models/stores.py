from __future__ import annotations

from ..extensions import db
from stockwise.time_utils import to_utc_z


store_managers = db.Table(
    "store_managers",
    db.Column("store_id", db.Integer, db.ForeignKey("stores.id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)

store_viewers = db.Table(
    "store_viewers",
    db.Column("store_id", db.Integer, db.ForeignKey("stores.id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class Store(db.Model):
    """
    Physical or logical location holding batches.

    HIERARCHY: at most two levels. A parent store aggregates its children for
    display only; it never owns a separate ledger and aggregated quantities are
    never persisted.

    SCOPING: managers/viewers grant visibility independent of role level.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_stores_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    parent = db.relationship("Store", remote_side=[id], backref=db.backref("children", lazy=True))
    managers = db.relationship("User", secondary=store_managers, lazy="selectin")
    viewers = db.relationship("User", secondary=store_viewers, lazy="selectin")

    @property
    def manager_ids(self) -> list[int]:
        return [u.id for u in self.managers]

    @property
    def viewer_ids(self) -> list[int]:
        return [u.id for u in self.viewers]

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} parent_id={self.parent_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "parent_id": self.parent_id,
            "managers": self.manager_ids,
            "viewers": self.viewer_ids,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
        }
