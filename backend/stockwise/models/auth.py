from __future__ import annotations

from ..extensions import db
from stockwise.time_utils import to_utc_z


user_allowed_stores = db.Table(
    "user_allowed_stores",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("store_id", db.Integer, db.ForeignKey("stores.id"), primary_key=True),
)


class User(db.Model):
    """
    User accounts for authentication and attribution.

    role_level: 0-9, lower is more privileged, 0 is super-admin.
    Capabilities are never stored on the user; they are resolved from the
    current RolePermissionRule for role_level on every check.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.CheckConstraint("role_level >= 0 AND role_level <= 9", name="ck_users_role_level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role_level = db.Column(db.Integer, nullable=False, default=9, index=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    allowed_stores = db.relationship("Store", secondary=user_allowed_stores, lazy="selectin")

    @property
    def allowed_store_ids(self) -> list[int]:
        return [s.id for s in self.allowed_stores]

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role_level={self.role_level}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role_level": self.role_level,
            "allowed_store_ids": self.allowed_store_ids,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class RolePermissionRule(db.Model):
    """
    Centrally administered capability bundle for one role level.

    LIVE DATA: administrators edit these rows at runtime. version_id is bumped
    on every ORM update and is what the rule store polls to detect changes.
    Missing rows fall back to the hard-coded defaults in permissions.defaults.
    """
    __tablename__ = "role_permission_rules"
    __table_args__ = (
        db.CheckConstraint("role_level >= 0 AND role_level <= 9", name="ck_rules_role_level"),
        db.CheckConstraint("logs_level IN ('A', 'B', 'C', 'D')", name="ck_rules_logs_level"),
        db.CheckConstraint("store_scope IN ('GLOBAL', 'LIMITED')", name="ck_rules_store_scope"),
    )

    role_level = db.Column(db.Integer, primary_key=True, autoincrement=False)

    logs_level = db.Column(db.String(1), nullable=False, default="D")
    announcement_rule = db.Column(db.String(16), nullable=False, default="VIEW")
    store_scope = db.Column(db.String(16), nullable=False, default="LIMITED")
    delete_mode = db.Column(db.String(8), nullable=False, default="SOFT")

    show_excel = db.Column(db.Boolean, nullable=False, default=False)
    view_peers = db.Column(db.Boolean, nullable=False, default=False)
    view_self_in_list = db.Column(db.Boolean, nullable=False, default=True)
    hide_perm_page = db.Column(db.Boolean, nullable=False, default=True)
    hide_audit_hall = db.Column(db.Boolean, nullable=False, default=True)
    hide_store_management = db.Column(db.Boolean, nullable=False, default=True)
    hide_new_store_btn = db.Column(db.Boolean, nullable=False, default=True)
    hide_excel_export_btn = db.Column(db.Boolean, nullable=False, default=True)
    hide_store_edit_btn = db.Column(db.Boolean, nullable=False, default=True)
    only_view_config = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<RolePermissionRule level={self.role_level} logs={self.logs_level} scope={self.store_scope}>"


class SessionToken(db.Model):
    """
    Login session. Only the SHA-256 hash of the bearer token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
