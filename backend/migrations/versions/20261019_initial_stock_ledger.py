"""Initial stock ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_stores_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_parent_id", ["parent_id"], unique=False)
        batch_op.create_index("ix_stores_is_archived", ["is_archived"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role_level", sa.Integer(), nullable=False, server_default=sa.text("9")),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role_level >= 0 AND role_level <= 9", name="ck_users_role_level"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_username", ["username"], unique=False)
        batch_op.create_index("ix_users_role_level", ["role_level"], unique=False)

    for name in ("store_managers", "store_viewers"):
        op.create_table(
            name,
            sa.Column("store_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("store_id", "user_id"),
        )

    op.create_table(
        "user_allowed_stores",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("user_id", "store_id"),
    )

    op.create_table(
        "role_permission_rules",
        sa.Column("role_level", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("logs_level", sa.String(1), nullable=False, server_default="D"),
        sa.Column("announcement_rule", sa.String(16), nullable=False, server_default="VIEW"),
        sa.Column("store_scope", sa.String(16), nullable=False, server_default="LIMITED"),
        sa.Column("delete_mode", sa.String(8), nullable=False, server_default="SOFT"),
        sa.Column("show_excel", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("view_peers", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("view_self_in_list", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_perm_page", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_audit_hall", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_store_management", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_new_store_btn", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_excel_export_btn", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("hide_store_edit_btn", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("only_view_config", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("role_level >= 0 AND role_level <= 9", name="ck_rules_role_level"),
        sa.CheckConstraint("logs_level IN ('A', 'B', 'C', 'D')", name="ck_rules_logs_level"),
        sa.CheckConstraint("store_scope IN ('GLOBAL', 'LIMITED')", name="ck_rules_store_scope"),
        sa.PrimaryKeyConstraint("role_level"),
    )

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("unit_name", sa.String(16), nullable=True),
        sa.Column("split_unit_name", sa.String(16), nullable=True),
        sa.Column("split_ratio", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("min_stock_level", sa.Integer(), nullable=True),
        sa.Column("bound_store_id", sa.Integer(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("split_ratio >= 1", name="ck_products_split_ratio"),
        sa.ForeignKeyConstraint(["bound_store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_sku", ["sku"], unique=False)
        batch_op.create_index("ix_products_bound_store", ["bound_store_id", "is_archived"], unique=False)

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("batch_number", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("batches", schema=None) as batch_op:
        batch_op.create_index("ix_batches_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_batches_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_batches_product_store", ["product_id", "store_id", "is_archived"], unique=False)

    op.create_table(
        "stock_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("batch_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("operator", sa.String(64), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("snapshot_data", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(36), nullable=True),
        sa.Column("is_undone", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("undone_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("undone_by_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_tx_quantity_non_negative"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"]),
        sa.ForeignKeyConstraint(["operator_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["undone_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_stock_transactions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_transactions_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_stock_transactions_batch_id", ["batch_id"], unique=False)
        batch_op.create_index("ix_stock_transactions_timestamp", ["timestamp"], unique=False)
        batch_op.create_index("ix_stock_transactions_operator_id", ["operator_id"], unique=False)
        batch_op.create_index("ix_stock_transactions_correlation_id", ["correlation_id"], unique=False)
        batch_op.create_index("ix_stock_transactions_is_undone", ["is_undone"], unique=False)
        batch_op.create_index("ix_stock_tx_batch_timestamp", ["batch_id", "timestamp"], unique=False)
        batch_op.create_index(
            "ix_stock_tx_store_product_timestamp", ["store_id", "product_id", "timestamp"], unique=False,
        )


def downgrade():
    op.drop_table("stock_transactions")
    op.drop_table("batches")
    op.drop_table("products")
    op.drop_table("session_tokens")
    op.drop_table("role_permission_rules")
    op.drop_table("user_allowed_stores")
    op.drop_table("store_viewers")
    op.drop_table("store_managers")
    op.drop_table("users")
    op.drop_table("stores")
