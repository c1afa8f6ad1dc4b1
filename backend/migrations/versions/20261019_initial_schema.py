"""Initial schema: vendors, auth, inventory ledger, processors, registers, sessions

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


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_vendors_slug", "vendors", ["slug"], unique=True)
    op.create_index("ix_vendors_is_active", "vendors", ["is_active"])

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="store"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("vendor_id", "name", name="uq_locations_vendor_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_locations_vendor_id", "locations", ["vendor_id"])
    op.create_index("ix_locations_is_active", "locations", ["is_active"])
    op.create_index("ix_locations_vendor_type", "locations", ["vendor_id", "type"])

    op.create_table(
        "vendor_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="budtender"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("vendor_id", "email", name="uq_vendor_users_vendor_email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_vendor_users_vendor_id", "vendor_users", ["vendor_id"])
    op.create_index("ix_vendor_users_email", "vendor_users", ["email"])

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("vendor_users.id"), nullable=False),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_session_tokens_user_id", "session_tokens", ["user_id"])
    op.create_index("ix_session_tokens_vendor_id", "session_tokens", ["vendor_id"])
    op.create_index("ix_session_tokens_token_hash", "session_tokens", ["token_hash"], unique=True)
    op.create_index("ix_session_tokens_expires_at", "session_tokens", ["expires_at"])
    op.create_index("ix_session_tokens_is_revoked", "session_tokens", ["is_revoked"])
    op.create_index("ix_session_tokens_user_active", "session_tokens", ["user_id", "is_revoked"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("stock_quantity", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("stock_status", sa.String(length=16), nullable=False, server_default="outofstock"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("vendor_id", "sku", name="uq_products_vendor_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_vendor_id", "products", ["vendor_id"])
    op.create_index("ix_products_vendor_name", "products", ["vendor_id", "name"])

    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("low_stock_threshold", sa.Numeric(12, 2), nullable=False, server_default="10"),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("product_id", "location_id", name="uq_inventory_product_location"),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_vendor_id", "inventory", ["vendor_id"])
    op.create_index("ix_inventory_product_id", "inventory", ["product_id"])
    op.create_index("ix_inventory_location_id", "inventory", ["location_id"])
    op.create_index("ix_inventory_vendor_location", "inventory", ["vendor_id", "location_id"])

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("inventory_id", sa.Integer(), sa.ForeignKey("inventory.id"), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("quantity_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity_change", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("performed_by_user_id", sa.Integer(), sa.ForeignKey("vendor_users.id"), nullable=True),
        sa.Column("performed_by_name", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transactions_vendor_id", "inventory_transactions", ["vendor_id"])
    op.create_index("ix_inventory_transactions_location_id", "inventory_transactions", ["location_id"])
    op.create_index("ix_inventory_transactions_product_id", "inventory_transactions", ["product_id"])
    op.create_index("ix_inventory_transactions_inventory_id", "inventory_transactions", ["inventory_id"])
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"])
    op.create_index("ix_inventory_transactions_created_at", "inventory_transactions", ["created_at"])
    op.create_index("ix_invtx_inventory_created", "inventory_transactions", ["inventory_id", "created_at"])
    op.create_index("ix_invtx_vendor_product_created", "inventory_transactions", ["vendor_id", "product_id", "created_at"])

    op.create_table(
        "payment_processors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("processor_type", sa.String(length=32), nullable=True),
        sa.Column("processor_name", sa.String(length=128), nullable=True),
        sa.Column("environment", sa.String(length=16), nullable=False, server_default="sandbox"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dejavoo_authkey", sa.String(length=255), nullable=True),
        sa.Column("dejavoo_tpn", sa.String(length=64), nullable=True),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_processors_vendor_id", "payment_processors", ["vendor_id"])
    op.create_index("ix_payment_processors_location_id", "payment_processors", ["location_id"])
    op.create_index("ix_payment_processors_is_active", "payment_processors", ["is_active"])
    op.create_index(
        "ix_payment_processors_location_active",
        "payment_processors",
        ["location_id", "is_active", "is_default"],
    )

    op.create_table(
        "pos_registers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("register_number", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("payment_processor_id", sa.Integer(), sa.ForeignKey("payment_processors.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("location_id", "register_number", name="uq_pos_registers_location_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_registers_vendor_id", "pos_registers", ["vendor_id"])
    op.create_index("ix_pos_registers_location_id", "pos_registers", ["location_id"])
    op.create_index("ix_pos_registers_payment_processor_id", "pos_registers", ["payment_processor_id"])
    op.create_index("ix_pos_registers_is_active", "pos_registers", ["is_active"])

    op.create_table(
        "pos_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_number", sa.String(length=64), nullable=False),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("opened_by_user_id", sa.Integer(), sa.ForeignKey("vendor_users.id"), nullable=True),
        sa.Column("closed_by_user_id", sa.Integer(), sa.ForeignKey("vendor_users.id"), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("payment_processor_id", sa.Integer(), sa.ForeignKey("payment_processors.id"), nullable=True),
        sa.Column("opening_cash", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("closing_cash", sa.Numeric(12, 2), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("total_sales", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("register_id", "session_number", name="uq_pos_sessions_register_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_sessions_vendor_id", "pos_sessions", ["vendor_id"])
    op.create_index("ix_pos_sessions_register_id", "pos_sessions", ["register_id"])
    op.create_index("ix_pos_sessions_location_id", "pos_sessions", ["location_id"])
    op.create_index("ix_pos_sessions_status", "pos_sessions", ["status"])
    op.create_index("ix_pos_sessions_opened_at", "pos_sessions", ["opened_at"])
    # One open session per register
    op.create_index(
        "uq_pos_sessions_register_open",
        "pos_sessions",
        ["register_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("payment_processor_id", sa.Integer(), sa.ForeignKey("payment_processors.id"), nullable=False),
        sa.Column("pos_register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=True),
        sa.Column("original_transaction_id", sa.Integer(), sa.ForeignKey("payment_transactions.id"), nullable=True),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=True),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("vendor_users.id"), nullable=True),
        sa.Column("processor_type", sa.String(length=32), nullable=False),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tip_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("processor_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("processor_reference_id", sa.String(length=64), nullable=True),
        sa.Column("authorization_code", sa.String(length=64), nullable=True),
        sa.Column("result_code", sa.String(length=32), nullable=True),
        sa.Column("status_code", sa.String(length=32), nullable=True),
        sa.Column("message", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.String(length=255), nullable=True),
        sa.Column("card_type", sa.String(length=32), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("card_bin", sa.String(length=8), nullable=True),
        sa.Column("cardholder_name", sa.String(length=128), nullable=True),
        sa.Column("request_data", sa.JSON(), nullable=True),
        sa.Column("response_data", sa.JSON(), nullable=True),
        sa.Column("receipt_data", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_transactions_vendor_id", "payment_transactions", ["vendor_id"])
    op.create_index("ix_payment_transactions_location_id", "payment_transactions", ["location_id"])
    op.create_index("ix_payment_transactions_payment_processor_id", "payment_transactions", ["payment_processor_id"])
    op.create_index("ix_payment_transactions_pos_register_id", "payment_transactions", ["pos_register_id"])
    op.create_index("ix_payment_transactions_original_transaction_id", "payment_transactions", ["original_transaction_id"])
    op.create_index("ix_payment_transactions_order_id", "payment_transactions", ["order_id"])
    op.create_index("ix_payment_transactions_transaction_type", "payment_transactions", ["transaction_type"])
    op.create_index("ix_payment_transactions_status", "payment_transactions", ["status"])
    op.create_index("ix_payment_transactions_processor_reference_id", "payment_transactions", ["processor_reference_id"])
    op.create_index("ix_payment_transactions_processed_at", "payment_transactions", ["processed_at"])
    op.create_index("ix_payment_txn_vendor_processed", "payment_transactions", ["vendor_id", "processed_at"])


def downgrade():
    op.drop_table("payment_transactions")
    op.drop_index("uq_pos_sessions_register_open", table_name="pos_sessions")
    op.drop_table("pos_sessions")
    op.drop_table("pos_registers")
    op.drop_table("payment_processors")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory")
    op.drop_table("products")
    op.drop_table("session_tokens")
    op.drop_table("vendor_users")
    op.drop_table("locations")
    op.drop_table("vendors")
