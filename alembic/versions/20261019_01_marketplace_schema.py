"""marketplace catalog and order schema

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _column_exists(inspector: sa.Inspector, table_name: str, column_name: str) -> bool:
    return any(column["name"] == column_name for column in inspector.get_columns(table_name))


def _shipping_snapshot_columns() -> list[sa.Column]:
    return [
        sa.Column("price_at_purchase", sa.Numeric(10, 2), nullable=False),
        sa.Column("shipping_method_id", sa.Integer(), nullable=True),
        sa.Column("shipping_cost", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_method_name", sa.String(length=255), nullable=True),
        sa.Column("shipping_method_type", sa.String(length=20), nullable=True),
    ]


def _ensure_users(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=255), nullable=True),
            sa.Column("slug", sa.String(length=255), nullable=True, unique=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="buyer"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_users_id", "users", ["id"], unique=False)
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        return

    if not _column_exists(inspector, "users", "role"):
        op.add_column("users", sa.Column("role", sa.String(length=20), nullable=False, server_default="buyer"))


def _ensure_catalog_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "art"):
        op.create_table(
            "art",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("price", sa.Numeric(10, 2), nullable=False),
            sa.Column("type", sa.String(length=100), nullable=True),
            sa.Column("basename", sa.String(length=255), nullable=False),
            sa.Column("visible", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_sold", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_art_id", "art", ["id"], unique=False)
        op.create_index("ix_art_seller_id", "art", ["seller_id"], unique=False)
        op.create_index("ix_art_slug", "art", ["slug"], unique=True)

    if not _table_exists(inspector, "others"):
        op.create_table(
            "others",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("price", sa.Numeric(10, 2), nullable=False),
            sa.Column("basename", sa.String(length=255), nullable=False),
            sa.Column("visible", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_sold", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_others_id", "others", ["id"], unique=False)
        op.create_index("ix_others_seller_id", "others", ["seller_id"], unique=False)
        op.create_index("ix_others_slug", "others", ["slug"], unique=True)

    if not _table_exists(inspector, "other_vars"):
        op.create_table(
            "other_vars",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("other_id", sa.Integer(), sa.ForeignKey("others.id"), nullable=False),
            sa.Column("key", sa.String(length=255), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.CheckConstraint("stock >= 0", name="ck_other_vars_stock_non_negative"),
        )
        op.create_index("ix_other_vars_id", "other_vars", ["id"], unique=False)
        op.create_index("ix_other_vars_other_id", "other_vars", ["other_id"], unique=False)


def _ensure_order_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "orders"):
        address_columns = []
        for prefix in ("delivery", "invoicing"):
            address_columns.extend(
                [
                    sa.Column(f"{prefix}_address_line_1", sa.String(length=255), nullable=True),
                    sa.Column(f"{prefix}_address_line_2", sa.String(length=255), nullable=True),
                    sa.Column(f"{prefix}_postal_code", sa.String(length=20), nullable=True),
                    sa.Column(f"{prefix}_city", sa.String(length=255), nullable=True),
                    sa.Column(f"{prefix}_province", sa.String(length=255), nullable=True),
                    sa.Column(f"{prefix}_country", sa.String(length=2), nullable=True),
                ]
            )
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("buyer_email", sa.String(length=255), nullable=False),
            sa.Column("buyer_phone", sa.String(length=50), nullable=True),
            sa.Column("full_name", sa.String(length=255), nullable=True),
            sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="pending"),
            sa.Column("token", sa.String(length=128), nullable=False),
            *address_columns,
            sa.Column("delivery_lat", sa.Float(), nullable=True),
            sa.Column("delivery_lng", sa.Float(), nullable=True),
            sa.Column("revolut_order_id", sa.String(length=255), nullable=True, unique=True),
            sa.Column("revolut_payment_id", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_orders_id", "orders", ["id"], unique=False)
        op.create_index("ix_orders_buyer_email", "orders", ["buyer_email"], unique=False)
        op.create_index("ix_orders_token", "orders", ["token"], unique=True)
    else:
        if not _column_exists(inspector, "orders", "revolut_payment_id"):
            op.add_column("orders", sa.Column("revolut_payment_id", sa.String(length=255), nullable=True))
        if not _column_exists(inspector, "orders", "currency"):
            op.add_column(
                "orders", sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR")
            )

    if not _table_exists(inspector, "art_order_items"):
        op.create_table(
            "art_order_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("art_id", sa.Integer(), sa.ForeignKey("art.id"), nullable=False),
            *_shipping_snapshot_columns(),
        )
        op.create_index("ix_art_order_items_id", "art_order_items", ["id"], unique=False)
        op.create_index("ix_art_order_items_order_id", "art_order_items", ["order_id"], unique=False)
        op.create_index("ix_art_order_items_art_id", "art_order_items", ["art_id"], unique=False)

    if not _table_exists(inspector, "other_order_items"):
        op.create_table(
            "other_order_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("other_id", sa.Integer(), sa.ForeignKey("others.id"), nullable=False),
            sa.Column("other_var_id", sa.Integer(), sa.ForeignKey("other_vars.id"), nullable=False),
            *_shipping_snapshot_columns(),
        )
        op.create_index("ix_other_order_items_id", "other_order_items", ["id"], unique=False)
        op.create_index("ix_other_order_items_order_id", "other_order_items", ["order_id"], unique=False)
        op.create_index("ix_other_order_items_other_id", "other_order_items", ["other_id"], unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    _ensure_users(inspector)
    inspector = sa.inspect(bind)
    _ensure_catalog_tables(inspector)
    inspector = sa.inspect(bind)
    _ensure_order_tables(inspector)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in ("other_order_items", "art_order_items", "orders", "other_vars", "others", "art"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
