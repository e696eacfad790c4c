"""create inventory_items and job_cost_sheets

Revision ID: 3f2a9c1d7b10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SHEET_STATUS = sa.Enum("Issued", "Returned", "Finalized", name="sheet_status")


def upgrade() -> None:
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True),
        sa.Column("code", sa.String(64), nullable=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False, server_default="PCS"),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        # signé : pas de contrainte >= 0 sur le stock
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("critical_stock", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="ck_inventory_item_price_nonneg"),
    )
    op.create_index("ix_inventory_items_code", "inventory_items", ["code"])

    op.create_table(
        "job_cost_sheets",
        sa.Column("job_id", sa.String(64), primary_key=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("applied_consumption", sa.JSON(), nullable=True),
        sa.Column("status", SHEET_STATUS, nullable=False, server_default="Issued"),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("job_cost_sheets")
    op.drop_index("ix_inventory_items_code", table_name="inventory_items")
    op.drop_table("inventory_items")
    # Postgres : le type enum survit au drop_table
    SHEET_STATUS.drop(op.get_bind(), checkfirst=True)
