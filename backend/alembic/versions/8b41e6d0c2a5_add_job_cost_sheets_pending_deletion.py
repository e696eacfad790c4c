"""add job_cost_sheets.pending_deletion

Revision ID: 8b41e6d0c2a5
Revises: 3f2a9c1d7b10
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b41e6d0c2a5"
down_revision: Union[str, Sequence[str], None] = "3f2a9c1d7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "job_cost_sheets"


def upgrade() -> None:
    # feuilles existantes : aucune suppression en cours
    op.add_column(
        TABLE_NAME,
        sa.Column("pending_deletion", sa.Boolean(), nullable=False, server_default=sa.false()),
    )


def downgrade() -> None:
    op.drop_column(TABLE_NAME, "pending_deletion")
