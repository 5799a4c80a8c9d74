"""snapshot, aggregate and health tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "plasma_pool_yield_snapshots",
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pool", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("chain", sa.String(), nullable=False),
        sa.Column("project", sa.String(), nullable=True),
        sa.Column("symbol", sa.String(), nullable=True),
        sa.Column("tvl_usd", sa.Float(), nullable=False),
        sa.Column("apy", sa.Float(), nullable=True),
        sa.Column("apy_base", sa.Float(), nullable=True),
        sa.Column("apy_pct30d", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("ts", "pool", "source"),
    )

    op.create_table(
        "plasma_aggregate",
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("chain_latest_tvl_usd", sa.Float(), nullable=False),
        sa.Column("chain_prev_tvl_usd", sa.Float(), nullable=False),
        sa.Column("chain_last_date", sa.String(), nullable=True),
        sa.Column("protocol_latest_tvl_usd", sa.Float(), nullable=False),
        sa.Column("protocol_last_date", sa.String(), nullable=True),
        sa.Column("top_pools", JSON_TYPE, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("ts"),
    )

    op.create_table(
        "source_health",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("status", sa.Integer(), nullable=True),
        sa.Column("ok", sa.Boolean(), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_source_health_source_checked_at", "source_health", ["source", "checked_at"])

    op.create_table(
        "sumcap_snapshots",
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("endpoint", sa.String(), nullable=False),
        sa.Column("status", sa.Integer(), nullable=True),
        sa.Column("ok", sa.Boolean(), nullable=False),
        sa.Column("payload", JSON_TYPE, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("ts", "endpoint"),
    )


def downgrade() -> None:
    op.drop_table("sumcap_snapshots")
    op.drop_index("ix_source_health_source_checked_at", table_name="source_health")
    op.drop_table("source_health")
    op.drop_table("plasma_aggregate")
    op.drop_table("plasma_pool_yield_snapshots")
