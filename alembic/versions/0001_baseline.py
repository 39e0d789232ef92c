"""Baseline migration - source mirrors, enrichment, queues and the unified item store

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates every table from the model metadata, seeds the refresh status rows
and, on PostgreSQL, adds the GIN indexes the array filters rely on.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from unified_index.db.base import Base
import unified_index.db.models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SEGMENTS = ("task", "email", "craft", "file")

GIN_INDEXES = {
    "idx_unified_items_location_ids": "location_ids",
    "idx_unified_items_cost_group_ids": "cost_group_ids",
    "idx_unified_items_involved_emails": "involved_emails",
}


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)

    refresh_status = sa.table(
        "refresh_status",
        sa.column("segment", sa.String),
        sa.column("needs_refresh", sa.Boolean),
        sa.column("refresh_interval_minutes", sa.Integer),
    )
    op.bulk_insert(
        refresh_status,
        [{"segment": s, "needs_refresh": True, "refresh_interval_minutes": 5} for s in SEGMENTS],
    )

    if bind.dialect.name == "postgresql":
        # ==========================================================================
        # Array overlap (&&) indexes
        # ==========================================================================
        for index_name, column in GIN_INDEXES.items():
            op.execute(f"CREATE INDEX {index_name} ON unified_items USING gin ({column})")
        op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")
        op.execute(
            "CREATE INDEX idx_unified_items_search_text_trgm "
            "ON unified_items USING gin (search_text gin_trgm_ops)"
        )


def downgrade() -> None:
    """Drop all tables."""
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for index_name in (*GIN_INDEXES, "idx_unified_items_search_text_trgm"):
            op.execute(f"DROP INDEX IF EXISTS {index_name}")
    Base.metadata.drop_all(bind=bind)
