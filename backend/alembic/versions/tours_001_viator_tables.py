"""Viator destinations and tours tables, tour sync columns on sites

Revision ID: tours_001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "tours_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "viator_destinations",
        sa.Column("destination_id", sa.String(50), primary_key=True),
        sa.Column("destination_name", sa.String(255), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("parent_id", sa.String(50), nullable=True),
        sa.Column("lookup_id", sa.String(255), nullable=True),
        sa.Column("destination_type", sa.String(50), nullable=True),
        sa.Column("primary_url", sa.Text, nullable=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "viator_tours",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("site_id", sa.Uuid, sa.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tour_id", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("url", sa.Text, nullable=True),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("review_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("site_id", "tour_id", name="uq_viator_tours_site_tour"),
    )
    op.create_index("ix_viator_tours_site_id", "viator_tours", ["site_id"])

    op.add_column("sites", sa.Column("tours_synced_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("sites", sa.Column("tours_sync_status", sa.String(30), nullable=True))
    op.create_index("ix_sites_tours_synced_at", "sites", ["tours_synced_at"])


def downgrade() -> None:
    op.drop_index("ix_sites_tours_synced_at", table_name="sites")
    op.drop_column("sites", "tours_sync_status")
    op.drop_column("sites", "tours_synced_at")
    op.drop_index("ix_viator_tours_site_id", table_name="viator_tours")
    op.drop_table("viator_tours")
    op.drop_table("viator_destinations")
