"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "map_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("is_melee", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("region_id", sa.SmallInteger(), nullable=False),
        sa.Column("realm_id", sa.SmallInteger(), nullable=False),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        # Deleted accounts carry no name.
        sa.Column("name", sa.String(length=12), nullable=True),
        sa.Column("discriminator", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("name_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("region_id", "realm_id", "profile_id", name="uq_profiles_bnet_id"),
    )
    op.create_index("ix_profiles_name", "profiles", ["name"])

    op.create_table(
        "map_headers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("region_id", sa.SmallInteger(), nullable=False),
        sa.Column("map_id", sa.Integer(), nullable=False),
        sa.Column("major_version", sa.Integer(), nullable=False),
        sa.Column("minor_version", sa.Integer(), nullable=False),
        sa.Column("header_hash", sa.String(length=64), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_extension_mod", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archive_hash", sa.String(length=64), nullable=False),
        sa.Column("archive_size", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        # First writer wins: concurrent inserts of one version collide here.
        sa.UniqueConstraint(
            "region_id",
            "map_id",
            "major_version",
            "minor_version",
            name="uq_map_headers_region_map_version",
        ),
    )
    op.create_index("ix_map_headers_archive_hash", "map_headers", ["archive_hash"])
    op.create_index("ix_map_headers_uploaded_at", "map_headers", ["uploaded_at"])

    op.create_table(
        "maps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("region_id", sa.SmallInteger(), nullable=False),
        sa.Column("map_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("current_version_id", sa.Integer(), sa.ForeignKey("map_headers.id"), nullable=False),
        sa.Column("initial_version_id", sa.Integer(), sa.ForeignKey("map_headers.id"), nullable=True),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("main_locale", sa.String(length=8), nullable=False),
        sa.Column("main_locale_hash", sa.String(length=64), nullable=False),
        sa.Column("icon_hash", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("main_category_id", sa.Integer(), sa.ForeignKey("map_categories.id"), nullable=False),
        sa.Column("max_players", sa.SmallInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("region_id", "map_id", name="uq_maps_region_map"),
    )
    op.create_index("ix_maps_type", "maps", ["type"])
    op.create_index("ix_maps_current_version_id", "maps", ["current_version_id"])
    op.create_index("ix_maps_initial_version_id", "maps", ["initial_version_id"])
    op.create_index("ix_maps_icon_hash", "maps", ["icon_hash"])
    op.create_index("ix_maps_name", "maps", ["name"])
    op.create_index("ix_maps_updated_at", "maps", ["updated_at"])
    op.create_index("ix_maps_published_at", "maps", ["published_at"])

    op.create_table(
        "map_variants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("map_id", sa.Integer(), sa.ForeignKey("maps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("variant_index", sa.SmallInteger(), nullable=False),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("lobby_delay", sa.SmallInteger(), nullable=False, server_default="10"),
        sa.UniqueConstraint("map_id", "variant_index", name="uq_map_variants_map_index"),
    )
    op.create_index("ix_map_variants_map_id", "map_variants", ["map_id"])

    op.create_table(
        "map_tracking",
        sa.Column("region_id", sa.SmallInteger(), primary_key=True),
        sa.Column("map_id", sa.Integer(), primary_key=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen_available_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_seen_unavailable_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unavailability_counter", sa.SmallInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_map_tracking_last_checked_at", "map_tracking", ["last_checked_at"])
    op.create_index("ix_map_tracking_unavailability_counter", "map_tracking", ["unavailability_counter"])


def downgrade() -> None:
    op.drop_index("ix_map_tracking_unavailability_counter", table_name="map_tracking")
    op.drop_index("ix_map_tracking_last_checked_at", table_name="map_tracking")
    op.drop_table("map_tracking")
    op.drop_index("ix_map_variants_map_id", table_name="map_variants")
    op.drop_table("map_variants")
    for index_name in (
        "ix_maps_published_at",
        "ix_maps_updated_at",
        "ix_maps_name",
        "ix_maps_icon_hash",
        "ix_maps_initial_version_id",
        "ix_maps_current_version_id",
        "ix_maps_type",
    ):
        op.drop_index(index_name, table_name="maps")
    op.drop_table("maps")
    op.drop_index("ix_map_headers_uploaded_at", table_name="map_headers")
    op.drop_index("ix_map_headers_archive_hash", table_name="map_headers")
    op.drop_table("map_headers")
    op.drop_index("ix_profiles_name", table_name="profiles")
    op.drop_table("profiles")
    op.drop_table("map_categories")
