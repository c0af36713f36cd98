from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from mapindex.domain.game import MapType
from mapindex.domain.versions import MapVersion


class UTCDateTime(TypeDecorator):
    # Normalize to aware UTC values; some backends hand back naive datetimes.
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    pass


class MapCategory(Base):
    __tablename__ = "map_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    code: Mapped[str] = mapped_column(String(32), unique=True)
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    is_melee: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        UniqueConstraint("region_id", "realm_id", "profile_id", name="uq_profiles_bnet_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region_id: Mapped[int] = mapped_column(SmallInteger)
    realm_id: Mapped[int] = mapped_column(SmallInteger)
    profile_id: Mapped[int] = mapped_column(Integer)
    # Deleted accounts carry no name.
    name: Mapped[str | None] = mapped_column(String(12), nullable=True, index=True)
    discriminator: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    name_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class MapHeader(Base):
    """Immutable record of one published map revision."""

    __tablename__ = "map_headers"
    __table_args__ = (
        UniqueConstraint(
            "region_id",
            "map_id",
            "major_version",
            "minor_version",
            name="uq_map_headers_region_map_version",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region_id: Mapped[int] = mapped_column(SmallInteger)
    map_id: Mapped[int] = mapped_column(Integer)
    major_version: Mapped[int] = mapped_column(Integer)
    minor_version: Mapped[int] = mapped_column(Integer)
    header_hash: Mapped[str] = mapped_column(String(64))
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_extension_mod: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archive_hash: Mapped[str] = mapped_column(String(64), index=True)
    # Null when the depot could not report a size for the archive.
    archive_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uploaded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    @property
    def version(self) -> MapVersion:
        return MapVersion(self.major_version, self.minor_version)

    @property
    def link_ver(self) -> str:
        return f"{self.region_id}/{self.map_id} {self.version}"


class Map(Base):
    __tablename__ = "maps"
    __table_args__ = (
        UniqueConstraint("region_id", "map_id", name="uq_maps_region_map"),
        Index("ix_maps_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region_id: Mapped[int] = mapped_column(SmallInteger)
    map_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(32), default=MapType.ARCADE_MAP.value)
    current_version_id: Mapped[int] = mapped_column(Integer, ForeignKey("map_headers.id"), index=True)
    initial_version_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("map_headers.id"), nullable=True, index=True
    )
    author_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("profiles.id"), nullable=True)
    main_locale: Mapped[str] = mapped_column(String(8))
    main_locale_hash: Mapped[str] = mapped_column(String(64))
    icon_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    main_category_id: Mapped[int] = mapped_column(Integer, ForeignKey("map_categories.id"))
    max_players: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    current_version: Mapped[MapHeader] = relationship(foreign_keys=[current_version_id], lazy="joined")
    initial_version: Mapped[MapHeader | None] = relationship(foreign_keys=[initial_version_id], lazy="joined")
    author: Mapped[Profile | None] = relationship(lazy="joined")


class MapVariant(Base):
    __tablename__ = "map_variants"
    __table_args__ = (
        UniqueConstraint("map_id", "variant_index", name="uq_map_variants_map_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    map_id: Mapped[int] = mapped_column(Integer, ForeignKey("maps.id", ondelete="CASCADE"), index=True)
    variant_index: Mapped[int] = mapped_column(SmallInteger)
    name: Mapped[str] = mapped_column(String, default="")
    lobby_delay: Mapped[int] = mapped_column(SmallInteger, default=10)


class MapTracking(Base):
    __tablename__ = "map_tracking"

    region_id: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    map_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    last_seen_available_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    first_seen_unavailable_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    unavailability_counter: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False, index=True)
