from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mapindex.domain.events import AuthorInfo
from mapindex.domain.models import Profile


async def get_profile(session: AsyncSession, region_id: int, realm_id: int, profile_id: int) -> Profile | None:
    result = await session.execute(
        select(Profile).where(
            Profile.region_id == region_id,
            Profile.realm_id == realm_id,
            Profile.profile_id == profile_id,
        )
    )
    return result.scalar_one_or_none()


def build_profile(author: AuthorInfo, seen_at: datetime) -> Profile:
    # A zero discriminator marks an account deleted upstream.
    if author.discriminator == 0:
        return Profile(
            region_id=author.region_id,
            realm_id=author.realm_id,
            profile_id=author.profile_id,
            name=None,
            discriminator=0,
            deleted=True,
            name_updated_at=None,
        )
    return Profile(
        region_id=author.region_id,
        realm_id=author.realm_id,
        profile_id=author.profile_id,
        name=author.name,
        discriminator=author.discriminator,
        deleted=False,
        name_updated_at=seen_at,
    )


async def get_or_build_profile(session: AsyncSession, author: AuthorInfo, seen_at: datetime) -> Profile:
    # Existing profiles are reused untouched; name changes are tracked elsewhere.
    existing = await get_profile(session, author.region_id, author.realm_id, author.profile_id)
    if existing is not None:
        return existing
    profile = build_profile(author, seen_at)
    session.add(profile)
    return profile
