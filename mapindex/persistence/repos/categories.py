from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mapindex.core.errors import UnknownCategoryError
from mapindex.domain.models import MapCategory


@dataclass(frozen=True)
class CategoryInfo:
    id: int
    code: str
    is_melee: bool


class CategorySnapshot:
    """Read-only view of map categories captured at startup."""

    def __init__(self, categories: Iterable[CategoryInfo]) -> None:
        self._by_id: Mapping[int, CategoryInfo] = MappingProxyType({item.id: item for item in categories})

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, category_id: int) -> CategoryInfo:
        try:
            return self._by_id[category_id]
        except KeyError:
            raise UnknownCategoryError(f"unknown map category id={category_id}") from None


async def load_category_snapshot(session: AsyncSession) -> CategorySnapshot:
    result = await session.execute(select(MapCategory).order_by(MapCategory.id))
    return CategorySnapshot(
        CategoryInfo(id=row.id, code=row.code, is_melee=bool(row.is_melee))
        for row in result.scalars().all()
    )
