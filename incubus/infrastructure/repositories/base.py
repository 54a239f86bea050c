from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Generic, Mapping, Sequence, TypeVar

from sqlalchemy import Select, delete as sa_delete, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from incubus.domain.pagination import SortSpec
from incubus.infrastructure.db.base import Base

T = TypeVar("T", bound=Base)

SQLITE_TRUNCATE_FORMATS = {"hour": "%Y-%m-%d %H:00:00", "day": "%Y-%m-%d 00:00:00"}


class BaseRepository(Generic[T]):
    """Generic async repository with common CRUD and paging helpers."""

    model: type[T]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: int) -> T | None:
        return await self.session.get(self.model, id)

    async def create(self, **kwargs) -> T:
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def update(self, instance: T, **kwargs) -> T:
        for key, value in kwargs.items():
            setattr(instance, key, value)
        await self.session.flush()
        return instance

    async def delete(self, id: int) -> bool:
        stmt = sa_delete(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount and result.rowcount > 0)

    async def fetch_page(
        self,
        stmt: Select,
        *,
        limit: int,
        offset: int,
        scalars: bool = True,
    ) -> tuple[Sequence[Any], int]:
        """Run ``stmt`` for one page and count the unpaged result.

        With ``scalars=False`` the page holds row tuples, for joined selects.
        """
        total = await self.count_matching(stmt)
        result = await self.session.execute(stmt.limit(limit).offset(offset))
        if scalars:
            return result.scalars().all(), total
        return result.all(), total

    async def count_matching(self, stmt: Select) -> int:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        return int((await self.session.execute(count_stmt)).scalar() or 0)

    async def count_rows(self, model, *conditions) -> int:
        stmt = select(func.count()).select_from(model)
        for condition in conditions:
            stmt = stmt.where(condition)
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    @staticmethod
    def apply_sort(stmt: Select, sort: SortSpec, columns: Mapping[str, Any]) -> Select:
        column = columns[sort.field]
        return stmt.order_by(column.desc() if sort.descending else column.asc())

    def truncate_time(self, column, unit: str):
        """``column`` cut down to the start of its hour or day, for GROUP BY."""
        if self.session.get_bind().dialect.name == "sqlite":
            return func.strftime(literal_column(f"'{SQLITE_TRUNCATE_FORMATS[unit]}'"), column)
        return func.date_trunc(literal_column(f"'{unit}'"), column)

    @staticmethod
    def search_pattern(search: str | None) -> str | None:
        if search is None:
            return None
        normalized = search.strip()
        if not normalized:
            return None
        return f"%{normalized}%"


def bucket_start(value: str | datetime | date) -> datetime:
    """Normalize a ``truncate_time`` result to an aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    elif not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
