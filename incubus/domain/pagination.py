from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Sequence

DOTS = "..."
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @classmethod
    def build(
        cls,
        page: int | None,
        limit: int | None,
        *,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ) -> PageParams:
        resolved_page = max(1, int(page or 1))
        resolved_limit = int(limit) if limit else default_limit
        resolved_limit = max(1, min(resolved_limit, max_limit))
        return cls(page=resolved_page, limit=resolved_limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PaginationMeta:
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, params: PageParams, total: int) -> PaginationMeta:
        return cls(
            page=params.page,
            limit=params.limit,
            total=total,
            total_pages=total_pages(total, params.limit),
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class SortSpec:
    field: str
    order: SortOrder

    @property
    def descending(self) -> bool:
        return self.order == "desc"


def total_pages(total: int, limit: int) -> int:
    if total <= 0 or limit <= 0:
        return 0
    return math.ceil(total / limit)


def resolve_sort(
    sort_by: str | None,
    sort_order: str | None,
    *,
    default_field: str,
    default_order: SortOrder = "desc",
    allowed_fields: Sequence[str] = (),
) -> SortSpec:
    field = sort_by or default_field
    if allowed_fields and field not in allowed_fields:
        field = default_field
    order = (sort_order or "").lower()
    if order not in ("asc", "desc"):
        order = default_order
    return SortSpec(field=field, order=order)  # type: ignore[arg-type]


def page_window(
    current_page: int,
    total_page_count: int,
    sibling_count: int = 1,
) -> list[int | str]:
    """Page numbers to render around ``current_page``, with ``DOTS`` for gaps.

    The first and last page are always present. When every page fits in the
    window (siblings on both sides, current, first, last) the full range is
    returned without dots.
    """
    if total_page_count <= 0:
        return []

    total_page_numbers = sibling_count * 2 + 3
    if total_page_numbers >= total_page_count:
        return list(range(1, total_page_count + 1))

    left_sibling = max(current_page - sibling_count, 1)
    right_sibling = min(current_page + sibling_count, total_page_count)
    show_left_dots = left_sibling > 2
    show_right_dots = right_sibling < total_page_count - 1

    window: list[int | str] = [1]
    if show_left_dots:
        window.append(DOTS)
    for number in range(left_sibling, right_sibling + 1):
        if number != 1 and number != total_page_count:
            window.append(number)
    if show_right_dots:
        window.append(DOTS)
    if total_page_count > 1:
        window.append(total_page_count)
    return window


def paginated(
    data: Sequence,
    params: PageParams,
    total: int,
    **extra,
) -> dict:
    """Response envelope shared by every paginated listing."""
    meta = PaginationMeta.build(params, total)
    return {
        "data": list(data),
        "meta": {
            "pagination": meta.as_dict(),
            "page_window": page_window(meta.page, meta.total_pages),
            **extra,
        },
    }
