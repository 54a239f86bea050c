from __future__ import annotations

from fastapi import Query

from incubus.domain.pagination import DEFAULT_LIMIT, MAX_LIMIT, PageParams


def get_page_params(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
) -> PageParams:
    return PageParams.build(page, limit)
