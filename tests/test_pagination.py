from incubus.domain.pagination import (
    DOTS,
    PageParams,
    page_window,
    paginated,
    resolve_sort,
    total_pages,
)


def test_page_params_clamps_page_and_limit():
    params = PageParams.build(0, 500)
    assert params.page == 1
    assert params.limit == 100
    assert PageParams.build(None, None).limit == 10


def test_page_params_offset():
    assert PageParams.build(3, 20).offset == 40


def test_total_pages_rounds_up_and_handles_empty():
    assert total_pages(0, 10) == 0
    assert total_pages(10, 10) == 1
    assert total_pages(11, 10) == 2


def test_page_window_without_gaps():
    assert page_window(3, 5) == [1, 2, 3, 4, 5]
    assert page_window(1, 0) == []


def test_page_window_with_gaps():
    assert page_window(1, 10) == [1, 2, DOTS, 10]
    assert page_window(5, 10) == [1, DOTS, 4, 5, 6, DOTS, 10]
    assert page_window(10, 10) == [1, DOTS, 9, 10]


def test_resolve_sort_falls_back_on_unknown_values():
    sort = resolve_sort(
        "password",
        "sideways",
        default_field="createdAt",
        allowed_fields=("createdAt", "name"),
    )
    assert sort.field == "createdAt"
    assert sort.order == "desc"
    assert sort.descending

    sort = resolve_sort("name", "ASC", default_field="createdAt", allowed_fields=("name",))
    assert (sort.field, sort.order) == ("name", "asc")


def test_paginated_envelope():
    payload = paginated(["a", "b"], PageParams(page=2, limit=2), 5, summary={"average": 4.0})
    assert payload["data"] == ["a", "b"]
    assert payload["meta"]["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}
    assert payload["meta"]["page_window"] == [1, 2, 3]
    assert payload["meta"]["summary"] == {"average": 4.0}
