from datetime import datetime, timedelta

import pytest

from incubus.domain.charts import NO_DATA_MESSAGE, ChartBox, DataPoint, DataSeries, scale_series
from incubus.domain.navigation import ADMIN_NAV_ITEMS, NavItem, visible_nav_items

START = datetime(2026, 3, 1, 8, 0)


def _series(*values, series_id="requests"):
    return DataSeries(
        id=series_id,
        data=[DataPoint(time=START + timedelta(hours=i), value=v) for i, v in enumerate(values)],
    )


def test_empty_series_reports_no_data():
    layout = scale_series([_series()], ChartBox(width=400, height=200))
    assert layout.empty
    assert layout.message == NO_DATA_MESSAGE
    assert layout.as_dict()["series"] == []


def test_two_point_series_geometry():
    layout = scale_series([_series(0, 10)], ChartBox(width=400, height=200))

    assert not layout.empty
    assert layout.min_value == 0.0
    assert layout.max_value == pytest.approx(11.0)

    points = layout.series[0].points
    assert points[0] == (50, 170)
    assert points[1][0] == 380
    assert points[1][1] == pytest.approx(20 + 150 - 150 * 10 / 11)

    assert layout.y_ticks[0] == (20, 11.0)
    assert layout.y_ticks[-1] == (170, 0.0)
    assert layout.x_labels == [(50, "8:00")]


def test_single_point_is_centered():
    layout = scale_series([_series(5)], ChartBox(width=400, height=200))
    assert layout.series[0].points[0][0] == 215


def test_custom_label_format_and_label_step():
    layout = scale_series(
        [_series(*range(9))],
        ChartBox(width=400, height=200),
        label_format="%m-%d",
    )
    assert [label for _, label in layout.x_labels] == ["03-01", "03-01", "03-01"]


def test_navigation_visibility_by_role():
    assert visible_nav_items("admin") == list(ADMIN_NAV_ITEMS)
    assert visible_nav_items("user") == []
    public = NavItem(key="home", title="Home", path="/", icon="home", required_role=None)
    assert visible_nav_items(None, (public,)) == [public]
    assert public.as_dict()["required_role"] is None
