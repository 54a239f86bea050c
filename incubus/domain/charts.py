"""Line-chart layout for the admin monitoring and analytics series.

Only geometry is computed here; drawing happens on the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

NO_DATA_MESSAGE = "No data available"
Y_TICK_COUNT = 5
X_LABEL_STEP = 4


@dataclass(frozen=True)
class ChartPadding:
    top: float = 20
    right: float = 20
    bottom: float = 30
    left: float = 50


@dataclass(frozen=True)
class ChartBox:
    width: float
    height: float
    padding: ChartPadding = field(default_factory=ChartPadding)

    @property
    def plot_width(self) -> float:
        return max(0.0, self.width - self.padding.left - self.padding.right)

    @property
    def plot_height(self) -> float:
        return max(0.0, self.height - self.padding.top - self.padding.bottom)


@dataclass(frozen=True)
class DataPoint:
    time: datetime
    value: float


@dataclass(frozen=True)
class DataSeries:
    id: str
    data: Sequence[DataPoint]
    color: str = "blue"


@dataclass(frozen=True)
class PlottedSeries:
    id: str
    color: str
    points: list[tuple[float, float]]


@dataclass(frozen=True)
class ChartLayout:
    empty: bool
    message: str | None = None
    min_value: float = 0.0
    max_value: float = 0.0
    y_ticks: list[tuple[float, float]] = field(default_factory=list)
    x_labels: list[tuple[float, str]] = field(default_factory=list)
    series: list[PlottedSeries] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "empty": self.empty,
            "message": self.message,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "y_ticks": [{"y": y, "value": value} for y, value in self.y_ticks],
            "x_labels": [{"x": x, "label": label} for x, label in self.x_labels],
            "series": [
                {
                    "id": item.id,
                    "color": item.color,
                    "points": [{"x": x, "y": y} for x, y in item.points],
                }
                for item in self.series
            ],
        }


def value_bounds(series: Sequence[DataSeries]) -> tuple[float, float]:
    values = [point.value for item in series for point in item.data]
    low, high = min(values), max(values)
    value_range = (high - low) or 1.0
    return max(0.0, low - value_range * 0.1), high + value_range * 0.1


def _x_at(box: ChartBox, index: int, count: int) -> float:
    if count <= 1:
        return box.padding.left + box.plot_width / 2
    return box.padding.left + box.plot_width * index / (count - 1)


def _y_at(box: ChartBox, value: float, low: float, high: float) -> float:
    span = high - low
    if span <= 0:
        return box.padding.top + box.plot_height / 2
    return box.padding.top + box.plot_height - box.plot_height * (value - low) / span


def _label(time: datetime, label_format: str | None) -> str:
    if label_format is None:
        return f"{time.hour}:00"
    return time.strftime(label_format)


def scale_series(
    series: Sequence[DataSeries],
    box: ChartBox,
    *,
    label_format: str | None = None,
) -> ChartLayout:
    if not any(item.data for item in series):
        return ChartLayout(empty=True, message=NO_DATA_MESSAGE)

    low, high = value_bounds(series)

    y_ticks = []
    steps = Y_TICK_COUNT - 1
    for i in range(Y_TICK_COUNT):
        value = low + (high - low) * (steps - i) / steps
        y = box.padding.top + box.plot_height * i / steps
        y_ticks.append((y, round(value, 2)))

    first = next(item.data for item in series if item.data)
    x_labels = [
        (_x_at(box, i, len(first)), _label(point.time, label_format))
        for i, point in enumerate(first)
        if i % X_LABEL_STEP == 0
    ]

    plotted = [
        PlottedSeries(
            id=item.id,
            color=item.color,
            points=[
                (_x_at(box, i, len(item.data)), _y_at(box, point.value, low, high))
                for i, point in enumerate(item.data)
            ],
        )
        for item in series
    ]
    return ChartLayout(
        empty=False,
        min_value=low,
        max_value=high,
        y_ticks=y_ticks,
        x_labels=x_labels,
        series=plotted,
    )
