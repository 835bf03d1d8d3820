from datetime import timedelta

import pytest

from conftest import T0
from fieldsync.formatting import format_accuracy, format_coordinate, format_datetime, format_relative


@pytest.mark.parametrize("value, kind, expected", [
    (51.507351, "lat", "51.50735° N"),
    (-33.8688, "lat", "33.86880° S"),
    (-0.127758, "lon", "0.12776° W"),
    (151.2093, "lon", "151.20930° E"),
    (float("nan"), "lat", "—"),
])
def test_format_coordinate(value, kind, expected):
    assert format_coordinate(value, kind) == expected


def test_format_accuracy():
    assert format_accuracy(12.4) == "±12 m"
    assert format_accuracy(None) is None


def test_format_datetime():
    assert format_datetime(T0) == "Jun 01 · 12:00"


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=20), "just now"),
    (timedelta(minutes=1), "1 minute ago"),
    (timedelta(minutes=17), "17 minutes ago"),
    (timedelta(minutes=62), "1 hour ago"),
    (timedelta(hours=5), "5 hours ago"),
    (timedelta(hours=26), "1 day ago"),
    (timedelta(days=9), "9 days ago"),
])
def test_format_relative(delta, expected):
    assert format_relative(T0, now=T0 + delta) == expected
