"""Unit tests for meteorology validation and the MeteorologyTable."""

from __future__ import annotations

import warnings
from datetime import datetime, timedelta
from types import SimpleNamespace

import numpy as np
import pytest

from pycaline.core.models import (
    ConfigurationError,
    DegradedConditionWarning,
    MeteorologicalCondition,
    SiteClass,
    StabilityClass,
    ValidationError,
)
from pycaline.data.meteorology import MeteorologyTable, validate_record


def _make_records(n: int = 6, wind_speed: float = 3.0, stability: str = "D") -> list[dict]:
    start = datetime(2024, 1, 1, 0, 0)
    return [
        {
            "timestamp": start + timedelta(hours=h),
            "wind_speed": wind_speed,
            "wind_bearing": 15.0 * h,
            "stability_class": stability,
            "mixing_height": 500.0 + 10.0 * h,
        }
        for h in range(n)
    ]


def test_from_records_builds_arrays():
    table = MeteorologyTable.from_records(_make_records(4), site_class="rural")
    assert len(table) == 4
    np.testing.assert_allclose(table.wind_bearing, [0.0, 15.0, 30.0, 45.0])
    assert table.stability.tolist() == [4, 4, 4, 4]
    assert table.site_class is SiteClass.RURAL
    assert table[2].mixing_height == 520.0


def test_arrays_are_read_only():
    table = MeteorologyTable.from_records(_make_records(2))
    with pytest.raises(ValueError):
        table.wind_speed[0] = 10.0


def test_unknown_stability_class_reports_row():
    records = _make_records(5)
    records[3]["stability_class"] = "G"
    with pytest.raises(ValidationError) as excinfo:
        MeteorologyTable.from_records(records)
    assert excinfo.value.index == 3
    assert excinfo.value.field == "stability_class"


@pytest.mark.parametrize("field,value", [
    ("mixing_height", 0.0),
    ("mixing_height", -10.0),
    ("wind_speed", -0.5),
    ("wind_speed", "fast"),
    ("wind_bearing", float("nan")),
])
def test_invalid_field_rejected(field, value):
    records = _make_records(3)
    records[1][field] = value
    with pytest.raises(ValidationError) as excinfo:
        MeteorologyTable.from_records(records)
    assert excinfo.value.index == 1
    assert excinfo.value.field == field


def test_urban_site_treats_stable_classes_as_neutral():
    for raw in ("E", "F"):
        urban = validate_record(_make_records(1, stability=raw)[0], 0, SiteClass.URBAN)
        rural = validate_record(_make_records(1, stability=raw)[0], 0, SiteClass.RURAL)
        assert urban.stability is StabilityClass.D
        assert rural.stability is StabilityClass[raw]


def test_unstable_classes_unchanged_in_urban_site():
    cond = validate_record(_make_records(1, stability="B")[0], 0, SiteClass.URBAN)
    assert cond.stability is StabilityClass.B


def test_unknown_site_class_rejected():
    with pytest.raises(ConfigurationError):
        MeteorologyTable.from_records(_make_records(1), site_class="suburban")


def test_record_forms_are_equivalent():
    ts = "2024-03-01T05:00:00"
    mapping = {"timestamp": ts, "wind_speed": 2.5, "wind_bearing": 370.0,
               "stability": 3, "mixing_height": 900.0}
    positional = (ts, 2.5, 370.0, "c", 900.0)
    obj = SimpleNamespace(timestamp=ts, wind_speed=2.5, wind_bearing=370.0,
                          stability_class="C", mixing_height=900.0)

    parsed = [validate_record(r, 0, SiteClass.RURAL) for r in (mapping, positional, obj)]

    assert parsed[0] == parsed[1] == parsed[2]
    assert parsed[0].timestamp == datetime(2024, 3, 1, 5, 0)
    assert parsed[0].wind_bearing == pytest.approx(10.0)


def test_calm_hours_flagged_with_single_warning():
    records = _make_records(6)
    for h in (1, 2, 4):
        records[h]["wind_speed"] = 0.5
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        table = MeteorologyTable.from_records(records)

    degraded = [w for w in caught if issubclass(w.category, DegradedConditionWarning)]
    assert len(degraded) == 1
    assert "3 of 6" in str(degraded[0].message)
    assert table.calm.tolist() == [False, True, True, False, True, False]
    assert table.calm_fraction == pytest.approx(0.5)


@pytest.mark.parametrize("field, kwargs", [
    ("stability_class", {"stability": "G"}),
    ("wind_speed", {"wind_speed": -0.5}),
    ("mixing_height", {"mixing_height": 0.0}),
])
def test_table_rejects_invalid_conditions(field, kwargs):
    values = dict(timestamp=None, wind_speed=3.0, wind_bearing=90.0,
                  stability=StabilityClass.C, mixing_height=400.0)
    good = MeteorologicalCondition(**values)
    bad = MeteorologicalCondition(**{**values, **kwargs})
    with pytest.raises(ValidationError) as excinfo:
        MeteorologyTable([good, bad])
    assert excinfo.value.index == 1
    assert excinfo.value.field == field


def test_slice_returns_table():
    table = MeteorologyTable.from_records(_make_records(6))
    head = table[:3]
    assert isinstance(head, MeteorologyTable)
    assert len(head) == 3
    assert head.timestamps == table.timestamps[:3]


def test_sample_is_reproducible_and_ordered():
    table = MeteorologyTable.from_records(_make_records(24))
    a = table.sample(8, seed=7)
    b = table.sample(8, seed=7)
    assert a.timestamps == b.timestamps
    assert list(a.timestamps) == sorted(a.timestamps)
    assert set(a.timestamps) <= set(table.timestamps)


def test_sample_larger_than_table_returns_table():
    table = MeteorologyTable.from_records(_make_records(3))
    assert table.sample(10) is table


def test_sample_size_must_be_positive():
    table = MeteorologyTable.from_records(_make_records(3))
    with pytest.raises(ConfigurationError):
        table.sample(0)
