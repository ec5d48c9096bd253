"""Unit tests for link segmentation."""

from __future__ import annotations

import pytest

from pycaline.core.models import ConfigurationError, ValidationError
from pycaline.data.links import FieldBinding, LinkSegmenter, Polyline


def _make_network() -> list[Polyline]:
    return [
        Polyline(
            coords=[(0.0, 0.0), (100.0, 0.0), (100.0, 50.0)],
            attributes={"ID": "A1", "AADT": 24000.0, "EF": 2.5, "LANES": 4},
        ),
        Polyline(
            coords=[(200.0, 0.0), (200.0, 300.0)],
            attributes={"ID": "B7", "AADT": 4800.0, "EF": 3.0, "LANES": 2},
        ),
    ]


def test_segments_inherit_evaluated_attributes():
    segmenter = LinkSegmenter(volume="AADT / 24", emission_factor="EF",
                              width="LANES * 3.6", name="ID")
    links = segmenter.segment(_make_network())

    assert len(links) == 3
    assert [ln.name for ln in links] == ["A1#0", "A1#1", "B7#0"]
    assert links[0].volume == pytest.approx(1000.0)
    assert links[1].volume == pytest.approx(1000.0)
    assert links[2].volume == pytest.approx(200.0)
    assert links[0].width == pytest.approx(14.4)
    assert links[2].emission_factor == 3.0
    assert (links[1].x1, links[1].y1, links[1].x2, links[1].y2) == (100.0, 0.0, 100.0, 50.0)


def test_constant_bindings():
    links = LinkSegmenter(volume=800, emission_factor=1.5, width=12.0).segment(
        _make_network()
    )
    assert all(ln.volume == 800.0 and ln.width == 12.0 for ln in links)
    assert all(ln.name is None for ln in links)


def test_undefined_field_reports_polyline():
    segmenter = LinkSegmenter(volume="ADT / 24", emission_factor="EF", width=10.0)
    with pytest.raises(ValidationError) as excinfo:
        segmenter.segment(_make_network())
    assert excinfo.value.index == 0
    assert excinfo.value.field == "volume"


def test_negative_result_rejected():
    segmenter = LinkSegmenter(volume="AADT - 10000", emission_factor="EF", width=10.0)
    with pytest.raises(ValidationError) as excinfo:
        segmenter.segment(_make_network())
    assert excinfo.value.index == 1


def test_zero_width_rejected():
    segmenter = LinkSegmenter(volume=100.0, emission_factor=1.0, width="LANES - 2")
    with pytest.raises(ValidationError) as excinfo:
        segmenter.segment(_make_network())
    assert excinfo.value.field == "width"


def test_zero_length_segment_rejected():
    poly = Polyline(coords=[(0.0, 0.0), (0.0, 0.0), (10.0, 0.0)])
    with pytest.raises(ValidationError, match="zero length"):
        LinkSegmenter(100.0, 1.0, 10.0).segment([poly])


def test_single_vertex_rejected():
    with pytest.raises(ValidationError):
        LinkSegmenter(100.0, 1.0, 10.0).segment([Polyline(coords=[(0.0, 0.0)])])


@pytest.mark.parametrize("spec", [
    "__import__('os')",
    "AADT.real",
    "AADT if EF else 0",
    "'text'",
    "AADT //",
])
def test_unsupported_expression_rejected(spec):
    with pytest.raises(ConfigurationError):
        FieldBinding(spec, "volume")


def test_binding_reports_referenced_fields():
    binding = FieldBinding("-(A + B) * 2 ** C", "volume")
    assert binding.fields == {"A", "B", "C"}
    assert binding.evaluate({"A": -3.0, "B": 1.0, "C": 2}, 0) == pytest.approx(8.0)


def test_division_by_zero_is_a_validation_error():
    binding = FieldBinding("AADT / HOURS", "volume")
    with pytest.raises(ValidationError):
        binding.evaluate({"AADT": 100.0, "HOURS": 0.0}, 4)
