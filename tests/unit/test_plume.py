"""Unit tests for dispersion coefficients and the line source kernel."""

from __future__ import annotations

import math

import numpy as np
import pytest

from pycaline.core.models import Link, ModelConfig, StabilityClass, Terrain
from pycaline.physics.dispersion import (
    initial_sigma_z,
    mixing_zone_half_width,
    sigma_y,
    sigma_z,
    sigma_z_at_10km,
)
from pycaline.physics.plume import PlumeKernel, reflection_factor
from pycaline.utils.geometry import WindFrame, nearest_distance, point_segment_distance


# ---------------------------------------------------------------------------
# Dispersion coefficients
# ---------------------------------------------------------------------------

def test_mixing_zone_adds_three_metres_each_side():
    assert mixing_zone_half_width(30.0) == pytest.approx(18.0)


def test_sigma_y_grows_with_distance_and_instability():
    x = np.array([10.0, 100.0, 1000.0])
    for cls in StabilityClass:
        assert np.all(np.diff(sigma_y(x, cls)) > 0.0)
    assert sigma_y(100.0, StabilityClass.A) > sigma_y(100.0, StabilityClass.F)


def test_sigma_y_averaging_time_scaling():
    base = sigma_y(100.0, StabilityClass.D, averaging_time=3.0)
    hourly = sigma_y(100.0, StabilityClass.D, averaging_time=60.0)
    assert base == pytest.approx(0.1471 * 100.0 ** 0.9031)
    assert hourly / base == pytest.approx(20.0 ** 0.2)


def test_initial_sigma_z_slower_wind_spreads_more():
    assert initial_sigma_z(18.0, 1.0) > initial_sigma_z(18.0, 5.0)
    assert initial_sigma_z(18.0, 2.0, averaging_time=30.0) == pytest.approx(1.8 + 0.11 * 9.0)


def test_sigma_z_passes_through_anchor_points():
    half_width = 18.0
    u = 2.0
    sz0 = initial_sigma_z(half_width, u)
    sz10 = sigma_z_at_10km(StabilityClass.D, roughness=0.1)

    assert sz10 == pytest.approx(219.0)
    assert sigma_z(half_width, StabilityClass.D, 0.1, half_width, u) == pytest.approx(sz0)
    assert sigma_z(10000.0, StabilityClass.D, 0.1, half_width, u) == pytest.approx(sz10)


def test_sigma_z_constant_inside_mixing_zone():
    inside = sigma_z(np.array([1.0, 5.0, 17.9]), StabilityClass.C, 0.1, 18.0, 3.0)
    assert np.allclose(inside, initial_sigma_z(18.0, 3.0))


def test_sigma_z_grows_with_roughness():
    smooth = sigma_z(500.0, StabilityClass.D, 0.01, 18.0, 3.0)
    rough = sigma_z(500.0, StabilityClass.D, 1.0, 18.0, 3.0)
    assert rough > smooth


def test_sigma_z_non_decreasing_for_every_class():
    x = np.linspace(1.0, 20000.0, 200)
    for cls in StabilityClass:
        sz = sigma_z(x, cls, 0.3, 18.0, 0.5)
        assert np.all(np.diff(sz) >= 0.0)


# ---------------------------------------------------------------------------
# Reflection series
# ---------------------------------------------------------------------------

def test_reflection_factor_is_two_far_below_lid():
    value = reflection_factor(np.array([0.0]), np.array([10.0]), 1000.0)
    assert value[0] == pytest.approx(2.0, rel=1e-12)


def test_reflection_factor_converges_to_well_mixed_limit():
    h = 100.0
    sz = np.array([500.0])
    value = reflection_factor(np.array([0.0]), sz, h)
    assert value[0] == pytest.approx(math.sqrt(2.0 * math.pi) * 500.0 / h, rel=1e-6)


def test_reflection_factor_capped_series_uses_closed_form():
    h = 10.0
    sz = np.array([1000.0])
    value = reflection_factor(np.array([0.0]), sz, h, max_terms=50)
    assert value[0] == pytest.approx(math.sqrt(2.0 * math.pi) * 100.0)


def test_reflection_factor_zero_above_lid():
    value = reflection_factor(np.array([0.0, 150.0]), np.array([50.0, 50.0]), 100.0)
    assert value[0] > 0.0
    assert value[1] == 0.0


def test_reflection_factor_elevated_receptor_smaller_than_ground():
    sz = np.array([20.0, 20.0])
    value = reflection_factor(np.array([0.0, 30.0]), sz, 1000.0)
    assert value[1] < value[0]


def test_reflection_factor_entries_converge_independently():
    """A narrow plume sums to 2 even beside one that never converges."""
    z = np.array([0.0, 0.0])
    sz = np.array([10.0, 1.0e5])
    mixed = reflection_factor(z, sz, 1000.0)

    assert mixed[0] == 2.0
    assert mixed[1] == pytest.approx(math.sqrt(2.0 * math.pi) * 1.0e5 / 1000.0)
    alone = [reflection_factor(z[i:i + 1], sz[i:i + 1], 1000.0)[0] for i in range(2)]
    np.testing.assert_allclose(mixed, alone, rtol=1e-14)


def test_reflection_factor_scalar_inputs():
    value = reflection_factor(0.0, 10.0, 1000.0)
    assert float(value) == pytest.approx(2.0)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def test_wind_frame_south_wind_blows_north():
    downwind, crosswind = WindFrame.unit_vectors(180.0)
    np.testing.assert_allclose(downwind, [0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(crosswind, [-1.0, 0.0], atol=1e-12)


def test_wind_frame_rotate_west_wind():
    along, across = WindFrame.rotate(np.array([10.0]), np.array([5.0]), 270.0)
    assert along[0] == pytest.approx(10.0)
    assert across[0] == pytest.approx(5.0)


def test_point_segment_distance_interior_and_endpoint():
    d = point_segment_distance(
        np.array([5.0, -3.0]), np.array([4.0, 4.0]),
        np.array([0.0]), np.array([0.0]), np.array([10.0]), np.array([0.0]),
    )
    assert d.shape == (2, 1)
    assert d[0, 0] == pytest.approx(4.0)
    assert d[1, 0] == pytest.approx(5.0)


def test_nearest_distance_picks_closest_segment():
    segments = np.array([[0.0, 0.0, 10.0, 0.0], [0.0, 20.0, 10.0, 20.0]])
    d = nearest_distance(np.array([5.0, 5.0]), np.array([3.0, 18.0]), segments, block_size=1)
    np.testing.assert_allclose(d, [3.0, 2.0])


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------

def _make_kernel(links, config: ModelConfig | None = None) -> PlumeKernel:
    return PlumeKernel.from_links(links, Terrain(0.1), config or ModelConfig())


def test_kernel_elements_cover_link():
    link = Link(0.0, 0.0, 0.0, 110.0, 10.0, 100.0, 1.0)
    kernel = _make_kernel([link])
    assert kernel.num_elements == 5
    assert kernel.element_length.sum() == pytest.approx(110.0)
    np.testing.assert_allclose(kernel.mid_x, 0.0)
    np.testing.assert_allclose(kernel.mid_y, [11.0, 33.0, 55.0, 77.0, 99.0])


def test_kernel_select_keeps_one_link():
    links = [
        Link(0.0, 0.0, 100.0, 0.0, 10.0, 100.0, 1.0),
        Link(0.0, 50.0, 30.0, 50.0, 10.0, 100.0, 1.0),
    ]
    kernel = _make_kernel(links)
    sub = kernel.select(1)
    assert sub.num_elements == 2
    assert np.all(sub.link_index == 1)


def test_evaluate_block_matches_single_conditions():
    link = Link(-100.0, 0.0, 100.0, 0.0, 20.0, 1000.0, 3.0)
    config = ModelConfig(receptor_block_size=2)
    kernel = _make_kernel([link], config)
    rx = np.array([0.0, 40.0, -60.0, 10.0, 0.0])
    ry = np.array([30.0, 60.0, 90.0, -40.0, 200.0])
    rz = np.zeros(5)
    ws = np.array([2.0, 5.0])
    wb = np.array([190.0, 350.0])
    stab = np.array([4, 2], dtype=np.int8)
    mh = np.array([500.0, 1500.0])

    block = kernel.evaluate_block(ws, wb, stab, mh, rx, ry, rz)

    assert block.shape == (2, 5)
    for i in range(2):
        row = kernel.condition_concentration(
            ws[i], wb[i], StabilityClass(int(stab[i])), mh[i], rx, ry, rz,
        )
        np.testing.assert_allclose(block[i], row, rtol=1e-12)


def test_receptor_value_independent_of_block_neighbours():
    """Upwind receptors in the same block leave downwind values unchanged."""
    link = Link(-200.0, 0.0, 200.0, 0.0, 20.0, 1000.0, 3.0)
    kernel = _make_kernel([link])
    rx = np.array([0.0, 150.0, -80.0, 0.0])
    ry = np.array([-50.0, 40.0, -5.0, 300.0])
    rz = np.zeros(4)

    together = kernel.condition_concentration(2.5, 180.0, StabilityClass.C, 800.0, rx, ry, rz)

    assert together[0] == 0.0 and together[2] == 0.0
    assert together[1] > 0.0 and together[3] > 0.0
    for i in range(4):
        alone = kernel.condition_concentration(
            2.5, 180.0, StabilityClass.C, 800.0, rx[i:i + 1], ry[i:i + 1], rz[i:i + 1],
        )
        assert alone[0] == pytest.approx(together[i], rel=1e-14, abs=0.0)
