"""Dispersion coefficients for roadway line sources.

Horizontal spread follows the Pasquill-Gifford power law
sigma_y = a * x^b (Turner 1970 fit), scaled for averaging time.
Vertical spread follows the CALINE3 treatment: a power law through the
initial mixing-zone value at x = W/2 and the roughness-adjusted
Pasquill-Gifford value at 10 km.

References:
    Benson, P.E. (1979) CALINE3 - A Versatile Dispersion Model for
    Predicting Air Pollutant Levels Near Highways and Arterial Streets.
    FHWA/CA/TL-79/23.
    Turner, D.B. (1970) Workbook of Atmospheric Dispersion Estimates.
"""

from __future__ import annotations

import numpy as np

from pycaline.core.models import StabilityClass

# sigma_y = a * x^b, x and sigma_y in metres (3-minute sampling basis)
SIGMA_Y_COEFFICIENTS: dict[StabilityClass, tuple[float, float]] = {
    StabilityClass.A: (0.3658, 0.9031),
    StabilityClass.B: (0.2751, 0.9031),
    StabilityClass.C: (0.2090, 0.9031),
    StabilityClass.D: (0.1471, 0.9031),
    StabilityClass.E: (0.1046, 0.9031),
    StabilityClass.F: (0.0722, 0.9031),
}

# sigma_z (m) at 10 km for a 10 cm roughness surface
SIGMA_Z_10KM: dict[StabilityClass, float] = {
    StabilityClass.A: 1112.0,
    StabilityClass.B: 566.0,
    StabilityClass.C: 353.0,
    StabilityClass.D: 219.0,
    StabilityClass.E: 124.0,
    StabilityClass.F: 56.0,
}

# Vehicle wake adds 3 m on each side of the travelled way
MIXING_ZONE_ALLOWANCE = 6.0

REFERENCE_ROUGHNESS = 0.1       # m
REFERENCE_DISTANCE = 10000.0    # m
SIGMA_Y_BASE_TIME = 3.0         # minutes
SIGMA_Z_BASE_TIME = 30.0        # minutes


def mixing_zone_half_width(road_width: np.ndarray) -> np.ndarray:
    """Half width (m) of the mixing zone over the travelled way."""
    return (np.asarray(road_width, dtype=np.float64) + MIXING_ZONE_ALLOWANCE) / 2.0


def sigma_y(
    x: np.ndarray,
    stability: StabilityClass,
    averaging_time: float = 60.0,
) -> np.ndarray:
    """Horizontal dispersion coefficient.

    Parameters
    ----------
    x : np.ndarray
        Downwind distance (m), > 0.
    stability : StabilityClass
        Pasquill-Gifford class.
    averaging_time : float
        Averaging time (minutes).

    Returns
    -------
    np.ndarray
        sigma_y (m), same shape as *x*.
    """
    a, b = SIGMA_Y_COEFFICIENTS[stability]
    time_factor = (averaging_time / SIGMA_Y_BASE_TIME) ** 0.2
    return a * np.power(x, b) * time_factor


def initial_sigma_z(
    half_width: np.ndarray,
    wind_speed: float,
    averaging_time: float = 60.0,
) -> np.ndarray:
    """Vertical spread generated by vehicle turbulence in the mixing zone.

    sigma_z0 = 1.8 + 0.11 * TR, with TR = (W/2) / u the residence time (s)
    of air over the road, scaled to the averaging time.
    """
    residence_time = np.asarray(half_width, dtype=np.float64) / wind_speed
    time_factor = (averaging_time / SIGMA_Z_BASE_TIME) ** 0.2
    return (1.8 + 0.11 * residence_time) * time_factor


def sigma_z_at_10km(stability: StabilityClass, roughness: float) -> float:
    """Roughness-adjusted sigma_z (m) at the 10 km reference distance."""
    return SIGMA_Z_10KM[stability] * (roughness / REFERENCE_ROUGHNESS) ** 0.07


def sigma_z(
    x: np.ndarray,
    stability: StabilityClass,
    roughness: float,
    half_width: np.ndarray,
    wind_speed: float,
    averaging_time: float = 60.0,
) -> np.ndarray:
    """Vertical dispersion coefficient.

    A power law sigma_z = a * x^b passing through (W/2, sigma_z0) and
    (10 km, sigma_z10). Inside the mixing zone (x < W/2) sigma_z stays at
    sigma_z0.

    Parameters
    ----------
    x : np.ndarray
        Downwind distance (m).
    stability : StabilityClass
        Pasquill-Gifford class.
    roughness : float
        Surface roughness length (m).
    half_width : np.ndarray
        Mixing-zone half width (m), broadcastable against *x*.
    wind_speed : float
        Wind speed (m/s), already floored at the calm threshold.
    averaging_time : float
        Averaging time (minutes).

    Returns
    -------
    np.ndarray
        sigma_z (m), broadcast shape of *x* and *half_width*.
    """
    x0 = np.asarray(half_width, dtype=np.float64)
    sz0 = initial_sigma_z(x0, wind_speed, averaging_time)
    sz10 = sigma_z_at_10km(stability, roughness)

    exponent = np.log(sz10 / sz0) / np.log(REFERENCE_DISTANCE / x0)
    exponent = np.maximum(exponent, 0.0)

    x_eff = np.maximum(x, x0)
    return sz0 * np.power(x_eff / x0, exponent)
