"""Finite line source Gaussian plume kernel (CALINE3 formulation).

Each link is divided into equal-length elements. In the wind-aligned
frame every element is treated as a crosswind line source spanning the
element's projected crosswind extent; the crosswind Gaussian profile is
integrated exactly over that extent with the error function, and the
vertical profile includes image sources reflected between the ground and
the mixing-height lid.

All work for one meteorological condition is vectorised over
(receptors x elements).

References:
    Benson, P.E. (1979) CALINE3, FHWA/CA/TL-79/23, Sections 2-3.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.special import erf

from pycaline.core.models import Link, ModelConfig, StabilityClass, Terrain
from pycaline.physics.dispersion import mixing_zone_half_width, sigma_y, sigma_z
from pycaline.utils.geometry import WindFrame

SQRT_2 = math.sqrt(2.0)
SQRT_2PI = math.sqrt(2.0 * math.pi)


def reflection_factor(
    z: np.ndarray,
    sz: np.ndarray,
    mixing_height: float,
    tolerance: float = 1e-8,
    max_terms: int = 50,
) -> np.ndarray:
    """Vertical image-source sum for a ground-level source.

    Sums exp(-(z - 2nh)^2 / 2sz^2) + exp(-(z + 2nh)^2 / 2sz^2) over all
    integers n. Pairs n = +/-k are added for k = 1, 2, ... until the new
    pair is below ``tolerance`` times the running total, or ``max_terms``
    pairs have been added. Each entry stops on its own; entries still
    above the tolerance after the cap take the well-mixed limit
    sqrt(2 pi) sz / h.

    Parameters
    ----------
    z : np.ndarray
        Receptor height (m), broadcastable against *sz*.
    sz : np.ndarray
        Vertical dispersion coefficient (m).
    mixing_height : float
        Height of the reflecting lid (m).
    tolerance : float
        Relative truncation threshold.
    max_terms : int
        Maximum number of image pairs.

    Returns
    -------
    np.ndarray
        Dimensionless factor; 2 at ground level for a plume well below the
        lid, 0 for receptors above the lid.
    """
    z = np.asarray(z, dtype=np.float64)
    sz = np.asarray(sz, dtype=np.float64)
    z, sz = np.broadcast_arrays(z, sz)
    two_var = 2.0 * sz * sz

    total = np.array(2.0 * np.exp(-(z * z) / two_var), dtype=np.float64)
    # Entries still summing image pairs; receptors above the lid are 0
    active = np.array(z <= mixing_height, dtype=bool)
    for n in range(1, max_terms + 1):
        if not active.any():
            break
        offset = 2.0 * n * mixing_height
        za = z[active]
        va = two_var[active]
        pair = 2.0 * (np.exp(-((za - offset) ** 2) / va)
                      + np.exp(-((za + offset) ** 2) / va))
        running = total[active] + pair
        total[active] = running
        active[active] = pair > tolerance * running

    if active.any():
        total[active] = SQRT_2PI * sz[active] / mixing_height

    return np.where(z > mixing_height, 0.0, total)


@dataclass(frozen=True, eq=False)
class PlumeKernel:
    """Element decomposition of a link set plus the numerical kernel.

    Instances hold only numpy arrays and plain settings so they pickle
    cleanly into worker processes.

    Attributes
    ----------
    mid_x, mid_y : np.ndarray
        Element midpoints (m), shape (E,).
    element_length : np.ndarray
        Element lengths (m), shape (E,).
    dir_x, dir_y : np.ndarray
        Unit vector along the parent link, shape (E,).
    half_width : np.ndarray
        Mixing-zone half width of the parent link (m), shape (E,).
    strength : np.ndarray
        Source strength of the parent link (g/m/s), shape (E,).
    link_index : np.ndarray
        Index of the parent link, shape (E,).
    roughness : float
        Surface roughness length (m).
    config : ModelConfig
        Engine settings.
    """
    mid_x: np.ndarray
    mid_y: np.ndarray
    element_length: np.ndarray
    dir_x: np.ndarray
    dir_y: np.ndarray
    half_width: np.ndarray
    strength: np.ndarray
    link_index: np.ndarray
    roughness: float
    config: ModelConfig

    @classmethod
    def from_links(
        cls,
        links: Sequence[Link],
        terrain: Terrain,
        config: ModelConfig,
    ) -> "PlumeKernel":
        """Divide each link into equal-length elements."""
        mid_x, mid_y, lengths, dir_x, dir_y = [], [], [], [], []
        half_width, strength, link_index = [], [], []

        for i, link in enumerate(links):
            n = math.ceil(link.length / config.max_element_length)
            n = min(max(n, 1), config.max_elements_per_link)
            frac = (np.arange(n) + 0.5) / n
            ux = (link.x2 - link.x1) / link.length
            uy = (link.y2 - link.y1) / link.length

            mid_x.append(link.x1 + frac * (link.x2 - link.x1))
            mid_y.append(link.y1 + frac * (link.y2 - link.y1))
            lengths.append(np.full(n, link.length / n))
            dir_x.append(np.full(n, ux))
            dir_y.append(np.full(n, uy))
            half_width.append(np.full(n, float(mixing_zone_half_width(link.width))))
            strength.append(np.full(n, link.source_strength))
            link_index.append(np.full(n, i, dtype=np.int64))

        return cls(
            mid_x=np.concatenate(mid_x),
            mid_y=np.concatenate(mid_y),
            element_length=np.concatenate(lengths),
            dir_x=np.concatenate(dir_x),
            dir_y=np.concatenate(dir_y),
            half_width=np.concatenate(half_width),
            strength=np.concatenate(strength),
            link_index=np.concatenate(link_index),
            roughness=terrain.surface_roughness,
            config=config,
        )

    @property
    def num_elements(self) -> int:
        return int(self.mid_x.shape[0])

    def select(self, link_index: int) -> "PlumeKernel":
        """Kernel restricted to the elements of one link."""
        mask = self.link_index == link_index
        return PlumeKernel(
            mid_x=self.mid_x[mask],
            mid_y=self.mid_y[mask],
            element_length=self.element_length[mask],
            dir_x=self.dir_x[mask],
            dir_y=self.dir_y[mask],
            half_width=self.half_width[mask],
            strength=self.strength[mask],
            link_index=self.link_index[mask],
            roughness=self.roughness,
            config=self.config,
        )

    # ------------------------------------------------------------------
    # Single condition
    # ------------------------------------------------------------------

    def condition_concentration(
        self,
        wind_speed: float,
        wind_bearing: float,
        stability: StabilityClass,
        mixing_height: float,
        rx: np.ndarray,
        ry: np.ndarray,
        rz: np.ndarray,
    ) -> np.ndarray:
        """Concentration (g/m3) at each receptor for one condition.

        Parameters
        ----------
        wind_speed : float
            Wind speed (m/s); values below the calm threshold are raised
            to the threshold.
        wind_bearing : float
            Direction the wind blows from (degrees).
        stability : StabilityClass
            Pasquill-Gifford class.
        mixing_height : float
            Mixing height (m).
        rx, ry, rz : np.ndarray
            Receptor coordinates (m), shape (R,).

        Returns
        -------
        np.ndarray
            Shape (R,), every value finite and >= 0.
        """
        cfg = self.config
        u = max(float(wind_speed), cfg.calm_threshold)
        downwind, crosswind = WindFrame.unit_vectors(wind_bearing)

        dx = rx[:, None] - self.mid_x[None, :]
        dy = ry[:, None] - self.mid_y[None, :]
        x = dx * downwind[0] + dy * downwind[1]
        y = dx * crosswind[0] + dy * crosswind[1]

        reaches = x > 0.0
        if not np.any(reaches):
            return np.zeros(rx.shape[0], dtype=np.float64)

        # Crosswind extent of an element: a rectangle of length L and
        # mixing-zone width W projected onto the crosswind axis. A link
        # parallel to the wind spans exactly W.
        sin_phi = np.abs(self.dir_x * downwind[1] - self.dir_y * downwind[0])
        cos_phi = np.abs(self.dir_x * downwind[0] + self.dir_y * downwind[1])
        extent = self.element_length * sin_phi + 2.0 * self.half_width * cos_phi

        # Only receptor-element pairs downwind of the element are evaluated
        rows, cols = np.nonzero(reaches)
        x = x[rows, cols]
        y = y[rows, cols]
        half_width = self.half_width[cols]
        sy = sigma_y(x, stability, cfg.averaging_time)
        sz = sigma_z(x, stability, self.roughness, half_width, u, cfg.averaging_time)

        root = SQRT_2 * sy
        span = extent[cols]
        half = span / 2.0
        crosswind_term = 0.5 * (erf((half - y) / root) - erf((-half - y) / root))
        crosswind_term = np.maximum(crosswind_term, 0.0) / span

        vertical = reflection_factor(
            rz[rows], sz, mixing_height,
            tolerance=cfg.reflection_tolerance,
            max_terms=cfg.max_reflections,
        )

        emitted = (self.strength * self.element_length)[cols]
        conc = emitted * crosswind_term * vertical / (SQRT_2PI * sz * u)
        return np.bincount(rows, weights=conc, minlength=rx.shape[0])

    # ------------------------------------------------------------------
    # Many conditions
    # ------------------------------------------------------------------

    def evaluate_block(
        self,
        wind_speed: np.ndarray,
        wind_bearing: np.ndarray,
        stability: np.ndarray,
        mixing_height: np.ndarray,
        rx: np.ndarray,
        ry: np.ndarray,
        rz: np.ndarray,
    ) -> np.ndarray:
        """Concentration matrix (g/m3) for a run of conditions.

        Receptors are processed ``receptor_block_size`` at a time.

        Returns
        -------
        np.ndarray
            Shape (len(wind_speed), len(rx)).
        """
        n_cond = len(wind_speed)
        n_rec = len(rx)
        block = self.config.receptor_block_size
        out = np.zeros((n_cond, n_rec), dtype=np.float64)

        for i in range(n_cond):
            stab = StabilityClass(int(stability[i]))
            for start in range(0, n_rec, block):
                stop = min(start + block, n_rec)
                out[i, start:stop] = self.condition_concentration(
                    wind_speed[i], wind_bearing[i], stab, mixing_height[i],
                    rx[start:stop], ry[start:stop], rz[start:stop],
                )
        return out
