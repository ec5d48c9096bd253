"""Receptor sets and the grid / ring receptor generators.

Both generators are deterministic functions of the link set and their
parameters. Every generated receptor records its distance (m) to the
nearest link centreline so results can be stratified by distance.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Iterator, Mapping, Sequence

import numpy as np

from pycaline.core.models import ConfigurationError, Link, Receptor, ValidationError
from pycaline.utils.geometry import nearest_distance, point_segment_distance

logger = logging.getLogger(__name__)


class ReceptorSet:
    """Immutable ordered collection of receptors.

    Parameters
    ----------
    receptors : iterable of Receptor

    Raises
    ------
    ConfigurationError
        If the set is empty or a coordinate is non-finite.
    """

    def __init__(self, receptors: Iterable[Receptor]) -> None:
        self._receptors = tuple(receptors)
        if not self._receptors:
            raise ConfigurationError("Receptor set is empty")

        self.x = np.array([r.x for r in self._receptors], dtype=np.float64)
        self.y = np.array([r.y for r in self._receptors], dtype=np.float64)
        self.z = np.array([r.z for r in self._receptors], dtype=np.float64)
        for name, arr in (("x", self.x), ("y", self.y), ("z", self.z)):
            bad = np.flatnonzero(~np.isfinite(arr))
            if bad.size:
                raise ConfigurationError(
                    f"Receptor {int(bad[0])} has a non-finite {name} coordinate"
                )
            arr.setflags(write=False)
        if np.any(self.z < 0.0):
            raise ConfigurationError("Receptor heights must be >= 0")

    @classmethod
    def from_points(
        cls,
        points: Sequence[tuple[float, float]],
        z: float = 0.0,
        tags: Sequence[Mapping[str, Any]] | None = None,
    ) -> "ReceptorSet":
        """Build a set from (x, y) pairs at a common height."""
        if tags is not None and len(tags) != len(points):
            raise ConfigurationError(
                f"Got {len(tags)} tag records for {len(points)} points"
            )
        return cls(
            Receptor(x=float(x), y=float(y), z=z,
                     tags=dict(tags[i]) if tags is not None else {})
            for i, (x, y) in enumerate(points)
        )

    def __len__(self) -> int:
        return len(self._receptors)

    def __iter__(self) -> Iterator[Receptor]:
        return iter(self._receptors)

    def __getitem__(self, index: int) -> Receptor:
        return self._receptors[index]

    @property
    def receptors(self) -> tuple[Receptor, ...]:
        return self._receptors


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

def _segments(links: Sequence[Link]) -> np.ndarray:
    if not links:
        raise ValidationError("Receptor generation needs at least one link")
    return np.array([[ln.x1, ln.y1, ln.x2, ln.y2] for ln in links], dtype=np.float64)


def _require_positive(value: float, name: str) -> None:
    if not (math.isfinite(value) and value > 0.0):
        raise ValidationError(f"{name} must be > 0, got {value}", field=name)


def _inside_roadway(
    px: np.ndarray,
    py: np.ndarray,
    segments: np.ndarray,
    half_widths: np.ndarray,
    block_size: int = 4096,
) -> np.ndarray:
    inside = np.zeros(px.shape[0], dtype=bool)
    for start in range(0, px.shape[0], block_size):
        stop = start + block_size
        d = point_segment_distance(
            px[start:stop], py[start:stop],
            segments[:, 0], segments[:, 1], segments[:, 2], segments[:, 3],
        )
        inside[start:stop] = np.any(d < half_widths[None, :], axis=1)
    return inside


def grid_receptors(
    links: Sequence[Link],
    resolution: float,
    max_distance: float,
    exclude_roadway: bool = True,
    z: float = 0.0,
) -> ReceptorSet:
    """Cartesian grid of receptors around the links.

    The lattice is anchored on multiples of *resolution* and covers the
    links' bounding box expanded by *max_distance*. Points farther than
    *max_distance* from every link are dropped, as are points on a
    roadway (closer than half its width) when *exclude_roadway* is set.

    Parameters
    ----------
    links : sequence of Link
    resolution : float
        Lattice spacing (m).
    max_distance : float
        Buffer distance (m) around the link centrelines.
    exclude_roadway : bool
        Drop points lying on a roadway.
    z : float
        Receptor height (m).

    Returns
    -------
    ReceptorSet
        Points in row-major order (south to north, west to east).

    Raises
    ------
    ValidationError
        On empty *links* or non-positive *resolution* / *max_distance*.
    """
    segments = _segments(links)
    _require_positive(resolution, "resolution")
    _require_positive(max_distance, "max_distance")

    xmin = min(segments[:, 0].min(), segments[:, 2].min()) - max_distance
    xmax = max(segments[:, 0].max(), segments[:, 2].max()) + max_distance
    ymin = min(segments[:, 1].min(), segments[:, 3].min()) - max_distance
    ymax = max(segments[:, 1].max(), segments[:, 3].max()) + max_distance

    x0 = math.floor(xmin / resolution) * resolution
    y0 = math.floor(ymin / resolution) * resolution
    nx = int(math.floor((xmax - x0) / resolution)) + 1
    ny = int(math.floor((ymax - y0) / resolution)) + 1
    xs = x0 + resolution * np.arange(nx)
    ys = y0 + resolution * np.arange(ny)

    gx, gy = np.meshgrid(xs, ys)
    px, py = gx.ravel(), gy.ravel()

    dist = nearest_distance(px, py, segments)
    keep = dist <= max_distance
    if exclude_roadway:
        half_widths = np.array([ln.width / 2.0 for ln in links], dtype=np.float64)
        keep &= ~_inside_roadway(px, py, segments, half_widths)

    logger.debug(
        "Grid receptors: %d of %d lattice points kept (resolution %.1f m, buffer %.1f m)",
        int(np.count_nonzero(keep)), px.size, resolution, max_distance,
    )
    if not np.any(keep):
        raise ConfigurationError("Grid generation produced no receptors")

    return ReceptorSet(
        Receptor(x=float(x), y=float(y), z=z, distance=float(d))
        for x, y, d in zip(px[keep], py[keep], dist[keep])
    )


def ring_receptors(
    links: Sequence[Link],
    distances: Sequence[float],
    spacing: float = 25.0,
    z: float = 0.0,
) -> ReceptorSet:
    """Receptors at fixed perpendicular distances from the links.

    For each distance, points are placed on both sides of every link at
    that offset from the centreline, every *spacing* metres along the
    link. Points that fall closer than the distance to some other link
    are dropped, so each ring follows the outline of the whole network.

    Returns
    -------
    ReceptorSet
        Ordered by distance, then link, then position along the link
        (left side before right side). Each receptor carries
        ``distance`` and a ``{"ring": distance}`` tag.

    Raises
    ------
    ValidationError
        On empty *links*, an empty *distances* list, or a non-positive
        distance or spacing.
    """
    segments = _segments(links)
    _require_positive(spacing, "spacing")
    distances = [float(d) for d in distances]
    if not distances:
        raise ValidationError("At least one ring distance is required", field="distances")
    for d in distances:
        _require_positive(d, "distance")

    receptors: list[Receptor] = []
    for d in distances:
        px_all, py_all = [], []
        for x1, y1, x2, y2 in segments:
            length = math.hypot(x2 - x1, y2 - y1)
            if length == 0.0:
                continue
            n = max(1, math.ceil(length / spacing))
            frac = (np.arange(n) + 0.5) / n
            cx = x1 + frac * (x2 - x1)
            cy = y1 + frac * (y2 - y1)
            # Left-hand normal of the link direction
            nx_, ny_ = -(y2 - y1) / length, (x2 - x1) / length
            px_all.append(np.column_stack((cx + d * nx_, cx - d * nx_)).ravel())
            py_all.append(np.column_stack((cy + d * ny_, cy - d * ny_)).ravel())

        px = np.concatenate(px_all)
        py = np.concatenate(py_all)
        nearest = nearest_distance(px, py, segments)
        keep = nearest >= d * (1.0 - 1e-9)

        receptors.extend(
            Receptor(x=float(x), y=float(y), z=z, distance=d, tags={"ring": d})
            for x, y in zip(px[keep], py[keep])
        )
        logger.debug("Ring %.1f m: %d of %d candidates kept", d, int(keep.sum()), px.size)

    if not receptors:
        raise ConfigurationError("Ring generation produced no receptors")
    return ReceptorSet(receptors)
