"""Planar geometry helpers.

Rotation into the wind-aligned frame and point-to-segment distances, all
vectorised over numpy arrays. Coordinates are metres in a projected
system with x = East and y = North.
"""

from __future__ import annotations

import numpy as np


class WindFrame:
    """Static methods for the wind-aligned coordinate frame.

    Bearings use the meteorological convention: the direction the wind
    blows FROM, clockwise from North. In the wind frame +x points downwind
    and +y points to the left of the downwind direction.
    """

    @staticmethod
    def unit_vectors(wind_bearing: float) -> tuple[np.ndarray, np.ndarray]:
        """Return the (downwind, crosswind) unit vectors in (east, north).

        Parameters
        ----------
        wind_bearing : float
            Direction the wind blows from (degrees).

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            Two arrays of shape (2,).
        """
        toward = np.radians((wind_bearing + 180.0) % 360.0)
        downwind = np.array([np.sin(toward), np.cos(toward)])
        crosswind = np.array([-downwind[1], downwind[0]])
        return downwind, crosswind

    @staticmethod
    def rotate(
        dx: np.ndarray,
        dy: np.ndarray,
        wind_bearing: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Project offsets onto the wind frame.

        Parameters
        ----------
        dx, dy : np.ndarray
            East and north offsets (m) of a point relative to an origin.
        wind_bearing : float
            Direction the wind blows from (degrees).

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            (downwind, crosswind) distances (m).
        """
        downwind, crosswind = WindFrame.unit_vectors(wind_bearing)
        along = dx * downwind[0] + dy * downwind[1]
        across = dx * crosswind[0] + dy * crosswind[1]
        return along, across


def point_segment_distance(
    px: np.ndarray,
    py: np.ndarray,
    x1: np.ndarray,
    y1: np.ndarray,
    x2: np.ndarray,
    y2: np.ndarray,
) -> np.ndarray:
    """Euclidean distance from every point to every segment.

    Parameters
    ----------
    px, py : np.ndarray
        Point coordinates, shape (P,).
    x1, y1, x2, y2 : np.ndarray
        Segment endpoints, shape (S,).

    Returns
    -------
    np.ndarray
        Distances, shape (P, S).
    """
    px = np.asarray(px, dtype=np.float64)[:, None]
    py = np.asarray(py, dtype=np.float64)[:, None]
    x1 = np.asarray(x1, dtype=np.float64)[None, :]
    y1 = np.asarray(y1, dtype=np.float64)[None, :]
    sx = np.asarray(x2, dtype=np.float64)[None, :] - x1
    sy = np.asarray(y2, dtype=np.float64)[None, :] - y1

    length_sq = sx * sx + sy * sy
    # Degenerate segments collapse to their first endpoint
    safe = np.where(length_sq > 0.0, length_sq, 1.0)
    t = ((px - x1) * sx + (py - y1) * sy) / safe
    t = np.where(length_sq > 0.0, np.clip(t, 0.0, 1.0), 0.0)

    return np.hypot(px - (x1 + t * sx), py - (y1 + t * sy))


def nearest_distance(
    px: np.ndarray,
    py: np.ndarray,
    segments: np.ndarray,
    block_size: int = 4096,
) -> np.ndarray:
    """Distance from each point to the nearest of *segments*.

    Parameters
    ----------
    px, py : np.ndarray
        Point coordinates, shape (P,).
    segments : np.ndarray
        Segment endpoints as rows ``(x1, y1, x2, y2)``, shape (S, 4).
    block_size : int
        Points processed per block to bound the (P, S) working array.

    Returns
    -------
    np.ndarray
        Shape (P,).
    """
    px = np.asarray(px, dtype=np.float64)
    py = np.asarray(py, dtype=np.float64)
    out = np.empty(px.shape[0], dtype=np.float64)
    for start in range(0, px.shape[0], block_size):
        stop = start + block_size
        d = point_segment_distance(
            px[start:stop], py[start:stop],
            segments[:, 0], segments[:, 1], segments[:, 2], segments[:, 3],
        )
        out[start:stop] = d.min(axis=1)
    return out
