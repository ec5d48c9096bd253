"""Utility modules."""

from pycaline.utils.geometry import WindFrame, nearest_distance, point_segment_distance

__all__ = [
    'WindFrame',
    'nearest_distance',
    'point_segment_distance',
]
