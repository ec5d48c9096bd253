"""Model inputs: links, meteorology, receptors and settings."""

from pycaline.data.config_parser import load_settings, parse_settings, write_settings
from pycaline.data.links import FieldBinding, LinkSegmenter, Polyline
from pycaline.data.meteorology import MeteorologyTable
from pycaline.data.receptors import ReceptorSet, grid_receptors, ring_receptors

__all__ = [
    # Settings
    'load_settings',
    'parse_settings',
    'write_settings',
    # Links
    'FieldBinding',
    'LinkSegmenter',
    'Polyline',
    # Meteorology
    'MeteorologyTable',
    # Receptors
    'ReceptorSet',
    'grid_receptors',
    'ring_receptors',
]
