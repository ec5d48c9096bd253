"""Dispersion physics for roadway line sources."""

from pycaline.physics.dispersion import sigma_y, sigma_z
from pycaline.physics.plume import PlumeKernel, reflection_factor

__all__ = [
    'PlumeKernel',
    'reflection_factor',
    'sigma_y',
    'sigma_z',
]
