"""Analysis and post-processing modules."""

from pycaline.analysis.aggregation import ConcentrationAggregator
from pycaline.analysis.units import conversion_factor, convert_values

__all__ = [
    'ConcentrationAggregator',
    'conversion_factor',
    'convert_values',
]
