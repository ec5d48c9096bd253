"""pycaline - CALINE3 roadway line-source dispersion model.

Predicts ground-level pollutant concentrations downwind of roadway links
with a steady-state Gaussian plume formulation, over any number of hourly
meteorological conditions and receptors.

Package Structure:
    core/       - Data model, exceptions and the dispersion engine
    physics/    - Dispersion coefficients and the finite line source kernel
    data/       - Link segmentation, meteorology, receptors, settings
    utils/      - Geometry helpers
    compute/    - Chunked sequential / multiprocessing execution
    analysis/   - Aggregation and unit conversion
"""

__version__ = "0.1.0"

# Core
from pycaline.core.models import (
    CARBON_MONOXIDE,
    FINE_PARTICULATE,
    NITROGEN_DIOXIDE,
    AggregatedStatistics,
    ConcentrationMatrix,
    ConcentrationUnit,
    ConfigParseError,
    ConfigurationError,
    DegradedConditionWarning,
    EvaluationTimeoutError,
    Link,
    MeteorologicalCondition,
    ModelConfig,
    Pollutant,
    PyCalineError,
    Receptor,
    SiteClass,
    StabilityClass,
    Terrain,
    ValidationError,
)
from pycaline.core.engine import DispersionEngine, evaluate

# Data
from pycaline.data.config_parser import load_settings, parse_settings, write_settings
from pycaline.data.links import FieldBinding, LinkSegmenter, Polyline
from pycaline.data.meteorology import MeteorologyTable
from pycaline.data.receptors import ReceptorSet, grid_receptors, ring_receptors

# Compute
from pycaline.compute.batch_processor import BatchProcessor
from pycaline.compute.parallel import ParallelExecutor

# Analysis
from pycaline.analysis.aggregation import ConcentrationAggregator
from pycaline.analysis.units import conversion_factor

__all__ = [
    # Core - Engine
    'DispersionEngine',
    'evaluate',
    # Core - Models
    'AggregatedStatistics',
    'ConcentrationMatrix',
    'ConcentrationUnit',
    'Link',
    'MeteorologicalCondition',
    'ModelConfig',
    'Pollutant',
    'Receptor',
    'SiteClass',
    'StabilityClass',
    'Terrain',
    'CARBON_MONOXIDE',
    'FINE_PARTICULATE',
    'NITROGEN_DIOXIDE',
    # Core - Exceptions
    'ConfigParseError',
    'ConfigurationError',
    'DegradedConditionWarning',
    'EvaluationTimeoutError',
    'PyCalineError',
    'ValidationError',
    # Data
    'FieldBinding',
    'LinkSegmenter',
    'MeteorologyTable',
    'Polyline',
    'ReceptorSet',
    'grid_receptors',
    'load_settings',
    'parse_settings',
    'ring_receptors',
    'write_settings',
    # Compute
    'BatchProcessor',
    'ParallelExecutor',
    # Analysis
    'ConcentrationAggregator',
    'conversion_factor',
]
