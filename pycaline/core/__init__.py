"""Core data model and dispersion engine."""

from pycaline.core.models import (
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

__all__ = [
    # Engine
    'DispersionEngine',
    'evaluate',
    # Models
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
    # Exceptions
    'ConfigParseError',
    'ConfigurationError',
    'DegradedConditionWarning',
    'EvaluationTimeoutError',
    'PyCalineError',
    'ValidationError',
]
