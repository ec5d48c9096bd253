"""Core data models and custom exceptions for pycaline.

Defines the value objects consumed by the dispersion engine (links,
receptors, meteorological conditions, terrain, pollutant), the engine
settings, the concentration matrix produced by a run, and all custom
exception types used throughout the package.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional

import numpy as np

# Metres per statute mile (emission factors are grams per vehicle-mile)
METERS_PER_MILE = 1609.344

# Seconds per hour (traffic volumes are vehicles per hour)
SECONDS_PER_HOUR = 3600.0


# ---------------------------------------------------------------------------
# Custom Exceptions
# ---------------------------------------------------------------------------

class PyCalineError(Exception):
    """Base exception for all pycaline errors."""


class ConfigurationError(PyCalineError):
    """Raised when structurally invalid input is supplied at construction."""


class ConfigParseError(ConfigurationError):
    """Raised when a settings namelist has format errors.

    Attributes:
        line_number: The line number where the error was detected.
        expected: Description of the expected format.
    """

    def __init__(self, message: str, line_number: int | None = None,
                 expected: str | None = None):
        self.line_number = line_number
        self.expected = expected
        parts = [message]
        if line_number is not None:
            parts.append(f"line {line_number}")
        if expected is not None:
            parts.append(f"expected: {expected}")
        super().__init__(" | ".join(parts))


class ValidationError(PyCalineError):
    """Raised when a single input record fails a field-level check.

    Attributes:
        index: Row (or polyline) index of the offending record.
        field: Name of the offending field, if known.
    """

    def __init__(self, message: str, index: int | None = None,
                 field: str | None = None):
        self.index = index
        self.field = field
        parts = [message]
        if index is not None:
            parts.append(f"row {index}")
        if field is not None:
            parts.append(f"field: {field}")
        super().__init__(" | ".join(parts))


class EvaluationTimeoutError(PyCalineError):
    """Raised when a batch exceeds its caller-imposed wall-clock bound."""


class DegradedConditionWarning(UserWarning):
    """Issued when calm hours are evaluated with the substituted wind speed."""


# ---------------------------------------------------------------------------
# Closed variants
# ---------------------------------------------------------------------------

class StabilityClass(IntEnum):
    """Pasquill-Gifford atmospheric stability class (A = most unstable)."""

    A = 1
    B = 2
    C = 3
    D = 4
    E = 5
    F = 6

    @classmethod
    def parse(cls, value: Any) -> "StabilityClass":
        """Parse a letter ``"A"``-``"F"`` or an integer 1-6.

        Raises
        ------
        ValueError
            If *value* does not name a stability class.
        """
        if isinstance(value, StabilityClass):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            if key.isdigit():
                value = int(key)
            else:
                raise ValueError(f"Unknown stability class '{value}'. Use A-F.")
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            if 1 <= int(value) <= 6:
                return cls(int(value))
        raise ValueError(f"Unknown stability class '{value}'. Use A-F.")


class SiteClass(Enum):
    """Site classification used to adjust meteorological inputs."""

    URBAN = "urban"
    RURAL = "rural"

    @classmethod
    def parse(cls, value: Any) -> "SiteClass":
        if isinstance(value, SiteClass):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown site class '{value}'. Use 'urban' or 'rural'."
            ) from None


class ConcentrationUnit(Enum):
    """Concentration units understood by the aggregator.

    The value is the display label. Mass units carry their factor relative
    to g/m3; mixing-ratio units require a molecular weight.
    """

    G_M3 = "g/m3"
    MG_M3 = "mg/m3"
    UG_M3 = "ug/m3"
    PPM = "ppm"
    PPB = "ppb"

    @classmethod
    def parse(cls, value: Any) -> "ConcentrationUnit":
        if isinstance(value, ConcentrationUnit):
            return value
        label = str(value).strip().lower().replace("µ", "u").replace("³", "3")
        for unit in cls:
            if unit.value == label:
                return unit
        raise ConfigurationError(
            f"Unknown concentration unit '{value}'",
        )

    @property
    def is_mixing_ratio(self) -> bool:
        return self in (ConcentrationUnit.PPM, ConcentrationUnit.PPB)


# ---------------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Link:
    """A straight, uniform-attribute roadway line source.

    Attributes
    ----------
    x1, y1, x2, y2 : float
        Endpoint coordinates (m) in a projected planar system.
    width : float
        Roadway width (m), > 0.
    volume : float
        Traffic volume (vehicles/hour), >= 0.
    emission_factor : float
        Emission factor (grams per vehicle-mile), >= 0.
    name : str, optional
        Free-form identifier carried through for reporting.
    """
    x1: float
    y1: float
    x2: float
    y2: float
    width: float
    volume: float
    emission_factor: float
    name: Optional[str] = None

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    @property
    def bearing(self) -> float:
        """Compass bearing from the first to the second endpoint (degrees)."""
        return math.degrees(math.atan2(self.x2 - self.x1, self.y2 - self.y1)) % 360.0

    @property
    def source_strength(self) -> float:
        """Line source strength in g/m/s."""
        return self.volume * self.emission_factor / METERS_PER_MILE / SECONDS_PER_HOUR

    def scaled(self, volume: float | None = None,
               emission_factor: float | None = None) -> "Link":
        """Return a copy with new traffic attributes; the original is untouched."""
        return Link(
            x1=self.x1, y1=self.y1, x2=self.x2, y2=self.y2,
            width=self.width,
            volume=self.volume if volume is None else volume,
            emission_factor=(self.emission_factor if emission_factor is None
                             else emission_factor),
            name=self.name,
        )

    def validate(self, index: int | None = None) -> None:
        """Check the geometric and traffic invariants of this link.

        Raises
        ------
        ConfigurationError
            On a non-finite coordinate, zero length, non-positive width or
            negative/non-finite traffic attribute.
        """
        label = f"link {index}" if index is not None else "link"
        coords = (self.x1, self.y1, self.x2, self.y2)
        if not all(math.isfinite(c) for c in coords):
            raise ConfigurationError(f"{label} has a non-finite coordinate: {coords}")
        if self.length <= 0.0:
            raise ConfigurationError(f"{label} has zero length")
        if not (math.isfinite(self.width) and self.width > 0.0):
            raise ConfigurationError(f"{label} width must be > 0, got {self.width}")
        for name in ("volume", "emission_factor"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value >= 0.0):
                raise ConfigurationError(f"{label} {name} must be >= 0, got {value}")


@dataclass(frozen=True)
class Receptor:
    """A point at which concentration is predicted.

    ``distance`` and ``tags`` are metadata carried through to the
    aggregated output; the engine reads only the coordinates.
    """
    x: float
    y: float
    z: float = 0.0
    distance: Optional[float] = None
    tags: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MeteorologicalCondition:
    """One hourly meteorological record; see :meth:`validate`."""
    timestamp: Optional[datetime]
    wind_speed: float          # m/s
    wind_bearing: float        # degrees, direction the wind blows FROM
    stability: StabilityClass
    mixing_height: float       # m
    calm: bool = False

    def validate(self, index: int | None = None) -> None:
        """Check the field invariants of this condition.

        Raises
        ------
        ValidationError
            On a non-StabilityClass stability, a negative or non-finite
            wind speed, a non-finite bearing, or a mixing height that is
            not finite and > 0.
        """
        if not isinstance(self.stability, StabilityClass):
            raise ValidationError(
                f"Stability class '{self.stability}' is not one of A-F",
                index=index, field="stability_class",
            )
        if not (math.isfinite(self.wind_speed) and self.wind_speed >= 0.0):
            raise ValidationError(
                f"Wind speed must be finite and >= 0, got {self.wind_speed}",
                index=index, field="wind_speed",
            )
        if not math.isfinite(self.wind_bearing):
            raise ValidationError(
                f"Non-finite value {self.wind_bearing}", index=index, field="wind_bearing",
            )
        if not (math.isfinite(self.mixing_height) and self.mixing_height > 0.0):
            raise ValidationError(
                f"Mixing height must be finite and > 0, got {self.mixing_height}",
                index=index, field="mixing_height",
            )


@dataclass(frozen=True)
class Terrain:
    """Surface description: a single roughness length (m)."""
    surface_roughness: float

    def validate(self) -> None:
        if not (math.isfinite(self.surface_roughness) and self.surface_roughness > 0.0):
            raise ConfigurationError(
                f"surface roughness must be > 0 m, got {self.surface_roughness}"
            )


@dataclass(frozen=True)
class Pollutant:
    """Pollutant identity; molecular weight (g/mol) is needed only for ppm/ppb."""
    name: str
    molecular_weight: Optional[float] = None


CARBON_MONOXIDE = Pollutant("CO", molecular_weight=28.01)
NITROGEN_DIOXIDE = Pollutant("NO2", molecular_weight=46.01)
FINE_PARTICULATE = Pollutant("PM2.5")


@dataclass(frozen=True)
class ModelConfig:
    """Engine settings.

    Attributes
    ----------
    calm_threshold : float
        Wind speed (m/s) at or below which an hour is calm; also the speed
        substituted into the plume normalisation for calm hours.
    averaging_time : float
        Averaging time (minutes) used to scale sigma_y and sigma_z.
    max_element_length : float
        Longest element (m) a link is divided into.
    max_elements_per_link : int
        Upper bound on the element count of a single link.
    reflection_tolerance : float
        Image-source terms smaller than this end the reflection series.
    max_reflections : int
        Image-source pairs summed before the well-mixed limit is used.
    receptor_block_size : int
        Receptors evaluated together in one vectorised block.
    num_workers : int or None
        Parallel workers; ``None`` means ``os.cpu_count()``.
    chunk_size : int or None
        Conditions per work chunk; ``None`` splits evenly across workers.
    """
    calm_threshold: float = 1.0
    averaging_time: float = 60.0
    max_element_length: float = 25.0
    max_elements_per_link: int = 200
    reflection_tolerance: float = 1e-8
    max_reflections: int = 50
    receptor_block_size: int = 512
    num_workers: Optional[int] = None
    chunk_size: Optional[int] = None

    def validate(self) -> None:
        positive = {
            "calm_threshold": self.calm_threshold,
            "averaging_time": self.averaging_time,
            "max_element_length": self.max_element_length,
            "max_elements_per_link": self.max_elements_per_link,
            "reflection_tolerance": self.reflection_tolerance,
            "max_reflections": self.max_reflections,
            "receptor_block_size": self.receptor_block_size,
        }
        for name, value in positive.items():
            if not (math.isfinite(value) and value > 0):
                raise ConfigurationError(f"{name} must be > 0, got {value}")
        for name in ("num_workers", "chunk_size"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value}")


@dataclass(eq=False)
class ConcentrationMatrix:
    """Dense (conditions x receptors) concentration result.

    Attributes
    ----------
    values : np.ndarray
        Concentrations, shape (M, N).
    units : ConcentrationUnit
        Unit of ``values``.
    calm : np.ndarray
        Boolean mask, shape (M,), True where the row was a calm hour.
    timestamps : tuple
        Timestamp of each row (may contain ``None``).
    receptors : tuple[Receptor, ...]
        The receptors of each column.
    """
    values: np.ndarray
    units: ConcentrationUnit
    calm: np.ndarray
    timestamps: tuple = ()
    receptors: tuple = ()

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape

    @property
    def degraded(self) -> bool:
        """True when any row was evaluated under calm conditions."""
        return bool(np.any(self.calm))


@dataclass(frozen=True)
class AggregatedStatistics:
    """Per-receptor summary over the condition axis."""
    receptor_index: int
    x: float
    y: float
    min: float
    mean: float
    median: float
    max: float
    units: ConcentrationUnit
    distance: Optional[float] = None
    tags: Mapping[str, Any] = field(default_factory=dict)
    extra: Mapping[str, float] = field(default_factory=dict)
