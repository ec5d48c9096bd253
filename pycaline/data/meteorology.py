"""Validated hourly meteorology table.

Raw records are validated row by row, adjusted for the site class and
stored as contiguous numpy arrays for the engine. Calm hours (wind speed
at or below the calm threshold) are accepted and flagged; one diagnostic
per table summarises them.
"""

from __future__ import annotations

import logging
import math
import warnings
from datetime import datetime
from typing import Any, Iterable, Iterator, Mapping, Optional

import numpy as np

from pycaline.core.models import (
    ConfigurationError,
    DegradedConditionWarning,
    MeteorologicalCondition,
    SiteClass,
    StabilityClass,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_CALM_THRESHOLD = 1.0  # m/s

# Record keys, in the order of a positional tuple record
_FIELDS = ("timestamp", "wind_speed", "wind_bearing", "stability_class", "mixing_height")

# Urban roughness and heat keep the surface layer from becoming strongly
# stable: E and F are treated as neutral.
_URBAN_ADJUSTMENT = {
    StabilityClass.E: StabilityClass.D,
    StabilityClass.F: StabilityClass.D,
}


def _get(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        if name in record:
            return record[name]
        if name == "stability_class" and "stability" in record:
            return record["stability"]
        return None
    if isinstance(record, (tuple, list)):
        idx = _FIELDS.index(name)
        return record[idx] if idx < len(record) else None
    if name == "stability_class" and not hasattr(record, name):
        return getattr(record, "stability", None)
    return getattr(record, name, None)


def _parse_float(value: Any, index: int, field: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Cannot parse number '{value}'", index=index, field=field,
        ) from None
    if not math.isfinite(result):
        raise ValidationError(f"Non-finite value {result}", index=index, field=field)
    return result


def validate_record(
    record: Any,
    index: int,
    site_class: SiteClass = SiteClass.URBAN,
    calm_threshold: float = DEFAULT_CALM_THRESHOLD,
) -> MeteorologicalCondition:
    """Validate one raw record and build a MeteorologicalCondition.

    Raises
    ------
    ValidationError
        On an unknown stability class, non-positive mixing height,
        negative wind speed, or any missing / non-numeric field.
    """
    raw_class = _get(record, "stability_class")
    try:
        stability = StabilityClass.parse(raw_class)
    except ValueError:
        raise ValidationError(
            f"Stability class '{raw_class}' is not one of A-F",
            index=index, field="stability_class",
        ) from None

    wind_speed = _parse_float(_get(record, "wind_speed"), index, "wind_speed")
    if wind_speed < 0.0:
        raise ValidationError(
            f"Wind speed must be >= 0, got {wind_speed}", index=index, field="wind_speed",
        )

    bearing = _parse_float(_get(record, "wind_bearing"), index, "wind_bearing") % 360.0

    mixing_height = _parse_float(_get(record, "mixing_height"), index, "mixing_height")
    if mixing_height <= 0.0:
        raise ValidationError(
            f"Mixing height must be > 0, got {mixing_height}",
            index=index, field="mixing_height",
        )

    if site_class is SiteClass.URBAN:
        stability = _URBAN_ADJUSTMENT.get(stability, stability)

    timestamp = _get(record, "timestamp")
    if timestamp is not None and not isinstance(timestamp, datetime):
        try:
            timestamp = datetime.fromisoformat(str(timestamp))
        except ValueError:
            raise ValidationError(
                f"Cannot parse timestamp '{timestamp}'", index=index, field="timestamp",
            ) from None

    return MeteorologicalCondition(
        timestamp=timestamp,
        wind_speed=wind_speed,
        wind_bearing=bearing,
        stability=stability,
        mixing_height=mixing_height,
        calm=wind_speed <= calm_threshold,
    )


class MeteorologyTable:
    """Ordered, immutable sequence of validated hourly conditions.

    Use :meth:`from_records` to build a table from raw rows. Slicing and
    :meth:`sample` return new tables; the arrays are never modified.

    Parameters
    ----------
    conditions : iterable of MeteorologicalCondition
        Already-validated rows.
    site_class : SiteClass
        Site class the rows were adjusted for.
    calm_threshold : float
        Calm threshold the rows were flagged against (m/s).
    """

    def __init__(
        self,
        conditions: Iterable[MeteorologicalCondition],
        site_class: SiteClass = SiteClass.URBAN,
        calm_threshold: float = DEFAULT_CALM_THRESHOLD,
    ) -> None:
        self._conditions = tuple(conditions)
        self.site_class = site_class
        self.calm_threshold = calm_threshold
        # Set once the calm diagnostic has been issued for these rows
        self.calm_reported = False

        rows = self._conditions
        for i, condition in enumerate(rows):
            condition.validate(index=i)
        self.wind_speed = np.array([c.wind_speed for c in rows], dtype=np.float64)
        self.wind_bearing = np.array([c.wind_bearing for c in rows], dtype=np.float64)
        self.stability = np.array([int(c.stability) for c in rows], dtype=np.int8)
        self.mixing_height = np.array([c.mixing_height for c in rows], dtype=np.float64)
        self.calm = np.array([c.calm for c in rows], dtype=bool)
        for arr in (self.wind_speed, self.wind_bearing, self.stability,
                    self.mixing_height, self.calm):
            arr.setflags(write=False)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Any],
        site_class: SiteClass | str = SiteClass.URBAN,
        calm_threshold: float = DEFAULT_CALM_THRESHOLD,
    ) -> "MeteorologyTable":
        """Validate raw hourly records into a table.

        Each record is a mapping, a positional tuple
        ``(timestamp, wind_speed, wind_bearing, stability_class,
        mixing_height)`` or an object with those attributes.

        Raises
        ------
        ValidationError
            For the first offending row; no partial table is returned.
        """
        site = SiteClass.parse(site_class)
        conditions = [
            validate_record(rec, i, site_class=site, calm_threshold=calm_threshold)
            for i, rec in enumerate(records)
        ]
        table = cls(conditions, site_class=site, calm_threshold=calm_threshold)
        logger.debug(
            "Validated %d meteorology rows (%s site)", len(table), site.value,
        )
        report_calm_hours(table.calm, table.calm_threshold, context="meteorology table")
        table.calm_reported = True
        return table

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._conditions)

    def __iter__(self) -> Iterator[MeteorologicalCondition]:
        return iter(self._conditions)

    def __getitem__(self, key):
        if isinstance(key, slice):
            return self._subset(range(len(self))[key])
        return self._conditions[key]

    def _subset(self, indices: Iterable[int]) -> "MeteorologyTable":
        subset = MeteorologyTable(
            (self._conditions[i] for i in indices),
            site_class=self.site_class,
            calm_threshold=self.calm_threshold,
        )
        subset.calm_reported = self.calm_reported
        return subset

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def conditions(self) -> tuple[MeteorologicalCondition, ...]:
        return self._conditions

    @property
    def timestamps(self) -> tuple[Optional[datetime], ...]:
        return tuple(c.timestamp for c in self._conditions)

    @property
    def calm_fraction(self) -> float:
        if len(self) == 0:
            return 0.0
        return float(np.mean(self.calm))

    def sample(self, n: int, seed: int | None = None) -> "MeteorologyTable":
        """Random subset of *n* rows, kept in their original order.

        Intended for fast exploratory runs; the same seed always yields the
        same subset.
        """
        if n >= len(self):
            return self
        if n < 1:
            raise ConfigurationError(f"Sample size must be >= 1, got {n}")
        rng = np.random.default_rng(seed)
        picked = np.sort(rng.choice(len(self), size=n, replace=False))
        return self._subset(int(i) for i in picked)


def report_calm_hours(calm: np.ndarray, threshold: float, context: str) -> None:
    """Emit a single calm-hour diagnostic for a batch, if any row is calm."""
    n_calm = int(np.count_nonzero(calm))
    if n_calm == 0:
        return
    fraction = n_calm / len(calm)
    message = (
        f"{context}: {n_calm} of {len(calm)} hours ({fraction:.1%}) at or below "
        f"the {threshold} m/s calm threshold; evaluated at {threshold} m/s"
    )
    logger.warning(message)
    warnings.warn(message, DegradedConditionWarning, stacklevel=3)
