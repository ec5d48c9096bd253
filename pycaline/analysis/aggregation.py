"""Reduction of a concentration matrix to per-receptor statistics.

Statistics are taken over the condition axis (rows) for every receptor
column. The minimum, mean, median and maximum are always computed; extra
reducers can be requested by name or supplied as callables.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence, Union

import numpy as np

from pycaline.analysis.units import convert_values
from pycaline.core.models import (
    AggregatedStatistics,
    ConcentrationMatrix,
    ConcentrationUnit,
    ConfigurationError,
    Pollutant,
    Receptor,
)

logger = logging.getLogger(__name__)

# A reducer maps a (conditions, receptors) array to one value per receptor
Reducer = Callable[[np.ndarray], np.ndarray]

BUILTIN_REDUCERS: dict[str, Reducer] = {
    "std": lambda v: np.std(v, axis=0),
    "p95": lambda v: np.percentile(v, 95.0, axis=0),
    "p99": lambda v: np.percentile(v, 99.0, axis=0),
    "hours_nonzero": lambda v: np.count_nonzero(v > 0.0, axis=0).astype(np.float64),
}


class ConcentrationAggregator:
    """Per-receptor summary statistics over the condition axis.

    Parameters
    ----------
    statistics : sequence of names, or mapping of name to reducer
        Extra statistics. Names refer to :data:`BUILTIN_REDUCERS`; a
        mapping may mix such names (value ``None``) with callables.

    Raises
    ------
    ConfigurationError
        If a requested name is not a built-in reducer.
    """

    def __init__(
        self,
        statistics: Union[Sequence[str], Mapping[str, Reducer | None], None] = None,
    ) -> None:
        self.reducers: dict[str, Reducer] = {}
        if statistics is None:
            return
        items = (statistics.items() if isinstance(statistics, Mapping)
                 else ((name, None) for name in statistics))
        for name, reducer in items:
            if reducer is None:
                if name not in BUILTIN_REDUCERS:
                    raise ConfigurationError(
                        f"Unknown statistic '{name}'; built-ins are "
                        f"{', '.join(sorted(BUILTIN_REDUCERS))}"
                    )
                reducer = BUILTIN_REDUCERS[name]
            self.reducers[name] = reducer

    def aggregate(self, matrix: ConcentrationMatrix) -> list[AggregatedStatistics]:
        """One statistics record per receptor column.

        Raises
        ------
        ConfigurationError
            If the matrix has no rows.
        """
        values = np.asarray(matrix.values, dtype=np.float64)
        if values.ndim != 2 or values.shape[0] == 0:
            raise ConfigurationError(
                f"Cannot aggregate a matrix of shape {values.shape}; need >= 1 condition"
            )
        n_rec = values.shape[1]

        mins = values.min(axis=0)
        means = values.mean(axis=0)
        medians = np.median(values, axis=0)
        maxs = values.max(axis=0)
        # Guard against the mean drifting outside [min, max] by rounding
        means = np.clip(means, mins, maxs)

        extras = {}
        for name, reducer in self.reducers.items():
            result = np.asarray(reducer(values), dtype=np.float64)
            if result.shape != (n_rec,):
                raise ConfigurationError(
                    f"Statistic '{name}' returned shape {result.shape}, expected ({n_rec},)"
                )
            extras[name] = result

        receptors: Sequence[Receptor] = matrix.receptors or ()
        records = []
        for j in range(n_rec):
            rec = receptors[j] if j < len(receptors) else None
            records.append(AggregatedStatistics(
                receptor_index=j,
                x=rec.x if rec is not None else float("nan"),
                y=rec.y if rec is not None else float("nan"),
                min=float(mins[j]),
                mean=float(means[j]),
                median=float(medians[j]),
                max=float(maxs[j]),
                units=matrix.units,
                distance=rec.distance if rec is not None else None,
                tags=dict(rec.tags) if rec is not None else {},
                extra={name: float(arr[j]) for name, arr in extras.items()},
            ))

        logger.debug(
            "Aggregated %d conditions into %d receptor records", values.shape[0], n_rec,
        )
        return records

    @staticmethod
    def convert(
        matrix: ConcentrationMatrix,
        from_unit: ConcentrationUnit | str,
        to_unit: ConcentrationUnit | str,
        pollutant: Pollutant | None = None,
    ) -> ConcentrationMatrix:
        """Return a new matrix in *to_unit*; *matrix* is left untouched.

        Raises
        ------
        ConfigurationError
            If *from_unit* does not match the matrix, a unit is unknown, or
            a molecular weight is required but missing.
        """
        src = ConcentrationUnit.parse(from_unit)
        if src is not matrix.units:
            raise ConfigurationError(
                f"Matrix is in {matrix.units.value}, not {src.value}"
            )
        dst = ConcentrationUnit.parse(to_unit)
        return ConcentrationMatrix(
            values=convert_values(matrix.values, src, dst, pollutant),
            units=dst,
            calm=matrix.calm.copy(),
            timestamps=matrix.timestamps,
            receptors=matrix.receptors,
        )

    @staticmethod
    def bind(
        statistics: Sequence[AggregatedStatistics],
        receptors: Sequence[Receptor],
    ) -> list[dict[str, Any]]:
        """Join statistics with receptor coordinates and tags, by position.

        Returns
        -------
        list[dict]
            One flat record per receptor: coordinates, distance, tags,
            then the statistics.

        Raises
        ------
        ConfigurationError
            If the two sequences differ in length.
        """
        receptors = list(receptors)
        if len(statistics) != len(receptors):
            raise ConfigurationError(
                f"Cannot bind {len(statistics)} statistics to {len(receptors)} receptors"
            )
        records = []
        for stat, rec in zip(statistics, receptors):
            row: dict[str, Any] = {
                "receptor": stat.receptor_index,
                "x": rec.x,
                "y": rec.y,
                "z": rec.z,
                "distance": rec.distance,
            }
            row.update(rec.tags)
            row.update({
                "min": stat.min,
                "mean": stat.mean,
                "median": stat.median,
                "max": stat.max,
                "units": stat.units.value,
            })
            row.update(stat.extra)
            records.append(row)
        return records
