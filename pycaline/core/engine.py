"""DispersionEngine: batch evaluation of roadway plumes.

Validates the link set, receptors, terrain and settings once at
construction, builds the element decomposition, and evaluates any number
of meteorological conditions into a dense (conditions x receptors)
concentration matrix.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from pycaline.analysis.units import convert_values
from pycaline.compute.batch_processor import BatchProcessor
from pycaline.core.models import (
    ConcentrationMatrix,
    ConcentrationUnit,
    ConfigurationError,
    Link,
    MeteorologicalCondition,
    ModelConfig,
    Pollutant,
    Receptor,
    Terrain,
)
from pycaline.data.meteorology import MeteorologyTable, report_calm_hours
from pycaline.data.receptors import ReceptorSet
from pycaline.physics.plume import PlumeKernel

logger = logging.getLogger(__name__)

Conditions = Union[MeteorologyTable, Sequence[MeteorologicalCondition]]


class DispersionEngine:
    """CALINE3 line-source dispersion engine.

    Parameters
    ----------
    links : sequence of Link
        Line sources; read-only for the lifetime of the engine.
    receptors : ReceptorSet or sequence of Receptor
        Points to evaluate.
    terrain : Terrain
        Surface roughness.
    pollutant : Pollutant
        Pollutant (molecular weight needed only for ppm / ppb output).
    config : ModelConfig, optional
        Engine settings; defaults to ``ModelConfig()``.
    processor : BatchProcessor, optional
        Execution strategy; defaults to one built from *config*.

    Raises
    ------
    ConfigurationError
        On an empty link or receptor set, malformed geometry, non-positive
        width or roughness, or invalid settings.
    """

    def __init__(
        self,
        links: Sequence[Link],
        receptors: Union[ReceptorSet, Iterable[Receptor]],
        terrain: Terrain,
        pollutant: Pollutant,
        config: Optional[ModelConfig] = None,
        processor: Optional[BatchProcessor] = None,
    ) -> None:
        self.config = config or ModelConfig()
        self.config.validate()

        self.links = tuple(links)
        if not self.links:
            raise ConfigurationError("Link set is empty")
        for i, link in enumerate(self.links):
            link.validate(index=i)

        terrain.validate()
        self.terrain = terrain
        self.pollutant = pollutant

        self.receptors = receptors if isinstance(receptors, ReceptorSet) else ReceptorSet(receptors)

        self.kernel = PlumeKernel.from_links(self.links, terrain, self.config)
        self.processor = processor or BatchProcessor(
            num_workers=self.config.num_workers,
            chunk_size=self.config.chunk_size,
        )

        logger.debug(
            "Engine ready: %d links -> %d elements, %d receptors, roughness %.3g m",
            len(self.links), self.kernel.num_elements, len(self.receptors),
            terrain.surface_roughness,
        )

    def _as_table(self, conditions: Conditions) -> MeteorologyTable:
        if isinstance(conditions, MeteorologyTable):
            table = conditions
        else:
            table = MeteorologyTable(conditions, calm_threshold=self.config.calm_threshold)
        if len(table) == 0:
            raise ConfigurationError("No meteorological conditions to evaluate")
        return table

    def evaluate(
        self,
        conditions: Conditions,
        units: ConcentrationUnit | str = ConcentrationUnit.G_M3,
        strategy: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ConcentrationMatrix:
        """Concentration at every receptor under every condition.

        Parameters
        ----------
        conditions : MeteorologyTable or sequence of MeteorologicalCondition
            The full table or any subset (see ``MeteorologyTable.sample``).
        units : ConcentrationUnit or str
            Output unit.
        strategy : str, optional
            Force 'sequential' or 'parallel' execution.
        timeout : float, optional
            Wall-clock bound (s) on the batch.

        Returns
        -------
        ConcentrationMatrix
            Shape (len(conditions), len(receptors)). Rows evaluated under
            calm winds are flagged in ``calm``.

        Raises
        ------
        ConfigurationError
            On an empty condition set, an unknown unit, or a mixing-ratio
            unit without a molecular weight. Raised before any computation.
        ValidationError
            If a condition has a non-finite field, a negative wind speed
            or a mixing height <= 0.
        EvaluationTimeoutError
            If *timeout* expires; no partial matrix is returned.
        """
        table = self._as_table(conditions)
        out_units = ConcentrationUnit.parse(units)
        # Fail on a missing molecular weight before the batch runs
        convert_values(np.zeros(1), ConcentrationUnit.G_M3, out_units, self.pollutant)

        # Calm flags are re-derived against this engine's threshold
        calm = np.asarray(table.wind_speed) <= self.config.calm_threshold
        if not (table.calm_reported and table.calm_threshold == self.config.calm_threshold):
            report_calm_hours(calm, self.config.calm_threshold, context="dispersion batch")

        rec = self.receptors
        values = self.processor.process(
            self.kernel,
            table.wind_speed, table.wind_bearing, table.stability, table.mixing_height,
            rec.x, rec.y, rec.z,
            strategy=strategy,
            timeout=timeout,
        )
        if out_units is not ConcentrationUnit.G_M3:
            values = convert_values(values, ConcentrationUnit.G_M3, out_units, self.pollutant)

        return ConcentrationMatrix(
            values=values,
            units=out_units,
            calm=calm,
            timestamps=table.timestamps,
            receptors=rec.receptors,
        )

    def contribution(
        self,
        link_index: int,
        condition: MeteorologicalCondition,
        receptor: Receptor,
    ) -> float:
        """Concentration (g/m3) from one link at one receptor for one condition."""
        if not 0 <= link_index < len(self.links):
            raise IndexError(f"link index {link_index} out of range")
        condition.validate()
        kernel = self.kernel.select(link_index)
        value = kernel.condition_concentration(
            condition.wind_speed, condition.wind_bearing, condition.stability,
            condition.mixing_height,
            np.array([receptor.x]), np.array([receptor.y]), np.array([receptor.z]),
        )
        return float(value[0])


def evaluate(
    links: Sequence[Link],
    conditions: Conditions,
    receptors: Union[ReceptorSet, Iterable[Receptor]],
    terrain: Terrain,
    pollutant: Pollutant,
    units: ConcentrationUnit | str = ConcentrationUnit.G_M3,
    config: Optional[ModelConfig] = None,
    timeout: Optional[float] = None,
) -> ConcentrationMatrix:
    """One-shot batch evaluation; see :meth:`DispersionEngine.evaluate`."""
    engine = DispersionEngine(links, receptors, terrain, pollutant, config=config)
    return engine.evaluate(conditions, units=units, timeout=timeout)
