"""Concentration unit conversion.

Mass-per-volume units convert by a constant factor. Mixing ratios
(ppm, ppb) use the ideal-gas molar volume at 25 C and 1 atm:

    ppm = mg/m3 * 24.45 / MW
"""

from __future__ import annotations

import numpy as np

from pycaline.core.models import ConcentrationUnit, ConfigurationError, Pollutant

# Molar volume of an ideal gas at 25 C, 1 atm (L/mol)
MOLAR_VOLUME = 24.45

# Factor to convert g/m3 into each mass unit
_MASS_FACTORS = {
    ConcentrationUnit.G_M3: 1.0,
    ConcentrationUnit.MG_M3: 1.0e3,
    ConcentrationUnit.UG_M3: 1.0e6,
}

# Factor to convert ppm into each mixing-ratio unit
_RATIO_FACTORS = {
    ConcentrationUnit.PPM: 1.0,
    ConcentrationUnit.PPB: 1.0e3,
}


def conversion_factor(
    from_unit: ConcentrationUnit | str,
    to_unit: ConcentrationUnit | str,
    pollutant: Pollutant | None = None,
) -> float:
    """Multiplier taking values in *from_unit* to *to_unit*.

    Raises
    ------
    ConfigurationError
        If either unit is unknown, or a mixing-ratio unit is involved and
        the pollutant has no molecular weight.
    """
    src = ConcentrationUnit.parse(from_unit)
    dst = ConcentrationUnit.parse(to_unit)
    if src is dst:
        return 1.0

    if src.is_mixing_ratio and dst.is_mixing_ratio:
        return _RATIO_FACTORS[dst] / _RATIO_FACTORS[src]
    if not src.is_mixing_ratio and not dst.is_mixing_ratio:
        return _MASS_FACTORS[dst] / _MASS_FACTORS[src]

    mw = pollutant.molecular_weight if pollutant is not None else None
    if mw is None or not mw > 0.0:
        name = pollutant.name if pollutant is not None else "pollutant"
        raise ConfigurationError(
            f"Converting {src.value} to {dst.value} needs a molecular weight "
            f"for {name}"
        )

    # Route through g/m3
    if src.is_mixing_ratio:
        to_grams = (1.0 / _RATIO_FACTORS[src]) * mw / MOLAR_VOLUME / 1.0e3
    else:
        to_grams = 1.0 / _MASS_FACTORS[src]

    if dst.is_mixing_ratio:
        from_grams = 1.0e3 * MOLAR_VOLUME / mw * _RATIO_FACTORS[dst]
    else:
        from_grams = _MASS_FACTORS[dst]

    return to_grams * from_grams


def convert_values(
    values: np.ndarray,
    from_unit: ConcentrationUnit | str,
    to_unit: ConcentrationUnit | str,
    pollutant: Pollutant | None = None,
) -> np.ndarray:
    """Return *values* converted to *to_unit* as a new array."""
    return np.asarray(values, dtype=np.float64) * conversion_factor(from_unit, to_unit, pollutant)
