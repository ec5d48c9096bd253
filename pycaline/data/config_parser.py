"""Engine settings namelist parser and writer.

Settings are stored as a Fortran-style namelist block::

    &CALINE
     CALM = 1.0,
     ATIM = 60.0,
     ELMAX = 25.0,
    /

Keys not present keep their :class:`ModelConfig` defaults. ``write_settings``
produces the same block back from a ModelConfig.
"""

from __future__ import annotations

import dataclasses
import re
from pathlib import Path

from pycaline.core.models import ConfigParseError, ConfigurationError, ModelConfig

# Mapping from namelist keys to ModelConfig field names + types
_SETTINGS_KEY_MAP: dict[str, tuple[str, type]] = {
    "CALM": ("calm_threshold", float),
    "ATIM": ("averaging_time", float),
    "ELMAX": ("max_element_length", float),
    "NELMAX": ("max_elements_per_link", int),
    "RFTOL": ("reflection_tolerance", float),
    "NRFMAX": ("max_reflections", int),
    "BLOCK": ("receptor_block_size", int),
    "NWORK": ("num_workers", int),
    "CHUNK": ("chunk_size", int),
}

# Reverse mapping: ModelConfig field name -> namelist key
_FIELD_TO_KEY: dict[str, str] = {v[0]: k for k, v in _SETTINGS_KEY_MAP.items()}

_PAIR_RE = re.compile(r'(\w+)\s*=\s*([^,/\n]+)')


def _parse_value(raw: str, field_type: type, line_number: int, key: str):
    text = raw.strip().rstrip(',').strip()
    if text.upper() in ("NONE", "AUTO") and key in ("NWORK", "CHUNK"):
        return None
    try:
        if field_type is int:
            value = float(text)
            if not value.is_integer():
                raise ValueError(text)
            return int(value)
        return float(text.replace('D', 'E').replace('d', 'e'))
    except ValueError:
        raise ConfigParseError(
            f"Cannot parse {field_type.__name__} '{text}' for {key}",
            line_number=line_number,
            expected=f"{field_type.__name__} ({key})",
        ) from None


def parse_settings_dict(text: str) -> dict:
    """Parse a settings namelist into ModelConfig keyword arguments.

    Parameters
    ----------
    text : str
        Full text of the namelist.

    Returns
    -------
    dict
        Field name to value, only for keys present in *text*.

    Raises
    ------
    ConfigParseError
        On a missing ``&CALINE`` header, an unknown key or a bad value.
    """
    lines = text.splitlines()
    result: dict = {}
    in_block = False
    closed = False

    for number, line in enumerate(lines, start=1):
        content = line.split('!', 1)[0]
        if not content.strip():
            continue
        if not in_block:
            match = re.match(r'\s*&CALINE\b', content, flags=re.IGNORECASE)
            if match is None:
                raise ConfigParseError(
                    "Settings must start with a &CALINE header",
                    line_number=number,
                    expected="&CALINE",
                )
            in_block = True
            content = content[match.end():]

        end = re.search(r'(^|[\s,])(/|&END\b)', content, flags=re.IGNORECASE)
        if end is not None:
            content = content[:end.start(2)]
            closed = True

        for key_raw, val_raw in _PAIR_RE.findall(content):
            key = key_raw.strip().upper()
            if key not in _SETTINGS_KEY_MAP:
                raise ConfigParseError(
                    f"Unknown settings key '{key_raw}'",
                    line_number=number,
                    expected=", ".join(_SETTINGS_KEY_MAP),
                )
            field_name, field_type = _SETTINGS_KEY_MAP[key]
            result[field_name] = _parse_value(val_raw, field_type, number, key)

        if closed:
            break

    if not in_block:
        raise ConfigParseError("Settings text is empty", expected="&CALINE ... /")
    if not closed:
        raise ConfigParseError(
            "Settings block is not terminated",
            line_number=len(lines),
            expected="/ or &END",
        )
    return result


def parse_settings(text: str) -> ModelConfig:
    """Parse a settings namelist into a validated ModelConfig.

    Raises
    ------
    ConfigParseError
        On syntax errors or values that fail ModelConfig validation.
    """
    config = ModelConfig(**parse_settings_dict(text))
    try:
        config.validate()
    except ConfigurationError as exc:
        raise ConfigParseError(str(exc)) from None
    return config


def load_settings(path: str | Path) -> ModelConfig:
    """Read and parse a settings file."""
    return parse_settings(Path(path).read_text())


def write_settings(config: ModelConfig) -> str:
    """Generate a settings namelist from a ModelConfig.

    Every field is written so that parsing the output reproduces
    *config* exactly.
    """
    lines: list[str] = ["&CALINE"]
    for f in dataclasses.fields(ModelConfig):
        key = _FIELD_TO_KEY[f.name]
        value = getattr(config, f.name)
        if value is None:
            lines.append(f" {key} = AUTO,")
        elif isinstance(value, float):
            lines.append(f" {key} = {value!r},")
        else:
            lines.append(f" {key} = {value},")
    lines.append(" /")
    return "\n".join(lines) + "\n"
