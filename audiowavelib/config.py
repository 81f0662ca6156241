"""Configuration for waveform extraction and playback control.

A configuration is a flat ``dict`` keyed by parameter name.  Each
parameter is declared once as a :class:`ParamSpec`; the same table yields
the defaults, drives validation, and feeds the CLI help.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from typing import Any

PRESET_SCHEMA_VERSION = "1.0"
_PRESET_META_KEYS = ("schema_version", "_description")


class ConfigError(Exception):
    """Invalid configuration or unreadable preset."""
    pass


@dataclass
class ConfigFieldError:
    """One rejected value: which *key*, the *value* given, and why."""
    key: str
    value: Any
    message: str


@dataclass(frozen=True)
class ParamSpec:
    """Declaration of one tunable: type, default, bounds and labels.

    Bounds are inclusive unless the matching ``*_exclusive`` flag is set.
    ``nullable`` parameters accept ``None`` in place of a value.
    """
    key: str
    type: type | tuple
    default: Any
    label: str
    description: str = ""
    min: float | int | None = None
    max: float | int | None = None
    min_exclusive: bool = False
    max_exclusive: bool = False
    nullable: bool = False


# ---------------------------------------------------------------------------
# Parameter table
# ---------------------------------------------------------------------------

WAVEFORM_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="bar_count", type=int, default=60, min=1,
        label="Bar count",
        description="Number of amplitude bars extracted per file.",
    ),
    ParamSpec(
        key="chunk_seconds", type=(int, float), default=1.0,
        min=0.0, min_exclusive=True,
        label="Chunk length (s)",
        description=(
            "Length of each streamed read, in seconds of audio at the "
            "file's native sample rate. Progress is reported once per chunk "
            "and cancellation is checked between chunks."
        ),
    ),
    ParamSpec(
        key="placeholder_low", type=(int, float), default=0.2,
        min=0.0, max=1.0,
        label="Placeholder minimum",
        description="Lowest bar value used when extraction fails.",
    ),
    ParamSpec(
        key="placeholder_high", type=(int, float), default=0.8,
        min=0.0, max=1.0,
        label="Placeholder maximum",
        description="Highest bar value used when extraction fails.",
    ),
    ParamSpec(
        key="placeholder_seed", type=int, default=0, nullable=True,
        label="Placeholder seed",
        description=(
            "Seed for the placeholder bar generator. None draws fresh "
            "values on every failure."
        ),
    ),
]

PLAYBACK_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="tick_rate_hz", type=(int, float), default=25.0,
        min=15.0, max=30.0,
        label="Progress tick rate (Hz)",
        description="How often elapsed time is sampled while playing.",
    ),
    ParamSpec(
        key="end_epsilon", type=(int, float), default=0.1, min=0.0,
        label="End-of-playback tolerance (s)",
        description=(
            "A stopped transport within this many seconds of the end is "
            "treated as finished and rewound."
        ),
    ),
    ParamSpec(
        key="skip_seconds", type=(int, float), default=15.0,
        min=0.0, min_exclusive=True,
        label="Skip offset (s)",
        description="Default offset for skip forward / skip backward.",
    ),
]

ALL_PARAMS: list[ParamSpec] = WAVEFORM_PARAMS + PLAYBACK_PARAMS


def default_config() -> dict[str, Any]:
    return {spec.key: spec.default for spec in ALL_PARAMS}


def merge_configs(*configs: dict[str, Any] | None) -> dict[str, Any]:
    """Merge config dicts left-to-right; later values override earlier ones.

    ``None`` entries are skipped so optional overrides can be passed
    straight through.
    """
    merged: dict[str, Any] = {}
    for overrides in configs:
        if overrides:
            merged.update(overrides)
    return merged


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

def load_preset(path: str) -> dict[str, Any]:
    """Read the overrides stored in a JSON preset.

    The preset's metadata keys are dropped.  Any read or parse problem is
    reported as :class:`ConfigError`.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Preset file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in preset {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read preset {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Preset {path} must hold a JSON object, not {type(raw).__name__}")
    return {k: v for k, v in raw.items() if k not in _PRESET_META_KEYS}


def save_preset(config: dict[str, Any], path: str, *,
                description: str | None = None) -> None:
    """Write the declared parameters of *config* that differ from the
    defaults to *path*.  Unknown keys are not persisted.
    """
    defaults = default_config()
    changed = {
        k: v for k, v in config.items()
        if k in defaults and defaults[k] != v
    }
    header: dict[str, Any] = {"schema_version": PRESET_SCHEMA_VERSION}
    if description:
        header["_description"] = description

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({**header, **changed}, f, indent=4, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_type(spec: ParamSpec, value: Any) -> str | None:
    wanted = _type_label(spec.type)
    # bool passes isinstance(int) but is never a valid number here
    if isinstance(value, bool) and spec.type is not bool:
        return f"{spec.label} must be {wanted}, got boolean."
    if not isinstance(value, spec.type):
        return f"{spec.label} must be {wanted}, got {type(value).__name__}."
    return None


def _check_bounds(spec: ParamSpec, value: Any) -> str | None:
    if isinstance(value, float) and not math.isfinite(value):
        return f"{spec.label} must be a finite number."
    lo, hi = spec.min, spec.max
    if lo is not None:
        if spec.min_exclusive and not value > lo:
            return f"{spec.label} must be greater than {lo}."
        if not spec.min_exclusive and value < lo:
            return f"{spec.label} must be at least {lo}."
    if hi is not None:
        if spec.max_exclusive and not value < hi:
            return f"{spec.label} must be less than {hi}."
        if not spec.max_exclusive and value > hi:
            return f"{spec.label} must be at most {hi}."
    return None


def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Check the entries of *values* that *params* declares.

    Absent keys are fine (they fall back to the default).  Each key
    contributes at most one :class:`ConfigFieldError`.
    """
    errors: list[ConfigFieldError] = []
    for spec in params:
        if spec.key not in values:
            continue
        value = values[spec.key]
        if value is None:
            problem = None if spec.nullable else f"{spec.label} must not be empty."
        else:
            problem = _check_type(spec, value) or _check_bounds(spec, value)
        if problem:
            errors.append(ConfigFieldError(spec.key, value, problem))
    return errors


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    """Per-field checks plus the placeholder range ordering."""
    errors = validate_param_values(ALL_PARAMS, config)
    rejected = {e.key for e in errors}
    low = config.get("placeholder_low")
    high = config.get("placeholder_high")
    if (low is not None and high is not None
            and not rejected & {"placeholder_low", "placeholder_high"}
            and low > high):
        errors.append(ConfigFieldError(
            "placeholder_high", high,
            "Placeholder maximum must not be below the placeholder minimum.",
        ))
    return errors


def validate_config(config: dict[str, Any]) -> None:
    """Raise :class:`ConfigError` naming every invalid field."""
    errors = validate_config_fields(config)
    if errors:
        raise ConfigError("; ".join(f"{e.key}: {e.message}" for e in errors))


def build_config(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Defaults with *overrides* applied, validated."""
    config = merge_configs(default_config(), overrides)
    validate_config(config)
    return config


def _type_label(t) -> str:
    names = t if isinstance(t, tuple) else (t,)
    return " or ".join(x.__name__ for x in names)
