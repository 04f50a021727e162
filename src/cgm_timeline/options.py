"""Ingestion options: documented defaults deep-merged with caller overrides."""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from cgm_timeline.interface.timeline_interface import (
    MGDL_UNITS,
    MMOLL_UNITS,
    SUPPORTED_BG_UNITS,
    DEVICE_PARAMS_OFFSET,
    UTC_TIMEZONE,
    InvalidOptionsError,
)

DEFAULT_BG_BOUNDS: Dict[str, Dict[str, float]] = {
    MGDL_UNITS: {
        "veryLow": 54,
        "targetLower": 70,
        "targetUpper": 180,
        "veryHigh": 250,
    },
    MMOLL_UNITS: {
        "veryLow": 3.0,
        "targetLower": 3.9,
        "targetUpper": 10.0,
        "veryHigh": 13.9,
    },
}

BG_CLAMP_THRESHOLD: Dict[str, float] = {
    MGDL_UNITS: 400,
    MMOLL_UNITS: 22.2,
}

# Accepted spellings of the glucose class names -> canonical (hyphenated) name
BG_CLASS_ALIASES = {
    "veryLow": "very-low",
    "very-low": "very-low",
    "low": "low",
    "target": "target",
    "high": "high",
    "veryHigh": "very-high",
    "very-high": "very-high",
}


def default_bg_classes(bg_units: str) -> Dict[str, Dict[str, float]]:
    """Glucose class boundaries for a unit, from the defaults tables."""
    bounds = DEFAULT_BG_BOUNDS[bg_units]
    return {
        "very-low": {"boundary": bounds["veryLow"]},
        "low": {"boundary": bounds["targetLower"]},
        "target": {"boundary": bounds["targetUpper"]},
        "high": {"boundary": bounds["veryHigh"]},
        "very-high": {"boundary": BG_CLAMP_THRESHOLD[bg_units]},
    }


DEFAULT_OPTIONS: Dict[str, Any] = {
    "timePrefs": {
        "timezoneAware": True,
        "timezoneName": UTC_TIMEZONE,
    },
    "CBG_PERCENT_FOR_ENOUGH": 0.75,
    "CBG_MAX_DAILY": 288,
    "SMBG_DAILY_MIN": 4,
    "basicsTypes": ["basal", "bolus", "cbg", "smbg", "deviceEvent", "wizard", "upload"],
    "bgUnits": MGDL_UNITS,
    "bgClasses": default_bg_classes(MGDL_UNITS),
    "fillOpts": {
        # local starting hour -> shading class
        "classes": {
            0: "darkest",
            3: "dark",
            6: "lighter",
            9: "light",
            12: "lightest",
            15: "lighter",
            18: "dark",
            21: "darker",
        },
        # hours
        "duration": 3,
    },
    "diabetesDataTypes": ["basal", "bolus", "cbg", "smbg", "deviceEvent", "wizard", "upload"],
    "deviceParamsOffset": DEVICE_PARAMS_OFFSET,
    "basicsPadWeek": False,
}


def deep_merge(overrides: Mapping[str, Any], defaults: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill the holes of ``overrides`` with ``defaults``, recursing into mappings.

    Values present in ``overrides`` win (lists are not merged), keys only
    present in ``overrides`` are kept. Neither argument is modified.

    Args:
        overrides: Caller supplied options
        defaults: Documented defaults

    Returns:
        A new merged dictionary
    """
    merged: Dict[str, Any] = copy.deepcopy(dict(defaults))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(value, merged[key])
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class TimelineOptions:
    """Resolved ingestion options.

    Build with ``TimelineOptions.from_mapping()``; ``raw`` keeps the full merged
    mapping, including keys this package does not interpret.
    """
    timezone_aware: bool
    timezone_name: str
    cbg_percent_for_enough: float
    cbg_max_daily: int
    smbg_daily_min: int
    basics_types: List[str]
    bg_units: str
    bg_classes: Dict[str, Dict[str, float]]
    fill_classes: Dict[int, str]
    fill_duration_hours: float
    diabetes_data_types: List[str]
    device_params_offset_ms: int
    basics_pad_week: bool
    raw: Dict[str, Any]

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None) -> "TimelineOptions":
        """Resolve caller options against DEFAULT_OPTIONS.

        Args:
            options: Caller options (None or a non-mapping means "all defaults")

        Returns:
            TimelineOptions

        Raises:
            InvalidOptionsError: If bgUnits, fillOpts or bgClasses are unusable
        """
        overrides: Mapping[str, Any] = options if isinstance(options, Mapping) else {}
        merged = deep_merge(overrides, DEFAULT_OPTIONS)

        bg_units = merged["bgUnits"]
        if bg_units not in SUPPORTED_BG_UNITS:
            raise InvalidOptionsError(
                f"Unsupported bgUnits {bg_units!r}, expected one of {SUPPORTED_BG_UNITS}"
            )

        # Boundaries are unit dependent: without explicit classes, follow the unit
        if bg_units != MGDL_UNITS and "bgClasses" not in overrides:
            merged["bgClasses"] = default_bg_classes(bg_units)
        bg_classes = cls._canonical_bg_classes(merged["bgClasses"])

        fill_opts = merged["fillOpts"]
        try:
            fill_classes = {int(hour): str(name) for hour, name in fill_opts["classes"].items()}
            fill_duration = float(fill_opts["duration"])
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            raise InvalidOptionsError(f"Invalid fillOpts: {e}") from e
        if fill_duration <= 0:
            raise InvalidOptionsError("fillOpts.duration must be a positive number of hours")

        time_prefs = merged["timePrefs"]
        return cls(
            timezone_aware=bool(time_prefs.get("timezoneAware", True)),
            timezone_name=time_prefs.get("timezoneName") or UTC_TIMEZONE,
            cbg_percent_for_enough=merged["CBG_PERCENT_FOR_ENOUGH"],
            cbg_max_daily=merged["CBG_MAX_DAILY"],
            smbg_daily_min=merged["SMBG_DAILY_MIN"],
            basics_types=list(merged["basicsTypes"]),
            bg_units=bg_units,
            bg_classes=bg_classes,
            fill_classes=fill_classes,
            fill_duration_hours=fill_duration,
            diabetes_data_types=list(merged["diabetesDataTypes"]),
            device_params_offset_ms=int(merged["deviceParamsOffset"]),
            basics_pad_week=bool(merged["basicsPadWeek"]),
            raw=merged,
        )

    @staticmethod
    def _canonical_bg_classes(classes: Mapping[str, Any]) -> Dict[str, Dict[str, float]]:
        canonical: Dict[str, Dict[str, float]] = {}
        for name, entry in classes.items():
            if name not in BG_CLASS_ALIASES:
                raise InvalidOptionsError(f"Unknown bgClasses entry {name!r}")
            boundary = entry.get("boundary") if isinstance(entry, Mapping) else entry
            if isinstance(boundary, bool) or not isinstance(boundary, (int, float)):
                raise InvalidOptionsError(f"bgClasses.{name} needs a numeric boundary")
            canonical[BG_CLASS_ALIASES[name]] = {"boundary": boundary}
        return canonical
