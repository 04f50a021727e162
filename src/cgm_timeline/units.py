"""Glucose unit conversion."""

from cgm_timeline.interface.timeline_interface import (
    MGDL_PER_MMOLL,
    MGDL_UNITS,
    MMOLL_UNITS,
)


def to_mmoll(value_mgdl: float) -> float:
    """Convert mg/dL to mmol/L."""
    return value_mgdl / MGDL_PER_MMOLL


def to_mgdl(value_mmoll: float) -> float:
    """Convert mmol/L to mg/dL."""
    return value_mmoll * MGDL_PER_MMOLL


def convert_bg(value: float, target_units: str) -> float:
    """Convert a glucose value stored in the other unit to ``target_units``.

    Only two units exist, so the source unit is implied by the target.

    Raises:
        ValueError: If target_units is not a supported unit
    """
    if target_units == MMOLL_UNITS:
        return to_mmoll(value)
    if target_units == MGDL_UNITS:
        return to_mgdl(value)
    raise ValueError(f"Unsupported glucose unit: {target_units}")
