"""Interface package for timeline ingestion.

This package provides the shared constants, diagnostics, exceptions and the
record schema utilities.
"""

from cgm_timeline.interface.schema import (
    EnumLiteral,
    FieldSchema,
    DatumSchemaDefinition,
)
from cgm_timeline.interface.timeline_interface import (
    Datum,
    Endpoints,
    IdGenerator,
    Diagnostics,
    IngestionWarning,
    InvalidInputError,
    InvalidOptionsError,
    MGDL_PER_MMOLL,
    MGDL_UNITS,
    MMOLL_UNITS,
    DEVICE_PARAMS_OFFSET,
)

__all__ = [
    # Schema definitions
    "EnumLiteral",
    "FieldSchema",
    "DatumSchemaDefinition",
    # Record types
    "Datum",
    "Endpoints",
    "IdGenerator",
    # Exceptions
    "InvalidInputError",
    "InvalidOptionsError",
    # Diagnostics
    "Diagnostics",
    "IngestionWarning",
    # Constants
    "MGDL_PER_MMOLL",
    "MGDL_UNITS",
    "MMOLL_UNITS",
    "DEVICE_PARAMS_OFFSET",
]
