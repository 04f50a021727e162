"""Shared interface definitions for the timeline ingestion pipeline.

Separated into three concerns:
- Constants shared by every pipeline stage (units, durations, data source)
- Diagnostics: warning flags and the collected non-fatal exclusions
- Exceptions surfaced to the caller
"""

from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any, Callable, Dict, List, Tuple

MGDL_PER_MMOLL = 18.01559
MGDL_UNITS = "mg/dL"
MMOLL_UNITS = "mmol/L"
SUPPORTED_BG_UNITS = (MGDL_UNITS, MMOLL_UNITS)

MS_IN_HOUR = 60 * 60 * 1000
MS_IN_DAY = 24 * MS_IN_HOUR
DEVICE_PARAMS_OFFSET = 30 * 60 * 1000  # 30 minutes, in ms

UTC_TIMEZONE = "UTC"
DATA_SOURCE = "Diabeloop"

# A datum is a plain mapping: common fields (id, type, time, normalTime, timezone,
# displayOffset, source) plus whatever the record type carries.
Datum = Dict[str, Any]

# ISO-8601 UTC strings: [first treatment time, last treatment end]
Endpoints = Tuple[str, str]

IdGenerator = Callable[[], str]


class IngestionWarning(Flag):
    """Non-fatal conditions raised during one ingestion pass.

    These are flags that can be combined using bitwise OR operations.
    Example: warnings = IngestionWarning.DUPLICATES | IngestionWarning.INVALID_RECORDS
    """
    INVALID_RECORDS = auto()  # Records quarantined (missing/unparsable time, schema failure)
    DUPLICATES = auto()  # Records dropped because their id was already seen
    TIMEZONE_CHANGES = auto()  # Timezone change markers were synthesized
    MISSING_BOLUS_REFERENCE = auto()  # Wizard points to a bolus absent from the basics window
    DIMENSION_MISUSE = auto()  # An index was queried with an unknown dimension


class InvalidInputError(TypeError):
    """Raised when the caller passes something other than a sequence of records."""
    pass


class InvalidOptionsError(ValueError):
    """Raised when the configuration cannot be used (e.g. unknown glucose unit)."""
    pass


@dataclass
class Diagnostics:
    """Exclusions collected during one ingestion pass.

    Nothing in here is ever raised: quarantined and duplicate records are kept
    for inspection, and counts are derived from them.
    """
    invalids: List[Datum] = field(default_factory=list)
    duplicates: List[Datum] = field(default_factory=list)
    timezone_changes: List[Datum] = field(default_factory=list)
    missing_bolus_references: List[str] = field(default_factory=list)
    temp_basals: int = 0

    @property
    def invalid_count(self) -> int:
        return len(self.invalids)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    def warnings(self) -> IngestionWarning:
        """Combine the collected exclusions into warning flags."""
        flags = IngestionWarning(0)
        if self.invalids:
            flags |= IngestionWarning.INVALID_RECORDS
        if self.duplicates:
            flags |= IngestionWarning.DUPLICATES
        if self.timezone_changes:
            flags |= IngestionWarning.TIMEZONE_CHANGES
        if self.missing_bolus_references:
            flags |= IngestionWarning.MISSING_BOLUS_REFERENCE
        return flags
