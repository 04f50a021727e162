"""Id deduplication, domain exclusions and temporal trimming.

One pass over the cumulative record buffer (pre-sorted by raw ``time``):
normalize, drop temp basals, drop repeated ids, validate, route survivors
into per-type groups and detect timezone changes along the way.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cgm_timeline.formats.datum_types import BasalDeliveryType, DatumType
from cgm_timeline.interface.timeline_interface import Datum, Diagnostics, Endpoints
from cgm_timeline.normalizer import Normalizer
from cgm_timeline.timezone_changes import TimezoneChangeDetector

logger = logging.getLogger(__name__)

# Groups that always exist, even when empty
BASE_GROUPS = (
    DatumType.FILL,
    DatumType.UPLOAD,
    DatumType.DEVICE_EVENT,
    DatumType.CBG,
    DatumType.SMBG,
)


def _time_key(datum: Any):
    # Records without a usable time sort first
    if isinstance(datum, dict) and isinstance(datum.get("time"), str):
        return (1, datum["time"])
    return (0, "")


def sort_by_time(records: List[Any]) -> None:
    """Sort raw records in place by their ``time`` string (stable)."""
    records.sort(key=_time_key)


def sort_by_normal_time(records: List[Datum]) -> None:
    """Sort normalized records in place by ``normalTime`` (stable)."""
    records.sort(key=lambda d: d["normalTime"])


@dataclass
class DeduplicationResult:
    """Output of one deduplication pass."""
    data: List[Datum] = field(default_factory=list)
    grouped: Dict[str, List[Datum]] = field(default_factory=dict)
    diabetes_data: List[Datum] = field(default_factory=list)
    endpoints: Optional[Endpoints] = None
    timezone: Optional[str] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


class Deduplicator:
    """Builds the merged timeline and the per-type groups from raw records."""

    def __init__(
        self,
        normalizer: Normalizer,
        diabetes_data_types: Sequence[str],
    ) -> None:
        """Initialize the deduplicator.

        Args:
            normalizer: Normalizer applied to each record before deduplication
            diabetes_data_types: Treatment-relevant types defining the observed span
        """
        self.normalizer = normalizer
        self.diabetes_data_types = list(diabetes_data_types)

    def run(self, records: Iterable[Any]) -> DeduplicationResult:
        """Process records already sorted by raw time.

        Args:
            records: The cumulative raw buffer

        Returns:
            DeduplicationResult with the merged timeline sorted by normalTime
        """
        result = DeduplicationResult(grouped={str(t): [] for t in BASE_GROUPS})
        diagnostics = result.diagnostics
        detector = TimezoneChangeDetector(self.normalizer.id_generator, self.normalizer.source)
        seen_ids = set()
        first_end_point: Optional[str] = None
        last_end_point: Optional[str] = None

        for datum in records:
            if not self.normalizer.normalize(datum):
                diagnostics.invalids.append(datum)
                continue

            if datum.get("type") == DatumType.BASAL and datum.get("deliveryType") == BasalDeliveryType.TEMP:
                diagnostics.temp_basals += 1
                continue

            if datum["id"] in seen_ids:
                diagnostics.duplicates.append(datum)
                logger.debug("Ignoring duplicate datum %s", datum["id"])
                continue
            seen_ids.add(datum["id"])

            if not self.normalizer.validate(datum):
                diagnostics.invalids.append(datum)
                continue

            datum_type = datum["type"]
            marker = detector.observe(datum)
            if marker is not None:
                if self.normalizer.validate(marker):
                    result.data.append(marker)
                    result.grouped[DatumType.DEVICE_EVENT.value].append(marker)
                    diagnostics.timezone_changes.append(marker)
                else:
                    logger.error("Invalid timezone change marker: %s", marker.get("errorMessage"))

            result.grouped.setdefault(datum_type, []).append(datum)

            if datum_type in self.diabetes_data_types:
                result.diabetes_data.append(datum)
                normal_time = datum["normalTime"]
                end_time = datum.get("normalEnd")
                if not isinstance(end_time, str):
                    end_time = normal_time
                if first_end_point is None or normal_time < first_end_point:
                    first_end_point = normal_time
                if last_end_point is None or end_time > last_end_point:
                    last_end_point = end_time

            if datum_type != DatumType.UPLOAD:
                result.data.append(datum)

        sort_by_normal_time(result.data)
        sort_by_normal_time(result.diabetes_data)
        for group in result.grouped.values():
            sort_by_normal_time(group)

        if first_end_point is not None:
            result.endpoints = (first_end_point, last_end_point)
        result.timezone = detector.current

        logger.info("Number of data: %d", len(result.data))
        logger.info("Number of diabetes data: %d", len(result.diabetes_data))
        logger.info("Number of duplicate entries: %d", diagnostics.duplicate_count)
        logger.info("Number of invalid entries: %d", diagnostics.invalid_count)

        result.data = filter_treatment_window(result.data, result.diabetes_data)
        return result


def filter_treatment_window(data: List[Datum], diabetes_data: List[Datum]) -> List[Datum]:
    """Remove records that fall outside the treatment span.

    - messages before the first treatment record
    - pump settings outside [first, last] treatment time
    - uploads (they only live in the grouped index)

    Args:
        data: Merged timeline sorted by normalTime
        diabetes_data: Treatment-relevant records sorted by normalTime

    Returns:
        Filtered timeline (the input list is not modified)
    """
    if not diabetes_data:
        return data

    first_time = diabetes_data[0]["normalTime"]
    last_time = diabetes_data[-1]["normalTime"]

    def rejected(d: Datum) -> bool:
        datum_type = d["type"]
        if datum_type == DatumType.MESSAGE and d["normalTime"] < first_time:
            return True
        if datum_type == DatumType.PUMP_SETTINGS and not (first_time <= d["normalTime"] <= last_time):
            return True
        return datum_type == DatumType.UPLOAD

    return [d for d in data if not rejected(d)]
