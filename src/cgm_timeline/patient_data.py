"""Ingestion entry point: cumulative raw buffer plus fully rebuilt derived state.

Pipeline run on every ingestion call:
- Stage 1: sort the cumulative raw buffer by raw ``time``
- Stage 2: normalize, deduplicate, detect timezone changes, trim (Deduplicator)
- Stage 3: background fill records merged into the timeline
- Stage 4: device parameter clusters and daily chart projections
- Stage 5: multidimensional indices over the timeline, cbg and smbg groups
- Stage 6: basics (summary) window
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

import polars as pl

from cgm_timeline.basics import BasicsAggregator, BasicsWindow
from cgm_timeline.daily_projection import DailyProjection, DailyProjectionBuilder
from cgm_timeline.deduplicator import (
    BASE_GROUPS,
    Deduplicator,
    sort_by_normal_time,
    sort_by_time,
)
from cgm_timeline.device_parameters import DeviceParameterCluster, DeviceParameterClusterer
from cgm_timeline.fill import FillSynthesizer
from cgm_timeline.formats.datum_types import DatumType
from cgm_timeline.interface.timeline_interface import (
    UTC_TIMEZONE,
    Datum,
    Diagnostics,
    Endpoints,
    IdGenerator,
    IngestionWarning,
    InvalidInputError,
)
from cgm_timeline.multi_index import Dimension, MultiIndex, field_key
from cgm_timeline.normalizer import Normalizer
from cgm_timeline.options import TimelineOptions
from cgm_timeline.timeutils import epoch_ms, parse_instant, to_iso_utc

logger = logging.getLogger(__name__)

# Index dimension names
DATETIME_DIMENSION = "datetime"
ID_DIMENSION = "id"
DAY_OF_WEEK_DIMENSION = "dayOfWeek"

TIMEZONE_SEARCH_START = timedelta(hours=1)


def _timeline_dimensions() -> List[Dimension]:
    return [
        Dimension(DATETIME_DIMENSION, field_key("normalTime"), pl.Utf8),
        Dimension(ID_DIMENSION, field_key("id"), pl.Utf8),
    ]


def _glucose_dimensions() -> List[Dimension]:
    return [
        Dimension(DATETIME_DIMENSION, field_key("normalTime"), pl.Utf8),
        Dimension(DAY_OF_WEEK_DIMENSION, field_key("localDayOfWeek"), pl.Utf8),
    ]


class PatientData:
    """Normalized, deduplicated and indexed view of one patient's records.

    Raw records are appended to a cumulative buffer (shallow copies, the caller's
    dictionaries are never modified). Every ingestion call recomputes all derived
    structures from the whole buffer.

    Non-fatal exclusions are available in ``diagnostics`` and as warning flags via
    get_warnings() / has_warnings().
    """

    def __init__(
        self,
        raw_records: Sequence[Any],
        options: Optional[Dict[str, Any]] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        """Ingest the initial records.

        Args:
            raw_records: List (or tuple) of raw record mappings
            options: Caller options, deep-merged with DEFAULT_OPTIONS
            id_generator: Id factory for records without a usable id (tests inject
                a deterministic one)

        Raises:
            InvalidInputError: If raw_records is not a list or tuple
            InvalidOptionsError: If the options cannot be used
        """
        if not isinstance(raw_records, (list, tuple)):
            raise InvalidInputError(
                f"raw_records must be a list of records, got {type(raw_records).__name__}"
            )

        self.options = TimelineOptions.from_mapping(options)
        self.normalizer = Normalizer(bg_units=self.options.bg_units, id_generator=id_generator)
        self.raw_data: List[Any] = []
        self.reset()

        if len(raw_records) > 0:
            self.add_data(raw_records)
        else:
            logger.info("No new data to add")

    def reset(self) -> None:
        """Discard every derived structure (the raw buffer is kept)."""
        self.time_prefs: Dict[str, Any] = {
            "timezoneAware": self.options.timezone_aware,
            "timezoneName": self.options.timezone_name,
        }
        self.endpoints: Optional[Endpoints] = None
        self.data: List[Datum] = []
        self.grouped: Dict[str, List[Datum]] = {str(t): [] for t in BASE_GROUPS}
        self.diabetes_data: List[Datum] = []
        self.device_parameters: List[DeviceParameterCluster] = []
        self.daily_data = DailyProjection()
        self.basics_data = BasicsWindow()
        self.bg_units = self.options.bg_units
        self.bg_classes = self.options.bg_classes
        self.diagnostics = Diagnostics()
        self.filter_data = MultiIndex([], _timeline_dimensions())
        self.cbg_data = MultiIndex([], _glucose_dimensions())
        self.smbg_data = MultiIndex([], _glucose_dimensions())

    def add_data(self, new_records: Sequence[Any]) -> None:
        """Append records to the buffer and rebuild all derived state.

        Args:
            new_records: Raw records; an empty sequence is a no-op
        """
        if not isinstance(new_records, (list, tuple)) or len(new_records) < 1:
            logger.info("No new data to add")
            return

        self.raw_data.extend(dict(r) if isinstance(r, dict) else r for r in new_records)
        self._recompute()

    def _recompute(self) -> None:
        self.reset()

        # ===== STAGE 1: Raw buffer order =====
        sort_by_time(self.raw_data)

        # ===== STAGE 2: Normalize, deduplicate, timezone changes, trim =====
        deduplicator = Deduplicator(self.normalizer, self.options.diabetes_data_types)
        result = deduplicator.run(self.raw_data)
        self.data = result.data
        self.grouped = result.grouped
        self.diabetes_data = result.diabetes_data
        self.endpoints = result.endpoints
        self.diagnostics = result.diagnostics
        if result.timezone is not None:
            self.time_prefs["timezoneName"] = result.timezone

        # ===== STAGE 3: Background fill =====
        if len(self.diabetes_data) >= 2 and self.endpoints is not None:
            synthesizer = FillSynthesizer(self.options.fill_classes, self.options.fill_duration_hours)
            fills = synthesizer.build(self.endpoints, self.time_prefs["timezoneName"])
            self.data.extend(fills)
            sort_by_normal_time(self.data)
            self.grouped[DatumType.FILL.value] = fills

        # ===== STAGE 4: Clusters and daily projections =====
        clusterer = DeviceParameterClusterer(self.options.device_params_offset_ms)
        self.device_parameters = clusterer.cluster(self.grouped[DatumType.DEVICE_EVENT.value])
        self.daily_data = DailyProjectionBuilder().build(self.data)

        # ===== STAGE 5: Indices =====
        self.filter_data = MultiIndex(self.data, _timeline_dimensions())
        self.cbg_data = MultiIndex(self.grouped[DatumType.CBG.value], _glucose_dimensions())
        self.smbg_data = MultiIndex(self.grouped[DatumType.SMBG.value], _glucose_dimensions())

        # ===== STAGE 6: Basics window =====
        aggregator = BasicsAggregator(self.options.basics_types, pad_week=self.options.basics_pad_week)
        self.basics_data = aggregator.build(self.data, self.grouped[DatumType.UPLOAD.value])
        self.diagnostics.missing_bolus_references = list(self.basics_data.missing_bolus_references)

        logger.info(
            "Ingestion done: %d records, %d device parameter clusters, %d timezone changes",
            len(self.data),
            len(self.device_parameters),
            len(self.diagnostics.timezone_changes),
        )

    # ===== Queries =====

    def get_timezone(self, moment: Union[datetime, str]) -> str:
        """Timezone of the record closest in time to ``moment``.

        The search window starts at one hour on each side and doubles until it
        contains at least one record. Before the first record (after the last) the
        first (last) record's timezone is returned.

        Args:
            moment: Aware datetime (naive means UTC) or ISO-8601 string

        Returns:
            IANA timezone name, 'UTC' if the timeline is empty

        Raises:
            ValueError: If ``moment`` is a string that cannot be parsed
        """
        if len(self.data) < 1:
            return UTC_TIMEZONE

        instant = parse_instant(moment) if isinstance(moment, str) else moment
        if instant is None:
            raise ValueError(f"Invalid date: {moment!r}")
        iso_date = to_iso_utc(instant)

        first_datum = self.data[0]
        if iso_date < first_datum["normalTime"]:
            return first_datum["timezone"]
        last_datum = self.data[-1]
        if iso_date > last_datum["normalTime"]:
            return last_datum["timezone"]

        # Private filter state: the shared index is left as the caller set it
        view = self.filter_data.session()
        search = TIMEZONE_SEARCH_START
        candidates: List[Datum] = []
        while not candidates:
            candidates = view.query_range(DATETIME_DIMENSION, (instant - search, instant + search))
            search *= 2
        view.clear(DATETIME_DIMENSION)

        target_ms = epoch_ms(iso_date)
        nearest = min(candidates, key=lambda d: abs(epoch_ms(d["normalTime"]) - target_ms))
        return nearest["timezone"]

    # ===== Warnings =====

    def get_warnings(self) -> List[IngestionWarning]:
        """Warning flags raised by the last ingestion and by index misuse since.

        Returns:
            List of individual IngestionWarning flags
        """
        combined = self.diagnostics.warnings()
        if any(index.misuse_count > 0 for index in self.indices().values()):
            combined |= IngestionWarning.DIMENSION_MISUSE
        return [flag for flag in IngestionWarning if flag in combined]

    def has_warnings(self) -> bool:
        return len(self.get_warnings()) > 0

    def indices(self) -> Dict[str, MultiIndex]:
        """The shared indices, by name."""
        indices = {
            "filterData": self.filter_data,
            "cbgData": self.cbg_data,
            "smbgData": self.smbg_data,
        }
        for name, index in self.daily_data.by_timestamp.items():
            indices[f"{name}ByTimestamps"] = index
        return indices
