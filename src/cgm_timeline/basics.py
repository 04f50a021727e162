"""Calendar-windowed aggregation for the basics (summary) view.

The window covers the ISO week of the last relevant record plus the two weeks
before it. Records inside the window are routed into named buckets, each with
a flat list, a by-local-date map and an average count per active day.
"""

import logging
import math
import sys
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from cgm_timeline.formats.datum_types import (
    BASICS_RELEVANT_DEVICE_SUBTYPES,
    BASICS_RELEVANT_TYPES,
    BasalDeliveryType,
    DatumType,
    DeviceEventSubType,
    PrimeTarget,
)
from cgm_timeline.interface.schema import EnumLiteral
from cgm_timeline.interface.timeline_interface import UTC_TIMEZONE, Datum
from cgm_timeline.timeutils import iso_week_start, local_date, localize

logger = logging.getLogger(__name__)

WINDOW_WEEKS_BEFORE = 2

# Transport and device metadata not needed by the basics view
BOLUS_STRIPPED_FIELDS = (
    "type",
    "subType",
    "time",
    "timezoneOffset",
    "displayOffset",
    "clockDriftOffset",
    "conversionOffset",
    "source",
    "deviceSerialNumber",
    "deviceId",
    "uploadId",
)


class BasicsBucketName(EnumLiteral):
    """Buckets that always exist; any other basics type gets its own bucket."""
    RESERVOIR_CHANGE = "reservoirChange"
    CANNULA_PRIME = "cannulaPrime"
    TUBING_PRIME = "tubingPrime"
    CALIBRATION = "calibration"
    UPLOAD = "upload"
    BASAL = "basal"
    BOLUS = "bolus"
    CBG = "cbg"
    SMBG = "smbg"
    WIZARD = "wizard"


class DayType(EnumLiteral):
    PAST = "past"
    MOST_RECENT = "mostRecent"
    FUTURE = "future"


@dataclass
class BasicsDay:
    type: str
    date: str


@dataclass
class BasicsBucket:
    """Records of one kind inside the window.

    ``by_date`` maps local 'YYYY-MM-DD' to that day's records; it is None for
    buckets that are passed through without calendar grouping (uploads).
    """
    data: List[Datum] = field(default_factory=list)
    by_date: Optional[Dict[str, List[Datum]]] = field(default_factory=dict)
    avg_per_day: int = 0

    def add(self, datum: Datum, day: str) -> None:
        self.data.append(datum)
        if self.by_date is not None:
            self.by_date.setdefault(day, []).append(datum)

    def compute_statistics(self) -> None:
        if self.by_date is None:
            self.avg_per_day = 0
            return
        total = 0
        for records in self.by_date.values():
            records.sort(key=lambda d: d["normalTime"])
            total += len(records)
        n_days = len(self.by_date)
        if total != len(self.data):
            logger.warning("Bucket expected total %d having %d", total, len(self.data))
        # Half-up rounding of the mean number of records per active day
        self.avg_per_day = 0 if n_days < 1 else math.floor(total / n_days + 0.5)


@dataclass
class BolusBucket(BasicsBucket):
    n_manual: int = 0
    n_automated: int = 0
    n_interrupted: int = 0

    def compute_statistics(self) -> None:
        super().compute_statistics()
        self.n_manual = sum(1 for b in self.data if b.get("manual"))
        self.n_automated = len(self.data) - self.n_manual
        self.n_interrupted = sum(1 for b in self.data if b.get("interrupted"))


@dataclass
class BasalBucket(BasicsBucket):
    n_automated: int = 0
    n_scheduled: int = 0

    def compute_statistics(self) -> None:
        super().compute_statistics()
        self.n_automated = sum(1 for b in self.data if b.get("deliveryType") == BasalDeliveryType.AUTOMATED)
        self.n_scheduled = sum(1 for b in self.data if b.get("deliveryType") == BasalDeliveryType.SCHEDULED)


def new_buckets() -> Dict[str, BasicsBucket]:
    buckets: Dict[str, BasicsBucket] = {}
    for name in BasicsBucketName:
        if name == BasicsBucketName.BOLUS:
            buckets[name.value] = BolusBucket()
        elif name == BasicsBucketName.BASAL:
            buckets[name.value] = BasalBucket()
        elif name == BasicsBucketName.UPLOAD:
            buckets[name.value] = BasicsBucket(by_date=None)
        else:
            buckets[name.value] = BasicsBucket()
    return buckets


@dataclass
class BasicsWindow:
    """Trailing calendar window used by the summary view."""
    timezone: str = UTC_TIMEZONE
    date_range: List[str] = field(default_factory=list)
    days: List[BasicsDay] = field(default_factory=list)
    buckets: Dict[str, BasicsBucket] = field(default_factory=new_buckets)
    missing_bolus_references: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.date_range

    def days_of_type(self, day_type: str) -> List[BasicsDay]:
        return [d for d in self.days if d.type == day_type]


def is_basics_relevant(datum: Datum) -> bool:
    """Whether a record can anchor the basics window."""
    datum_type = datum.get("type")
    if datum_type in BASICS_RELEVANT_TYPES:
        return True
    return datum_type == DatumType.DEVICE_EVENT and datum.get("subType") in BASICS_RELEVANT_DEVICE_SUBTYPES


def find_last_relevant(timeline: Sequence[Datum]) -> Optional[Datum]:
    for datum in reversed(timeline):
        if is_basics_relevant(datum):
            return datum
    return None


def enrich_bolus(datum: Datum) -> Datum:
    """Copy of a bolus without transport metadata, with manual/interrupted flags."""
    bolus = {k: v for k, v in datum.items() if k not in BOLUS_STRIPPED_FIELDS}
    normal = bolus.get("normal")
    expected = bolus.get("expectedNormal")
    if _is_number(normal) and _is_number(expected):
        bolus["interrupted"] = abs(normal - expected) > sys.float_info.epsilon
    if not isinstance(bolus.get("manual"), bool):
        bolus["manual"] = False
    return bolus


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class BasicsAggregator:
    """Builds the basics window from the merged timeline."""

    def __init__(self, basics_types: Iterable[str], pad_week: bool = False) -> None:
        """Initialize the aggregator.

        Args:
            basics_types: Record types routed into buckets
            pad_week: Extend ``days`` to the end of the last ISO week ('future' days)
        """
        self.basics_types = list(basics_types)
        self.pad_week = pad_week

    def build(self, timeline: Sequence[Datum], uploads: Sequence[Datum] = ()) -> BasicsWindow:
        """Aggregate the window.

        Args:
            timeline: Merged timeline sorted by normalTime
            uploads: The upload group (passed through as is)

        Returns:
            BasicsWindow; empty (no dateRange) when no relevant record exists
        """
        window = BasicsWindow()
        last_datum = find_last_relevant(timeline)
        if last_datum is None:
            return window

        window.timezone = last_datum["timezone"]
        last_date = localize(last_datum["normalTime"], last_datum["timezone"]).date()
        window_start = iso_week_start(last_date) - timedelta(weeks=WINDOW_WEEKS_BEFORE)
        window.date_range = [window_start.isoformat(), last_date.isoformat()]
        window.days = self._days(window_start, last_date)

        window.buckets[BasicsBucketName.UPLOAD.value].data = list(uploads)
        start_day, end_day = window.date_range
        for datum in timeline:
            if datum.get("type") not in self.basics_types:
                continue
            day = local_date(datum["normalTime"], datum["timezone"])
            if start_day <= day <= end_day:
                self._route(window, datum, day)

        self._link_wizards(window)
        for bucket in window.buckets.values():
            bucket.compute_statistics()
        return window

    def _days(self, window_start: date, last_date: date) -> List[BasicsDay]:
        end = iso_week_start(last_date) + timedelta(days=6) if self.pad_week else last_date
        days = []
        day = window_start
        while day <= end:
            if day == last_date:
                day_type = DayType.MOST_RECENT
            elif day > last_date:
                day_type = DayType.FUTURE
            else:
                day_type = DayType.PAST
            days.append(BasicsDay(type=day_type.value, date=day.isoformat()))
            day += timedelta(days=1)
        return days

    def _route(self, window: BasicsWindow, datum: Datum, day: str) -> None:
        buckets = window.buckets
        datum_type = datum["type"]

        if datum_type == DatumType.UPLOAD:
            # Already taken from the upload group
            return

        if datum_type == DatumType.DEVICE_EVENT:
            sub_type = datum.get("subType")
            if sub_type == DeviceEventSubType.RESERVOIR_CHANGE:
                buckets[BasicsBucketName.RESERVOIR_CHANGE.value].add(datum, day)
            elif sub_type == DeviceEventSubType.PRIME:
                if datum.get("primeTarget") == PrimeTarget.CANNULA:
                    buckets[BasicsBucketName.CANNULA_PRIME.value].add(datum, day)
                elif datum.get("primeTarget") == PrimeTarget.TUBING:
                    buckets[BasicsBucketName.TUBING_PRIME.value].add(datum, day)
            elif sub_type == DeviceEventSubType.CALIBRATION:
                buckets[BasicsBucketName.CALIBRATION.value].add(datum, day)
            return

        if datum_type == DatumType.BOLUS:
            buckets[BasicsBucketName.BOLUS.value].add(enrich_bolus(datum), day)
            return

        # basal, cbg, smbg, wizard and any other configured type
        buckets.setdefault(datum_type, BasicsBucket()).add(datum, day)

    @staticmethod
    def _link_wizards(window: BasicsWindow) -> None:
        """Flag the boluses programmed through the wizard as manual."""
        boluses = {b["id"]: b for b in window.buckets[BasicsBucketName.BOLUS.value].data}
        for wizard in window.buckets[BasicsBucketName.WIZARD.value].data:
            bolus_id = wizard.get("bolus")
            if not isinstance(bolus_id, str):
                logger.info("No bolus id on wizard %s", wizard["id"])
                continue
            bolus = boluses.get(bolus_id)
            if bolus is None:
                logger.warning("Missing bolus %s for wizard %s", bolus_id, wizard["id"])
                window.missing_bolus_references.append(bolus_id)
                continue
            bolus["manual"] = True
