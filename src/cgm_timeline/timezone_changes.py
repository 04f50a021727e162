"""Timezone change detection while scanning records in time order."""

import logging
from typing import List, Optional

from cgm_timeline.formats.datum_types import DatumType, DeviceEventSubType
from cgm_timeline.interface.timeline_interface import (
    DATA_SOURCE,
    UTC_TIMEZONE,
    Datum,
    IdGenerator,
)
from cgm_timeline.timeutils import LOCAL_TIME_FORMAT, localize

logger = logging.getLogger(__name__)


def is_time_change(datum: Datum) -> bool:
    return (
        datum.get("type") == DatumType.DEVICE_EVENT
        and datum.get("subType") == DeviceEventSubType.TIME_CHANGE
    )


class TimezoneChangeDetector:
    """Tracks the current timezone and synthesizes change markers.

    The cursor starts at the timezone of the first observed record. A record in a
    different, non-UTC zone moves the cursor; unless the record is itself a
    timeChange device event, a marker is synthesized at the record's instant.
    """

    def __init__(self, id_generator: IdGenerator, source: str = DATA_SOURCE) -> None:
        self.id_generator = id_generator
        self.source = source
        self.current: Optional[str] = None
        self.markers: List[Datum] = []

    def observe(self, datum: Datum) -> Optional[Datum]:
        """Feed the next record (in time order).

        Args:
            datum: Normalized record

        Returns:
            The synthesized marker, to be placed right before ``datum``, or None
        """
        timezone = datum["timezone"]
        if self.current is None:
            self.current = timezone
            return None
        if timezone == self.current or timezone == UTC_TIMEZONE:
            return None

        if is_time_change(datum):
            # The device already recorded the change
            self.current = timezone
            return None

        marker = self.build_marker(datum, self.current)
        self.current = timezone
        self.markers.append(marker)
        logger.info(
            "Timezone change detected: %s -> %s",
            marker["from"]["timeZoneName"],
            marker["to"]["timeZoneName"],
        )
        return marker

    def build_marker(self, datum: Datum, previous_timezone: str) -> Datum:
        normal_time = datum["normalTime"]
        marker: Datum = {
            "id": self.id_generator(),
            "time": normal_time,
            "normalTime": normal_time,
            "timezone": datum["timezone"],
            "displayOffset": datum.get("displayOffset", 0),
            "type": DatumType.DEVICE_EVENT.value,
            "subType": DeviceEventSubType.TIME_CHANGE.value,
            "source": self.source,
            "from": {
                "time": localize(normal_time, previous_timezone).strftime(LOCAL_TIME_FORMAT),
                "timeZoneName": previous_timezone,
            },
            "to": {
                "time": localize(normal_time, datum["timezone"]).strftime(LOCAL_TIME_FORMAT),
                "timeZoneName": datum["timezone"],
            },
            "method": "automatic",
        }
        if "timezoneOffset" in datum:
            marker["timezoneOffset"] = datum["timezoneOffset"]
        return marker
