"""Background shading intervals ("fill" records) for the daily chart."""

import logging
import re
from datetime import timedelta
from typing import Dict, List, Optional

from cgm_timeline.formats.datum_types import DatumType
from cgm_timeline.interface.timeline_interface import MS_IN_HOUR, Datum, Endpoints
from cgm_timeline.timeutils import (
    LOCAL_DATE_FORMAT,
    add_absolute,
    localize,
    to_iso_utc,
)

logger = logging.getLogger(__name__)

_NON_ID_CHARS = re.compile(r"[^\w\s]|_")


def fill_id(normal_time: str) -> str:
    """Deterministic fill id: 'fill-' + the normalTime digits and letters."""
    return "fill-" + _NON_ID_CHARS.sub("", normal_time)


class FillSynthesizer:
    """Walks the observed span in fixed steps and emits one fill per covered hour.

    The span is widened to whole local days. Only steps whose local starting hour
    is a key of ``classes`` produce a record; the other steps are skipped.

    Steps advance in elapsed time, not wall clock time. After a DST change the
    local starting hours shift by the DST offset (1, 4, 7, ... after spring
    forward with the default table), so no fill is emitted until the next
    change brings them back onto the table.
    """

    def __init__(self, classes: Dict[int, str], duration_hours: float = 3) -> None:
        """Initialize the synthesizer.

        Args:
            classes: Local starting hour -> shading class
            duration_hours: Step and fill duration
        """
        self.classes = dict(classes)
        self.duration_hours = duration_hours

    def build(self, endpoints: Optional[Endpoints], timezone_name: str) -> List[Datum]:
        """Generate fill records.

        Args:
            endpoints: [first treatment time, last treatment end] (UTC ISO strings)
            timezone_name: Timezone defining the local days and hours

        Returns:
            Fill records in time order (empty without endpoints)
        """
        if endpoints is None:
            return []

        step = timedelta(hours=self.duration_hours)
        current = localize(endpoints[0], timezone_name).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        last = localize(endpoints[1], timezone_name).replace(
            hour=23, minute=59, second=59, microsecond=999000
        )

        fills: List[Datum] = []
        while current < last:
            hour = current.hour
            fill_color = self.classes.get(hour)
            if fill_color is not None:
                normal_time = to_iso_utc(current)
                fills.append({
                    "fillColor": fill_color,
                    "fillDate": current.strftime(LOCAL_DATE_FORMAT),
                    "id": fill_id(normal_time),
                    "normalEnd": to_iso_utc(add_absolute(current, step)),
                    "startsAtMidnight": hour == 0,
                    "normalTime": normal_time,
                    "timezone": timezone_name,
                    "type": DatumType.FILL.value,
                    "displayOffset": 0,
                    "twoWeekX": hour * MS_IN_HOUR,
                })
            current = add_absolute(current, step)

        logger.debug("Generated %d fill records in %s", len(fills), timezone_name)
        return fills
