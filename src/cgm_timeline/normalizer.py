"""Per-record validation, enrichment and unit conversion.

Normalization mutates the record in place and is done once: a datum that
already carries a string ``normalTime`` is left untouched, which keeps unit
conversion idempotent across repeated ingestion passes.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from cgm_timeline.formats.datum_types import DATUM_SCHEMA, DatumType
from cgm_timeline.interface.schema import DatumSchemaDefinition
from cgm_timeline.interface.timeline_interface import (
    DATA_SOURCE,
    MGDL_UNITS,
    SUPPORTED_BG_UNITS,
    UTC_TIMEZONE,
    Datum,
    IdGenerator,
)
from cgm_timeline.timeutils import (
    LOCAL_DATE_FORMAT,
    WEEKDAY_NAMES,
    check_supported,
    ms_since_midnight,
    parse_instant,
    resolve_timezone,
    to_iso_utc,
)
from cgm_timeline.units import convert_bg

logger = logging.getLogger(__name__)

VALID_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# physicalActivity duration units -> seconds per unit
DURATION_UNITS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
}


def gen_random_id() -> str:
    """16 random bytes, hex encoded."""
    return secrets.token_hex(16)


class Normalizer:
    """Validates and enriches raw records.

    - Stage 1: legacy record fix-ups (message notes) and id repair
    - Stage 2: time parsing, ``normalTime``, timezone and ``displayOffset``
    - Stage 3: type specific enrichment (interval ends, glucose units, local calendar fields)
    - Stage 4: structural validation against the datum schema
    """

    def __init__(
        self,
        bg_units: str = MGDL_UNITS,
        id_generator: Optional[IdGenerator] = None,
        schema: DatumSchemaDefinition = DATUM_SCHEMA,
        source: str = DATA_SOURCE,
    ) -> None:
        """Initialize the normalizer.

        Args:
            bg_units: Display unit glucose values are converted to
            id_generator: Callable producing ids for records without a usable one
            schema: Structural schema used by validate()
            source: Value written to every datum's ``source`` field
        """
        self.bg_units = bg_units
        self.id_generator = id_generator or gen_random_id
        self.schema = schema
        self.source = source

    def normalize(self, datum: Any) -> bool:
        """Normalize one record in place.

        Args:
            datum: Raw record

        Returns:
            True if the record is usable; False if it must be quarantined, in
            which case an ``errorMessage`` is set on mapping records
        """
        if not isinstance(datum, dict):
            logger.error("normalize: Invalid datum %r", datum)
            return False

        if isinstance(datum.get("normalTime"), str):
            # Already done
            return True

        self._convert_legacy_message(datum)

        datum_id = datum.get("id")
        if not isinstance(datum_id, str) or not VALID_ID.match(datum_id):
            datum["id"] = self.id_generator()
            logger.debug("Datum %s missing id, generated: %s", datum.get("type"), datum["id"])

        time_value = datum.get("time")
        if not isinstance(time_value, str):
            datum["errorMessage"] = "Missing time"
            return False

        instant = parse_instant(time_value)
        if instant is None:
            datum["errorMessage"] = f"Invalid time: {time_value}"
            logger.debug("Invalid time on datum %s", datum["id"])
            return False

        zone = resolve_timezone(datum.get("timezone"))
        if zone is None:
            datum["timezone"] = UTC_TIMEZONE
            zone = resolve_timezone(UTC_TIMEZONE)

        datum_type = datum.get("type")
        try:
            local = check_supported(instant).astimezone(zone)
            normal_end = self._normal_end(datum, instant)
        except (OverflowError, ValueError) as e:
            datum["errorMessage"] = f"Time out of range: {e}"
            logger.debug("Time out of range on datum %s: %s", datum["id"], e)
            return False

        offset = local.utcoffset() or timedelta(0)
        datum["displayOffset"] = -int(offset.total_seconds() // 60)
        datum["source"] = self.source
        datum["normalTime"] = to_iso_utc(instant)
        if normal_end is not None:
            datum["normalEnd"] = normal_end

        if datum_type in (DatumType.CBG, DatumType.SMBG):
            if self._stored_in_other_unit(datum) and _is_number(datum.get("value")):
                datum["value"] = convert_bg(datum["value"], self.bg_units)
            datum["units"] = self.bg_units
            datum["localDayOfWeek"] = WEEKDAY_NAMES[local.weekday()]
            datum["localDate"] = local.strftime(LOCAL_DATE_FORMAT)
            datum["msPer24"] = ms_since_midnight(local)
        elif datum_type == DatumType.WIZARD:
            if self._stored_in_other_unit(datum) and _is_number(datum.get("bgInput")) and datum["bgInput"]:
                datum["bgInput"] = convert_bg(datum["bgInput"], self.bg_units)
            datum["units"] = self.bg_units

        return True

    def validate(self, datum: Datum) -> bool:
        """Run the structural schema check; flag the record on failure."""
        error = self.schema.validate(datum)
        if error is not None:
            datum["errorMessage"] = error
            logger.debug("Schema validation failed for %s: %s", datum.get("id"), error)
            return False
        return True

    def _stored_in_other_unit(self, datum: Datum) -> bool:
        # Records without a known unit are taken as already in the display unit
        units = datum.get("units")
        return units in SUPPORTED_BG_UNITS and units != self.bg_units

    @staticmethod
    def _convert_legacy_message(datum: Datum) -> None:
        """Notes are stored with a different layout than device data."""
        if not isinstance(datum.get("messagetext"), str) or datum.get("type") == DatumType.MESSAGE:
            return
        datum["type"] = DatumType.MESSAGE.value
        timestamp = datum.pop("timestamp", None)
        instant = parse_instant(timestamp) if isinstance(timestamp, str) else None
        if instant is not None:
            datum["time"] = to_iso_utc(instant)
        if "parentmessage" in datum:
            datum["parentMessage"] = datum.pop("parentmessage")

    def _normal_end(self, datum: Datum, start: datetime) -> Optional[str]:
        """End of a basal or a physical activity, or None."""
        datum_type = datum.get("type")
        if datum_type == DatumType.BASAL:
            duration = datum.get("duration")
            if _is_number(duration):
                return to_iso_utc(check_supported(start + timedelta(milliseconds=duration)))
        elif datum_type == DatumType.PHYSICAL_ACTIVITY:
            seconds = self._activity_duration_seconds(datum.get("duration"))
            if seconds is not None:
                return to_iso_utc(check_supported(start + timedelta(seconds=seconds)))
        return None

    @staticmethod
    def _activity_duration_seconds(duration: Any) -> Optional[float]:
        if not isinstance(duration, dict) or not _is_number(duration.get("value")):
            return None
        per_unit = DURATION_UNITS.get(duration.get("units"))
        if per_unit is None:
            return None
        return duration["value"] * per_unit


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
