"""Record types known to the timeline and their structural schema."""

from typing import Dict, List, Tuple

from cgm_timeline.interface.schema import (
    EnumLiteral,
    FieldSchema,
    DatumSchemaDefinition,
    NUMBER,
    STRING,
    MAPPING,
)


class DatumType(EnumLiteral):
    """Values of the ``type`` field."""
    BASAL = "basal"
    BOLUS = "bolus"
    CBG = "cbg"
    SMBG = "smbg"
    WIZARD = "wizard"
    DEVICE_EVENT = "deviceEvent"
    UPLOAD = "upload"
    MESSAGE = "message"
    PUMP_SETTINGS = "pumpSettings"
    FOOD = "food"
    PHYSICAL_ACTIVITY = "physicalActivity"
    FILL = "fill"


class DeviceEventSubType(EnumLiteral):
    """Values of the ``subType`` field for deviceEvent records."""
    TIME_CHANGE = "timeChange"
    DEVICE_PARAMETER = "deviceParameter"
    RESERVOIR_CHANGE = "reservoirChange"
    PRIME = "prime"
    CALIBRATION = "calibration"


class PrimeTarget(EnumLiteral):
    CANNULA = "cannula"
    TUBING = "tubing"


class BasalDeliveryType(EnumLiteral):
    TEMP = "temp"
    AUTOMATED = "automated"
    SCHEDULED = "scheduled"


RESCUE_CARBS_MEAL = "rescuecarbs"

# Types whose presence defines "the patient was treated / measured at this time"
# for the basics window (deviceEvent only for the listed sub types).
BASICS_RELEVANT_TYPES: Tuple[str, ...] = (
    DatumType.BASAL,
    DatumType.WIZARD,
    DatumType.BOLUS,
    DatumType.CBG,
    DatumType.SMBG,
    DatumType.PHYSICAL_ACTIVITY,
)
BASICS_RELEVANT_DEVICE_SUBTYPES: Tuple[str, ...] = (
    DeviceEventSubType.RESERVOIR_CHANGE,
    DeviceEventSubType.PRIME,
    DeviceEventSubType.CALIBRATION,
    DeviceEventSubType.DEVICE_PARAMETER,
)


COMMON_FIELDS: List[FieldSchema] = [
    {"name": "id", "types": STRING, "description": "Unique record identifier"},
    {"name": "type", "types": STRING, "description": "Record type"},
    {"name": "time", "types": STRING, "description": "Caller supplied timestamp"},
    {"name": "normalTime", "types": STRING, "description": "UTC ISO-8601 form of time"},
    {"name": "timezone", "types": STRING, "description": "IANA timezone name"},
]

TYPE_FIELDS: Dict[str, List[FieldSchema]] = {
    DatumType.CBG: [
        {"name": "value", "types": NUMBER, "description": "Continuous glucose reading"},
        {"name": "units", "types": STRING, "description": "Glucose unit"},
    ],
    DatumType.SMBG: [
        {"name": "value", "types": NUMBER, "description": "Self monitored glucose reading"},
        {"name": "units", "types": STRING, "description": "Glucose unit"},
    ],
    DatumType.BASAL: [
        {"name": "duration", "types": NUMBER, "description": "Delivery duration", "unit": "ms"},
        {"name": "deliveryType", "types": STRING, "description": "automated, scheduled, temp..."},
    ],
    DatumType.BOLUS: [
        {"name": "normal", "types": NUMBER, "description": "Delivered amount", "unit": "U"},
        {"name": "expectedNormal", "types": NUMBER, "description": "Programmed amount",
         "unit": "U", "required": False},
    ],
    DatumType.WIZARD: [
        {"name": "carbInput", "types": NUMBER, "description": "Carbohydrate estimate",
         "unit": "g", "required": False},
        {"name": "bgInput", "types": NUMBER, "description": "Glucose entered in the wizard",
         "required": False},
        {"name": "bolus", "types": STRING, "description": "Id of the linked bolus",
         "required": False},
    ],
    DatumType.DEVICE_EVENT: [
        {"name": "subType", "types": STRING, "description": "Device event kind"},
    ],
    DatumType.FOOD: [
        {"name": "meal", "types": STRING, "description": "Meal kind (rescuecarbs...)"},
        {"name": "nutrition", "types": MAPPING, "description": "Nutrition facts",
         "required": False},
    ],
    DatumType.MESSAGE: [
        {"name": "messagetext", "types": STRING, "description": "Note text", "required": False},
    ],
}

SUBTYPE_FIELDS: Dict[Tuple[str, str], List[FieldSchema]] = {
    (DatumType.DEVICE_EVENT, DeviceEventSubType.TIME_CHANGE): [
        {"name": "from", "types": MAPPING, "description": "{time, timeZoneName} before the change"},
        {"name": "to", "types": MAPPING, "description": "{time, timeZoneName} after the change"},
    ],
}

DATUM_SCHEMA = DatumSchemaDefinition(
    common_fields=COMMON_FIELDS,
    type_fields=TYPE_FIELDS,
    subtype_fields=SUBTYPE_FIELDS,
)
