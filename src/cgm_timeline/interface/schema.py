"""Base Schema Infrastructure.

This module defines the base types, enums, and schema builder classes
used to describe the shape of timeline records (datums) per record type.
"""

from enum import Enum
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypedDict, NotRequired


class EnumLiteral(str, Enum):
    """
    A general base class for string-based enums that behave like literals.
    Ensures compatibility with str comparisons and retains enum benefits.
    """
    def __new__(cls, value, *args, **kwargs):
        obj = str.__new__(cls, value)
        obj._value_ = value
        return obj

    def __str__(self):
        # String representation directly returns the value
        return self.value

    def __eq__(self, other):
        # Allow direct comparison with strings
        if isinstance(other, str):
            return self.value == other
        return super().__eq__(other)

    def __hash__(self):
        # Use the hash of the value to behave like a string in hashable contexts
        return hash(self.value)

    def __repr__(self):
        # For print statements and serialization
        return self.value


class FieldSchema(TypedDict):
    """Schema definition for a single datum field."""
    name: str
    types: Tuple[Type, ...]
    description: str
    required: NotRequired[bool]
    unit: NotRequired[str]


def _matches(value: Any, types: Tuple[Type, ...]) -> bool:
    """Type check where booleans never count as numbers."""
    if isinstance(value, bool) and bool not in types:
        return False
    return isinstance(value, types)


class DatumSchemaDefinition:
    """Structural schema for heterogeneous timeline records.

    A record is valid when every common field and every field declared for its
    ``type`` (or for its ``type``/``subType`` pair) satisfies the declared types.
    Optional fields are only checked when present and not ``None``.
    """

    def __init__(
        self,
        common_fields: List[FieldSchema],
        type_fields: Dict[str, List[FieldSchema]],
        subtype_fields: Dict[Tuple[str, str], List[FieldSchema]] | None = None,
    ) -> None:
        """Initialize schema definition.

        Args:
            common_fields: Fields every normalized datum carries (id, type, time, ...)
            type_fields: Extra fields keyed by record type (e.g. 'cbg' -> value, units)
            subtype_fields: Extra fields keyed by (type, subType) pairs
        """
        self.common_fields = common_fields
        self.type_fields = type_fields
        self.subtype_fields = subtype_fields or {}

    def get_fields(self, datum_type: str, sub_type: str | None = None) -> List[FieldSchema]:
        """Get every field schema that applies to a record type.

        Args:
            datum_type: Record type (e.g. 'bolus')
            sub_type: Optional record sub type (e.g. 'timeChange')

        Returns:
            Common fields followed by type and sub type specific fields
        """
        fields = self.common_fields + self.type_fields.get(datum_type, [])
        if sub_type is not None:
            fields = fields + self.subtype_fields.get((datum_type, sub_type), [])
        return fields

    def validate(self, datum: Mapping[str, Any]) -> Optional[str]:
        """Check the shape of one datum.

        Args:
            datum: Normalized record

        Returns:
            None when the record matches the schema, otherwise a message
            naming the first offending field
        """
        if not isinstance(datum, Mapping):
            return f"Datum must be a mapping, got {type(datum).__name__}"

        datum_type = datum.get("type")
        if not isinstance(datum_type, str):
            return "Field 'type' must be str"
        sub_type = datum.get("subType")
        if not isinstance(sub_type, str):
            sub_type = None
        for field in self.get_fields(datum_type, sub_type):
            name = field["name"]
            value = datum.get(name)
            if value is None:
                if field.get("required", True):
                    return f"Missing field '{name}' for type '{datum_type}'"
                continue
            if not _matches(value, field["types"]):
                expected = ", ".join(t.__name__ for t in field["types"])
                return f"Field '{name}' of type '{datum_type}' must be {expected}, got {type(value).__name__}"
        return None


NUMBER = (Real,)
STRING = (str,)
MAPPING = (Mapping,)
