"""Shared fixtures: deterministic ids and raw record builders."""

import itertools
from typing import Any, Callable, Dict

import pytest


@pytest.fixture
def id_generator() -> Callable[[], str]:
    """Deterministic id factory (gen0000, gen0001, ...)."""
    counter = itertools.count()
    return lambda: f"gen{next(counter):04d}"


@pytest.fixture
def make_record() -> Callable[..., Dict[str, Any]]:
    """Build a raw record: make_record('cbg', '2023-03-15T10:00:00Z', id='c1', value=120)."""
    def build(datum_type: str, time: str, **fields: Any) -> Dict[str, Any]:
        record: Dict[str, Any] = {"type": datum_type, "time": time, "timezone": "UTC"}
        if datum_type in ("cbg", "smbg"):
            record.update({"value": 120, "units": "mg/dL"})
        elif datum_type == "basal":
            record.update({"duration": 3600000, "deliveryType": "automated", "rate": 0.8})
        elif datum_type == "bolus":
            record.update({"normal": 2.0})
        record.update(fields)
        return record
    return build


@pytest.fixture
def make_normalized() -> Callable[..., Dict[str, Any]]:
    """Build an already normalized record (normalTime set, timezone set)."""
    def build(datum_type: str, normal_time: str, id: str, timezone: str = "UTC", **fields: Any) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": id,
            "type": datum_type,
            "time": normal_time,
            "normalTime": normal_time,
            "timezone": timezone,
            "displayOffset": 0,
        }
        record.update(fields)
        return record
    return build
