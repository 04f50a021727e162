"""Tests for timezone change detection."""

import pytest

from cgm_timeline.patient_data import PatientData
from cgm_timeline.timezone_changes import TimezoneChangeDetector, is_time_change


@pytest.fixture
def detector(id_generator) -> TimezoneChangeDetector:
    return TimezoneChangeDetector(id_generator)


def test_first_record_initializes_cursor(detector, make_normalized):
    """Test that the first record sets the cursor without a marker."""
    assert detector.observe(make_normalized("cbg", "2023-03-15T10:00:00.000Z", "c1", "Europe/Paris")) is None
    assert detector.current == "Europe/Paris"
    assert detector.markers == []


def test_marker_content(detector, make_normalized):
    """Test the synthesized marker fields."""
    detector.observe(make_normalized("cbg", "2023-03-15T10:00:00.000Z", "c1", "UTC"))
    paris = make_normalized("cbg", "2023-03-15T10:30:00.000Z", "c2", "Europe/Paris", displayOffset=-60)

    marker = detector.observe(paris)

    assert is_time_change(marker)
    assert marker["id"] == "gen0000"
    assert marker["normalTime"] == "2023-03-15T10:30:00.000Z"
    assert marker["timezone"] == "Europe/Paris"
    assert marker["from"] == {"time": "2023-03-15T10:30:00", "timeZoneName": "UTC"}
    assert marker["to"] == {"time": "2023-03-15T11:30:00", "timeZoneName": "Europe/Paris"}
    assert marker["method"] == "automatic"
    assert detector.current == "Europe/Paris"


def test_utc_records_do_not_move_cursor(detector, make_normalized):
    """Test that UTC records are not treated as a change."""
    detector.observe(make_normalized("cbg", "2023-03-15T10:00:00.000Z", "c1", "Europe/Paris"))

    assert detector.observe(make_normalized("cbg", "2023-03-15T11:00:00.000Z", "c2", "UTC")) is None
    assert detector.current == "Europe/Paris"


def test_explicit_time_change_is_adopted(detector, make_normalized):
    """Test that a recorded timeChange moves the cursor without a marker."""
    detector.observe(make_normalized("cbg", "2023-03-15T10:00:00.000Z", "c1", "Europe/Paris"))
    explicit = make_normalized(
        "deviceEvent", "2023-03-15T12:00:00.000Z", "tc1", "America/New_York",
        subType="timeChange",
        **{"from": {"time": "2023-03-15T13:00:00", "timeZoneName": "Europe/Paris"},
           "to": {"time": "2023-03-15T08:00:00", "timeZoneName": "America/New_York"}},
    )

    assert detector.observe(explicit) is None
    assert detector.current == "America/New_York"
    assert detector.markers == []


def test_marker_placed_before_first_record_in_new_zone(id_generator, make_record):
    """Test [UTC, UTC, Paris, Paris] gives exactly one marker right before the first Paris record."""
    records = [
        make_record("cbg", "2023-03-15T08:30:00Z", id="c1", timezone="UTC"),
        make_record("cbg", "2023-03-15T09:30:00Z", id="c2", timezone="UTC"),
        make_record("cbg", "2023-03-15T10:30:00Z", id="c3", timezone="Europe/Paris"),
        make_record("cbg", "2023-03-15T11:30:00Z", id="c4", timezone="Europe/Paris"),
    ]

    patient_data = PatientData(records, id_generator=id_generator)

    timeline = [d for d in patient_data.data if d["type"] != "fill"]
    markers = [d for d in timeline if is_time_change(d)]
    assert len(markers) == 1
    position = timeline.index(markers[0])
    assert timeline[position + 1]["id"] == "c3"
    assert [d["id"] for d in timeline if d["type"] == "cbg"] == ["c1", "c2", "c3", "c4"]
    assert markers[0] in patient_data.grouped["deviceEvent"]
    assert patient_data.diagnostics.timezone_changes == markers


def test_marker_generation_is_deterministic(make_record):
    """Test that the same input gives the same markers."""
    def ingest():
        ids = iter(f"id{n}" for n in range(100))
        records = [
            make_record("cbg", "2023-03-15T08:30:00Z", id="c1", timezone="UTC"),
            make_record("cbg", "2023-03-15T10:30:00Z", id="c2", timezone="Europe/Paris"),
            make_record("cbg", "2023-03-15T12:30:00Z", id="c3", timezone="Asia/Tokyo"),
        ]
        patient_data = PatientData(records, id_generator=lambda: next(ids))
        return patient_data.diagnostics.timezone_changes

    assert ingest() == ingest()
    assert len(ingest()) == 2
