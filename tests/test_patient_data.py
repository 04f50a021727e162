"""Tests for the ingestion entry point and its end-to-end properties."""

from datetime import datetime, timezone

import pytest

from cgm_timeline import PatientData
from cgm_timeline.interface.timeline_interface import (
    MMOLL_UNITS,
    IngestionWarning,
    InvalidInputError,
    InvalidOptionsError,
)


@pytest.fixture
def sample_records(make_record):
    """Two days of mixed records, one shared id and one invalid record."""
    return [
        make_record("cbg", "2023-03-14T08:00:00Z", id="c1", value=110),
        make_record("cbg", "2023-03-14T08:05:00Z", id="c2", value=115),
        make_record("smbg", "2023-03-14T12:00:00Z", id="s1", value=6.1, units=MMOLL_UNITS),
        make_record("basal", "2023-03-14T09:00:00Z", id="ba1", deliveryType="scheduled"),
        make_record("basal", "2023-03-14T10:00:00Z", id="tmp", deliveryType="temp"),
        make_record("wizard", "2023-03-14T11:58:00Z", id="w1", bolus="b1", carbInput=40),
        make_record("bolus", "2023-03-14T12:00:00Z", id="b1", normal=4.0, expectedNormal=4.0),
        make_record("bolus", "2023-03-15T07:00:00Z", id="b2", normal=1.5, expectedNormal=3.0),
        make_record("deviceEvent", "2023-03-15T07:30:00Z", id="dp1", subType="deviceParameter", name="PATIENT_WEIGHT"),
        make_record("deviceEvent", "2023-03-15T07:31:00Z", id="dp2", subType="deviceParameter", name="PATIENT_HEIGHT"),
        make_record("cbg", "2023-03-15T08:00:00Z", id="c1", value=999),
        make_record("cbg", "2023-03-15T09:00:00Z", id="c3", value=160),
        {"type": "cbg", "id": "broken", "value": 100, "units": "mg/dL"},
    ]


def timeline_ids(patient_data):
    return [d["id"] for d in patient_data.data if d["type"] != "fill"]


def timeline_ids_of(records):
    return [d["id"] for d in records]


@pytest.mark.parametrize("raw", [None, {"records": []}, "records", 42])
def test_non_sequence_input_is_rejected(raw):
    """Test that the only fatal error is a non list input."""
    with pytest.raises(InvalidInputError):
        PatientData(raw)


def test_invalid_input_error_is_type_error():
    """Test the exception hierarchy."""
    with pytest.raises(TypeError):
        PatientData({"records": []})


def test_invalid_options_are_rejected():
    """Test that unusable options fail construction."""
    with pytest.raises(InvalidOptionsError):
        PatientData([], {"bgUnits": "mg"})


def test_empty_input():
    """Test the derived state of an empty dataset."""
    patient_data = PatientData([])

    assert patient_data.data == []
    assert patient_data.endpoints is None
    assert patient_data.basics_data.is_empty
    assert patient_data.get_timezone("2023-03-15T12:00:00Z") == "UTC"
    assert not patient_data.has_warnings()
    assert patient_data.get_warnings() == []
    assert set(patient_data.grouped) == {"fill", "upload", "deviceEvent", "cbg", "smbg"}


def test_pipeline_outputs(sample_records, id_generator):
    """Test the derived structures of a mixed dataset."""
    patient_data = PatientData(sample_records, id_generator=id_generator)

    assert timeline_ids(patient_data) == [
        "c1", "c2", "ba1", "w1", "s1", "b1", "b2", "dp1", "dp2", "c3",
    ]
    assert patient_data.diagnostics.duplicate_count == 1
    assert patient_data.diagnostics.invalid_count == 1
    assert patient_data.diagnostics.temp_basals == 1
    assert patient_data.endpoints == ("2023-03-14T08:00:00.000Z", "2023-03-15T09:00:00.000Z")
    assert patient_data.grouped["smbg"][0]["value"] == pytest.approx(6.1 * 18.01559)

    assert len(patient_data.grouped["fill"]) == 16
    assert all(d in patient_data.data for d in patient_data.grouped["fill"])

    assert len(patient_data.device_parameters) == 1
    assert [m["id"] for m in patient_data.device_parameters[0].members] == ["dp1", "dp2"]

    assert patient_data.daily_data.cbg_max == 160
    assert patient_data.daily_data.bolus_max == 4.0

    basics = patient_data.basics_data
    assert basics.date_range == ["2023-02-27", "2023-03-15"]
    bolus = basics.buckets["bolus"]
    assert [(b["id"], b["manual"], b["interrupted"]) for b in bolus.data] == [
        ("b1", True, False),
        ("b2", False, True),
    ]
    assert basics.buckets["basal"].n_scheduled == 1

    assert IngestionWarning.DUPLICATES in patient_data.get_warnings()
    assert IngestionWarning.INVALID_RECORDS in patient_data.get_warnings()
    assert IngestionWarning.TIMEZONE_CHANGES not in patient_data.get_warnings()


def test_timeline_invariants_across_calls(sample_records, make_record, id_generator):
    """Test id uniqueness and ordering after every ingestion call."""
    patient_data = PatientData(sample_records[:6], id_generator=id_generator)
    batches = [
        sample_records[6:],
        [make_record("cbg", "2023-03-13T23:00:00Z", id="early"), make_record("bolus", "2023-03-15T10:00:00Z")],
        [make_record("cbg", "2023-03-14T08:00:00Z", id="c1")],
    ]

    for batch in batches:
        patient_data.add_data(batch)
        ids = [d["id"] for d in patient_data.data]
        times = [d["normalTime"] for d in patient_data.data]
        assert len(ids) == len(set(ids))
        assert times == sorted(times)

    assert timeline_ids(patient_data)[0] == "early"


def test_add_empty_data_is_a_no_op(sample_records, id_generator):
    """Test that add_data([]) leaves all derived state unchanged."""
    patient_data = PatientData(sample_records, id_generator=id_generator)
    data = patient_data.data
    snapshot = [dict(d) for d in data]
    basics = patient_data.basics_data
    filter_data = patient_data.filter_data

    patient_data.add_data([])

    assert patient_data.data is data
    assert [dict(d) for d in patient_data.data] == snapshot
    assert patient_data.basics_data is basics
    assert patient_data.filter_data is filter_data
    assert patient_data.diagnostics.duplicate_count == 1


def test_cross_batch_duplicates_are_dropped(make_record):
    """Test that an id added again in a later call is a duplicate."""
    record = make_record("cbg", "2023-03-15T08:00:00Z", id="c1")
    patient_data = PatientData([record, make_record("cbg", "2023-03-15T09:00:00Z", id="c2")])

    patient_data.add_data([record])

    assert timeline_ids(patient_data) == ["c1", "c2"]
    assert patient_data.diagnostics.duplicate_count == 1


def test_units_are_converted_once(make_record):
    """Test that re-ingestion never converts a stored value twice."""
    patient_data = PatientData(
        [make_record("cbg", "2023-03-15T08:00:00Z", id="c1", value=10, units=MMOLL_UNITS)],
    )
    patient_data.add_data([make_record("cbg", "2023-03-15T09:00:00Z", id="c2")])
    patient_data.add_data([make_record("cbg", "2023-03-15T10:00:00Z", id="c3")])

    c1 = patient_data.filter_data.select("id", key="c1")[0]
    assert c1["value"] == pytest.approx(180.1559)


def test_caller_records_are_not_modified(make_record):
    """Test that ingestion works on copies of the caller's records."""
    record = make_record("cbg", "2023-03-15T08:00:00Z", id="c1", value=10, units=MMOLL_UNITS)
    original = dict(record)

    PatientData([record])

    assert record == original


def test_mmoll_dataset(make_record):
    """Test resolved units and classes for a mmol/L dataset."""
    patient_data = PatientData(
        [make_record("cbg", "2023-03-15T08:00:00Z", id="c1", value=180.1559)],
        {"bgUnits": MMOLL_UNITS},
    )

    assert patient_data.bg_units == MMOLL_UNITS
    assert patient_data.bg_classes["target"]["boundary"] == 10.0
    assert patient_data.grouped["cbg"][0]["value"] == pytest.approx(10)


def test_time_prefs_follow_latest_timezone(make_record):
    """Test that the timezone preference moves to the last detected zone."""
    patient_data = PatientData([
        make_record("cbg", "2023-03-15T08:00:00Z", id="c1"),
        make_record("cbg", "2023-03-15T09:00:00Z", id="c2", timezone="Europe/Paris"),
    ])

    assert patient_data.time_prefs["timezoneName"] == "Europe/Paris"
    assert IngestionWarning.TIMEZONE_CHANGES in patient_data.get_warnings()
    assert all(f["timezone"] == "Europe/Paris" for f in patient_data.grouped["fill"])


def test_get_timezone_expanding_search(make_record):
    """Test the nearest timezone lookup, far from any record."""
    patient_data = PatientData(
        [
            make_record("cbg", "2023-03-15T00:00:00Z", id="c1"),
            make_record("cbg", "2023-03-15T10:00:00Z", id="c2", timezone="Europe/Paris"),
            make_record("bolus", "2023-03-15T10:00:00Z", id="b1", timezone="Europe/Paris"),
        ],
        {"diabetesDataTypes": ["bolus"]},
    )
    assert patient_data.grouped["fill"] == []

    assert patient_data.get_timezone("2023-03-15T08:00:00Z") == "Europe/Paris"
    assert patient_data.get_timezone("2023-03-15T03:00:00Z") == "UTC"
    assert patient_data.get_timezone(datetime(2023, 3, 15, 9, 0, tzinfo=timezone.utc)) == "Europe/Paris"
    assert patient_data.get_timezone("2023-03-14T00:00:00Z") == "UTC"
    assert patient_data.get_timezone("2023-03-16T00:00:00Z") == "Europe/Paris"
    assert patient_data.filter_data.active_filters == []


def test_get_timezone_invalid_date(make_record):
    """Test that an unparsable date is rejected."""
    patient_data = PatientData([make_record("cbg", "2023-03-15T00:00:00Z", id="c1")])

    with pytest.raises(ValueError):
        patient_data.get_timezone("yesterday")


def test_get_timezone_leaves_shared_filters_alone(sample_records):
    """Test that the lookup neither uses nor clears the caller's filters."""
    patient_data = PatientData(sample_records)
    patient_data.filter_data.query_exact("id", "c3")

    assert patient_data.get_timezone("2023-03-14T12:00:00Z") == "UTC"
    assert patient_data.filter_data.active_filters == ["id"]
    assert timeline_ids_of(patient_data.filter_data.records()) == ["c3"]


def test_indices(sample_records):
    """Test the timeline, cbg and smbg indices."""
    patient_data = PatientData(sample_records)

    assert timeline_ids_of(patient_data.filter_data.query_exact("id", "b2")) == ["b2"]
    patient_data.filter_data.clear("id")

    found = patient_data.cbg_data.query_in("dayOfWeek", ["tuesday"])
    assert timeline_ids_of(found) == ["c1", "c2"]
    patient_data.cbg_data.clear("dayOfWeek")

    found = patient_data.smbg_data.query_range("datetime", ("2023-03-14T00:00:00.000Z", "2023-03-15T00:00:00.000Z"))
    assert timeline_ids_of(found) == ["s1"]

    assert set(patient_data.indices()) == {
        "filterData", "cbgData", "smbgData",
        "cbgByTimestamps", "bolusByTimestamps", "wizardByTimestamps", "foodByTimestamps",
    }


def test_dimension_misuse_is_flagged(sample_records):
    """Test that querying an unknown dimension raises a warning flag, not an error."""
    patient_data = PatientData(sample_records)

    assert patient_data.cbg_data.query_exact("bogus", "x") == []
    assert IngestionWarning.DIMENSION_MISUSE in patient_data.get_warnings()


def test_basics_pad_week_option(make_record):
    """Test the week padding option end to end."""
    patient_data = PatientData(
        [make_record("cbg", "2023-03-15T12:00:00Z", id="c1")],
        {"basicsPadWeek": True},
    )

    assert len(patient_data.basics_data.days_of_type("future")) == 4


def test_device_params_offset_option(sample_records):
    """Test the clustering threshold option end to end."""
    patient_data = PatientData(sample_records, {"deviceParamsOffset": 30 * 1000})

    assert len(patient_data.device_parameters) == 2


def test_malformed_records_do_not_abort_ingestion(make_record):
    """Test that records failing late in the pipeline are absorbed, not raised."""
    patient_data = PatientData([
        make_record("cbg", "2023-03-15T08:00:00Z", id="c1"),
        make_record("food", "2023-03-15T09:00:00Z", id="f1", meal="rescuecarbs", nutrition={"carbohydrate": None}),
        make_record("basal", "2023-03-15T10:00:00Z", id="ba1", duration=1e20),
        make_record("cbg", "9999-12-31T23:00:00Z", id="c2", timezone="Pacific/Kiritimati"),
    ])

    assert timeline_ids(patient_data) == ["c1", "f1"]
    assert patient_data.diagnostics.invalid_count == 2
    assert patient_data.daily_data.food[0].value is None
