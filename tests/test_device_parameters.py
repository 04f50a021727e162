"""Tests for device parameter clustering."""

from cgm_timeline.device_parameters import DeviceParameterClusterer, is_device_parameter


def parameter(make_normalized, seconds: int, id: str, **fields):
    normal_time = f"2023-03-15T10:{seconds // 60:02d}:{seconds % 60:02d}.000Z"
    return make_normalized("deviceEvent", normal_time, id, subType="deviceParameter", **fields)


def test_clusters_by_distance_to_anchor(make_normalized):
    """Test events at 0s, 10s and 120s with a 60s threshold give two clusters."""
    events = [
        parameter(make_normalized, 0, "p0"),
        parameter(make_normalized, 10, "p10"),
        parameter(make_normalized, 120, "p120"),
    ]

    clusters = DeviceParameterClusterer(offset_ms=60 * 1000).cluster(events)

    assert len(clusters) == 2
    assert [[m["id"] for m in c.members] for c in clusters] == [["p0", "p10"], ["p120"]]
    assert clusters[0].id == "p0"
    assert clusters[0].anchor_time == "2023-03-15T10:00:00.000Z"
    assert clusters[1].anchor_time == "2023-03-15T10:02:00.000Z"


def test_distance_is_measured_from_anchor(make_normalized):
    """Test that chaining close events does not extend a cluster past the threshold."""
    events = [parameter(make_normalized, s, f"p{s}") for s in (0, 40, 80)]

    clusters = DeviceParameterClusterer(offset_ms=60 * 1000).cluster(events)

    assert [[m["id"] for m in c.members] for c in clusters] == [["p0", "p40"], ["p80"]]


def test_threshold_is_exclusive(make_normalized):
    """Test that an event exactly at the threshold starts a new cluster."""
    events = [parameter(make_normalized, 0, "p0"), parameter(make_normalized, 60, "p60")]

    clusters = DeviceParameterClusterer(offset_ms=60 * 1000).cluster(events)

    assert len(clusters) == 2


def test_other_device_events_are_ignored(make_normalized):
    """Test that only deviceParameter events are clustered."""
    events = [
        make_normalized("deviceEvent", "2023-03-15T09:59:00.000Z", "r1", subType="reservoirChange"),
        parameter(make_normalized, 0, "p0"),
    ]

    clusters = DeviceParameterClusterer().cluster(events)

    assert len(clusters) == 1
    assert not is_device_parameter(events[0])


def test_members_are_shared_references(make_normalized):
    """Test that clusters reference the grouped records instead of copying them."""
    event = parameter(make_normalized, 0, "p0", name="MEAL_RATIO", value="100")

    cluster = DeviceParameterClusterer().cluster([event])[0]

    assert cluster.members[0] is event
    assert cluster.to_dict() == {
        "normalTime": "2023-03-15T10:00:00.000Z",
        "id": "p0",
        "params": [event],
    }


def test_default_threshold_is_thirty_minutes(make_normalized):
    """Test the default threshold."""
    events = [
        make_normalized("deviceEvent", "2023-03-15T10:00:00.000Z", "a", subType="deviceParameter"),
        make_normalized("deviceEvent", "2023-03-15T10:29:59.000Z", "b", subType="deviceParameter"),
        make_normalized("deviceEvent", "2023-03-15T10:30:00.000Z", "c", subType="deviceParameter"),
    ]

    clusters = DeviceParameterClusterer().cluster(events)

    assert [[m["id"] for m in c.members] for c in clusters] == [["a", "b"], ["c"]]


def test_no_events():
    """Test that no events give no clusters."""
    assert DeviceParameterClusterer().cluster([]) == []
