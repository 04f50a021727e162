"""Grouping of closely spaced device parameter changes."""

from dataclasses import dataclass, field
from typing import Iterable, List

from cgm_timeline.formats.datum_types import DatumType, DeviceEventSubType
from cgm_timeline.interface.timeline_interface import DEVICE_PARAMS_OFFSET, Datum
from cgm_timeline.timeutils import epoch_ms


@dataclass
class DeviceParameterCluster:
    """Parameter changes displayed as a single marker.

    Members are shared references to the grouped deviceEvent records.
    """
    anchor_time: str
    id: str
    members: List[Datum] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "normalTime": self.anchor_time,
            "id": self.id,
            "params": list(self.members),
        }


def is_device_parameter(datum: Datum) -> bool:
    return (
        datum.get("type") == DatumType.DEVICE_EVENT
        and datum.get("subType") == DeviceEventSubType.DEVICE_PARAMETER
    )


class DeviceParameterClusterer:
    """Clusters deviceParameter events by distance to the cluster anchor."""

    def __init__(self, offset_ms: int = DEVICE_PARAMS_OFFSET) -> None:
        """Initialize the clusterer.

        Args:
            offset_ms: An event joins the current cluster when it is less than
                this many milliseconds after the cluster's anchor
        """
        self.offset_ms = offset_ms

    def cluster(self, device_events: Iterable[Datum]) -> List[DeviceParameterCluster]:
        """Cluster time ordered device events.

        Args:
            device_events: deviceEvent records sorted by normalTime; other sub
                types are ignored

        Returns:
            Clusters in time order
        """
        clusters: List[DeviceParameterCluster] = []
        current = None
        anchor_ms = 0
        for datum in device_events:
            if not is_device_parameter(datum):
                continue
            datum_ms = epoch_ms(datum["normalTime"])
            if current is not None and datum_ms - anchor_ms < self.offset_ms:
                current.members.append(datum)
                continue
            current = DeviceParameterCluster(anchor_time=datum["normalTime"], id=datum["id"], members=[datum])
            clusters.append(current)
            anchor_ms = datum_ms
        return clusters
