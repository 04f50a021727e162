"""Compact per-type series for single-day charting."""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional

import polars as pl

from cgm_timeline.formats.datum_types import RESCUE_CARBS_MEAL, DatumType
from cgm_timeline.interface.timeline_interface import Datum
from cgm_timeline.multi_index import Dimension, MultiIndex, attribute_key
from cgm_timeline.timeutils import epoch_ms

logger = logging.getLogger(__name__)

SERIES_NAMES = ("cbg", "bolus", "wizard", "food")


class DailyPoint(NamedTuple):
    """One chart point: epoch milliseconds, zone and the plotted value(s)."""
    id: str
    timestamp: int
    timezone: str
    value: Optional[float]
    expected_value: Optional[float] = None


@dataclass
class DailyProjection:
    """Series used by the daily chart, with the maxima used to scale it."""
    cbg: List[DailyPoint] = field(default_factory=list)
    bolus: List[DailyPoint] = field(default_factory=list)
    wizard: List[DailyPoint] = field(default_factory=list)
    food: List[DailyPoint] = field(default_factory=list)
    cbg_max: float = -math.inf
    bolus_max: float = -math.inf
    by_timestamp: Dict[str, MultiIndex] = field(default_factory=dict)

    def series(self, name: str) -> List[DailyPoint]:
        return getattr(self, name)


def _number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class DailyProjectionBuilder:
    """One pass fold over the merged timeline."""

    def build(self, timeline: Iterable[Datum]) -> DailyProjection:
        """Project the timeline.

        Args:
            timeline: Merged timeline (any order; series are sorted by timestamp)

        Returns:
            DailyProjection with one timestamp index per series
        """
        projection = DailyProjection()
        for datum in timeline:
            self._add(projection, datum)

        for name in SERIES_NAMES:
            points = projection.series(name)
            points.sort(key=lambda p: p.timestamp)
            projection.by_timestamp[name] = MultiIndex(
                points,
                [Dimension("timestamp", attribute_key("timestamp"), pl.Int64)],
            )
        return projection

    def _add(self, projection: DailyProjection, datum: Datum) -> None:
        datum_type = datum.get("type")
        if datum_type not in (DatumType.CBG, DatumType.BOLUS, DatumType.WIZARD, DatumType.FOOD):
            return

        datum_id = datum["id"]
        timezone = datum["timezone"]
        timestamp = epoch_ms(datum["normalTime"])

        if datum_type == DatumType.CBG:
            value = datum.get("value")
            projection.cbg.append(DailyPoint(datum_id, timestamp, timezone, value))
            if _number(value) and value > projection.cbg_max:
                projection.cbg_max = value

        elif datum_type == DatumType.BOLUS:
            value = datum.get("normal")
            expected_value = datum.get("expectedNormal")
            projection.bolus.append(DailyPoint(datum_id, timestamp, timezone, value, expected_value))
            amounts = [v for v in (value, expected_value) if _number(v)]
            if amounts and max(amounts) > projection.bolus_max:
                projection.bolus_max = max(amounts)

        elif datum_type == DatumType.WIZARD:
            projection.wizard.append(DailyPoint(datum_id, timestamp, timezone, datum.get("carbInput")))

        elif datum.get("meal") == RESCUE_CARBS_MEAL:
            nutrition = datum.get("nutrition")
            carbs = nutrition.get("carbohydrate") if isinstance(nutrition, Mapping) else None
            value = carbs.get("net") if isinstance(carbs, Mapping) else None
            if value is None:
                logger.error("Missing rescue carbs amount on %s", datum_id)
            projection.food.append(DailyPoint(datum_id, timestamp, timezone, value))

        else:
            logger.error("Missing food meal type %r on %s", datum.get("meal"), datum_id)
