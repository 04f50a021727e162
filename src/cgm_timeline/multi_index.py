"""Multidimensional index over a list of records.

Each dimension is a Polars column extracted once from the records; filters are
Polars expressions kept per dimension. Reading a dimension returns the records
matching every active filter of the index, ordered by that dimension.

Filter state is shared by everybody holding the same index object: a filter
left on one dimension also restricts reads on the other dimensions. Consumers
either follow clear -> filter -> read -> clear, or take their own ``session()``.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import polars as pl

from cgm_timeline.timeutils import epoch_ms, to_iso_utc

logger = logging.getLogger(__name__)

ROW_COLUMN = "__row"


class Dimension(NamedTuple):
    """How to extract one dimension key from a record."""
    name: str
    key: Callable[[Any], Any]
    dtype: pl.DataType


def field_key(field_name: str) -> Callable[[Any], Any]:
    """Key function reading a mapping field (missing fields give None)."""
    def key(record: Any) -> Any:
        return record.get(field_name) if isinstance(record, dict) else None
    return key


def attribute_key(attribute: str) -> Callable[[Any], Any]:
    def key(record: Any) -> Any:
        return getattr(record, attribute, None)
    return key


class MultiIndex:
    """Range / exact / membership queries over records.

    Supported operations, each replacing the previous filter of the same dimension:
    - query_range(dimension, (lo, hi)): lo <= key < hi
    - query_exact(dimension, key): key == value
    - query_in(dimension, keys): key in keys
    - clear(dimension) / clear_all()

    Querying an unknown dimension logs an error and returns nothing.
    """

    def __init__(self, records: Sequence[Any], dimensions: Iterable[Dimension]) -> None:
        """Build the index.

        Args:
            records: Records to index (kept by reference, never copied)
            dimensions: Dimension definitions
        """
        self._records = list(records)
        self._dimensions: Dict[str, Dimension] = {d.name: d for d in dimensions}
        columns = [pl.Series(ROW_COLUMN, range(len(self._records)), dtype=pl.Int64)]
        for dim in self._dimensions.values():
            values = [dim.key(record) for record in self._records]
            columns.append(pl.Series(dim.name, values, dtype=dim.dtype, strict=False))
        self._frame = pl.DataFrame(columns)
        self._filters: Dict[str, pl.Expr] = {}
        self.misuse_count = 0

    @classmethod
    def _from_frame(cls, other: "MultiIndex") -> "MultiIndex":
        index = cls.__new__(cls)
        index._records = other._records
        index._dimensions = other._dimensions
        index._frame = other._frame
        index._filters = {}
        index.misuse_count = 0
        return index

    def session(self) -> "MultiIndex":
        """Independent filter state over the same records and columns."""
        return MultiIndex._from_frame(self)

    @property
    def dimensions(self) -> List[str]:
        return list(self._dimensions)

    @property
    def active_filters(self) -> List[str]:
        return list(self._filters)

    def __len__(self) -> int:
        return len(self._records)

    # ===== Filters =====

    def query_range(self, dimension: str, bounds: Tuple[Any, Any]) -> List[Any]:
        """Filter ``dimension`` to [lo, hi) and read it.

        Args:
            dimension: Dimension name
            bounds: (lo, hi); datetimes are accepted for string time dimensions

        Returns:
            Matching records ordered by the dimension
        """
        if not self._check(dimension):
            return []
        lo, hi = (self._coerce(dimension, b) for b in bounds)
        col = pl.col(dimension)
        self._filters[dimension] = (col >= lo) & (col < hi)
        return self.records(dimension)

    def query_exact(self, dimension: str, key: Any) -> List[Any]:
        """Filter ``dimension`` to one key and read it."""
        if not self._check(dimension):
            return []
        self._filters[dimension] = pl.col(dimension) == self._coerce(dimension, key)
        return self.records(dimension)

    def query_in(self, dimension: str, keys: Iterable[Any]) -> List[Any]:
        """Filter ``dimension`` to a set of keys (e.g. weekdays) and read it."""
        if not self._check(dimension):
            return []
        self._filters[dimension] = self._membership(dimension, keys)
        return self.records(dimension)

    def clear(self, dimension: str) -> None:
        """Remove the filter of one dimension."""
        if not self._check(dimension):
            return
        self._filters.pop(dimension, None)

    def clear_all(self) -> None:
        self._filters.clear()

    # ===== Reads =====

    def records(self, dimension: Optional[str] = None) -> List[Any]:
        """Records matching every active filter.

        Args:
            dimension: Order by this dimension (insertion order if None)

        Returns:
            List of records
        """
        if dimension is not None and not self._check(dimension):
            return []
        return self._evaluate(list(self._filters.values()), dimension)

    def select(
        self,
        dimension: str,
        bounds: Optional[Tuple[Any, Any]] = None,
        key: Any = None,
        keys: Optional[Iterable[Any]] = None,
    ) -> List[Any]:
        """Evaluate one filter without reading or changing the shared filter state.

        Exactly one of ``bounds``, ``key`` or ``keys`` is used (in that order).
        """
        if not self._check(dimension):
            return []
        col = pl.col(dimension)
        if bounds is not None:
            lo, hi = (self._coerce(dimension, b) for b in bounds)
            expr = (col >= lo) & (col < hi)
        elif keys is not None:
            expr = self._membership(dimension, keys)
        else:
            expr = col == self._coerce(dimension, key)
        return self._evaluate([expr], dimension)

    def _evaluate(self, exprs: List[pl.Expr], order_by: Optional[str]) -> List[Any]:
        if self._frame.height == 0:
            return []
        frame = self._frame
        if exprs:
            frame = frame.filter(*exprs)
        if order_by is not None:
            frame = frame.sort([order_by, ROW_COLUMN], nulls_last=True)
        return [self._records[row] for row in frame[ROW_COLUMN].to_list()]

    def _check(self, dimension: str) -> bool:
        if dimension in self._dimensions:
            return True
        self.misuse_count += 1
        logger.error("Invalid dimension %r (known: %s)", dimension, ", ".join(self._dimensions))
        return False

    def _membership(self, dimension: str, keys: Iterable[Any]) -> pl.Expr:
        values = [self._coerce(dimension, k) for k in keys]
        if not values:
            return pl.lit(False)
        return pl.col(dimension).is_in(values)

    def _coerce(self, dimension: str, value: Any) -> Any:
        if not isinstance(value, datetime):
            return value
        dtype = self._dimensions[dimension].dtype
        if dtype == pl.Utf8:
            return to_iso_utc(value)
        if dtype == pl.Int64:
            return epoch_ms(to_iso_utc(value))
        return value
