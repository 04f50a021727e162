"""cgm_timeline - Ingestion pipeline for diabetes device event records.

This package turns raw, timestamped device records (glucose readings, insulin
delivery, carbohydrate entries, device parameter changes) into a normalized,
deduplicated, time-ordered and indexed timeline ready for charting.

Main Components:
    PatientData: Cumulative record buffer and the rebuilt derived state
    TimelineOptions: Resolved ingestion options
    MultiIndex: Range / exact / membership queries over records

Quick Start:
    >>> from cgm_timeline import PatientData
    >>>
    >>> patient_data = PatientData(records, {"bgUnits": "mmol/L"})
    >>> patient_data.add_data(more_records)
    >>> patient_data.get_timezone("2023-03-15T12:00:00Z")
    >>> patient_data.basics_data.date_range
"""

from cgm_timeline.multi_index import MultiIndex
from cgm_timeline.options import TimelineOptions
from cgm_timeline.patient_data import PatientData

__version__ = "0.1.0"

__all__ = [
    "PatientData",
    "TimelineOptions",
    "MultiIndex",
    "__version__",
]
