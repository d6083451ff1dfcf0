"""
Spreadsheet boundary: reading almanac files and exporting session lists.
"""

import io
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .models import TrainingSession


EXCEL_SUFFIXES = ('.xlsx', '.xls')

EXPORT_COLUMNS = {
    'id': 'ID',
    'date': 'Date',
    'start_time': 'Start',
    'end_time': 'End',
    'batch': 'Batch',
    'year': 'Year',
    'topic': 'Topic',
    'planned_topics': 'Planned Topics',
    'venue': 'Venue',
    'trainer_name': 'Trainer',
    'status': 'Status',
    'actual_start_time': 'Actual Start',
    'actual_end_time': 'Actual End',
    'is_late': 'Late',
    'topic_covered': 'Topic Covered',
    'cancellation_reason': 'Cancellation Reason',
}

EXPORT_CONTENT_TYPES = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}


def read_almanac_rows(source, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read the first sheet of an almanac spreadsheet into row mappings.

    Args:
        source: Path or file-like object
        filename: Name used to pick the reader when source has none

    Returns:
        One dict per row keyed by the (stripped) column header, with blank
        cells as None

    Raises:
        ValueError: If the file type is not supported
    """
    name = filename or getattr(source, 'name', None) or str(source)
    suffix = Path(name).suffix.lower()

    if suffix not in EXCEL_SUFFIXES and suffix != '.csv':
        raise ValueError(f"Unsupported almanac file type {suffix or name!r}; use .xlsx, .xls or .csv")

    if hasattr(source, 'read'):
        source = _buffered(source)

    if suffix in EXCEL_SUFFIXES:
        frame = pd.read_excel(source, sheet_name=0)
    else:
        frame = pd.read_csv(source, dtype=str, encoding='utf-8-sig')

    frame.columns = [str(column).strip() for column in frame.columns]
    frame = frame.astype(object).where(frame.notna(), None)
    return frame.to_dict('records')


def sessions_to_frame(sessions: Iterable[TrainingSession]) -> pd.DataFrame:
    records = [
        {label: _export_value(getattr(session, attr)) for attr, label in EXPORT_COLUMNS.items()}
        for session in sessions
    ]
    return pd.DataFrame.from_records(records, columns=list(EXPORT_COLUMNS.values()))


def export_sessions(sessions: Iterable[TrainingSession], file_type: str = 'csv') -> bytes:
    """Serialize sessions to CSV or XLSX bytes for download."""
    frame = sessions_to_frame(sessions)

    if file_type == 'xlsx':
        buffer = io.BytesIO()
        frame.to_excel(buffer, index=False, sheet_name='Sessions')
        return buffer.getvalue()
    if file_type == 'csv':
        return frame.to_csv(index=False).encode('utf-8')

    raise ValueError(f"Unsupported export type {file_type!r}")


def _export_value(value):
    if value is None:
        return ''
    if isinstance(value, list):
        return ', '.join(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if isinstance(value, str):
        return str(value)
    return value


def _buffered(upload) -> io.BytesIO:
    # Uploaded files are not io.BufferedIOBase instances; pandas needs a real binary stream.
    content = upload.read()
    if isinstance(content, str):
        content = content.encode('utf-8')
    return io.BytesIO(content)
