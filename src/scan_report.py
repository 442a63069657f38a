"""
Scan report exports.

Turns a ScanSession into:
- a scan log (Excel via openpyxl, or CSV) with one row per accepted item
- a JSON session summary, written atomically so a crash never leaves a
  half-written file behind
"""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Union

import pandas as pd
from openpyxl.styles import PatternFill

from logger import get_logger
from models import ScanRecord, SessionState, utc_now
from progress_reporter import ProgressReporter

logger = get_logger(__name__)

SUMMARY_VERSION = "1.0.0"
SCAN_LOG_COLUMNS = ['Item_ID', 'Sequence', 'Accepted_At', 'Receipt', 'Ledger_Sequence']

_COMPLETED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
_EXCEPTION_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")


def records_to_dataframe(records: Iterable[ScanRecord]) -> pd.DataFrame:
    """One row per accepted item, in acceptance order."""
    rows = [
        {
            'Item_ID': r.item.item_id,
            'Sequence': r.item.sequence,
            # Excel cannot store timezone-aware datetimes
            'Accepted_At': r.accepted_at.isoformat(),
            'Receipt': r.receipt,
            'Ledger_Sequence': r.ledger_sequence,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=SCAN_LOG_COLUMNS)


def export_scan_log(session, path: Union[str, Path]) -> Path:
    """
    Write the session's scan log.

    The format follows the file extension: `.xlsx` writes a workbook with a
    Scans sheet and a Summary sheet, `.csv` writes the scan rows only.

    Returns:
        The path written

    Raises:
        ValueError: For any other extension
    """
    path = Path(path)
    df = records_to_dataframe(session.scan_records)
    suffix = path.suffix.lower()

    if suffix == '.csv':
        df.to_csv(path, index=False, encoding='utf-8-sig')
    elif suffix == '.xlsx':
        summary = _summary_rows(session)
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Scans')
            summary.to_excel(writer, index=False, sheet_name='Summary')

            fill = None
            if session.state is SessionState.COMPLETED:
                fill = _COMPLETED_FILL
            elif session.state is SessionState.EXCEPTION:
                fill = _EXCEPTION_FILL
            if fill is not None:
                for row in writer.sheets['Summary'].iter_rows(min_row=2):
                    for cell in row:
                        cell.fill = fill
    else:
        raise ValueError(f"Unsupported report format: {path.suffix or '(none)'}")

    logger.info(f"Scan log exported to {path} ({len(df)} rows)")
    return path


def _summary_rows(session) -> pd.DataFrame:
    snapshot = ProgressReporter().snapshot(session)
    shipment = session.shipment
    rows = [
        ('Shipment', shipment.shipment_id if shipment else ''),
        ('State', session.state.value),
        ('Expected', snapshot.total),
        ('Scanned', snapshot.scanned),
        ('Missing', snapshot.missing),
        ('Progress %', snapshot.percentage),
    ]
    if session.exception is not None:
        rows.append(('Exception', session.exception.message))
    return pd.DataFrame(rows, columns=['Field', 'Value'])


def build_session_summary(session, actor_id: str) -> Dict[str, Any]:
    """
    Build the JSON-serialisable summary of one receiving session.

    Args:
        session: The ScanSession to summarise
        actor_id: Actor that operated the session

    Returns:
        dict with shipment metadata, progress numbers, the exception record (if
        any) and every accepted item
    """
    snapshot = ProgressReporter().snapshot(session)
    records = session.scan_records

    finished_at = None
    if session.state is SessionState.EXCEPTION and session.exception is not None:
        finished_at = session.exception.raised_at.isoformat()
    elif session.state is SessionState.COMPLETED and records:
        finished_at = records[-1].accepted_at.isoformat()

    return {
        'version': SUMMARY_VERSION,
        'generated_at': utc_now().isoformat(),
        'actor_id': actor_id,
        'shipment': session.shipment.to_dict() if session.shipment else None,
        'state': session.state.value,
        'progress': snapshot.to_dict(),
        'first_scan_at': records[0].accepted_at.isoformat() if records else None,
        'finished_at': finished_at,
        'exception': session.exception.to_dict() if session.exception else None,
        'items': [r.to_dict() for r in records],
    }


def save_session_summary(summary: Dict[str, Any], path: Union[str, Path]) -> Path:
    """
    Atomically write a summary produced by build_session_summary().

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Atomic write: temp file in the same directory, then replace
    with tempfile.NamedTemporaryFile(
        mode='w',
        dir=path.parent,
        prefix='.tmp_summary_',
        suffix='.json',
        delete=False,
        encoding='utf-8'
    ) as tmp_file:
        json.dump(summary, tmp_file, indent=2, ensure_ascii=False)
        tmp_path = tmp_file.name

    shutil.move(tmp_path, path)
    logger.info(f"Session summary saved to {path}")
    return path
