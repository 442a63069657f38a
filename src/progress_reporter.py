"""
Progress snapshots derived from a ScanSession.

Snapshots are computed on demand from session state and never stored
elsewhere, so the numbers on screen cannot drift from the session.
"""

from dataclasses import dataclass
from typing import Tuple, Dict, Any

from models import SessionState

DEFAULT_RECENT_LIMIT = 5


@dataclass(frozen=True)
class ProgressSnapshot:
    scanned: int
    total: int
    percentage: int
    missing: int
    state: SessionState = SessionState.EMPTY
    recent_item_ids: Tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.state is SessionState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scanned': self.scanned,
            'total': self.total,
            'percentage': self.percentage,
            'missing': self.missing,
            'state': self.state.value,
            'recent_item_ids': list(self.recent_item_ids),
        }


class ProgressReporter:
    """Turns session state into the numbers shown to the operator."""

    def __init__(self, recent_limit: int = DEFAULT_RECENT_LIMIT):
        self.recent_limit = recent_limit

    def snapshot(self, session) -> ProgressSnapshot:
        scanned = session.scanned_count
        total = session.expected_count

        if total > 0:
            percentage = (scanned * 100) // total
        else:
            # A zero-item shipment is done as soon as it is loaded
            percentage = 100 if session.state is SessionState.COMPLETED else 0

        return ProgressSnapshot(
            scanned=scanned,
            total=total,
            percentage=percentage,
            missing=max(total - scanned, 0),
            state=session.state,
            recent_item_ids=tuple(r.item.item_id for r in session.recent_records(self.recent_limit)),
        )
