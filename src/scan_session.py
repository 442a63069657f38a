"""
ScanSession - the receiving state machine for one shipment.

States:
    EMPTY -> LOADING_SHIPMENT -> READY_TO_SCAN -> SCANNING_ONE
                                      ^               |
                                      +---------------+--> COMPLETED
                                                      +--> EXCEPTION

EMPTY is initial; COMPLETED and EXCEPTION are terminal. A terminal session is
never reused: reset() hands back a brand-new EMPTY session, so a progress
snapshot taken from the old one stays a valid historical view.

The session is single-writer and holds no lock. Only one item can be in
flight, because SCANNING_ONE itself refuses a second begin_scan.

Invariants:
- scan_records holds each item id at most once
- len(scan_records) <= shipment.expected_item_count
- exception is set only in the EXCEPTION state
"""

from typing import Dict, List, Optional, Any

from exceptions import AlreadyScannedError, InvalidStateError
from logger import get_logger
from models import (
    DEFAULT_EXCEPTION_MESSAGE,
    TERMINAL_STATES,
    CommitResult,
    ExceptionRecord,
    ItemReference,
    ScanRecord,
    SessionState,
    ShipmentReference,
    utc_now,
)

logger = get_logger(__name__)


class ScanSession:
    """
    Holds one shipment's expected count, accepted records, current state and
    exception data, and exposes the allowed transitions.

    Attributes:
        shipment (ShipmentReference | None): Loaded shipment, immutable once set
        state (SessionState): Current state
        pending_item (ItemReference | None): Item whose confirmation is in flight
        exception (ExceptionRecord | None): Set only in EXCEPTION
    """

    def __init__(self, clock=None):
        self._clock = clock or utc_now
        self.shipment: Optional[ShipmentReference] = None
        self.state = SessionState.EMPTY
        self.pending_item: Optional[ItemReference] = None
        self.exception: Optional[ExceptionRecord] = None
        self._records: List[ScanRecord] = []
        self._scanned_ids = set()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def scan_records(self) -> List[ScanRecord]:
        """Accepted records in acceptance order (a copy)."""
        return list(self._records)

    @property
    def scanned_count(self) -> int:
        return len(self._records)

    @property
    def expected_count(self) -> int:
        return self.shipment.expected_item_count if self.shipment else 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def scanned_ids(self) -> frozenset:
        return frozenset(self._scanned_ids)

    def has_scanned(self, item: ItemReference) -> bool:
        return item.item_id in self._scanned_ids

    def recent_records(self, limit: int = 5) -> List[ScanRecord]:
        """Newest-first view for "recently scanned" lists."""
        if limit <= 0:
            return []
        return list(reversed(self._records[-limit:]))

    # ------------------------------------------------------------------
    # Transition 1: load shipment
    # ------------------------------------------------------------------

    def mark_loading(self) -> None:
        """EMPTY -> LOADING_SHIPMENT."""
        self._require('load_shipment', SessionState.EMPTY)
        self.state = SessionState.LOADING_SHIPMENT

    def complete_loading(self, shipment: ShipmentReference) -> None:
        """
        LOADING_SHIPMENT -> READY_TO_SCAN, or straight to COMPLETED when the
        shipment expects zero items.
        """
        self._require('complete_loading', SessionState.LOADING_SHIPMENT)
        self.shipment = shipment
        self._records = []
        self._scanned_ids = set()

        if shipment.expected_item_count == 0:
            self.state = SessionState.COMPLETED
            logger.info(f"Shipment {shipment.shipment_id} expects no items, completed on load")
        else:
            self.state = SessionState.READY_TO_SCAN
            logger.info(f"Shipment {shipment.shipment_id} loaded: {shipment.expected_item_count} items expected")

    def abort_loading(self) -> None:
        """LOADING_SHIPMENT -> EMPTY, keeping nothing of the attempt."""
        self._require('abort_loading', SessionState.LOADING_SHIPMENT)
        self.shipment = None
        self.state = SessionState.EMPTY

    def load_shipment(self, shipment_id: str, ledger) -> ShipmentReference:
        """
        Resolve `shipment_id` through the ledger and load it.

        Args:
            shipment_id: Identifier from the shipment code
            ledger: LedgerClient used for resolution

        Returns:
            The resolved ShipmentReference

        Raises:
            InvalidStateError: If the session is not EMPTY
            ShipmentNotFoundError / LedgerError / any other ledger failure:
                resolution failed; the session is back in EMPTY
        """
        self.mark_loading()
        try:
            shipment = ledger.resolve_shipment(shipment_id)
        except Exception:
            self.abort_loading()
            raise
        self.complete_loading(shipment)
        return shipment

    # ------------------------------------------------------------------
    # Transitions 2 and 3: scan one item
    # ------------------------------------------------------------------

    def begin_scan(self, item: ItemReference) -> None:
        """
        READY_TO_SCAN -> SCANNING_ONE with `item` pending.

        Raises:
            InvalidStateError: Not READY_TO_SCAN, or all expected items recorded
            AlreadyScannedError: The item is already in scan_records
        """
        self._require('begin_scan', SessionState.READY_TO_SCAN)

        if item.item_id in self._scanned_ids:
            raise AlreadyScannedError(item.item_id)

        if len(self._records) >= self.expected_count:
            raise InvalidStateError('begin_scan', self.state.value,
                                    "All expected items are already recorded")

        self.pending_item = item
        self.state = SessionState.SCANNING_ONE

    def confirm_scan(self, commit_result: CommitResult) -> Optional[ScanRecord]:
        """
        Apply the ledger's answer for the pending item.

        Accepted: the record is appended; COMPLETED when the count reaches the
        expected total, otherwise READY_TO_SCAN.
        Rejected: READY_TO_SCAN with records unchanged; the attempt is dropped,
        not retried.

        Returns:
            The new ScanRecord, or None when the ledger rejected the item

        Raises:
            InvalidStateError: If no scan is in flight
        """
        self._require('confirm_scan', SessionState.SCANNING_ONE)
        item = self.pending_item
        self.pending_item = None

        if not commit_result.accepted:
            self.state = SessionState.READY_TO_SCAN
            reason = commit_result.reason_code.value if commit_result.reason_code else 'UNKNOWN'
            logger.info(f"Item {item.item_id} rejected by ledger: {reason}")
            return None

        record = ScanRecord(
            item=item,
            accepted_at=self._clock(),
            receipt=commit_result.receipt or '',
            ledger_sequence=(commit_result.ledger_sequence
                             if commit_result.ledger_sequence is not None
                             else len(self._records) + 1),
        )
        self._records.append(record)
        self._scanned_ids.add(item.item_id)

        if len(self._records) == self.expected_count:
            self.state = SessionState.COMPLETED
            logger.info(f"Shipment {self.shipment.shipment_id} complete: "
                        f"{len(self._records)}/{self.expected_count} items")
        else:
            self.state = SessionState.READY_TO_SCAN

        return record

    # ------------------------------------------------------------------
    # Transition 4: exception
    # ------------------------------------------------------------------

    def raise_exception(self, message: Optional[str] = None) -> ExceptionRecord:
        """
        End the session with a missing/damaged report.

        Allowed from READY_TO_SCAN or SCANNING_ONE; an in-flight item is
        abandoned.

        Raises:
            InvalidStateError: From EMPTY, LOADING_SHIPMENT or a terminal state
        """
        self._require('raise_exception', SessionState.READY_TO_SCAN, SessionState.SCANNING_ONE)

        if self.pending_item is not None:
            logger.info(f"Abandoning in-flight item {self.pending_item.item_id}")
            self.pending_item = None

        scanned = len(self._records)
        self.exception = ExceptionRecord(
            message=message or DEFAULT_EXCEPTION_MESSAGE,
            scanned_count=scanned,
            missing_count=self.expected_count - scanned,
            raised_at=self._clock(),
        )
        self.state = SessionState.EXCEPTION
        logger.warning(f"Exception raised on {self.shipment.shipment_id}: {self.exception.message} "
                       f"(scanned {scanned}, missing {self.exception.missing_count})")
        return self.exception

    # ------------------------------------------------------------------
    # Transition 5: reset
    # ------------------------------------------------------------------

    def reset(self) -> 'ScanSession':
        """Return a fresh EMPTY session. This session is left as it is."""
        return ScanSession(clock=self._clock)

    # ------------------------------------------------------------------

    def _require(self, operation: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidStateError(operation, self.state.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'shipment': self.shipment.to_dict() if self.shipment else None,
            'pending_item': self.pending_item.item_id if self.pending_item else None,
            'scan_records': [r.to_dict() for r in self._records],
            'exception': self.exception.to_dict() if self.exception else None,
        }
