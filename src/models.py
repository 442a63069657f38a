"""
Data model for the scan-verification workflow.

Plain dataclasses shared by the parser, the session state machine, the
coordinator and the reporting helpers. Records are frozen: once the ledger has
confirmed an item, its ScanRecord never changes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


DEFAULT_EXCEPTION_MESSAGE = "Items missing or damaged"


def utc_now() -> datetime:
    """Timezone-aware current time, used for every recorded timestamp."""
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """States of a ScanSession. COMPLETED and EXCEPTION are terminal."""
    EMPTY = "empty"
    LOADING_SHIPMENT = "loading_shipment"
    READY_TO_SCAN = "ready_to_scan"
    SCANNING_ONE = "scanning_one"
    COMPLETED = "completed"
    EXCEPTION = "exception"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.EXCEPTION})


class ActorRole(str, Enum):
    """Participants that receive shipments."""
    RETAILER = "retailer"
    TRANSPORTER = "transporter"
    WAREHOUSE = "warehouse"


class RejectionReason(str, Enum):
    """Reason codes the ledger may return when it refuses an item."""
    ALREADY_CONFIRMED = "ALREADY_CONFIRMED"
    NOT_IN_SHIPMENT = "NOT_IN_SHIPMENT"
    WRONG_ROLE = "WRONG_ROLE"
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"

    @property
    def is_retryable(self) -> bool:
        """Only an outage can be retried with the same item reference."""
        return self is RejectionReason.LEDGER_UNAVAILABLE


_REJECTION_MESSAGES = {
    RejectionReason.ALREADY_CONFIRMED:
        "This item has already been confirmed on the ledger. Duplicate scans are not allowed.",
    RejectionReason.NOT_IN_SHIPMENT:
        "This item does not belong to the loaded shipment.",
    RejectionReason.WRONG_ROLE:
        "Your role is not permitted to receive this shipment at its current status.",
    RejectionReason.LEDGER_UNAVAILABLE:
        "The ledger is not reachable right now. Please try the same item again.",
}


def get_rejection_message(reason: Optional[RejectionReason]) -> str:
    """Operator-facing text for a rejection reason code."""
    if reason is None:
        return "Verification failed. Please try again."
    return _REJECTION_MESSAGES.get(reason, "Verification failed. Please try again.")


@dataclass(frozen=True)
class ShipmentReference:
    """Shipment metadata as resolved by the ledger."""
    shipment_id: str
    expected_item_count: int
    origin: str = ""
    batch_id: str = ""
    product_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shipment_id': self.shipment_id,
            'origin': self.origin,
            'batch_id': self.batch_id,
            'product_name': self.product_name,
            'expected_item_count': self.expected_item_count,
        }


@dataclass(frozen=True, eq=False)
class ItemReference:
    """
    A single item/container code.

    Two references are the same item iff their identifiers match; the
    optional sequence number is informational only.
    """
    item_id: str
    sequence: Optional[int] = None

    def __eq__(self, other) -> bool:
        if not isinstance(other, ItemReference):
            return NotImplemented
        return self.item_id == other.item_id

    def __hash__(self) -> int:
        return hash(self.item_id)


@dataclass(frozen=True)
class CommitResult:
    """Outcome of LedgerClient.verify_and_confirm."""
    accepted: bool
    receipt: Optional[str] = None
    reason_code: Optional[RejectionReason] = None
    ledger_sequence: Optional[int] = None

    @classmethod
    def accept(cls, receipt: str, ledger_sequence: Optional[int] = None) -> 'CommitResult':
        return cls(accepted=True, receipt=receipt, ledger_sequence=ledger_sequence)

    @classmethod
    def reject(cls, reason_code: RejectionReason) -> 'CommitResult':
        return cls(accepted=False, reason_code=reason_code)


@dataclass(frozen=True)
class ScanRecord:
    """An item confirmed by the ledger."""
    item: ItemReference
    accepted_at: datetime
    receipt: str
    ledger_sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'item_id': self.item.item_id,
            'sequence': self.item.sequence,
            'accepted_at': self.accepted_at.isoformat(),
            'receipt': self.receipt,
            'ledger_sequence': self.ledger_sequence,
        }


@dataclass(frozen=True)
class ExceptionRecord:
    """Missing/damaged report that ends a session."""
    scanned_count: int
    missing_count: int
    message: str = DEFAULT_EXCEPTION_MESSAGE
    raised_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'scanned_count': self.scanned_count,
            'missing_count': self.missing_count,
            'raised_at': self.raised_at.isoformat(),
        }
