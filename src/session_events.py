"""
Events emitted by the SessionCoordinator.

A small closed set of immutable values that any transport (Qt signal, queue,
callback) can carry without losing information. Every event names the actor
and shipment it belongs to.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from models import ExceptionRecord, RejectionReason, ScanRecord, ShipmentReference
from progress_reporter import ProgressSnapshot


@dataclass(frozen=True)
class ShipmentLoaded:
    actor_id: str
    shipment_id: str
    shipment: ShipmentReference
    snapshot: ProgressSnapshot


@dataclass(frozen=True)
class ItemAccepted:
    actor_id: str
    shipment_id: str
    record: ScanRecord
    snapshot: ProgressSnapshot


@dataclass(frozen=True)
class ItemRejected:
    actor_id: str
    shipment_id: str
    item_id: str
    reason_code: RejectionReason

    @property
    def retryable(self) -> bool:
        return self.reason_code.is_retryable


@dataclass(frozen=True)
class ItemAlreadyScanned:
    """Informational: the item is already counted, nothing changed."""
    actor_id: str
    shipment_id: str
    item_id: str


@dataclass(frozen=True)
class BatchCompleted:
    actor_id: str
    shipment_id: str
    shipment: ShipmentReference
    records: Tuple[ScanRecord, ...]


@dataclass(frozen=True)
class ExceptionRaised:
    actor_id: str
    shipment_id: str
    exception: ExceptionRecord
    reported: bool


SessionEvent = Union[
    ShipmentLoaded,
    ItemAccepted,
    ItemRejected,
    ItemAlreadyScanned,
    BatchCompleted,
    ExceptionRaised,
]
