"""
Ledger collaborator: the system of record that confirms each scan.

LedgerClient is the contract the workflow depends on. The real service (a
blockchain-backed API in production) lives outside this project.

InMemoryLedgerClient is a thread-safe simulated ledger used for demo mode,
the headless runner in main.py and the test suite. It follows the same rules
the production backend applies:
- Unknown shipments are not found
- An item can be confirmed once per shipment
- Items outside a shipment's manifest are refused
- Only roles allowed for the shipment may confirm items
- Outages can be switched on to exercise the retry path
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from exceptions import LedgerError, ShipmentNotFoundError, ValidationError
from logger import get_logger
from models import ActorRole, CommitResult, RejectionReason, ShipmentReference

logger = get_logger(__name__)


class LedgerClient(ABC):
    """Remote verification and confirmation of scanned references."""

    @abstractmethod
    def resolve_shipment(self, shipment_id: str) -> ShipmentReference:
        """
        Look up a shipment.

        Raises:
            ShipmentNotFoundError: If the ledger does not know the shipment
            LedgerError: If the ledger cannot be reached
        """

    @abstractmethod
    def verify_and_confirm(self, shipment_id: str, item_id: str, actor_id: str) -> CommitResult:
        """
        Verify an item against the shipment and commit the receipt.

        Returns:
            CommitResult.accept(receipt, sequence) or CommitResult.reject(reason)
        """

    @abstractmethod
    def report_exception(self, shipment_id: str, actor_id: str, message: str,
                         scanned_count: int, expected_count: int) -> None:
        """
        Record a missing/damaged report for a shipment.

        Raises:
            LedgerError: If the report could not be stored
        """


@dataclass
class _ShipmentEntry:
    reference: ShipmentReference
    manifest: Optional[Set[str]]
    allowed_roles: Set[ActorRole]
    confirmed: Dict[str, str] = field(default_factory=dict)
    next_sequence: int = 1


@dataclass(frozen=True)
class ReportedException:
    shipment_id: str
    actor_id: str
    message: str
    scanned_count: int
    expected_count: int


class InMemoryLedgerClient(LedgerClient):
    """
    Simulated ledger kept in process memory.

    Attributes:
        latency_seconds (float): Artificial delay before each verify call
        reported_exceptions (List[ReportedException]): Every stored report
    """

    def __init__(self, latency_seconds: float = 0.0):
        self.latency_seconds = latency_seconds
        self.reported_exceptions: List[ReportedException] = []
        self._shipments: Dict[str, _ShipmentEntry] = {}
        self._actor_roles: Dict[str, ActorRole] = {}
        self._available = True
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def register_shipment(self, reference: ShipmentReference, manifest: Optional[Iterable[str]] = None,
                          allowed_roles: Optional[Iterable[ActorRole]] = None) -> None:
        """
        Add a shipment to the ledger.

        Args:
            reference: Shipment metadata
            manifest: Item ids that belong to the shipment; None accepts any id
            allowed_roles: Roles permitted to confirm items; None allows all
        """
        if reference.expected_item_count < 0:
            raise ValidationError(f"Expected item count must be >= 0, got {reference.expected_item_count}")

        with self._lock:
            self._shipments[reference.shipment_id] = _ShipmentEntry(
                reference=reference,
                manifest=set(manifest) if manifest is not None else None,
                allowed_roles=set(allowed_roles) if allowed_roles is not None else set(ActorRole),
            )
        logger.debug(f"Registered shipment {reference.shipment_id} ({reference.expected_item_count} items)")

    def register_actor(self, actor_id: str, role: ActorRole) -> None:
        with self._lock:
            self._actor_roles[actor_id] = role

    def set_available(self, available: bool) -> None:
        """Simulate an outage (False) or recovery (True)."""
        self._available = available
        logger.info(f"Simulated ledger {'available' if available else 'UNAVAILABLE'}")

    def confirmed_items(self, shipment_id: str) -> Dict[str, str]:
        """item_id -> receipt for everything committed on a shipment."""
        with self._lock:
            entry = self._shipments.get(shipment_id)
            return dict(entry.confirmed) if entry else {}

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    def resolve_shipment(self, shipment_id: str) -> ShipmentReference:
        if not self._available:
            raise LedgerError("Ledger unavailable")

        with self._lock:
            entry = self._shipments.get(shipment_id)
        if entry is None:
            raise ShipmentNotFoundError(shipment_id)
        return entry.reference

    def verify_and_confirm(self, shipment_id: str, item_id: str, actor_id: str) -> CommitResult:
        if self.latency_seconds:
            time.sleep(self.latency_seconds)

        if not self._available:
            return CommitResult.reject(RejectionReason.LEDGER_UNAVAILABLE)

        with self._lock:
            entry = self._shipments.get(shipment_id)
            if entry is None or (entry.manifest is not None and item_id not in entry.manifest):
                return CommitResult.reject(RejectionReason.NOT_IN_SHIPMENT)

            role = self._actor_roles.get(actor_id)
            if role is not None and role not in entry.allowed_roles:
                return CommitResult.reject(RejectionReason.WRONG_ROLE)

            if item_id in entry.confirmed:
                return CommitResult.reject(RejectionReason.ALREADY_CONFIRMED)

            receipt = f"0x{secrets.token_hex(16)}"
            sequence = entry.next_sequence
            entry.confirmed[item_id] = receipt
            entry.next_sequence += 1

        return CommitResult.accept(receipt, ledger_sequence=sequence)

    def report_exception(self, shipment_id: str, actor_id: str, message: str,
                         scanned_count: int, expected_count: int) -> None:
        if not self._available:
            raise LedgerError("Ledger unavailable, exception report not stored")

        with self._lock:
            self.reported_exceptions.append(ReportedException(
                shipment_id=shipment_id,
                actor_id=actor_id,
                message=message,
                scanned_count=scanned_count,
                expected_count=expected_count,
            ))
