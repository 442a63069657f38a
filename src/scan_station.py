"""
ScanStation - one physical scanning surface for one actor.

Raw decoded strings go through three steps before they reach a session:

    reader.decoded -> CodeParser -> DuplicateGuard -> SessionCoordinator

A shipment code loads that shipment and makes it the station's current one;
item codes are scanned against the current shipment. Each station owns its own
DuplicateGuard, so two cameras at the same dock never suppress each other.
"""

from typing import Optional, Tuple, Any

from PySide6.QtCore import QObject, Signal

from code_parser import CodeKind, CodeParser
from duplicate_guard import DuplicateGuard
from logger import get_logger, set_actor_context, set_shipment_context
from models import ActorRole, ItemReference
from progress_reporter import ProgressSnapshot
from session_coordinator import INVALID_STATE, ITEM_REJECTED, SessionCoordinator
from settings import ReceivingSettings

logger = get_logger(__name__)

INVALID_CODE = "INVALID_CODE"
DUPLICATE_SUPPRESSED = "DUPLICATE_SUPPRESSED"
NO_ACTIVE_SHIPMENT = "NO_ACTIVE_SHIPMENT"
NOTHING_TO_RETRY = "NOTHING_TO_RETRY"


class ScanStation(QObject):
    """
    Routes decoded codes from one reader into the coordinator.

    Signals:
        code_handled (str, str): raw code and the resulting status string

    Attributes:
        actor_id (str): Actor operating this station
        role (ActorRole): The actor's role, used for log context
        current_shipment_id (str | None): Shipment item codes are scanned against
        retry_pending (bool): The last item was rejected by an outage and can be
                              sent again with retry_last()
    """
    code_handled = Signal(str, str)

    def __init__(self, actor_id: str, role: ActorRole, coordinator: SessionCoordinator,
                 settings: Optional[ReceivingSettings] = None, reader=None, clock=None):
        super().__init__()

        self.actor_id = actor_id
        self.role = role
        self.coordinator = coordinator
        self.settings = settings or coordinator.settings
        self.parser = CodeParser(self.settings.grammar)
        self.guard = DuplicateGuard(
            debounce_ms=self.settings.debounce_ms,
            same_code_lockout=self.settings.same_code_lockout,
            clock=clock,
        )
        self.current_shipment_id: Optional[str] = None
        self.reader = None
        self._retry: Optional[Tuple[str, ItemReference]] = None

        if reader is not None:
            self.attach_reader(reader)

        logger.info(f"ScanStation ready for {actor_id} ({role.value})")

    def attach_reader(self, reader) -> None:
        """Connect a CodeReader; every decoded string is handled in order."""
        if self.reader is not None:
            self.reader.decoded.disconnect(self._on_decoded)
        self.reader = reader
        reader.decoded.connect(self._on_decoded)

    def _on_decoded(self, raw: str) -> None:
        self.handle_code(raw)

    def handle_code(self, raw: str, now: Optional[float] = None) -> Tuple[Any, str]:
        """
        Process one decoded string.

        Args:
            raw: Text as decoded by the reader
            now: Monotonic time in seconds; defaults to the guard's clock

        Returns:
            (result, status). `result` is a ProgressSnapshot for shipment codes,
            a ScanRecord for accepted items, the CommitResult for rejected
            items, otherwise None. `status` is one of
            INVALID_CODE, DUPLICATE_SUPPRESSED, NO_ACTIVE_SHIPMENT or a
            coordinator status string.
        """
        set_actor_context(self.actor_id, self.role.value)

        parsed = self.parser.parse(raw)
        if not parsed.ok:
            logger.info(f"Unreadable code ignored ({parsed.error.value}): {raw!r}")
            return self._finish(raw, None, INVALID_CODE)

        if not self.guard.should_accept(raw, now):
            logger.debug(f"Repeat read suppressed: {raw!r}")
            return self._finish(raw, None, DUPLICATE_SUPPRESSED)

        code = parsed.code
        if code.kind is CodeKind.SHIPMENT:
            return self._finish(raw, *self._load(code.value))

        if self.current_shipment_id is None:
            logger.warning(f"Item {code.value} scanned before any shipment was loaded")
            return self._finish(raw, None, NO_ACTIVE_SHIPMENT)

        if code.shipment_hint and code.shipment_hint != self.current_shipment_id:
            logger.warning(f"Item {code.value} is labelled for shipment {code.shipment_hint}, "
                           f"current shipment is {self.current_shipment_id}")

        return self._scan(raw, code.to_item_reference())

    def retry_last(self) -> Tuple[Any, str]:
        """
        Send the item rejected by the last ledger outage again, without the
        operator having to re-aim the scanner.

        Returns:
            (result, status) as for handle_code, or (None, NOTHING_TO_RETRY)
        """
        if self._retry is None or self.current_shipment_id is None:
            return None, NOTHING_TO_RETRY
        raw, item = self._retry
        logger.info(f"Retrying {item.item_id} on {self.current_shipment_id}")
        return self._scan(raw, item)

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None

    def _scan(self, raw: str, item: ItemReference) -> Tuple[Any, str]:
        result, status = self.coordinator.scan_item(self.actor_id, self.current_shipment_id, item)

        self._retry = None
        if status == ITEM_REJECTED and result.reason_code.is_retryable:
            # The item was never recorded, so the operator must be able to scan it again
            self.guard.release(raw)
            self._retry = (raw, item)

        return self._finish(raw, result, status)

    def _load(self, shipment_id: str) -> Tuple[Optional[ProgressSnapshot], str]:
        current = self.current_shipment_id
        if current is not None and current != shipment_id:
            session = self.coordinator.session(self.actor_id, current)
            if session is not None and not session.is_terminal:
                logger.warning(f"Shipment {shipment_id} scanned while {current} is still open; "
                               f"finish, raise an exception or reset first")
                return None, INVALID_STATE

        set_shipment_context(shipment_id)
        snapshot, status = self.coordinator.load_shipment(self.actor_id, shipment_id)
        if snapshot is not None:
            self.current_shipment_id = shipment_id
            self._retry = None
        return snapshot, status

    def _finish(self, raw: str, result, status: str) -> Tuple[Any, str]:
        self.code_handled.emit(raw, status)
        return result, status

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def raise_exception(self, message: Optional[str] = None):
        """Report the current shipment as missing/damaged items."""
        if self.current_shipment_id is None:
            return None, NO_ACTIVE_SHIPMENT
        return self.coordinator.raise_exception(self.actor_id, self.current_shipment_id, message)

    def reset(self) -> bool:
        """Throw away the current session and forget the current shipment."""
        shipment_id = self.current_shipment_id
        self.current_shipment_id = None
        self._retry = None
        self.guard.clear()
        if shipment_id is None:
            return False
        return self.coordinator.reset(self.actor_id, shipment_id)

    def progress(self) -> Optional[ProgressSnapshot]:
        if self.current_shipment_id is None:
            return None
        return self.coordinator.snapshot(self.actor_id, self.current_shipment_id)
