"""
Session Coordinator - owns the live scan sessions of all actors.

This module maps (actor_id, shipment_id) to exactly one live ScanSession and
drives it through the ledger calls of the receiving workflow.

Key responsibilities:
- Guaranteeing one session per (actor, shipment), even when two requests for
  the same pair race each other
- Running ledger lookups and confirmations with a deadline, so a slow or
  unreachable ledger can never leave a session stuck in SCANNING_ONE
- Turning expected conditions (already scanned, invalid sequencing, ledger
  rejections) into status strings and events instead of errors
- Relaying session events to callers through the `event_emitted` Qt signal
- Expiring sessions that have been idle longer than the configured timeout

Locking:
    _map_lock     protects the handle dictionary (get_or_create / drop)
    handle.lock   serialises transitions on one session; it is released
                  while the ledger call runs, so a second scan arriving in
                  the meantime sees SCANNING_ONE and is refused, not queued

Status strings returned by the orchestration methods:
    SHIPMENT_LOADED, BATCH_COMPLETE, SHIPMENT_NOT_FOUND, LEDGER_ERROR,
    ITEM_ACCEPTED, ITEM_REJECTED, ALREADY_SCANNED, INVALID_STATE,
    EXCEPTION_RAISED
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Dict, List, Optional, Tuple, Union

from PySide6.QtCore import QObject, Signal

from exceptions import AlreadyScannedError, InvalidStateError, LedgerError, ShipmentNotFoundError
from logger import get_logger, set_shipment_context
from models import CommitResult, ExceptionRecord, ItemReference, RejectionReason, ScanRecord, SessionState
from performance_utils import log_timing
from progress_reporter import ProgressReporter, ProgressSnapshot
from scan_session import ScanSession
from session_events import (
    BatchCompleted,
    ExceptionRaised,
    ItemAccepted,
    ItemAlreadyScanned,
    ItemRejected,
    ShipmentLoaded,
)
from settings import ReceivingSettings

logger = get_logger(__name__)

SessionKey = Tuple[str, str]

SHIPMENT_LOADED = "SHIPMENT_LOADED"
BATCH_COMPLETE = "BATCH_COMPLETE"
SHIPMENT_NOT_FOUND = "SHIPMENT_NOT_FOUND"
LEDGER_ERROR = "LEDGER_ERROR"
ITEM_ACCEPTED = "ITEM_ACCEPTED"
ITEM_REJECTED = "ITEM_REJECTED"
ALREADY_SCANNED = "ALREADY_SCANNED"
INVALID_STATE = "INVALID_STATE"
EXCEPTION_RAISED = "EXCEPTION_RAISED"


class SessionHandle:
    """
    The coordinator's slot for one (actor, shipment) pair.

    Attributes:
        actor_id (str): Who is scanning
        shipment_id (str): Which shipment
        session (ScanSession): Current session object; replaced on reset
        lock (threading.Lock): Serialises transitions on `session`
        last_activity (float): Monotonic time of the last operation
        closed (bool): True once the handle was dropped
    """

    def __init__(self, actor_id: str, shipment_id: str, session: ScanSession, now: float):
        self.actor_id = actor_id
        self.shipment_id = shipment_id
        self.session = session
        self.lock = threading.Lock()
        self.last_activity = now
        self.closed = False

    @property
    def key(self) -> SessionKey:
        return self.actor_id, self.shipment_id

    def touch(self, now: float) -> None:
        self.last_activity = now


class SessionCoordinator(QObject):
    """
    Coordinates receiving sessions for any number of actors.

    Attributes:
        event_emitted (Signal): Emits one session event object per transition
                                (see session_events.py)
        ledger (LedgerClient): System of record for lookups and confirmations
        settings (ReceivingSettings): Timeouts and idle expiry
        reporter (ProgressReporter): Snapshot derivation
    """
    event_emitted = Signal(object)

    def __init__(self, ledger, settings: Optional[ReceivingSettings] = None,
                 reporter: Optional[ProgressReporter] = None, clock=None, max_workers: int = 4):
        super().__init__()

        self.ledger = ledger
        self.settings = settings or ReceivingSettings()
        self.reporter = reporter or ProgressReporter(self.settings.recent_scans_shown)
        self._clock = clock or time.monotonic

        self._handles: Dict[SessionKey, SessionHandle] = {}
        self._map_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ledger")

        logger.info("SessionCoordinator initialized")

    # ------------------------------------------------------------------
    # Handle registry
    # ------------------------------------------------------------------

    def get_or_create(self, actor_id: str, shipment_id: str) -> SessionHandle:
        """
        Return the live handle for (actor_id, shipment_id), creating it if needed.

        Concurrent callers for the same pair always receive the same handle.
        """
        key = (actor_id, shipment_id)
        now = self._clock()
        with self._map_lock:
            handle = self._handles.get(key)
            if handle is None:
                handle = SessionHandle(actor_id, shipment_id, ScanSession(), now)
                self._handles[key] = handle
                logger.debug(f"Created session handle for {actor_id}/{shipment_id}")
            else:
                handle.touch(now)
            return handle

    def get(self, actor_id: str, shipment_id: str) -> Optional[SessionHandle]:
        with self._map_lock:
            return self._handles.get((actor_id, shipment_id))

    def drop(self, actor_id: str, shipment_id: str) -> bool:
        """
        Forget the handle for (actor_id, shipment_id).

        Items already confirmed on the ledger stay confirmed; only local state
        goes away.

        Returns:
            True if a handle was removed
        """
        with self._map_lock:
            handle = self._handles.pop((actor_id, shipment_id), None)
        if handle is None:
            return False
        handle.closed = True
        logger.info(f"Dropped session {actor_id}/{shipment_id} (state {handle.session.state.value})")
        return True

    def active_keys(self) -> List[SessionKey]:
        with self._map_lock:
            return list(self._handles.keys())

    def session(self, actor_id: str, shipment_id: str) -> Optional[ScanSession]:
        handle = self.get(actor_id, shipment_id)
        return handle.session if handle else None

    def snapshot(self, actor_id: str, shipment_id: str) -> Optional[ProgressSnapshot]:
        handle = self.get(actor_id, shipment_id)
        if handle is None:
            return None
        with handle.lock:
            return self.reporter.snapshot(handle.session)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def load_shipment(self, actor_id: str, shipment_id: str) -> Tuple[Optional[ProgressSnapshot], str]:
        """
        Load a shipment into the actor's session for it.

        Returns:
            (snapshot, status) where status is SHIPMENT_LOADED, BATCH_COMPLETE
            (zero-item shipment), SHIPMENT_NOT_FOUND, LEDGER_ERROR or
            INVALID_STATE (session already loaded or loading)
        """
        set_shipment_context(shipment_id)
        handle = self.get_or_create(actor_id, shipment_id)

        with handle.lock:
            session = handle.session
            try:
                session.mark_loading()
            except InvalidStateError as e:
                logger.warning(f"Ignored load request: {e}")
                return None, INVALID_STATE

        try:
            with log_timing(f"resolve_shipment {shipment_id}"):
                shipment = self._call_ledger(
                    self.ledger.resolve_shipment, shipment_id,
                    timeout=self.settings.resolve_timeout_seconds,
                )
        except ShipmentNotFoundError as e:
            logger.warning(str(e))
            self._abandon_load(handle, session)
            return None, SHIPMENT_NOT_FOUND
        except LedgerError as e:
            logger.error(f"Shipment lookup failed for {shipment_id}: {e}")
            self._abandon_load(handle, session)
            return None, LEDGER_ERROR
        except Exception as e:
            # Any other failure still leaves no LOADING_SHIPMENT session behind
            logger.error(f"Shipment lookup failed for {shipment_id}: {e}", exc_info=True)
            self._abandon_load(handle, session)
            return None, LEDGER_ERROR

        with handle.lock:
            session.complete_loading(shipment)
            handle.touch(self._clock())
            snapshot = self.reporter.snapshot(session)
            current = self._is_current(handle, session)

        if not current:
            logger.info(f"Session {actor_id}/{shipment_id} was reset during load, result discarded")
            return None, INVALID_STATE

        self.event_emitted.emit(ShipmentLoaded(actor_id, shipment_id, shipment, snapshot))
        if session.state is SessionState.COMPLETED:
            self.event_emitted.emit(BatchCompleted(actor_id, shipment_id, shipment, ()))
            return snapshot, BATCH_COMPLETE
        return snapshot, SHIPMENT_LOADED

    def scan_item(self, actor_id: str, shipment_id: str, item: ItemReference,
                  timeout: Optional[float] = None) -> Tuple[Union[ScanRecord, CommitResult, None], str]:
        """
        Verify one item with the ledger and record it.

        The ledger call runs on a worker thread with a deadline (`timeout`,
        default [Ledger] ConfirmTimeoutSeconds). Timeouts and ledger failures
        are treated as a LEDGER_UNAVAILABLE rejection: the session goes back to
        READY_TO_SCAN and the same item can be retried.

        Returns:
            (result, status) with status ITEM_ACCEPTED, BATCH_COMPLETE,
            ITEM_REJECTED, ALREADY_SCANNED or INVALID_STATE. `result` is the
            new ScanRecord when accepted, the rejecting CommitResult when
            ITEM_REJECTED, otherwise None.
        """
        set_shipment_context(shipment_id)
        handle = self.get(actor_id, shipment_id)
        if handle is None:
            logger.warning(f"Scan of {item.item_id} ignored: no session for {actor_id}/{shipment_id}")
            return None, INVALID_STATE

        already_scanned = False
        with handle.lock:
            if handle.closed:
                logger.warning(f"Scan of {item.item_id} ignored: session {actor_id}/{shipment_id} was dropped")
                return None, INVALID_STATE
            session = handle.session
            try:
                session.begin_scan(item)
            except AlreadyScannedError:
                already_scanned = True
            except InvalidStateError as e:
                logger.warning(f"Ignored scan of {item.item_id}: {e}")
                return None, INVALID_STATE
            else:
                handle.touch(self._clock())
                ledger_shipment_id = session.shipment.shipment_id

        # Emitted outside the lock so slots may call snapshot()
        if already_scanned:
            logger.info(f"Item {item.item_id} already scanned, ignoring")
            self.event_emitted.emit(ItemAlreadyScanned(actor_id, shipment_id, item.item_id))
            return None, ALREADY_SCANNED

        if timeout is None:
            timeout = self.settings.confirm_timeout_seconds

        try:
            with log_timing(f"verify_and_confirm {item.item_id}"):
                result = self._call_ledger(
                    self.ledger.verify_and_confirm, ledger_shipment_id, item.item_id, actor_id,
                    timeout=timeout,
                )
        except Exception as e:
            # Whatever went wrong remotely, the session must leave SCANNING_ONE
            logger.error(f"Ledger confirmation failed for {item.item_id}: {e}", exc_info=True)
            result = None

        if result is None or (not result.accepted and result.reason_code is None):
            result = CommitResult.reject(RejectionReason.LEDGER_UNAVAILABLE)

        with handle.lock:
            try:
                record = session.confirm_scan(result)
            except InvalidStateError as e:
                # An exception was raised while the item was in flight
                logger.warning(f"Ledger answer for {item.item_id} arrived too late: {e}")
                return None, INVALID_STATE
            handle.touch(self._clock())
            snapshot = self.reporter.snapshot(session)
            records = tuple(session.scan_records)
            current = self._is_current(handle, session)

        if not current:
            logger.info(f"Session {actor_id}/{shipment_id} was reset during confirmation of {item.item_id}")
            return None, INVALID_STATE

        if record is None:
            self.event_emitted.emit(ItemRejected(actor_id, shipment_id, item.item_id, result.reason_code))
            return result, ITEM_REJECTED

        logger.info(f"Item accepted: {item.item_id} ({snapshot.scanned}/{snapshot.total})")
        self.event_emitted.emit(ItemAccepted(actor_id, shipment_id, record, snapshot))

        if session.state is SessionState.COMPLETED:
            self.event_emitted.emit(BatchCompleted(actor_id, shipment_id, session.shipment, records))
            return record, BATCH_COMPLETE
        return record, ITEM_ACCEPTED

    def raise_exception(self, actor_id: str, shipment_id: str,
                        message: Optional[str] = None) -> Tuple[Optional[ExceptionRecord], str]:
        """
        End the session with a missing/damaged report and tell the ledger.

        The local EXCEPTION state stands even if the ledger report fails; the
        failure is logged and reflected in the event's `reported` flag.

        Returns:
            (exception_record, EXCEPTION_RAISED) or (None, INVALID_STATE)
        """
        set_shipment_context(shipment_id)
        handle = self.get(actor_id, shipment_id)
        if handle is None:
            logger.warning(f"Exception ignored: no session for {actor_id}/{shipment_id}")
            return None, INVALID_STATE

        with handle.lock:
            session = handle.session
            try:
                record = session.raise_exception(message)
            except InvalidStateError as e:
                logger.warning(f"Ignored exception request: {e}")
                return None, INVALID_STATE
            handle.touch(self._clock())
            ledger_shipment_id = session.shipment.shipment_id
            expected = session.expected_count

        reported = True
        try:
            self._call_ledger(
                self.ledger.report_exception,
                ledger_shipment_id, actor_id, record.message, record.scanned_count, expected,
                timeout=self.settings.confirm_timeout_seconds,
            )
        except Exception as e:
            reported = False
            logger.error(f"Failed to report exception for {ledger_shipment_id}: {e}", exc_info=True)

        self.event_emitted.emit(ExceptionRaised(actor_id, shipment_id, record, reported))
        return record, EXCEPTION_RAISED

    def reset(self, actor_id: str, shipment_id: str) -> bool:
        """
        Replace the session with a fresh EMPTY one and drop the handle.

        The previous session object is not modified, so snapshots and records
        taken from it remain valid.

        Returns:
            True if there was a session to reset
        """
        with self._map_lock:
            handle = self._handles.pop((actor_id, shipment_id), None)
        if handle is None:
            return False

        with handle.lock:
            previous = handle.session
            handle.session = previous.reset()
            handle.closed = True

        logger.info(f"Session {actor_id}/{shipment_id} reset (was {previous.state.value})")
        return True

    def expire_idle(self, now: Optional[float] = None) -> List[SessionKey]:
        """
        Drop sessions idle for longer than [Session] IdleTimeoutMinutes.

        Sessions waiting on the ledger (LOADING_SHIPMENT, SCANNING_ONE) are
        kept; their call will finish or time out on its own.

        Returns:
            Keys of the dropped sessions
        """
        limit = self.settings.idle_timeout_minutes * 60
        if limit <= 0:
            return []
        if now is None:
            now = self._clock()

        busy = (SessionState.LOADING_SHIPMENT, SessionState.SCANNING_ONE)
        expired = []
        # Lock order is always _map_lock, then handle.lock
        with self._map_lock:
            for key, handle in list(self._handles.items()):
                with handle.lock:
                    if now - handle.last_activity <= limit or handle.session.state in busy:
                        continue
                    handle.closed = True
                del self._handles[key]
                expired.append(key)

        for actor_id, shipment_id in expired:
            logger.info(f"Expired idle session {actor_id}/{shipment_id}")
        return expired

    def shutdown(self) -> None:
        """Stop the ledger worker threads; pending calls are cancelled."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("SessionCoordinator shut down")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call_ledger(self, fn, *args, timeout: float):
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise LedgerError(f"Ledger call {getattr(fn, '__name__', fn)} timed out after {timeout}s")

    def _abandon_load(self, handle: SessionHandle, session: ScanSession) -> None:
        with handle.lock:
            session.abort_loading()
        # A shipment that could not be resolved keeps no session around
        with self._map_lock:
            if self._handles.get(handle.key) is handle:
                del self._handles[handle.key]
                handle.closed = True

    @staticmethod
    def _is_current(handle: SessionHandle, session: ScanSession) -> bool:
        return not handle.closed and handle.session is session
