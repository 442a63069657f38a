"""
Simulated receiving run.

Registers a shipment on the in-memory ledger, feeds a SimulatedCodeReader
through a ScanStation and prints every session event. Optionally stops early
with a missing/damaged exception and writes the scan log and session summary.

Usage:
    python src/main.py --items 5
    python src/main.py --items 5 --scan 3 --exception "2 boxes crushed" --report out/scan_log.xlsx
"""

import argparse
import sys
from datetime import datetime

from code_reader import SimulatedCodeReader
from ledger_client import InMemoryLedgerClient
from logger import get_logger
from models import ActorRole, ShipmentReference, get_rejection_message
from scan_report import build_session_summary, export_scan_log, save_session_summary
from scan_station import ScanStation
from session_coordinator import SessionCoordinator
from session_events import (
    BatchCompleted,
    ExceptionRaised,
    ItemAccepted,
    ItemAlreadyScanned,
    ItemRejected,
    ShipmentLoaded,
)
from settings import describe, load_settings

logger = get_logger(__name__)


def print_status(message, level="INFO"):
    """Print status message."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] [{level}] {message}")


class SteppingClock:
    """Monotonic stand-in that advances by `step` seconds on every read."""

    def __init__(self, step: float):
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def print_event(event) -> None:
    if isinstance(event, ShipmentLoaded):
        print_status(f"Shipment {event.shipment_id} loaded: {event.snapshot.total} items expected")
    elif isinstance(event, ItemAccepted):
        s = event.snapshot
        print_status(f"Accepted {event.record.item.item_id} ({s.scanned}/{s.total}, {s.percentage}%) "
                     f"receipt {event.record.receipt[:12]}...")
    elif isinstance(event, ItemRejected):
        print_status(f"Rejected {event.item_id}: {get_rejection_message(event.reason_code)}", "WARNING")
    elif isinstance(event, ItemAlreadyScanned):
        print_status(f"{event.item_id} already scanned", "WARNING")
    elif isinstance(event, BatchCompleted):
        print_status(f"Shipment {event.shipment_id} complete: {len(event.records)} items received")
    elif isinstance(event, ExceptionRaised):
        note = "" if event.reported else " (NOT reported to ledger)"
        print_status(f"Exception on {event.shipment_id}: {event.exception.message}, "
                     f"{event.exception.missing_count} missing{note}", "WARNING")


def main(argv=None):
    """Run one simulated shipment through the receiving workflow."""
    parser = argparse.ArgumentParser(description="Simulated shipment receiving run")
    parser.add_argument('--config', default='config.ini', help="Path to config.ini")
    parser.add_argument('--shipment', default='SHP-DEMO-001', help="Shipment identifier")
    parser.add_argument('--items', type=int, default=5, help="Expected item count")
    parser.add_argument('--scan', type=int, help="Items to scan (default: all)")
    parser.add_argument('--actor', default='warehouse-1', help="Scanning actor id")
    parser.add_argument('--role', choices=[r.value for r in ActorRole], default=ActorRole.WAREHOUSE.value)
    parser.add_argument('--latency', type=float, default=0.0, help="Simulated ledger latency (seconds)")
    parser.add_argument('--repeat-reads', type=int, default=1,
                        help="Extra camera re-reads of each code (suppressed by the debounce)")
    parser.add_argument('--exception', metavar='MESSAGE',
                        help="Raise a missing/damaged exception after scanning")
    parser.add_argument('--seed', type=int, help="Seed for the simulated item ids")
    parser.add_argument('--report', help="Write the scan log (.xlsx or .csv)")
    parser.add_argument('--summary', help="Write the session summary JSON")

    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    for line in describe(settings):
        logger.info(line)

    role = ActorRole(args.role)
    reader = SimulatedCodeReader(args.shipment, seed=args.seed)
    to_scan = args.items if args.scan is None else min(args.scan, args.items)

    ledger = InMemoryLedgerClient(latency_seconds=args.latency)
    ledger.register_actor(args.actor, role)
    ledger.register_shipment(ShipmentReference(shipment_id=args.shipment, expected_item_count=args.items))

    coordinator = SessionCoordinator(ledger, settings)
    coordinator.event_emitted.connect(print_event)

    # Simulated reads arrive just outside the debounce window
    clock = SteppingClock(settings.debounce_ms / 1000.0 + 0.1)
    station = ScanStation(args.actor, role, coordinator, settings, reader=reader, clock=clock)

    print_status("=" * 60)
    print_status(f"Receiving {args.shipment} as {args.actor} ({role.value})")
    print_status("=" * 60)

    try:
        reader.simulate_shipment(to_scan, repeat_reads=args.repeat_reads)

        if args.exception is not None:
            station.raise_exception(args.exception or None)

        session = coordinator.session(args.actor, args.shipment)
        if session is None:
            print_status("No session was created", "ERROR")
            return 1

        if args.report:
            path = export_scan_log(session, args.report)
            print_status(f"Scan log written to {path}")
        if args.summary:
            path = save_session_summary(build_session_summary(session, args.actor), args.summary)
            print_status(f"Session summary written to {path}")

        snapshot = station.progress()
        print_status("=" * 60)
        print_status(f"Final state: {session.state.value} ({snapshot.scanned}/{snapshot.total})")
        print_status("=" * 60)
    finally:
        coordinator.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
