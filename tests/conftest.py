"""
Pytest configuration file for Receiving Tool tests.

This file sets up the Python path so tests can import the flat modules in
'src', and provides the shared ledger/coordinator fixtures.
"""

import sys
from pathlib import Path

import pytest

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

# Add src directory to sys.path (for src modules)
src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from ledger_client import InMemoryLedgerClient  # noqa: E402
from models import ActorRole, ShipmentReference  # noqa: E402
from session_coordinator import SessionCoordinator  # noqa: E402
from settings import ReceivingSettings  # noqa: E402


class RecordingClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return RecordingClock()


@pytest.fixture
def ledger():
    """In-memory ledger with SHP-1 (3 items), SHP-EMPTY (0 items) and two actors."""
    client = InMemoryLedgerClient()
    client.register_shipment(ShipmentReference("SHP-1", 3, origin="Farm A", product_name="Apples"))
    client.register_shipment(ShipmentReference("SHP-EMPTY", 0))
    client.register_actor("wh-1", ActorRole.WAREHOUSE)
    client.register_actor("tr-1", ActorRole.TRANSPORTER)
    return client


@pytest.fixture
def settings():
    return ReceivingSettings(confirm_timeout_seconds=2.0, resolve_timeout_seconds=2.0)


@pytest.fixture
def coordinator(ledger, settings, clock):
    coord = SessionCoordinator(ledger, settings, clock=clock)
    yield coord
    coord.shutdown()


@pytest.fixture
def events(coordinator):
    """Every event the coordinator emits, in order."""
    received = []

    def _record(event):
        received.append(event)

    coordinator.event_emitted.connect(_record)
    return received
