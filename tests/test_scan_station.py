"""
End-to-end tests for ScanStation: reader -> parser -> guard -> coordinator.
"""

import json

import pytest

from code_reader import CodeReader, SimulatedCodeReader
from models import ActorRole, RejectionReason, SessionState, ShipmentReference
from scan_station import DUPLICATE_SUPPRESSED, INVALID_CODE, NO_ACTIVE_SHIPMENT, NOTHING_TO_RETRY, ScanStation
from session_coordinator import (
    ALREADY_SCANNED,
    BATCH_COMPLETE,
    EXCEPTION_RAISED,
    INVALID_STATE,
    ITEM_ACCEPTED,
    ITEM_REJECTED,
    SHIPMENT_LOADED,
    SHIPMENT_NOT_FOUND,
)


@pytest.fixture
def station(coordinator):
    return ScanStation("wh-1", ActorRole.WAREHOUSE, coordinator)


class TestHandleCode:
    def test_full_shipment(self, station):
        assert station.handle_code("SHIPMENT:SHP-1", now=0.0)[1] == SHIPMENT_LOADED
        assert station.current_shipment_id == "SHP-1"

        assert station.handle_code("BOX-0001", now=2.0)[1] == ITEM_ACCEPTED
        assert station.handle_code("BOX-0002", now=4.0)[1] == ITEM_ACCEPTED
        record, status = station.handle_code("BOX-0003", now=6.0)

        assert status == BATCH_COMPLETE
        assert record.item.sequence == 3
        assert station.progress().is_complete

    def test_invalid_code(self, station):
        assert station.handle_code("hello", now=0.0) == (None, INVALID_CODE)
        assert station.handle_code("", now=1.0) == (None, INVALID_CODE)

    def test_invalid_code_does_not_start_debounce(self, station):
        station.handle_code("garbage", now=0.0)
        assert station.handle_code("SHIPMENT:SHP-1", now=0.1)[1] == SHIPMENT_LOADED

    def test_item_before_shipment(self, station):
        assert station.handle_code("BOX-0001", now=0.0) == (None, NO_ACTIVE_SHIPMENT)

    def test_camera_repeats_are_suppressed(self, station, ledger):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.handle_code("BOX-0001", now=2.0)

        assert station.handle_code("BOX-0001", now=2.1) == (None, DUPLICATE_SUPPRESSED)
        assert station.handle_code("BOX-0001", now=9.0) == (None, DUPLICATE_SUPPRESSED)
        assert len(ledger.confirmed_items("SHP-1")) == 1

    def test_rescan_after_other_item_is_already_scanned(self, station):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.handle_code("BOX-0001", now=2.0)
        station.handle_code("BOX-0002", now=4.0)

        assert station.handle_code("BOX-0001", now=6.0) == (None, ALREADY_SCANNED)
        assert station.progress().scanned == 2

    def test_unknown_shipment(self, station):
        assert station.handle_code("SHIPMENT:SHP-404", now=0.0) == (None, SHIPMENT_NOT_FOUND)
        assert station.current_shipment_id is None

    def test_json_container_code(self, station):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        raw = json.dumps({"containerId": "cnt-77", "shipmentHash": "SHP-1"})
        record, status = station.handle_code(raw, now=2.0)
        assert status == ITEM_ACCEPTED
        assert record.item.item_id == "CNT-77"

    def test_open_shipment_blocks_switch(self, station):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        assert station.handle_code("SHIPMENT:SHP-EMPTY", now=2.0) == (None, INVALID_STATE)
        assert station.current_shipment_id == "SHP-1"

    def test_switch_after_terminal_shipment(self, station):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.raise_exception()
        assert station.handle_code("SHIPMENT:SHP-EMPTY", now=2.0)[1] == BATCH_COMPLETE
        assert station.current_shipment_id == "SHP-EMPTY"

    def test_code_handled_signal(self, station):
        seen = []
        station.code_handled.connect(lambda raw, status: seen.append((raw, status)))
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.handle_code("nope", now=2.0)
        assert seen == [("SHIPMENT:SHP-1", SHIPMENT_LOADED), ("nope", INVALID_CODE)]


class TestOperatorActions:
    def test_raise_exception(self, station, coordinator):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.handle_code("BOX-0001", now=2.0)

        record, status = station.raise_exception("Pallet wrapped wrong")

        assert status == EXCEPTION_RAISED
        assert record.missing_count == 2
        assert coordinator.session("wh-1", "SHP-1").state is SessionState.EXCEPTION

    def test_raise_exception_without_shipment(self, station):
        assert station.raise_exception() == (None, NO_ACTIVE_SHIPMENT)

    def test_reset(self, station, coordinator):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.handle_code("BOX-0001", now=2.0)

        assert station.reset()

        assert station.current_shipment_id is None
        assert station.progress() is None
        assert coordinator.active_keys() == []
        assert not station.reset()

    def test_reset_clears_debounce(self, station):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        station.reset()
        assert station.handle_code("SHIPMENT:SHP-1", now=0.1)[1] == SHIPMENT_LOADED

    def test_rescan_after_outage(self, station, ledger):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        ledger.set_available(False)

        result, status = station.handle_code("BOX-0001", now=2.0)
        assert status == ITEM_REJECTED
        assert result.reason_code is RejectionReason.LEDGER_UNAVAILABLE
        assert station.retry_pending

        ledger.set_available(True)
        record, status = station.handle_code("BOX-0001", now=10.0)

        assert status == ITEM_ACCEPTED
        assert record.item.item_id == "BOX-0001"
        assert not station.retry_pending

    def test_rescan_inside_window_after_outage(self, station, ledger):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        ledger.set_available(False)
        station.handle_code("BOX-0001", now=2.0)

        ledger.set_available(True)
        assert station.handle_code("BOX-0001", now=2.2)[1] == ITEM_ACCEPTED

    def test_retry_last(self, station, ledger, coordinator):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        ledger.set_available(False)
        station.handle_code("BOX-0001", now=2.0)
        assert station.retry_last()[1] == ITEM_REJECTED
        assert station.retry_pending

        ledger.set_available(True)
        record, status = station.retry_last()

        assert status == ITEM_ACCEPTED
        assert record.item.item_id == "BOX-0001"
        assert coordinator.snapshot("wh-1", "SHP-1").scanned == 1
        assert station.retry_last() == (None, NOTHING_TO_RETRY)

    def test_final_rejection_is_not_retried(self, station, ledger):
        ledger.register_shipment(ShipmentReference("SHP-R", 2), allowed_roles=[])
        station.handle_code("SHIPMENT:SHP-R", now=0.0)

        result, status = station.handle_code("BOX-0001", now=2.0)

        assert status == ITEM_REJECTED
        assert result.reason_code is RejectionReason.WRONG_ROLE
        assert not station.retry_pending
        assert station.handle_code("BOX-0001", now=10.0) == (None, DUPLICATE_SUPPRESSED)

    def test_reset_forgets_retry(self, station, ledger):
        station.handle_code("SHIPMENT:SHP-1", now=0.0)
        ledger.set_available(False)
        station.handle_code("BOX-0001", now=2.0)

        station.reset()

        assert station.retry_last() == (None, NOTHING_TO_RETRY)


class TestReaders:
    def test_reader_signal_drives_station(self, coordinator, clock):
        reader = CodeReader()
        station = ScanStation("wh-1", ActorRole.WAREHOUSE, coordinator, reader=reader, clock=clock)

        reader.feed("SHIPMENT:SHP-1")
        clock.advance(2)
        reader.feed("BOX-0001")

        assert station.progress().scanned == 1

    def test_attach_replaces_reader(self, coordinator, clock):
        old, new = CodeReader(), CodeReader()
        station = ScanStation("wh-1", ActorRole.WAREHOUSE, coordinator, reader=old, clock=clock)
        station.attach_reader(new)

        old.feed("SHIPMENT:SHP-1")
        assert station.current_shipment_id is None
        new.feed("SHIPMENT:SHP-1")
        assert station.current_shipment_id == "SHP-1"

    def test_simulated_reader_end_to_end(self, ledger, coordinator):
        ledger.register_shipment(ShipmentReference("SHP-SIM", 4))
        reader = SimulatedCodeReader("SHP-SIM", seed=7)
        ticks = iter(range(0, 1000, 2))
        station = ScanStation("wh-1", ActorRole.WAREHOUSE, coordinator, reader=reader,
                              clock=lambda: float(next(ticks)))

        codes = reader.simulate_shipment(4, repeat_reads=2)

        assert len(set(codes)) == 4
        assert all(code.startswith("BOX-") for code in codes)
        snapshot = station.progress()
        assert snapshot.scanned == 4
        assert snapshot.is_complete
        assert set(ledger.confirmed_items("SHP-SIM")) == set(codes)

    def test_simulated_codes_are_unique(self):
        reader = SimulatedCodeReader("SHP-X", seed=1)
        codes = reader.item_codes(200)
        assert len(set(codes)) == 200
        assert reader.shipment_code() == "SHIPMENT:SHP-X"
