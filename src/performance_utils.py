"""
Timing helpers for ledger round-trips.

Ledger calls are the only blocking operations in the receiving workflow. Slow
ones are logged at WARNING so an operator complaint ("the scanner hangs")
can be matched to the ledger latency at that moment.
"""

import time
from contextlib import contextmanager

from logger import get_logger

logger = get_logger(__name__)

SLOW_LEDGER_CALL_MS = 500


@contextmanager
def log_timing(operation_name: str, threshold_ms: float = SLOW_LEDGER_CALL_MS):
    """
    Time a block and log it; WARNING above `threshold_ms`, DEBUG otherwise.

    Usage:
        with log_timing("verify_and_confirm BOX-0003"):
            result = ledger.verify_and_confirm(...)

    Yields:
        dict that receives 'duration_ms' when the block exits
    """
    timing = {}
    start_time = time.perf_counter()
    try:
        yield timing
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        timing['duration_ms'] = duration_ms

        if duration_ms >= threshold_ms:
            logger.warning(f"Slow ledger call - {operation_name}: {duration_ms:.1f}ms")
        else:
            logger.debug(f"{operation_name}: {duration_ms:.1f}ms")
