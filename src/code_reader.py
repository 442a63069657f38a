"""
Code readers - sources of decoded scan strings.

A reader knows nothing about shipments or items; it only hands over the text a
camera or handheld scanner decoded. Hardware wedges that type into a text field
can call feed() directly, camera pipelines emit from their own thread.
"""

import random
from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from logger import get_logger

logger = get_logger(__name__)


class CodeReader(QObject):
    """
    Base reader.

    Signals:
        decoded (str): One raw decoded string per physical read, including
                       repeated reads of the same code
    """
    decoded = Signal(str)

    def feed(self, raw: str) -> None:
        """Push one decoded string to whoever is listening."""
        logger.debug(f"Decoded: {raw!r}")
        self.decoded.emit(raw)


class SimulatedCodeReader(CodeReader):
    """
    Stand-in for a camera when no hardware is attached.

    Produces a shipment code followed by random BOX-#### item ids, the same
    shape the demo scanner used. Ids are unique within one reader.

    Args:
        shipment_id: Identifier put into the shipment code
        seed: Optional seed for reproducible runs
    """

    def __init__(self, shipment_id: str, seed: Optional[int] = None):
        super().__init__()
        self.shipment_id = shipment_id
        self._random = random.Random(seed)
        self._issued = set()

    def shipment_code(self) -> str:
        return f"SHIPMENT:{self.shipment_id}"

    def next_item_code(self) -> str:
        if len(self._issued) >= 9999:
            raise RuntimeError("Simulated id space exhausted")
        while True:
            code = f"BOX-{self._random.randint(1, 9999):04d}"
            if code not in self._issued:
                self._issued.add(code)
                return code

    def item_codes(self, count: int) -> List[str]:
        return [self.next_item_code() for _ in range(count)]

    def simulate_shipment(self, item_count: int, repeat_reads: int = 0) -> List[str]:
        """
        Emit the shipment code and `item_count` item codes.

        Args:
            item_count: Number of distinct items to emit
            repeat_reads: Extra immediate re-reads of each item, as a camera
                          produces when a code stays in frame

        Returns:
            The distinct item codes in emission order
        """
        self.feed(self.shipment_code())
        codes = self.item_codes(item_count)
        for code in codes:
            for _ in range(1 + repeat_reads):
                self.feed(code)
        return codes
