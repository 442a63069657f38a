"""
Debounce for a single scanning surface.

A camera pointed at a label keeps decoding the same code many times per
second. DuplicateGuard drops those repeats before they reach the session:

1. Nothing is accepted within `debounce_ms` of the last accepted code,
   whatever the code is (scanner still aimed at the same label).
2. The last accepted code is refused even after the window, until some other
   code has been accepted in between (same-code lockout). release() lifts
   both rules for a code whose scan has to be repeated.

This is a short-lived UX filter. The permanent "already scanned in this
session" rule lives in ScanSession and runs afterwards.

One guard belongs to one scanning surface; it is never shared between actors.
"""

import time
from typing import Dict, Optional

DEFAULT_DEBOUNCE_MS = 1500


class DuplicateGuard:
    """
    Attributes:
        debounce_ms (int): Minimum gap between two accepted codes
        same_code_lockout (bool): Refuse an immediate re-scan of the last
                                  accepted code outside the window
        last_accepted_code (str | None): Raw text of the last accepted code
        last_accepted_at (float | None): When it was accepted (seconds)
    """

    def __init__(self, debounce_ms: int = DEFAULT_DEBOUNCE_MS, same_code_lockout: bool = True, clock=None):
        self.debounce_ms = debounce_ms
        self.same_code_lockout = same_code_lockout
        self._clock = clock or time.monotonic
        self.last_accepted_code: Optional[str] = None
        self.last_accepted_at: Optional[float] = None
        self._last_seen: Dict[str, float] = {}

    def should_accept(self, raw: str, now: Optional[float] = None) -> bool:
        """
        Decide whether `raw` may go on to the session.

        Args:
            raw: Decoded scanner text, compared verbatim
            now: Timestamp in seconds; defaults to the guard's clock

        Returns:
            True if accepted (and recorded as the last accepted code)
        """
        if now is None:
            now = self._clock()

        self._prune(now)
        self._last_seen[raw] = now

        if self.last_accepted_at is not None:
            elapsed_ms = (now - self.last_accepted_at) * 1000
            if elapsed_ms < self.debounce_ms:
                return False

        if self.same_code_lockout and raw == self.last_accepted_code:
            return False

        self.last_accepted_code = raw
        self.last_accepted_at = now
        return True

    def release(self, raw: str) -> bool:
        """
        Lift the window and lockout held by `raw`, so the operator can scan it
        again right away (e.g. after a ledger outage rejected it).

        Returns:
            True if `raw` was the last accepted code
        """
        if raw != self.last_accepted_code:
            return False
        self.last_accepted_code = None
        self.last_accepted_at = None
        return True

    def last_seen(self, raw: str) -> Optional[float]:
        """When `raw` was last offered to the guard within the debounce window."""
        return self._last_seen.get(raw)

    def clear(self) -> None:
        """Forget everything, e.g. when the station switches shipments."""
        self.last_accepted_code = None
        self.last_accepted_at = None
        self._last_seen.clear()

    def _prune(self, now: float) -> None:
        # Only reads inside the window are kept, so the map stays small
        cutoff = now - self.debounce_ms / 1000
        stale = [code for code, seen_at in self._last_seen.items() if seen_at < cutoff]
        for code in stale:
            del self._last_seen[code]
