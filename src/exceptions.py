"""
Custom exceptions for the Receiving Tool application.

This module defines application-specific exceptions for the scan-verification
workflow. Using custom exceptions allows the application to:
- Separate sequencing mistakes (scanning before a shipment is loaded) from
  real failures (ledger unreachable)
- Carry contextual information (item id, shipment id, current state)
- Enable targeted exception handling in the coordinator and station layers
- Produce short, friendly texts for scanner operators

Expected, recoverable conditions are still modelled as exceptions at the
session level; the coordinator converts them into status strings and events so
that nothing here is fatal to the process.

Exception hierarchy:
    ReceivingToolError (base)
    ├── InvalidStateError (transition not allowed in the current state)
    ├── AlreadyScannedError (item already accepted in this session)
    ├── ShipmentNotFoundError (ledger does not know the shipment)
    ├── LedgerError (ledger call failed or is unreachable)
    └── ValidationError (configuration or input validation failures)
"""

from typing import Optional


class ReceivingToolError(Exception):
    """
    Base exception for all Receiving Tool errors.

    All application-specific exceptions inherit from this class, so callers
    can catch every application error with a single except clause:
        try:
            coordinator.load_shipment(actor_id, shipment_id)
        except ReceivingToolError as e:
            logger.error(f"Receiving error: {e}")

    Note: This does NOT inherit from built-in errors like ValueError, IOError
    to keep application errors separate from system errors.
    """
    pass


class InvalidStateError(ReceivingToolError):
    """
    Raised when a session transition is attempted from a state that does not
    allow it.

    Typical causes are UI sequencing mistakes:
    - Scanning an item before a shipment has been loaded
    - Scanning a second item while the first is still being confirmed
    - Scanning after the session reached COMPLETED or EXCEPTION

    The coordinator logs these and ignores the call. They are never shown to
    the operator as a failure.

    Attributes:
        operation (str): Name of the rejected transition (e.g. "begin_scan")
        state (str): Session state at the time of the call
    """

    def __init__(self, operation: str, state: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot {operation} while session is {state}")
        self.operation = operation
        self.state = state


class AlreadyScannedError(ReceivingToolError):
    """
    Raised when an item that is already recorded in the session is scanned
    again.

    This is an informational condition: the scan is a no-op, and the operator
    simply moves on to the next item.

    Attributes:
        item_id (str): Identifier of the repeated item
    """

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} has already been scanned")
        self.item_id = item_id

    def get_display_message(self) -> str:
        """Short text for the scanner screen."""
        return f"{self.item_id} already scanned. Scan the next item."


class ShipmentNotFoundError(ReceivingToolError):
    """
    Raised when the ledger cannot resolve a shipment reference.

    The session stays EMPTY and the operator may scan another shipment code.

    Attributes:
        shipment_id (str): The reference that could not be resolved
    """

    def __init__(self, shipment_id: str):
        super().__init__(f"Shipment not found: {shipment_id}")
        self.shipment_id = shipment_id

    def get_display_message(self) -> str:
        """Short text for the scanner screen."""
        return (
            f"Shipment {self.shipment_id} was not found.\n\n"
            f"It may not be registered yet. Check the label and scan again."
        )


class LedgerError(ReceivingToolError):
    """
    Raised when a call to the ledger fails for reasons other than an explicit
    rejection.

    Common scenarios:
    - Ledger service is offline or unreachable
    - Deadline elapsed while waiting for a response
    - Exception report could not be stored

    During item confirmation this is mapped to the LEDGER_UNAVAILABLE
    rejection, which is retryable without re-scanning.
    """
    pass


class ValidationError(ReceivingToolError):
    """
    Raised when configuration or input validation fails.

    Examples:
    - config.ini contains a non-numeric DebounceMs
    - An item pattern in [Codes] is not a valid regular expression
    - A shipment is registered with a negative expected item count
    """
    pass
