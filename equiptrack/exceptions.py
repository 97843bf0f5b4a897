from datetime import datetime
from typing import Any, Dict, Optional


class InventoryError(Exception):
    """
    Base class for every error raised by the ledger core.

    `code` is a stable machine-readable identifier and `details` carries the
    structured values (expected vs. actual) a caller needs to render a message.
    """
    code = "inventory_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# --- NotFound ---

class NotFound(InventoryError):
    code = "not_found"


class ItemNotFound(NotFound):
    code = "item_not_found"

    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} not found", item_id=item_id)
        self.item_id = item_id


class IssuanceNotFound(NotFound):
    code = "issuance_not_found"

    def __init__(self, issuance_id: int):
        super().__init__(f"Issuance {issuance_id} not found", issuance_id=issuance_id)
        self.issuance_id = issuance_id


# --- Conflict ---

class Conflict(InventoryError):
    code = "conflict"


class DuplicateItem(Conflict):
    code = "duplicate_item"

    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} already exists", item_id=item_id)
        self.item_id = item_id


class AlreadyReturned(Conflict):
    code = "already_returned"

    def __init__(self, issuance_id: int, returned_date: Optional[datetime] = None):
        super().__init__(
            f"Issuance {issuance_id} was already returned",
            issuance_id=issuance_id,
            returned_date=returned_date,
        )
        self.issuance_id = issuance_id
        self.returned_date = returned_date


# --- Validation ---

class InvalidInput(InventoryError):
    code = "invalid_input"


class InvalidQuantity(InvalidInput):
    code = "invalid_quantity"

    def __init__(self, quantity: int):
        super().__init__(f"Quantity must be a positive integer, got {quantity}", quantity=quantity)
        self.quantity = quantity


class MissingReturnDate(InvalidInput):
    code = "missing_return_date"

    def __init__(self):
        super().__init__("Temporary issuances require a return date")


class InvalidCount(InvalidInput):
    code = "invalid_count"

    def __init__(self, observed: int):
        super().__init__(f"Observed count must be non-negative, got {observed}", observed=observed)
        self.observed = observed


class InvalidDates(InvalidInput):
    code = "invalid_dates"


# --- Stock ---

class InsufficientStock(InventoryError):
    code = "insufficient_stock"

    def __init__(self, item_id: int, requested: int, available: int):
        super().__init__(
            f"Cannot issue {requested} of item {item_id}: only {available} in stock",
            item_id=item_id,
            requested=requested,
            available=available,
        )
        self.item_id = item_id
        self.requested = requested
        self.available = available


# --- Storage ---

class LogCorruption(InventoryError):
    code = "log_corruption"
