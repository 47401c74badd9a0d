"""
Error taxonomy for the stock ledger.

Every error carries a machine readable ``code``, the HTTP status the API maps
it to, and whether the caller may retry the same request unchanged.
"""
from typing import Any, Dict, Optional


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, product_id: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.product_id = product_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404


class InventoryNotFound(NotFound):
    def __init__(self, product_id: Any):
        super().__init__("Inventory not found", product_id)


class ProductNotFound(NotFound):
    def __init__(self, product_id: Any):
        super().__init__("Product not found", product_id)


class InvalidQuantity(LedgerError):
    code = "invalid_quantity"
    status_code = 422


class InsufficientStock(LedgerError):
    """Raised when a reservation or sale asks for more than the record holds."""
    code = "insufficient_stock"
    status_code = 409


class InvalidRelease(LedgerError):
    """Releasing more than is reserved. Always a caller bug."""
    code = "invalid_release"
    status_code = 409


class InvariantViolation(LedgerError):
    code = "invariant_violation"
    status_code = 500


class ConcurrencyConflict(LedgerError):
    """The conditional update matched no row: another writer got there first."""
    code = "concurrency_conflict"
    status_code = 409
    retryable = True

    def __init__(self, product_id: Any):
        super().__init__("Inventory was modified concurrently", product_id)


class LedgerTimeout(LedgerError):
    code = "ledger_timeout"
    status_code = 503
    retryable = True

    def __init__(self, product_id: Any, timeout: float):
        super().__init__(f"Inventory update timed out after {timeout}s", product_id)
        self.timeout = timeout
