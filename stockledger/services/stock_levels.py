from dataclasses import dataclass
from typing import Any, Dict, Tuple

from stockledger.core.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    InvalidRelease,
    InvariantViolation,
)


def require_positive(quantity: Any) -> int:
    # bool is an int subclass; True must not read as "1 unit"
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")
    return quantity


@dataclass(frozen=True)
class StockLevels:
    """
    The three stock counters of one inventory record.

    Only two of them are free: ``available`` is always ``quantity - reserved``.
    Instances are validated on construction and every transition returns a
    new instance, so an invalid combination can never be written back.
    """
    quantity: int
    reserved: int
    available: int

    def __post_init__(self):
        if self.quantity < 0 or self.reserved < 0 or self.available < 0:
            raise InvariantViolation(
                f"Stock counters cannot be negative: {self}"
            )
        if self.available + self.reserved != self.quantity:
            raise InvariantViolation(
                f"available + reserved must equal quantity: {self}"
            )

    @classmethod
    def initial(cls, quantity: int = 0) -> "StockLevels":
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantity(f"Initial quantity must be a non-negative integer, got {quantity!r}")
        return cls(quantity=quantity, reserved=0, available=quantity)

    @classmethod
    def from_record(cls, record: Any) -> "StockLevels":
        return cls(
            quantity=record.quantity,
            reserved=record.reserved,
            available=record.available,
        )

    @classmethod
    def _derive(cls, quantity: int, reserved: int) -> "StockLevels":
        return cls(quantity=quantity, reserved=reserved, available=quantity - reserved)

    def as_fields(self) -> Dict[str, int]:
        return {
            "quantity": self.quantity,
            "reserved": self.reserved,
            "available": self.available,
        }

    def reserve(self, quantity: int) -> "StockLevels":
        quantity = require_positive(quantity)
        if self.available < quantity:
            raise InsufficientStock("Insufficient stock")
        return self._derive(self.quantity, self.reserved + quantity)

    def release(self, quantity: int) -> "StockLevels":
        quantity = require_positive(quantity)
        if self.reserved < quantity:
            raise InvalidRelease("Cannot release more than reserved")
        return self._derive(self.quantity, self.reserved - quantity)

    def sell(self, quantity: int, allow_unreserved: bool = True) -> Tuple["StockLevels", int]:
        """
        Ship ``quantity`` units. Reserved units are consumed first; any
        remainder comes out of available stock when ``allow_unreserved`` is
        set (walk-in / POS sales). Returns the new levels and how many units
        were taken from the reservation.
        """
        quantity = require_positive(quantity)
        from_reserved = min(quantity, self.reserved)
        unreserved = quantity - from_reserved
        if unreserved and not allow_unreserved:
            raise InsufficientStock("Cannot sell more than reserved")
        if unreserved > self.available:
            raise InsufficientStock("Insufficient stock")
        return self._derive(self.quantity - quantity, self.reserved - from_reserved), from_reserved

    def restock(self, quantity: int) -> "StockLevels":
        quantity = require_positive(quantity)
        return self._derive(self.quantity + quantity, self.reserved)
