"""
Cart Aggregation

Customer-side, in-memory selection of menu items before an order is
submitted. Nothing here is persisted; ``to_order_lines`` strips the
client-held prices so the order engine re-prices from the menu.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterator, Optional

from restrona.core.errors import NotFoundError, ValidationError

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Parse a price into a Decimal rounded to cents."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid price: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid price: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid price: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be a whole number, got {quantity!r}")
    return quantity


@dataclass
class CartLine:
    menu_item_id: int
    name: str
    price: Decimal
    quantity: int = 1

    def __post_init__(self):
        self.price = to_money(self.price)
        if self.price < 0:
            raise ValidationError(f"Price of '{self.name}' cannot be negative")
        _check_quantity(self.quantity)
        if self.quantity < 1:
            raise ValidationError(f"Quantity of '{self.name}' must be at least 1")

    @property
    def total(self) -> Decimal:
        return (self.price * self.quantity).quantize(CENT, rounding=ROUND_HALF_UP)


class Cart:
    """Ordered list of lines with at most one line per menu item."""

    def __init__(self):
        self._lines: list[CartLine] = []

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(tuple(self._lines))

    def __contains__(self, item_id: object) -> bool:
        return self._find(item_id) is not None

    @property
    def lines(self) -> tuple:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def _find(self, item_id: object) -> Optional[CartLine]:
        for line in self._lines:
            if line.menu_item_id == item_id:
                return line
        return None

    def add(self, item: Any) -> CartLine:
        """
        Add one unit of a menu item.

        ``item`` is anything with ``id``, ``name`` and ``price`` attributes
        (a MenuItem row or response schema); ``is_available`` is honoured
        when present.
        """
        if getattr(item, "is_available", True) is False:
            raise ValidationError(f"'{item.name}' is not available")

        line = self._find(item.id)
        if line is not None:
            line.quantity += 1
            return line

        line = CartLine(menu_item_id=item.id, name=item.name, price=item.price)
        self._lines.append(line)
        return line

    def remove(self, item_id: int) -> Optional[CartLine]:
        """Take one unit away; the line disappears when it reaches zero."""
        line = self._find(item_id)
        if line is None:
            raise NotFoundError(f"Item {item_id} is not in the cart")
        line.quantity -= 1
        if line.quantity <= 0:
            self._lines.remove(line)
            return None
        return line

    def set_quantity(self, item_id: int, quantity: int) -> Optional[CartLine]:
        _check_quantity(quantity)
        line = self._find(item_id)
        if line is None:
            raise NotFoundError(f"Item {item_id} is not in the cart")
        if quantity <= 0:
            self._lines.remove(line)
            return None
        line.quantity = quantity
        return line

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> Decimal:
        return sum((line.total for line in self._lines), Decimal("0.00")).quantize(CENT)

    def count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def to_order_lines(self) -> list[tuple[int, int]]:
        """(menu_item_id, quantity) pairs for OrderLifecycleEngine.create_order."""
        return [(line.menu_item_id, line.quantity) for line in self._lines]
