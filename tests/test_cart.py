from dataclasses import dataclass
from decimal import Decimal

import pytest

from restrona.core.errors import NotFoundError, ValidationError
from restrona.services.cart import Cart, CartLine, to_money


@dataclass
class Item:
    id: int
    name: str
    price: object
    is_available: bool = True


LASAGNA = Item(1, "Lasagna", "120.00")
BRUSCHETTA = Item(2, "Bruschetta", 80)


def test_adding_same_item_increments_quantity():
    cart = Cart()
    cart.add(LASAGNA)
    cart.add(LASAGNA)
    cart.add(BRUSCHETTA)

    assert len(cart) == 2
    assert cart.count() == 3
    assert [line.quantity for line in cart] == [2, 1]
    assert cart.total() == Decimal("320.00")


def test_total_is_exact_decimal():
    cart = Cart()
    cart.add(Item(3, "Espresso", 0.1))
    cart.set_quantity(3, 3)
    assert cart.total() == Decimal("0.30")


def test_remove_decrements_then_drops_line():
    cart = Cart()
    cart.add(LASAGNA)
    cart.add(LASAGNA)

    line = cart.remove(1)
    assert line.quantity == 1
    assert cart.remove(1) is None
    assert cart.is_empty
    assert 1 not in cart


def test_set_quantity_zero_or_less_removes_line():
    cart = Cart()
    cart.add(LASAGNA)
    cart.add(BRUSCHETTA)

    assert cart.set_quantity(1, 0) is None
    assert cart.set_quantity(2, -3) is None
    assert cart.is_empty
    assert cart.total() == Decimal("0.00")


def test_set_quantity_updates_line():
    cart = Cart()
    cart.add(BRUSCHETTA)
    assert cart.set_quantity(2, 5).quantity == 5
    assert cart.total() == Decimal("400.00")


def test_missing_item_raises_not_found():
    cart = Cart()
    with pytest.raises(NotFoundError):
        cart.remove(99)
    with pytest.raises(NotFoundError):
        cart.set_quantity(99, 2)


def test_non_integer_quantity_rejected():
    cart = Cart()
    cart.add(LASAGNA)
    with pytest.raises(ValidationError):
        cart.set_quantity(1, 1.5)
    with pytest.raises(ValidationError):
        cart.set_quantity(1, True)


def test_unavailable_item_rejected():
    cart = Cart()
    with pytest.raises(ValidationError):
        cart.add(Item(4, "Sold Out", 10, is_available=False))
    assert cart.is_empty


def test_negative_price_rejected():
    with pytest.raises(ValidationError):
        Cart().add(Item(5, "Refund", -1))
    with pytest.raises(ValidationError):
        CartLine(menu_item_id=5, name="Bad", price="abc")


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(7) == Decimal("7.00")
    with pytest.raises(ValidationError):
        to_money(float("nan"))


def test_clear_and_order_lines():
    cart = Cart()
    cart.add(LASAGNA)
    cart.add(LASAGNA)
    cart.add(BRUSCHETTA)

    assert cart.to_order_lines() == [(1, 2), (2, 1)]
    cart.clear()
    assert cart.to_order_lines() == []
