import pytest

from splitsmart.models import ReceiptItem, ReceiptState


@pytest.fixture
def pizza_state():
    """Pizza shared by Alice and Bob: $20 subtotal, $2 tax, $22 total."""
    return ReceiptState(
        items=[
            ReceiptItem(id="i1", name="Pizza", price=20.0, assigned_to=["Alice", "Bob"]),
        ],
        subtotal=20.0,
        tax=2.0,
        tip=0.0,
        total=22.0,
        merchant_name="Luigi's",
    )


@pytest.fixture
def dinner_state():
    """Four unassigned items with tax and tip, total $66."""
    return ReceiptState(
        items=[
            ReceiptItem(id="i1", name="Margherita Pizza", price=18.0),
            ReceiptItem(id="i2", name="Caesar Salad", price=12.0),
            ReceiptItem(id="i3", name="Vanilla Milkshake", price=6.0),
            ReceiptItem(id="i4", name="Garlic Bread", price=14.0),
        ],
        subtotal=50.0,
        tax=6.0,
        tip=10.0,
        total=66.0,
        merchant_name="Corner Diner",
        currency_symbol="$",
    )


@pytest.fixture
def raw_assign_command():
    """A raw assign_items payload as the translation layer sends it."""
    return {
        "command": "assign_items",
        "assignments": [
            {"item_name": "Margherita Pizza", "people": ["Alice", "Bob"]},
            {"item_name": "Caesar Salad", "people": ["Carol"]},
        ],
    }
