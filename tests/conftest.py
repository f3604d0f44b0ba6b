"""Shared pytest fixtures for EasySplit tests."""

import sys
from pathlib import Path

import pytest

# Add project root for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import Bill, FixedDeduction, Item, Member, Receipt


def make_item(item_id, price, quantity=1, assigned=(), paid_by="", receipt_id="r1", **kwargs):
    """Build an item with sensible defaults."""
    return Item(
        id=item_id,
        name=kwargs.pop("name", item_id),
        price=price,
        quantity=quantity,
        assigned_member_ids=list(assigned),
        paid_by=paid_by,
        receipt_id=receipt_id,
        **kwargs,
    )


@pytest.fixture
def nat_and_beam():
    """Nat pays by default; Beam is along for the ride."""
    return [Member("nat", "Nat", is_payer=True), Member("beam", "Beam")]


@pytest.fixture
def five_members():
    return [
        Member("a", "Nat", is_payer=True, payout_id="081-234-5678"),
        Member("b", "Beam"),
        Member("c", "Ake"),
        Member("d", "Joy"),
        Member("e", "Mai"),
    ]


@pytest.fixture
def plain_receipt():
    return Receipt("r1", "Plain")


@pytest.fixture
def taxed_receipt():
    """10% service charge, 7% VAT."""
    return Receipt("r1", "MK Suki", service_charge_rate=10, vat_rate=7)


@pytest.fixture
def dinner_bill(five_members):
    """Three receipts covering unit, share, fixed-amount and discount cases."""
    receipts = [
        Receipt("r1", "MK Suki", service_charge_rate=10, vat_rate=7),
        Receipt("r2", "After You", vat_rate=7),
        Receipt("r3", "Rooftop Bar", service_charge_rate=10, vat_rate=7,
                discount_type="percent", discount_value=10),
    ]
    items = [
        make_item("suki", 1200, 1, ["a", "b", "c", "d", "e"], paid_by="a", receipt_id="r1"),
        make_item("duck", 180, 2, ["b", "c"], paid_by="a", receipt_id="r1"),
        make_item("toast", 245, 1, ["d", "e"], paid_by="d", receipt_id="r2"),
        make_item("shaved-ice", 380, 1, ["b", "b", "e"], paid_by="d", receipt_id="r2"),
        make_item("beer", 300, 1, ["a"], paid_by="a", receipt_id="r3",
                  fixed_deductions=[FixedDeduction("c", 100)]),
        make_item("cocktail", 250, 2, [], paid_by="a", receipt_id="r3"),
    ]
    return Bill(name="Dinner", members=five_members, items=items, receipts=receipts)
