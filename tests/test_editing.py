"""Tests for bill editing operations."""

import pytest

from config import DEFAULT_RECEIPT_ID, Settings, get_default_bill
from editing import (
    add_item,
    add_member,
    add_receipt,
    assign_all,
    remove_item,
    remove_member,
    remove_receipt,
    set_default_payer,
    set_fixed_deduction,
    set_payout_id,
    set_receipt_exclusions,
    toggle_assignment,
    update_item,
    update_receipt,
)


@pytest.fixture
def bill_with_members():
    bill = get_default_bill("Trip")
    bill, nat = add_member(bill, "Nat", payout_id="081-234-5678")
    bill, beam = add_member(bill, "Beam")
    bill, ake = add_member(bill, "Ake")
    return bill, nat, beam, ake


class TestMembers:
    """Adding and removing members."""

    def test_first_member_becomes_default_payer(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        assert nat.is_payer
        assert not beam.is_payer
        assert [m.name for m in bill.members] == ["Nat", "Beam", "Ake"]

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            add_member(get_default_bill(), "   ")

    def test_removing_payer_moves_flag_and_items(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, "Suki", 300, 2, assigned_member_ids=[nat.id, beam.id, nat.id])
        bill = set_fixed_deduction(bill, item.id, nat.id, 50)
        assert bill.items[0].paid_by == nat.id

        updated = remove_member(bill, nat.id)

        assert [m.id for m in updated.members] == [beam.id, ake.id]
        assert updated.members[0].is_payer
        assert updated.items[0].paid_by == beam.id
        assert updated.items[0].assigned_member_ids == [beam.id]
        assert updated.items[0].fixed_deductions == []
        # original snapshot untouched
        assert bill.members[0].id == nat.id
        assert bill.items[0].assigned_member_ids == [nat.id, beam.id, nat.id]

    def test_removing_last_member_blanks_payer(self):
        bill, nat = add_member(get_default_bill(), "Nat")
        bill, _ = add_item(bill, "Tea", 40)
        updated = remove_member(bill, nat.id)
        assert updated.members == []
        assert updated.items[0].paid_by == ""

    def test_unknown_member(self, bill_with_members):
        bill = bill_with_members[0]
        with pytest.raises(KeyError):
            remove_member(bill, "ghost")

    def test_set_default_payer_keeps_single_flag(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        updated = set_default_payer(bill, ake.id)
        assert [m.is_payer for m in updated.members] == [False, False, True]

    def test_set_payout_id(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        updated = set_payout_id(bill, beam.id, "123-4-56789-0")
        assert updated.members[1].payout_id == "123-4-56789-0"
        assert set_payout_id(updated, beam.id, "").members[1].payout_id is None


class TestItems:
    """Item lines and assignments."""

    def test_add_item_defaults(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, " Pad Thai ", 80, 2)
        assert item.name == "Pad Thai"
        assert item.paid_by == nat.id
        assert item.receipt_id == DEFAULT_RECEIPT_ID
        assert item.assigned_member_ids == []

    @pytest.mark.parametrize("price,quantity", [(0, 1), (-5, 1), (10, 0)])
    def test_add_item_rejects_bad_values(self, bill_with_members, price, quantity):
        with pytest.raises(ValueError):
            add_item(bill_with_members[0], "x", price, quantity)

    def test_add_item_unknown_receipt(self, bill_with_members):
        with pytest.raises(KeyError):
            add_item(bill_with_members[0], "x", 10, receipt_id="nope")

    def test_update_and_remove_item(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, "Coke", 25)
        bill = update_item(bill, item.id, price=30.0, exclude_vat=True, note="no ice")
        assert bill.items[0].price == 30.0
        assert bill.items[0].exclude_vat
        with pytest.raises(ValueError):
            update_item(bill, item.id, price=0)
        assert remove_item(bill, item.id).items == []

    def test_toggle_assignment_keeps_duplicates(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, "Ice", 380)
        for mid in (beam.id, ake.id, beam.id):
            bill = toggle_assignment(bill, item.id, mid)
        assert bill.items[0].assigned_member_ids == [beam.id, ake.id, beam.id]

        bill = toggle_assignment(bill, item.id, beam.id, add=False)
        assert bill.items[0].assigned_member_ids == [beam.id, ake.id]
        # removing someone not assigned is a no-op
        bill = toggle_assignment(bill, item.id, nat.id, add=False)
        assert bill.items[0].assigned_member_ids == [beam.id, ake.id]

    def test_assign_all(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, "Suki", 1200)
        bill = assign_all(bill, item.id)
        assert bill.items[0].assigned_member_ids == [nat.id, beam.id, ake.id]

    def test_fixed_deduction_replaced_and_removed(self, bill_with_members):
        bill, nat, beam, ake = bill_with_members
        bill, item = add_item(bill, "Beer", 300)
        bill = set_fixed_deduction(bill, item.id, beam.id, 100)
        bill = set_fixed_deduction(bill, item.id, beam.id, 120)
        assert [(d.member_id, d.amount) for d in bill.items[0].fixed_deductions] == [(beam.id, 120.0)]
        bill = set_fixed_deduction(bill, item.id, beam.id, 0)
        assert bill.items[0].fixed_deductions == []


class TestReceipts:
    """Receipts and their policies."""

    def test_add_receipt_starts_without_taxes(self):
        bill, receipt = add_receipt(get_default_bill(), "Cafe")
        assert receipt.service_charge_rate == 0
        assert receipt.vat_rate == 0
        assert len(bill.receipts) == 2

    def test_update_receipt(self):
        bill = update_receipt(get_default_bill(), DEFAULT_RECEIPT_ID,
                              discount_type="amount", discount_value=50, manual_total=999.0)
        assert bill.receipts[0].discount_type == "amount"
        assert bill.receipts[0].manual_total == 999.0
        with pytest.raises(ValueError):
            update_receipt(bill, DEFAULT_RECEIPT_ID, discount_type="bogus")

    def test_enabling_charges_applies_standard_rates(self):
        bill = update_receipt(get_default_bill(), DEFAULT_RECEIPT_ID, manual_total=500.0)
        bill = set_receipt_exclusions(bill, DEFAULT_RECEIPT_ID, False, False, Settings())
        receipt = bill.receipts[0]
        assert receipt.service_charge_rate == 10
        assert receipt.vat_rate == 7
        assert receipt.manual_total is None

    def test_disabling_charges_keeps_rates(self):
        bill = update_receipt(get_default_bill(), DEFAULT_RECEIPT_ID, service_charge_rate=5, vat_rate=7)
        bill = set_receipt_exclusions(bill, DEFAULT_RECEIPT_ID, True, False)
        receipt = bill.receipts[0]
        assert receipt.exclude_service_charge
        assert receipt.service_charge_rate == 5

    def test_remove_receipt_takes_its_items(self, bill_with_members):
        bill = bill_with_members[0]
        bill, cafe = add_receipt(bill, "Cafe")
        bill, _ = add_item(bill, "Latte", 90, receipt_id=cafe.id)
        bill, _ = add_item(bill, "Suki", 300)
        updated = remove_receipt(bill, cafe.id)
        assert [r.id for r in updated.receipts] == [DEFAULT_RECEIPT_ID]
        assert [i.name for i in updated.items] == ["Suki"]

    def test_bill_always_keeps_a_receipt(self):
        updated = remove_receipt(get_default_bill(), DEFAULT_RECEIPT_ID)
        assert [r.id for r in updated.receipts] == [DEFAULT_RECEIPT_ID]
