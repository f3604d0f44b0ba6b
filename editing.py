"""
Bill editing operations for EasySplit

Every function returns a new Bill and leaves its argument untouched, so
callers can recompute summaries from any snapshot.
"""
from __future__ import annotations
from dataclasses import replace
from typing import List, Optional, Tuple

from computations import default_payer_id
from config import Settings, default_receipt
from models import Bill, FixedDeduction, Item, Member, Receipt
from utils import new_id


def _find(records, record_id: str, kind: str) -> int:
    for i, r in enumerate(records):
        if r.id == record_id:
            return i
    raise KeyError(f"Unknown {kind}: {record_id}")


def _replace_item(bill: Bill, item_id: str, **changes) -> Bill:
    idx = _find(bill.items, item_id, "item")
    items = list(bill.items)
    items[idx] = replace(items[idx], **changes)
    return replace(bill, items=items)


# ---------- Members ----------

def add_member(bill: Bill, name: str, payout_id: Optional[str] = None) -> Tuple[Bill, Member]:
    """Add a member; the first member becomes the default payer"""
    name = name.strip()
    if not name:
        raise ValueError("Member name required.")
    member = Member(new_id(), name, is_payer=not bill.members, payout_id=payout_id)
    return replace(bill, members=bill.members + [member]), member


def remove_member(bill: Bill, member_id: str) -> Bill:
    """
    Remove a member and everything that points at them. The default-payer
    flag moves to the first remaining member, and items they paid for fall
    back to that member.
    """
    idx = _find(bill.members, member_id, "member")
    was_payer = bill.members[idx].is_payer
    members = [m for m in bill.members if m.id != member_id]
    if was_payer and members:
        members[0] = replace(members[0], is_payer=True)
    fallback = default_payer_id(members) or ""

    items = []
    for item in bill.items:
        items.append(replace(
            item,
            assigned_member_ids=[x for x in item.assigned_member_ids if x != member_id],
            fixed_deductions=[d for d in item.fixed_deductions if d.member_id != member_id],
            paid_by=fallback if item.paid_by == member_id else item.paid_by,
        ))
    return replace(bill, members=members, items=items)


def set_default_payer(bill: Bill, member_id: str) -> Bill:
    """Move the default-payer flag; exactly one member holds it"""
    _find(bill.members, member_id, "member")
    members = [replace(m, is_payer=(m.id == member_id)) for m in bill.members]
    return replace(bill, members=members)


def set_payout_id(bill: Bill, member_id: str, payout_id: Optional[str]) -> Bill:
    idx = _find(bill.members, member_id, "member")
    members = list(bill.members)
    members[idx] = replace(members[idx], payout_id=payout_id or None)
    return replace(bill, members=members)


# ---------- Items ----------

def add_item(
    bill: Bill,
    name: str,
    price: float,
    quantity: int = 1,
    paid_by: Optional[str] = None,
    receipt_id: Optional[str] = None,
    note: str = "",
    assigned_member_ids: Optional[List[str]] = None,
) -> Tuple[Bill, Item]:
    """Add an item line. Paid by the default payer and filed under the first receipt unless given."""
    if price <= 0:
        raise ValueError("Price must be greater than 0.")
    if quantity < 1:
        raise ValueError("Quantity must be at least 1.")
    if receipt_id is None:
        receipt_id = bill.receipts[0].id if bill.receipts else None
    elif receipt_id not in {r.id for r in bill.receipts}:
        raise KeyError(f"Unknown receipt: {receipt_id}")

    item = Item(
        id=new_id(),
        name=name.strip(),
        price=float(price),
        quantity=int(quantity),
        assigned_member_ids=list(assigned_member_ids or []),
        paid_by=paid_by or default_payer_id(bill.members) or "",
        note=note,
        receipt_id=receipt_id,
    )
    return replace(bill, items=bill.items + [item]), item


def update_item(bill: Bill, item_id: str, **changes) -> Bill:
    """Change item fields, e.g. update_item(bill, iid, price=120.0, exclude_vat=True)"""
    if "price" in changes and changes["price"] <= 0:
        raise ValueError("Price must be greater than 0.")
    if "quantity" in changes and changes["quantity"] < 1:
        raise ValueError("Quantity must be at least 1.")
    return _replace_item(bill, item_id, **changes)


def remove_item(bill: Bill, item_id: str) -> Bill:
    _find(bill.items, item_id, "item")
    return replace(bill, items=[i for i in bill.items if i.id != item_id])


def toggle_assignment(bill: Bill, item_id: str, member_id: str, add: bool = True) -> Bill:
    """
    Add one more occurrence of a member to an item, or drop their last one.
    Adding beyond the quantity switches the item to share mode.
    """
    item = bill.items[_find(bill.items, item_id, "item")]
    assigned = list(item.assigned_member_ids)
    if add:
        _find(bill.members, member_id, "member")
        assigned.append(member_id)
    elif member_id in assigned:
        # remove the last occurrence
        del assigned[len(assigned) - 1 - assigned[::-1].index(member_id)]
    return _replace_item(bill, item_id, assigned_member_ids=assigned)


def assign_all(bill: Bill, item_id: str) -> Bill:
    """Assign every member once, splitting the item equally"""
    return _replace_item(bill, item_id, assigned_member_ids=[m.id for m in bill.members])


def set_fixed_deduction(bill: Bill, item_id: str, member_id: str, amount: float) -> Bill:
    """Set the fixed amount a member pays for an item; 0 or less removes it"""
    item = bill.items[_find(bill.items, item_id, "item")]
    deductions = [d for d in item.fixed_deductions if d.member_id != member_id]
    if amount > 0:
        _find(bill.members, member_id, "member")
        deductions.append(FixedDeduction(member_id, float(amount)))
    return _replace_item(bill, item_id, fixed_deductions=deductions)


# ---------- Receipts ----------

def add_receipt(bill: Bill, name: str) -> Tuple[Bill, Receipt]:
    """New receipts start without service charge or VAT"""
    receipt = Receipt(new_id(), name, service_charge_rate=0.0, vat_rate=0.0,
                      discount_type="percent", discount_value=0.0)
    return replace(bill, receipts=bill.receipts + [receipt]), receipt


def update_receipt(bill: Bill, receipt_id: str, **changes) -> Bill:
    """Change receipt fields: name, rates, discount, manual_total..."""
    if changes.get("discount_type", "percent") not in ("percent", "amount"):
        raise ValueError(f"Unknown discount type: {changes['discount_type']!r}")
    idx = _find(bill.receipts, receipt_id, "receipt")
    receipts = list(bill.receipts)
    receipts[idx] = replace(receipts[idx], **changes)
    return replace(bill, receipts=receipts)


def set_receipt_exclusions(
    bill: Bill,
    receipt_id: str,
    exclude_service_charge: bool,
    exclude_vat: bool,
    settings: Optional[Settings] = None,
) -> Bill:
    """
    Switch service charge / VAT on or off. Switching on a 0% rate applies the
    standard rate. The printed total no longer matches, so it is cleared.
    """
    settings = settings or Settings()
    receipt = bill.receipts[_find(bill.receipts, receipt_id, "receipt")]
    sc_rate = receipt.service_charge_rate
    vat_rate = receipt.vat_rate
    if not exclude_service_charge and not sc_rate:
        sc_rate = settings.standard_service_charge_rate
    if not exclude_vat and not vat_rate:
        vat_rate = settings.standard_vat_rate
    return update_receipt(
        bill,
        receipt_id,
        exclude_service_charge=exclude_service_charge,
        exclude_vat=exclude_vat,
        service_charge_rate=sc_rate,
        vat_rate=vat_rate,
        manual_total=None,
    )


def remove_receipt(bill: Bill, receipt_id: str) -> Bill:
    """Remove a receipt with all its items; a bill always keeps one receipt"""
    _find(bill.receipts, receipt_id, "receipt")
    receipts = [r for r in bill.receipts if r.id != receipt_id]
    if not receipts:
        receipts = [default_receipt()]
    items = [i for i in bill.items if i.receipt_id != receipt_id]
    return replace(bill, receipts=receipts, items=items)
