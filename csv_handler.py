"""
CSV export and import functionality for EasySplit
"""
from __future__ import annotations
import csv
from typing import List

from models import FixedDeduction, Item

HEADER = [
    'id', 'receipt_id', 'name', 'price', 'quantity', 'paid_by',
    'assigned', 'fixed_deductions', 'exclude_service_charge', 'exclude_vat', 'note',
]


def _flag(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes')


def export_items_to_csv(items: List[Item], filepath: str) -> None:
    """
    Export items list to CSV file
    assigned keeps repeated ids (one per share/unit), joined with ';'
    fixed_deductions is written as member_id:amount pairs joined with ';'
    """
    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(HEADER)

        for i in items:
            deductions = ';'.join(f"{d.member_id}:{d.amount}" for d in i.fixed_deductions)
            writer.writerow([
                i.id,
                i.receipt_id or '',
                i.name,
                i.price,
                i.quantity,
                i.paid_by,
                ';'.join(i.assigned_member_ids),
                deductions,
                int(i.exclude_service_charge),
                int(i.exclude_vat),
                i.note,
            ])


def import_items_from_csv(filepath: str) -> List[Item]:
    """
    Import items list from CSV file
    Returns list of Item objects
    """
    items = []

    with open(filepath, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)

        for row in reader:
            deductions = []
            if row.get('fixed_deductions'):
                for pair in row['fixed_deductions'].split(';'):
                    if ':' in pair:
                        k, v = pair.rsplit(':', 1)
                        deductions.append(FixedDeduction(k.strip(), float(v.strip())))

            assigned = [x.strip() for x in (row.get('assigned') or '').split(';') if x.strip()]

            item = Item(
                id=row['id'],
                name=row['name'],
                price=float(row['price']),
                quantity=int(float(row.get('quantity') or 1)),
                assigned_member_ids=assigned,
                paid_by=row.get('paid_by', ''),
                exclude_service_charge=_flag(row.get('exclude_service_charge', '')),
                exclude_vat=_flag(row.get('exclude_vat', '')),
                fixed_deductions=deductions,
                note=row.get('note', ''),
                receipt_id=row.get('receipt_id') or None,
            )
            items.append(item)

    return items
