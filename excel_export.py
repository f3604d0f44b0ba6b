"""
Excel export functionality for EasySplit
"""
from __future__ import annotations
import re
from typing import Dict, Optional, Set

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from models import Bill, BillSummary
from computations import calculate_summary, effective_rates, line_cost


def _style_header(ws, row=1):
    """Apply header styling to worksheet row"""
    header_font = Font(bold=True, color="FFFFFF")
    fill = PatternFill("solid", fgColor="0F766E")
    align = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin", color="A0A0A0")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    for cell in ws[row]:
        cell.font = header_font
        cell.fill = fill
        cell.alignment = align
        cell.border = border


def _autosize_columns(ws, min_width=10, max_width=45):
    """Auto-size columns based on content"""
    for col in range(1, ws.max_column + 1):
        letter = get_column_letter(col)
        max_len = 0
        for cell in ws[letter]:
            v = cell.value
            if v is None:
                continue
            s = str(v)
            max_len = max(max_len, len(s))
        ws.column_dimensions[letter].width = max(min_width, min(max_width, max_len + 2))


def _money_format(ws, first_row: int, columns) -> None:
    for r in range(first_row, ws.max_row + 1):
        for c in columns:
            ws.cell(r, c).number_format = "#,##0.00"


def _sheet_title(name: str, used: Set[str]) -> str:
    """Excel sheet names: max 31 chars, no []:*?/\\, unique per workbook"""
    base = re.sub(r"[\[\]:*?/\\]", "_", name).strip() or "Receipt"
    base = base[:28]
    title, n = base, 2
    while title.lower() in used:
        title = f"{base[:25]} ({n})"
        n += 1
    used.add(title.lower())
    return title


def export_excel(bill: Bill, filepath: str, summary: Optional[BillSummary] = None) -> None:
    """
    Export bill to Excel file with multiple sheets:
    - Summary sheet
    - One sheet per receipt
    - Items sheet (what each member is charged for)
    - Transfers sheet
    """
    if summary is None:
        summary = calculate_summary(bill)

    wb = Workbook()
    # remove default sheet
    wb.remove(wb.active)
    used = {"summary", "items", "transfers"}
    names: Dict[str, str] = {m.id: m.name for m in bill.members}

    # Summary sheet
    ws = wb.create_sheet("Summary")
    ws.append(["Member", "Base", "Service charge", "VAT", "Consumed", "Paid", "Net (Paid-Consumed)", "Payout"])
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    payouts = {m.id: m.payout_id or "" for m in bill.members}
    for s in summary.summaries:
        ws.append([
            s.member_name, s.base_consumption, s.service_charge_share, s.vat_share,
            s.total_consumption, s.total_paid, s.net_balance, payouts.get(s.member_id, ""),
        ])
    if summary.summaries:
        ws.append(["TOTALS"])
        trow = ws.max_row
        ws.cell(trow, 1).font = Font(bold=True)
        for c in range(2, 8):
            letter = get_column_letter(c)
            ws.cell(trow, c).value = f"=SUM({letter}2:{letter}{trow - 1})"
    _money_format(ws, 2, range(2, 8))
    _autosize_columns(ws)

    # Sheets per receipt
    totals_by_receipt = {t.receipt_id: t for t in summary.receipts}
    for receipt in bill.receipts:
        ws = wb.create_sheet(_sheet_title(receipt.name, used))
        headers = ["item", "qty", "unit price", "base", "service charge", "VAT", "line total", "paid by", "consumers"]
        ws.append(headers)
        _style_header(ws, 1)
        ws.freeze_panes = "A2"

        items = [i for i in bill.items if i.receipt_id == receipt.id]
        for item in items:
            sc_rate, vat_rate = effective_rates(item, receipt, bill.config)
            line = line_cost(item.price, item.quantity, sc_rate, vat_rate)
            consumers = ", ".join(names.get(mid, mid) for mid in item.assigned_member_ids)
            ws.append([
                item.name, item.quantity, item.price, line.base, line.service_charge,
                line.vat, line.total, names.get(item.paid_by, item.paid_by), consumers,
            ])

        # Footer totals
        ws.append([""] * len(headers))
        ws.append(["TOTALS"])
        trow = ws.max_row
        ws.cell(trow, 1).font = Font(bold=True)
        if items:
            last_data_row = 1 + len(items)
            for c in range(4, 8):
                letter = get_column_letter(c)
                ws.cell(trow, c).value = f"=SUM({letter}2:{letter}{last_data_row})"

        t = totals_by_receipt.get(receipt.id)
        if t is not None:
            for label, value in (("Discount", -t.discount), ("Rounding", t.rounding), ("Total", t.total)):
                ws.append([label] + [""] * 5 + [value])
            ws.cell(ws.max_row, 1).font = Font(bold=True)
            ws.cell(ws.max_row, 1).fill = PatternFill("solid", fgColor="CCFBF1")

        _money_format(ws, 2, range(3, 8))
        _autosize_columns(ws)

    # Items sheet
    ws = wb.create_sheet("Items")
    ws.append(["Member", "Item", "Share"])
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    for s in summary.summaries:
        for line in s.items:
            ws.append([s.member_name, line.name, line.share])
    _money_format(ws, 2, [3])
    _autosize_columns(ws)

    # Transfers sheet
    ws = wb.create_sheet("Transfers")
    ws.append(["From (Debtor)", "To (Creditor)", "Amount", "Payout"])
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    for t in summary.transfers:
        ws.append([t.from_name, t.to_name, t.amount, payouts.get(t.to_id, "")])
    _money_format(ws, 2, [3])
    _autosize_columns(ws)

    wb.save(filepath)
