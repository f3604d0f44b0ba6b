"""
EasySplit
- Split a bill of several receipts among friends: who ate what, who paid,
  service charge, VAT, discounts and the printed-total rounding.
- Prints each member's share and the transfers that settle the bill, and can
  export an Excel report or the item list as CSV.
- Can add scanned receipts (saved scanner payloads) and members, remove
  members, and write the edited bill back. Finer edits (assignments,
  deductions, exclusions) are in editing.py for callers embedding the engine.

Run:
  easy-split bill.json --excel report.xlsx
  easy-split bill.json --add-member Nat --scan scan1.json --save bill.json

Dependencies:
  pip install openpyxl structlog
"""
from __future__ import annotations
import argparse
import json
import sys
from typing import List, Optional

import structlog

from computations import calculate_summary
from config import Settings, load_bill, load_settings, save_bill
from csv_handler import export_items_to_csv
from editing import add_member, remove_member
from excel_export import export_excel
from models import Bill, BillSummary
from scanning import ingest_scans
from utils import configure_logging, format_currency

logger = structlog.get_logger()


def render_report(bill: Bill, summary: BillSummary, currency: str = "THB") -> str:
    """Plain-text summary: one row per member, then transfers"""
    lines = [bill.name, ""]
    width = max([len(s.member_name) for s in summary.summaries] + [6])
    lines.append(f"{'Member':<{width}}  {'Consumed':>14}  {'Paid':>14}  {'Net':>14}")
    for s in summary.summaries:
        lines.append(
            f"{s.member_name:<{width}}  {format_currency(s.total_consumption, currency):>14}  "
            f"{format_currency(s.total_paid, currency):>14}  {format_currency(s.net_balance, currency):>14}"
        )
    lines.append(f"{'Total':<{width}}  {format_currency(summary.grand_total, currency):>14}")
    lines.append("")
    if summary.transfers:
        lines.append("Transfers:")
        for t in summary.transfers:
            lines.append(f"  {t.from_name} -> {t.to_name}: {format_currency(t.amount, currency)}")
    else:
        lines.append("Nothing to settle.")
    if summary.unresolved_item_ids:
        lines.append("")
        lines.append(f"Warning: {len(summary.unresolved_item_ids)} item(s) have no payer; add a member first.")
    return "\n".join(lines)


def _payload_scanner(data: bytes) -> dict:
    """Scanner over files that already hold the scanner's JSON reply"""
    return json.loads(data.decode("utf-8"))


def _read_scans(paths: List[str]):
    for path in paths:
        with open(path, "rb") as f:
            yield path, f.read()


def apply_edits(bill: Bill, args: argparse.Namespace, settings: Settings) -> Bill:
    """Member edits first, so scanned items can credit a new default payer"""
    for name in args.add_member or []:
        bill, member = add_member(bill, name)
        logger.info("member_added", member_id=member.id, name=member.name)
    for member_id in args.remove_member or []:
        bill = remove_member(bill, member_id)
        logger.info("member_removed", member_id=member_id)
    if args.scan:
        bill, failures = ingest_scans(bill, _read_scans(args.scan), _payload_scanner, settings=settings)
        for failure in failures:
            print(f"Scan failed: {failure.source}: {failure.reason}", file=sys.stderr)
    return bill


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application"""
    parser = argparse.ArgumentParser(prog="easy-split", description="Split a bill and settle up.")
    parser.add_argument("bill", help="bill JSON file")
    parser.add_argument("--excel", metavar="PATH", help="export an Excel report")
    parser.add_argument("--csv", metavar="PATH", help="export the item lines as CSV")
    parser.add_argument("--scan", metavar="PAYLOAD", action="append",
                        help="add a receipt from a saved scanner JSON reply (repeatable)")
    parser.add_argument("--add-member", metavar="NAME", action="append", help="add a member (repeatable)")
    parser.add_argument("--remove-member", metavar="ID", action="append", help="remove a member by id (repeatable)")
    parser.add_argument("--save", metavar="PATH", help="write the edited bill as JSON")
    parser.add_argument("--settings", metavar="PATH", help="settings JSON (default: app directory)")
    parser.add_argument("--log-level", default=None, help="debug, info, warning or error")
    args = parser.parse_args(argv)

    settings = load_settings(args.settings)
    configure_logging(args.log_level or settings.log_level)

    try:
        bill = load_bill(args.bill)
    except (OSError, ValueError, KeyError, TypeError) as ex:
        logger.error("bill_load_failed", path=args.bill, error=str(ex))
        print(f"Open failed: {ex}", file=sys.stderr)
        return 1

    try:
        bill = apply_edits(bill, args, settings)
    except (OSError, ValueError, KeyError) as ex:
        logger.error("edit_failed", error=str(ex))
        print(f"Edit failed: {ex}", file=sys.stderr)
        return 1

    summary = calculate_summary(bill)
    print(render_report(bill, summary, settings.currency))

    try:
        if args.save:
            save_bill(bill, args.save)
            print(f"Saved: {args.save}")
        if args.excel:
            export_excel(bill, args.excel, summary)
            print(f"Exported: {args.excel}")
        if args.csv:
            export_items_to_csv(bill.items, args.csv)
            print(f"Exported {len(bill.items)} items to: {args.csv}")
    except OSError as ex:
        logger.error("export_failed", error=str(ex))
        print(f"Export failed: {ex}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
