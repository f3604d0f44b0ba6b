"""
Configuration and data loading/saving for EasySplit
"""
from __future__ import annotations
import json
import os
from dataclasses import asdict, dataclass, fields
from typing import Optional

from models import Bill, BillConfig, FixedDeduction, Item, Member, Receipt
from utils import app_dir

DEFAULT_RECEIPT_ID = "manual-default"
DEFAULT_RECEIPT_NAME = "บิล / ร้านค้า"
DISCOUNT_TYPES = ("percent", "amount")


@dataclass
class Settings:
    """Application settings, read from settings.json in the app directory"""
    currency: str = "THB"
    scan_default_vat_rate: float = 7.0  # when the scanner finds no VAT line
    scan_default_service_charge_rate: float = 0.0
    standard_vat_rate: float = 7.0  # applied when VAT is switched on at 0%
    standard_service_charge_rate: float = 10.0
    log_level: str = "info"


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from JSON file; missing file or keys fall back to defaults"""
    if path is None:
        path = os.path.join(app_dir(), "settings.json")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return Settings()
    known = {f.name for f in fields(Settings)}
    return Settings(**{k: v for k, v in data.items() if k in known})


def default_receipt() -> Receipt:
    """Receipt every bill starts with"""
    return Receipt(DEFAULT_RECEIPT_ID, DEFAULT_RECEIPT_NAME, service_charge_rate=0.0, vat_rate=0.0)


def get_default_bill(name: str = "บิล") -> Bill:
    """Create an empty bill holding only the default receipt"""
    return Bill(name=name, members=[], items=[], receipts=[default_receipt()], config=BillConfig())


def _optional_float(v) -> Optional[float]:
    return None if v is None else float(v)


def dict_to_member(d: dict) -> Member:
    return Member(
        id=str(d["id"]),
        name=str(d.get("name", "")),
        is_payer=bool(d.get("is_payer", False)),
        payout_id=d.get("payout_id"),
    )


def dict_to_receipt(d: dict) -> Receipt:
    discount_type = d.get("discount_type") or "percent"
    if discount_type not in DISCOUNT_TYPES:
        raise ValueError(f"Unknown discount type: {discount_type!r}")
    return Receipt(
        id=str(d["id"]),
        name=str(d.get("name", "")),
        service_charge_rate=float(d.get("service_charge_rate") or 0.0),
        vat_rate=float(d.get("vat_rate") or 0.0),
        exclude_service_charge=bool(d.get("exclude_service_charge", False)),
        exclude_vat=bool(d.get("exclude_vat", False)),
        discount_type=discount_type,
        discount_value=float(d.get("discount_value") or 0.0),
        manual_total=_optional_float(d.get("manual_total")),
    )


def dict_to_item(d: dict) -> Item:
    return Item(
        id=str(d["id"]),
        name=str(d.get("name", "")),
        price=float(d["price"]),
        # older records carry no quantity
        quantity=int(d.get("quantity") or 1),
        assigned_member_ids=[str(x) for x in d.get("assigned_member_ids", [])],
        paid_by=str(d.get("paid_by") or ""),
        exclude_service_charge=bool(d.get("exclude_service_charge", False)),
        exclude_vat=bool(d.get("exclude_vat", False)),
        fixed_deductions=[
            FixedDeduction(str(x["member_id"]), float(x["amount"]))
            for x in d.get("fixed_deductions", [])
        ],
        note=str(d.get("note") or ""),
        receipt_id=d.get("receipt_id"),
    )


def bill_to_dict(bill: Bill) -> dict:
    """Convert Bill object to dictionary for JSON serialization"""
    return {
        "name": bill.name,
        "members": [asdict(m) for m in bill.members],
        "receipts": [asdict(r) for r in bill.receipts],
        "items": [asdict(i) for i in bill.items],
        "config": asdict(bill.config),
    }


def dict_to_bill(d: dict) -> Bill:
    """
    Convert dictionary from JSON to Bill object.
    A bill without receipts gets the default receipt, and items that
    belong to no receipt are attached to it.
    """
    cfg = d.get("config") or {}
    config = BillConfig(
        vat_rate=float(cfg.get("vat_rate") or 0.0),
        service_charge_rate=float(cfg.get("service_charge_rate") or 0.0),
        final_bill_total=_optional_float(cfg.get("final_bill_total")),
        rounding_method=cfg.get("rounding_method") or "payer",
    )
    members = [dict_to_member(m) for m in d.get("members", [])]
    receipts = [dict_to_receipt(r) for r in d.get("receipts", [])]
    items = [dict_to_item(i) for i in d.get("items", [])]

    if not receipts:
        receipts = [default_receipt()]
        for item in items:
            if not item.receipt_id:
                item.receipt_id = DEFAULT_RECEIPT_ID

    return Bill(
        name=str(d.get("name", "")),
        members=members,
        items=items,
        receipts=receipts,
        config=config,
    )


def load_bill(path: str) -> Bill:
    """Load bill from JSON file"""
    with open(path, "r", encoding="utf-8") as f:
        return dict_to_bill(json.load(f))


def save_bill(bill: Bill, path: str) -> None:
    """Save bill to JSON file"""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(bill_to_dict(bill), f, ensure_ascii=False, indent=2)
