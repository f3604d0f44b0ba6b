"""
Receipt scan ingestion for EasySplit

The scanner itself (an external document-understanding service) is any
callable taking raw image bytes and returning its JSON payload as a dict:

    {"items": [{"name": ..., "price": <unit price>, "quantity": ...}],
     "grandTotal": ..., "vatRate": ..., "serviceChargeRate": ...}

Images are processed one at a time. Each image either adds one receipt with
its items or nothing at all.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

import structlog

from computations import default_payer_id
from config import DEFAULT_RECEIPT_ID, Settings
from models import Bill, Item, Receipt, ScannedItem, ScanResult
from utils import new_id, safe_float

logger = structlog.get_logger()

ReceiptScanner = Callable[[bytes], dict]


class ScanError(Exception):
    """Scanner failed or returned something unusable."""


@dataclass
class ScanFailure:
    """Image that could not be ingested"""
    source: str
    reason: str


def _rate(value) -> Optional[float]:
    if value is None:
        return None
    rate = safe_float(value, None)
    if rate is None or rate < 0:
        raise ScanError(f"Invalid rate: {value!r}")
    return rate


def scan_result_from_dict(data: dict) -> ScanResult:
    """Parse the scanner payload. Missing fields are fine, malformed ones are not."""
    if not isinstance(data, dict):
        raise ScanError("Scanner returned no object")
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise ScanError("Scanner 'items' is not a list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ScanError(f"Malformed item: {raw!r}")
        price = safe_float(raw.get("price"), None)
        if price is None:
            raise ScanError(f"Item without a price: {raw!r}")
        quantity = safe_float(raw.get("quantity"), None)
        items.append(ScannedItem(
            name=str(raw.get("name") or "").strip(),
            price=price,
            quantity=int(quantity) if quantity and quantity >= 1 else 1,
        ))

    grand_total = data.get("grandTotal")
    if grand_total is not None:
        grand_total = safe_float(grand_total, None)
        if grand_total is None:
            raise ScanError(f"Invalid grand total: {data.get('grandTotal')!r}")

    return ScanResult(
        items=items,
        grand_total=grand_total,
        vat_rate=_rate(data.get("vatRate")),
        service_charge_rate=_rate(data.get("serviceChargeRate")),
    )


def receipt_from_scan(
    result: ScanResult,
    name: str,
    payer_id: str,
    settings: Optional[Settings] = None,
) -> Tuple[Receipt, List[Item]]:
    """
    Turn a scan into a receipt and its items. Zero-price lines are noise and
    dropped. An explicit 0% rate marks the receipt as excluding that charge.
    """
    settings = settings or Settings()
    vat_rate = settings.scan_default_vat_rate if result.vat_rate is None else result.vat_rate
    sc_rate = (settings.scan_default_service_charge_rate
               if result.service_charge_rate is None else result.service_charge_rate)

    receipt = Receipt(
        id=new_id(),
        name=name,
        service_charge_rate=sc_rate,
        vat_rate=vat_rate,
        exclude_service_charge=sc_rate == 0,
        exclude_vat=vat_rate == 0,
        manual_total=result.grand_total,
    )
    items = [
        Item(
            id=new_id(),
            name=s.name,
            price=s.price,
            quantity=s.quantity,
            assigned_member_ids=[],
            paid_by=payer_id,
            receipt_id=receipt.id,
        )
        for s in result.items if s.price > 0
    ]
    return receipt, items


def _is_untouched(bill: Bill) -> bool:
    return not bill.items and len(bill.receipts) == 1 and bill.receipts[0].id == DEFAULT_RECEIPT_ID


def ingest_scans(
    bill: Bill,
    images: Iterable[Tuple[str, bytes]],
    scanner: ReceiptScanner,
    payer_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Tuple[Bill, List[ScanFailure]]:
    """
    Scan (source, image bytes) pairs one after another and add a receipt per
    image. Returns the new bill and the images that failed; a failed image
    leaves no trace in the bill.
    """
    payer_id = payer_id or default_payer_id(bill.members) or ""
    new_receipts: List[Receipt] = []
    new_items: List[Item] = []
    failures: List[ScanFailure] = []

    for index, (source, image) in enumerate(images, start=1):
        try:
            result = scan_result_from_dict(scanner(image))
        except ScanError as ex:
            logger.error("scan_rejected", source=source, error=str(ex))
            failures.append(ScanFailure(source, str(ex)))
            continue
        except Exception as ex:
            # the scanner is an external service; any failure counts against this image only
            logger.error("scan_failed", source=source, error=str(ex), exc_type=type(ex).__name__)
            failures.append(ScanFailure(source, str(ex)))
            continue

        receipt, items = receipt_from_scan(result, f"Scan {index}", payer_id, settings)
        new_receipts.append(receipt)
        new_items.extend(items)
        logger.info("scan_ingested", source=source, receipt_id=receipt.id, items=len(items))

    if not new_receipts:
        return bill, failures

    # a fresh bill's placeholder receipt is replaced by the scans
    receipts = [] if _is_untouched(bill) else list(bill.receipts)
    return replace(bill, receipts=receipts + new_receipts, items=bill.items + new_items), failures
