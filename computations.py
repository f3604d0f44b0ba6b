"""
Business logic and computations for EasySplit

The engine runs in three phases, chained by calculate_summary():
allocation -> discount/rounding adjustment -> settlement.
Every call builds fresh accumulators; inputs are never mutated.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from models import (
    AllocationMode,
    Bill,
    BillConfig,
    BillSummary,
    Item,
    Member,
    MemberSummary,
    Receipt,
    ReceiptTotals,
    ShareLine,
    ShareMode,
    Transfer,
    Unassigned,
    UnitMode,
)

logger = structlog.get_logger()

EPSILON = 0.0001  # amounts below this are noise
SETTLE_TOLERANCE = 0.01  # balances within this are settled


@dataclass
class LineCost:
    """Tax-inclusive cost broken into its parts"""
    base: float = 0.0
    service_charge: float = 0.0
    vat: float = 0.0

    @property
    def total(self) -> float:
        return self.base + self.service_charge + self.vat

    def scaled(self, factor: float) -> LineCost:
        return LineCost(self.base * factor, self.service_charge * factor, self.vat * factor)

    def minus(self, other: LineCost) -> LineCost:
        return LineCost(
            self.base - other.base,
            self.service_charge - other.service_charge,
            self.vat - other.vat,
        )


@dataclass
class ReceiptLedger:
    """Running per-receipt totals collected during allocation"""
    consumption: Dict[str, float] = field(default_factory=dict)  # member -> consumed
    calculated_total: float = 0.0  # sum of everything credited to consumers
    subtotal: float = 0.0  # base part of calculated_total
    gross_base: float = 0.0
    gross_service_charge: float = 0.0
    gross_vat: float = 0.0
    payer_gross: Dict[str, float] = field(default_factory=dict)  # payer -> line totals fronted
    payer_base: Dict[str, float] = field(default_factory=dict)  # payer -> base cost fronted
    discount: float = 0.0
    rounding: float = 0.0

    @property
    def gross_total(self) -> float:
        return self.gross_base + self.gross_service_charge + self.gross_vat

    def add_line(self, payer_id: Optional[str], line: LineCost) -> None:
        self.gross_base += line.base
        self.gross_service_charge += line.service_charge
        self.gross_vat += line.vat
        if payer_id is not None:
            self.payer_gross[payer_id] = self.payer_gross.get(payer_id, 0.0) + line.total
            self.payer_base[payer_id] = self.payer_base.get(payer_id, 0.0) + line.base


@dataclass
class Allocation:
    """Result of the allocation phase, refined in place by the adjustment phase"""
    summaries: Dict[str, MemberSummary]
    receipts: Dict[str, ReceiptLedger]
    default_payer_id: Optional[str] = None
    unresolved_item_ids: List[str] = field(default_factory=list)

    def consume(
        self,
        member_id: Optional[str],
        ledger: Optional[ReceiptLedger],
        label: str,
        cost: LineCost,
        total: Optional[float] = None,
    ) -> None:
        """Charge cost to a member and record it against the receipt"""
        stats = self.summaries.get(member_id) if member_id is not None else None
        if stats is None:
            return
        if total is None:
            total = cost.total
        stats.base_consumption += cost.base
        stats.service_charge_share += cost.service_charge
        stats.vat_share += cost.vat
        stats.total_consumption += total
        stats.items.append(ShareLine(label, total))
        if ledger is not None:
            ledger.consumption[member_id] = ledger.consumption.get(member_id, 0.0) + total
            ledger.calculated_total += total
            ledger.subtotal += cost.base


# ---------- Helpers ----------

def receipt_rates(receipt: Receipt) -> Tuple[float, float]:
    """Service charge and VAT rates of a receipt, honouring its exclusion flags"""
    sc_rate = 0.0 if receipt.exclude_service_charge else float(receipt.service_charge_rate or 0.0)
    vat_rate = 0.0 if receipt.exclude_vat else float(receipt.vat_rate or 0.0)
    return sc_rate, vat_rate


def effective_rates(
    item: Item,
    receipt: Optional[Receipt],
    config: Optional[BillConfig] = None,
) -> Tuple[float, float]:
    """
    Rates applied to an item. Item-level exclusion always wins; items outside
    any receipt fall back to the legacy bill config.
    """
    if receipt is not None:
        sc_rate, vat_rate = receipt_rates(receipt)
    elif config is not None:
        sc_rate, vat_rate = float(config.service_charge_rate), float(config.vat_rate)
    else:
        sc_rate = vat_rate = 0.0
    if item.exclude_service_charge:
        sc_rate = 0.0
    if item.exclude_vat:
        vat_rate = 0.0
    return sc_rate, vat_rate


def line_cost(price: float, quantity: float, sc_rate: float, vat_rate: float) -> LineCost:
    """VAT is charged on the service-charge-inclusive base"""
    base = float(price) * quantity
    sc = base * (sc_rate / 100)
    vat = (base + sc) * (vat_rate / 100)
    return LineCost(base, sc, vat)


def default_payer_id(members: Sequence[Member]) -> Optional[str]:
    """Flagged payer, else the first member, else None"""
    for m in members:
        if m.is_payer:
            return m.id
    return members[0].id if members else None


def resolve_payer(
    item: Item,
    members: Sequence[Member],
    fallback_id: Optional[str],
) -> Optional[str]:
    """Explicit payer if still a member, else the default payer; None if neither exists"""
    member_ids = {m.id for m in members}
    if item.paid_by and item.paid_by in member_ids:
        return item.paid_by
    return fallback_id if fallback_id in member_ids else None


def has_fixed_deductions(item: Item) -> bool:
    return any(d.amount > 0 for d in item.fixed_deductions)


def classify_allocation(item: Item) -> AllocationMode:
    """Derive how an item's cost is split among its assignment entries"""
    shares = len(item.assigned_member_ids)
    if shares == 0:
        return Unassigned()
    if has_fixed_deductions(item) or shares > item.quantity:
        return ShareMode(shares)
    return UnitMode(assigned=shares, unclaimed=item.quantity - shares)


def _share_label(item: Item, count: int, fixed: bool) -> str:
    if fixed and count > 1:
        return f"{item.name} (ส่วนแบ่ง x{count})"
    return item.name


# ---------- Phase 1: allocation ----------

def _allocate_item(
    allocation: Allocation,
    item: Item,
    receipt: Optional[Receipt],
    members: Sequence[Member],
    config: Optional[BillConfig],
) -> None:
    sc_rate, vat_rate = effective_rates(item, receipt, config)
    line = line_cost(item.price, item.quantity, sc_rate, vat_rate)
    ledger = allocation.receipts.get(receipt.id) if receipt is not None else None

    # the payer fronted the whole line, whoever eats it
    payer_id = resolve_payer(item, members, allocation.default_payer_id)
    if payer_id is None:
        allocation.unresolved_item_ids.append(item.id)
        logger.warning("payer_unresolved", item_id=item.id, item=item.name)
    else:
        allocation.summaries[payer_id].total_paid += line.total
    if ledger is not None:
        ledger.add_line(payer_id, line)

    # fixed amounts come off the top
    remaining = line
    for deduction in item.fixed_deductions:
        if deduction.amount <= 0 or deduction.member_id not in allocation.summaries:
            continue
        ratio = deduction.amount / line.total if line.total > 0 else 0.0
        part = line.scaled(ratio)
        allocation.consume(
            deduction.member_id, ledger, f"{item.name} (ระบุยอด)", part, deduction.amount
        )
        remaining = remaining.minus(part)
    if remaining.total < 0:
        remaining = LineCost()

    mode = classify_allocation(item)
    counts = Counter(item.assigned_member_ids)

    if isinstance(mode, Unassigned):
        if remaining.total > EPSILON:
            allocation.consume(payer_id, ledger, f"{item.name} (ยังไม่ระบุ)", remaining)
    elif isinstance(mode, ShareMode):
        if remaining.total > EPSILON:
            per_share = remaining.scaled(1.0 / mode.shares)
            fixed = has_fixed_deductions(item)
            for member_id, count in counts.items():
                allocation.consume(
                    member_id, ledger, _share_label(item, count, fixed), per_share.scaled(count)
                )
    else:
        unit = line_cost(item.price, 1, sc_rate, vat_rate)
        for member_id, count in counts.items():
            allocation.consume(member_id, ledger, _share_label(item, count, False), unit.scaled(count))
        if mode.unclaimed > 0:
            allocation.consume(
                payer_id,
                ledger,
                f"{item.name} (เหลือ x{mode.unclaimed})",
                unit.scaled(mode.unclaimed),
            )


def allocate(
    members: Sequence[Member],
    items: Sequence[Item],
    receipts: Sequence[Receipt],
    payer_id: Optional[str],
    config: Optional[BillConfig] = None,
) -> Allocation:
    """
    Distribute every item's tax-inclusive cost among its consumers.
    Produces per-member consumption and paid totals plus per-receipt ledgers
    for the adjustment phase.
    """
    receipt_map = {r.id: r for r in receipts}
    allocation = Allocation(
        summaries={m.id: MemberSummary(m.id, m.name) for m in members},
        receipts={r.id: ReceiptLedger() for r in receipts},
        default_payer_id=payer_id,
    )
    for item in items:
        _allocate_item(allocation, item, receipt_map.get(item.receipt_id), members, config)
    return allocation


# ---------- Phase 2: discount and rounding ----------

def discount_saving(receipt: Receipt, gross_base: float) -> float:
    """Tax-inclusive value of a receipt discount, grossed up through SC then VAT"""
    if receipt.discount_value <= 0:
        return 0.0
    if receipt.discount_type == "percent":
        discount_base = gross_base * (receipt.discount_value / 100)
    else:
        discount_base = float(receipt.discount_value)
    sc_rate, vat_rate = receipt_rates(receipt)
    return line_cost(discount_base, 1, sc_rate, vat_rate).total


def apply_discounts(allocation: Allocation, receipts: Sequence[Receipt]) -> None:
    """
    Reduce consumers by their share of recorded consumption and payers by
    their share of gross paid.
    """
    for receipt in receipts:
        ledger = allocation.receipts.get(receipt.id)
        if ledger is None or ledger.gross_total <= 0:
            continue
        saving = discount_saving(receipt, ledger.gross_base)
        if saving <= 0:
            continue

        recorded = ledger.calculated_total
        if recorded > 0:
            for member_id, consumed in ledger.consumption.items():
                member_saving = saving * (consumed / recorded)
                stats = allocation.summaries[member_id]
                stats.total_consumption -= member_saving
                stats.items.append(ShareLine(f"ส่วนลด ({receipt.name})", -member_saving))
            ledger.calculated_total = recorded - saving
            ledger.discount = saving

        for payer_id, gross_paid in ledger.payer_gross.items():
            allocation.summaries[payer_id].total_paid -= saving * (gross_paid / ledger.gross_total)


def dominant_payer(ledger: ReceiptLedger, fallback_id: Optional[str]) -> Optional[str]:
    """Payer who fronted the largest base cost; first one wins ties"""
    best_id, best_amount = fallback_id, -1.0
    for payer_id, amount in ledger.payer_base.items():
        if amount > best_amount:
            best_id, best_amount = payer_id, amount
    return best_id


def apply_rounding(allocation: Allocation, receipts: Sequence[Receipt]) -> None:
    """
    Reconcile each receipt with its printed total. Must run after
    apply_discounts: the difference is taken against the discounted total.
    """
    for receipt in receipts:
        ledger = allocation.receipts.get(receipt.id)
        if ledger is None or receipt.manual_total is None:
            continue
        diff = float(receipt.manual_total) - ledger.calculated_total
        if abs(diff) <= EPSILON:
            continue
        consumers = [mid for mid, amount in ledger.consumption.items() if abs(amount) > EPSILON]
        if not consumers:
            continue

        share = diff / len(consumers)
        for member_id in consumers:
            stats = allocation.summaries[member_id]
            stats.total_consumption += share
            stats.items.append(ShareLine(f"Rounding ({receipt.name})", share))
        ledger.calculated_total += diff
        ledger.rounding = diff

        # the whole difference went through whoever paid the receipt
        payer_id = dominant_payer(ledger, allocation.default_payer_id)
        if payer_id in allocation.summaries:
            allocation.summaries[payer_id].total_paid += diff


# ---------- Phase 3: settlement ----------

def settle(
    summaries: Sequence[MemberSummary],
    tolerance: float = SETTLE_TOLERANCE,
) -> List[Transfer]:
    """
    Compute transfers to settle debts.
    Greedy settlement: the largest debtor pays the largest creditor.
    net_balance > 0 creditor; net_balance < 0 debtor.
    """
    debtors = [(s.member_id, s.member_name, s.net_balance) for s in summaries if s.net_balance < -tolerance]
    creditors = [(s.member_id, s.member_name, s.net_balance) for s in summaries if s.net_balance > tolerance]
    debtors.sort(key=lambda x: x[2])
    creditors.sort(key=lambda x: x[2], reverse=True)

    transfers = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        did, dname, damt = debtors[i]
        cid, cname, camt = creditors[j]
        x = min(-damt, camt)
        if x > 0:
            transfers.append(Transfer(did, dname, cid, cname, x))
        damt += x
        camt -= x
        if abs(damt) < tolerance:
            i += 1
        else:
            debtors[i] = (did, dname, damt)
        if camt < tolerance:
            j += 1
        else:
            creditors[j] = (cid, cname, camt)

    return transfers


# ---------- Entry point ----------

def calculate_summary(bill: Bill) -> BillSummary:
    """
    Compute per-member summaries, per-receipt totals and settlement transfers.
    Same input always gives the same output.
    """
    payer_id = default_payer_id(bill.members)
    allocation = allocate(bill.members, bill.items, bill.receipts, payer_id, bill.config)
    apply_discounts(allocation, bill.receipts)
    apply_rounding(allocation, bill.receipts)

    summaries = list(allocation.summaries.values())
    for stats in summaries:
        stats.net_balance = stats.total_paid - stats.total_consumption

    receipt_totals = []
    for receipt in bill.receipts:
        ledger = allocation.receipts[receipt.id]
        receipt_totals.append(ReceiptTotals(
            receipt_id=receipt.id,
            name=receipt.name,
            subtotal=ledger.gross_base,
            service_charge=ledger.gross_service_charge,
            vat=ledger.gross_vat,
            discount=ledger.discount,
            rounding=ledger.rounding,
            total=ledger.calculated_total,
        ))

    return BillSummary(
        summaries=summaries,
        transfers=settle(summaries),
        receipts=receipt_totals,
        unresolved_item_ids=list(allocation.unresolved_item_ids),
    )
