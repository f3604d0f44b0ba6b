"""
Data models for EasySplit application
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Member:
    """Bill participant"""
    id: str
    name: str
    is_payer: bool = False  # default payer for items without an explicit one
    payout_id: Optional[str] = None  # bank account / PromptPay, free text


@dataclass
class Receipt:
    """Sub-bill sharing one tax, discount and rounding policy"""
    id: str
    name: str
    service_charge_rate: float = 0.0  # percent, e.g. 10 for 10%
    vat_rate: float = 0.0  # percent
    exclude_service_charge: bool = False
    exclude_vat: bool = False
    discount_type: str = "percent"  # "percent" | "amount"
    discount_value: float = 0.0
    manual_total: Optional[float] = None  # printed total, triggers rounding


@dataclass
class FixedDeduction:
    """Fixed amount a member pays for an item before the split"""
    member_id: str
    amount: float


@dataclass
class Item:
    """Single purchased line"""
    id: str
    name: str
    price: float  # unit price
    quantity: int = 1
    assigned_member_ids: List[str] = field(default_factory=list)  # multiset, duplicates count
    paid_by: str = ""  # blank -> default payer
    exclude_service_charge: bool = False
    exclude_vat: bool = False
    fixed_deductions: List[FixedDeduction] = field(default_factory=list)
    note: str = ""
    receipt_id: Optional[str] = None


@dataclass
class BillConfig:
    """Legacy bill-wide rates, used only for items outside any receipt"""
    vat_rate: float = 0.0
    service_charge_rate: float = 0.0
    final_bill_total: Optional[float] = None
    rounding_method: str = "payer"  # "payer" | "split"


@dataclass
class Bill:
    """Complete bill containing all input data"""
    name: str
    members: List[Member] = field(default_factory=list)
    items: List[Item] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
    config: BillConfig = field(default_factory=BillConfig)


@dataclass
class ShareLine:
    """Audit entry: what a member is charged for and how much"""
    name: str
    share: float


@dataclass
class MemberSummary:
    """Computed totals for one member"""
    member_id: str
    member_name: str
    base_consumption: float = 0.0
    service_charge_share: float = 0.0
    vat_share: float = 0.0
    total_consumption: float = 0.0
    total_paid: float = 0.0
    net_balance: float = 0.0  # positive -> should receive; negative -> should pay
    items: List[ShareLine] = field(default_factory=list)


@dataclass
class Transfer:
    """Payment instruction settling part of a debt"""
    from_id: str
    from_name: str
    to_id: str
    to_name: str
    amount: float


@dataclass
class ReceiptTotals:
    """Per-receipt totals after discount and rounding"""
    receipt_id: str
    name: str
    subtotal: float = 0.0
    service_charge: float = 0.0
    vat: float = 0.0
    discount: float = 0.0  # tax-inclusive saving
    rounding: float = 0.0
    total: float = 0.0


@dataclass
class BillSummary:
    """Engine output"""
    summaries: List[MemberSummary]
    transfers: List[Transfer]
    receipts: List[ReceiptTotals] = field(default_factory=list)
    unresolved_item_ids: List[str] = field(default_factory=list)  # no payer could be found

    @property
    def grand_total(self) -> float:
        return sum(s.total_consumption for s in self.summaries)


# Allocation modes, derived from an item's shape

@dataclass(frozen=True)
class Unassigned:
    """Nobody claimed the item; the payer consumes what is left"""


@dataclass(frozen=True)
class UnitMode:
    """Each assignment entry consumes one whole unit"""
    assigned: int
    unclaimed: int  # units left for the payer


@dataclass(frozen=True)
class ShareMode:
    """Remaining cost split evenly over assignment entries"""
    shares: int


AllocationMode = Union[Unassigned, UnitMode, ShareMode]


# Scanner output

@dataclass
class ScannedItem:
    name: str
    price: float  # unit price
    quantity: int = 1


@dataclass
class ScanResult:
    items: List[ScannedItem] = field(default_factory=list)
    grand_total: Optional[float] = None
    vat_rate: Optional[float] = None  # None -> not detected
    service_charge_rate: Optional[float] = None
