from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional, get_args
from .common import LedgerModel, gen_id, now_iso
from .cash_drawer import CashNoteCount

TransactionKind = Literal[
    "SALE",
    "PURCHASE",
    "SALE_RETURN",
    "PURCHASE_RETURN",
    "QUOTATION",
    "PURCHASE_ORDER",
    "PAYMENT_IN",
    "PAYMENT_OUT",
    "EXPENSE",
    "STOCK_ADJUSTMENT",
    "TRANSFER",
    "BALANCE_ADJUSTMENT",
]

TRANSACTION_KINDS: tuple[str, ...] = get_args(TransactionKind)


class TransactionItem(LedgerModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: float = 0.0
    unit: Optional[str] = None
    rate: float = 0.0
    discount: Optional[float] = None
    amount: float = 0.0


class CashBreakdown(LedgerModel):
    received: List[CashNoteCount] = Field(default_factory=list)
    returned: List[CashNoteCount] = Field(default_factory=list)


class Transaction(LedgerModel):
    id: str = Field(default_factory=gen_id)
    date: str = Field(default_factory=now_iso)
    kind: TransactionKind = Field(alias="type")
    party_id: Optional[str] = None
    party_name: Optional[str] = None
    items: List[TransactionItem] = Field(default_factory=list)

    sub_total: Optional[float] = None
    discount: Optional[float] = None
    tax: Optional[float] = None
    extra_charges: Optional[float] = None
    # >= 0 sauf BALANCE_ADJUSTMENT (signé)
    total_amount: float = 0.0

    notes: Optional[str] = None
    category: Optional[str] = None
    payment_mode: Optional[str] = None
    account_id: Optional[str] = None
    transfer_account_id: Optional[str] = None
    # informatif : le tiroir-caisse n'est pas piloté par le journal
    cash_breakdown: Optional[CashBreakdown] = None
