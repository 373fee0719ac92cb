from __future__ import annotations
from pydantic import Field
from typing import Literal, Optional
from .common import LedgerModel, gen_id

PartyKind = Literal["customer", "supplier"]


class Party(LedgerModel):
    id: str = Field(default_factory=gen_id)
    name: str
    kind: PartyKind = Field("customer", alias="type")
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    due_date: Optional[str] = None
    # Debit-positive: > 0 receivable, < 0 payable
    balance: float = 0.0
    opening_balance: Optional[float] = None
