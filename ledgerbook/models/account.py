from __future__ import annotations
from pydantic import Field
from typing import Literal, Optional
from .common import LedgerModel, gen_id

AccountType = Literal["Cash", "Bank", "Mobile Wallet", "Other"]

DEFAULT_ACCOUNT_ID = "1"


class Account(LedgerModel):
    id: str = Field(default_factory=gen_id)
    name: str
    type: AccountType = "Cash"
    balance: float = 0.0
    opening_balance: Optional[float] = None
    is_default: bool = False
    bank_name: Optional[str] = None
    account_number: Optional[str] = None


def default_account() -> Account:
    return Account(id=DEFAULT_ACCOUNT_ID, name="Cash In Hand", type="Cash",
                   balance=0.0, opening_balance=0.0, is_default=True)
