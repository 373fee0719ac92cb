from __future__ import annotations
from pydantic import Field
from typing import List
from .common import LedgerModel, now_iso

DENOMINATIONS: tuple[int, ...] = (1000, 500, 100, 50, 20, 10, 5, 2, 1)


class CashNoteCount(LedgerModel):
    denomination: int
    count: int = 0


class CashDrawer(LedgerModel):
    notes: List[CashNoteCount] = Field(default_factory=list)
    last_updated: str = Field(default_factory=now_iso)

    def total(self) -> int:
        return sum(n.denomination * n.count for n in self.notes)

    def count_of(self, denomination: int) -> int:
        for n in self.notes:
            if n.denomination == denomination:
                return n.count
        return 0


def default_cash_drawer() -> CashDrawer:
    return CashDrawer(notes=[CashNoteCount(denomination=d, count=0) for d in DENOMINATIONS])
