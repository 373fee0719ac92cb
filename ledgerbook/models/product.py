from __future__ import annotations
from pydantic import Field
from typing import Literal, Optional
from .common import LedgerModel, gen_id

ProductKind = Literal["goods", "service"]


class Product(LedgerModel):
    id: str = Field(default_factory=gen_id)
    name: str
    kind: ProductKind = Field("goods", alias="type")
    category: Optional[str] = None
    stock: float = 0.0
    opening_stock: Optional[float] = None
    min_stock_level: Optional[float] = None
    purchase_price: float = 0.0
    sale_price: float = 0.0
    wholesale_price: Optional[float] = None
    unit: str = "pcs"
    # 1 unité principale = conversion_ratio unités secondaires
    secondary_unit: Optional[str] = None
    conversion_ratio: Optional[float] = None

    @property
    def tracks_stock(self) -> bool:
        return self.kind != "service"

    def is_low_stock(self) -> bool:
        if not self.tracks_stock or self.min_stock_level is None:
            return False
        return self.stock <= self.min_stock_level
