from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from .common import LedgerModel, gen_id, now_iso
from .transaction import TransactionItem

ServiceJobStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "DELIVERED", "CANCELLED"]
WarrantyStatus = Literal["RECEIVED", "SENT", "VENDOR_RETURNED", "CLOSED", "CANCELLED"]

# Statuts finaux : ces dossiers ne sont pas reportés sur la période suivante
TERMINAL_JOB_STATUSES = frozenset({"DELIVERED", "CANCELLED"})
TERMINAL_WARRANTY_STATUSES = frozenset({"CLOSED", "CANCELLED"})


class ServiceJob(LedgerModel):
    id: str = Field(default_factory=gen_id)
    ticket_number: str
    date: str = Field(default_factory=now_iso)
    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: Optional[str] = None

    device_model: str = ""
    device_imei: Optional[str] = None
    device_password: Optional[str] = None
    problem_description: str = ""

    status: ServiceJobStatus = "PENDING"
    estimated_delivery: Optional[str] = None

    estimated_cost: float = 0.0
    advance_amount: float = 0.0

    technician_notes: Optional[str] = None
    used_parts: List[TransactionItem] = Field(default_factory=list)
    labor_charge: float = 0.0
    final_amount: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_JOB_STATUSES


class WarrantyItem(LedgerModel):
    id: str = Field(default_factory=gen_id)
    product_id: str
    product_name: str = ""
    serial_number: str = ""
    problem_description: str = ""


class WarrantyCase(LedgerModel):
    id: str = Field(default_factory=gen_id)
    ticket_number: str
    customer_id: str
    customer_name: str = ""
    items: List[WarrantyItem] = Field(default_factory=list)
    date_received: str = Field(default_factory=now_iso)

    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    date_sent_to_vendor: Optional[str] = None
    date_received_from_vendor: Optional[str] = None
    date_returned_to_customer: Optional[str] = None

    status: WarrantyStatus = "RECEIVED"
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_WARRANTY_STATUSES


ReminderType = Literal["manual", "system_stock", "system_due", "party_due", "party_deadline"]


class Reminder(LedgerModel):
    id: str = Field(default_factory=gen_id)
    title: str
    date: str
    type: ReminderType = "manual"
    priority: Optional[Literal["high", "medium", "low"]] = None
    amount: Optional[float] = None


UserRole = Literal["ADMIN", "SALESMAN", "ACCOUNTANT", "DATA_ENTRY", "SUPER_ADMIN"]


class User(LedgerModel):
    id: str = Field(default_factory=gen_id)
    name: str
    email: str = ""
    password: str = ""
    role: UserRole = "SALESMAN"
    permissions: List[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
