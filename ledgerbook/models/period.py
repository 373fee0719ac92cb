from __future__ import annotations
import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import Field, ValidationError

from ledgerbook.errors import MalformedInputError
from .common import LedgerModel, gen_id, now_iso
from .account import Account, default_account
from .cash_drawer import CashDrawer, default_cash_drawer
from .operations import Reminder, ServiceJob, User, WarrantyCase
from .party import Party
from .product import Product
from .transaction import Transaction

logger = logging.getLogger(__name__)

PeriodStatus = Literal["OPEN", "CLOSED"]


class PeriodInfo(LedgerModel):
    """Entrée du registre des périodes (une « société » / un exercice)."""
    id: str = Field(default_factory=gen_id)
    name: str
    db_name: str = ""
    created: str = Field(default_factory=now_iso)
    status: PeriodStatus = "OPEN"
    closed_at: Optional[str] = None
    successor_id: Optional[str] = None


class BusinessProfile(LedgerModel):
    name: str = "My Business"
    address: str = ""
    pan: str = ""
    phone: str = ""
    email: Optional[str] = None
    logo_url: Optional[str] = None


class DatabaseConfig(LedgerModel):
    mode: Literal["local", "mysql", "sqlite"] = "local"
    host: Optional[str] = None
    port: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    filepath: Optional[str] = None


class CloudConfig(LedgerModel):
    enabled: bool = True
    auto_backup: bool = True
    backup_schedules: List[str] = Field(default_factory=lambda: ["09:00", "13:00", "18:00", "21:00"])
    backup_path_type: Optional[Literal["default", "custom"]] = None
    backup_location_name: Optional[str] = None
    last_backup: Optional[str] = None
    google_client_id: Optional[str] = None
    backup_time: Optional[str] = "16:00"


class PeriodData(LedgerModel):
    """Contenu complet d'une période : c'est le blob stocké sous la clé de la période."""
    profile: BusinessProfile = Field(default_factory=BusinessProfile)
    db_config: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cloud_config: CloudConfig = Field(default_factory=CloudConfig)
    accounts: List[Account] = Field(default_factory=list)
    parties: List[Party] = Field(default_factory=list)
    products: List[Product] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)
    reminders: List[Reminder] = Field(default_factory=list)
    service_jobs: List[ServiceJob] = Field(default_factory=list)
    warranty_cases: List[WarrantyCase] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    cash_drawer: CashDrawer = Field(default_factory=default_cash_drawer)
    replenishment_draft: List[Dict[str, Any]] = Field(default_factory=list)


# clé JSON -> modèle des éléments
COLLECTIONS: Dict[str, Type[LedgerModel]] = {
    "accounts": Account,
    "parties": Party,
    "products": Product,
    "transactions": Transaction,
    "reminders": Reminder,
    "serviceJobs": ServiceJob,
    "warrantyCases": WarrantyCase,
    "users": User,
}

# sous-objets fusionnés champ par champ avec les valeurs par défaut
SECTIONS: Dict[str, Type[LedgerModel]] = {
    "profile": BusinessProfile,
    "dbConfig": DatabaseConfig,
    "cloudConfig": CloudConfig,
    "cashDrawer": CashDrawer,
}

M = TypeVar("M", bound=LedgerModel)


def initial_period_data(name: str = "My Business") -> PeriodData:
    # objets neufs à chaque appel : aucune référence partagée entre périodes
    return PeriodData(
        profile=BusinessProfile(name=name),
        accounts=[default_account()],
    )


def _hydrate_list(key: str, rows: Any, model: Type[M]) -> List[M]:
    if not isinstance(rows, list):
        if rows is not None:
            logger.warning("Collection '%s' ignorée : liste attendue, reçu %s", key, type(rows).__name__)
        return []
    out: List[M] = []
    for row in rows:
        try:
            out.append(model.model_validate(row))
        except ValidationError as e:
            # on ignore les entrées invalides plutôt que de perdre toute la période
            logger.warning("Entrée invalide ignorée dans '%s' : %s", key, e.errors()[:1])
            continue
    return out


def _merge_section(key: str, default: Mapping[str, Any], provided: Any, model: Type[M]) -> M:
    merged = dict(default)
    if isinstance(provided, Mapping):
        merged.update(provided)
    if key == "cashDrawer":
        notes = provided.get("notes") if isinstance(provided, Mapping) else None
        merged["notes"] = notes if isinstance(notes, list) else default["notes"]
    try:
        return model.model_validate(merged)
    except ValidationError as e:
        logger.warning("Section '%s' invalide, valeurs par défaut conservées : %s", key, e.errors()[:1])
        return model.model_validate(default)


def merge_period_blob(raw: Any, name: Optional[str] = None) -> PeriodData:
    """
    Construit une PeriodData à partir d'un blob stocké ou restauré :
    valeurs par défaut ⊔ champs fournis.
    - clés absentes -> valeurs par défaut (jamais d'échec)
    - profile / dbConfig / cloudConfig / cashDrawer fusionnés champ par champ
    - cashDrawer.notes repris seulement si c'est une liste
    - éléments invalides des collections ignorés (warning)
    """
    if not isinstance(raw, Mapping):
        raise MalformedInputError(f"Period data must be a JSON object, got {type(raw).__name__}")

    defaults = initial_period_data(name or "My Business").to_blob()
    fields: Dict[str, Any] = {}

    for key, model in SECTIONS.items():
        fields[key] = _merge_section(key, defaults[key], raw.get(key), model)

    for key, model in COLLECTIONS.items():
        if key in raw:
            fields[key] = _hydrate_list(key, raw[key], model)
        else:
            fields[key] = _hydrate_list(key, defaults[key], model)

    draft = raw.get("replenishmentDraft")
    fields["replenishmentDraft"] = [d for d in draft if isinstance(d, dict)] if isinstance(draft, list) else []

    return PeriodData.model_validate(fields)
