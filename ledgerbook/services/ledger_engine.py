from __future__ import annotations
import logging
import math
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from ledgerbook.errors import MalformedInputError
from ledgerbook.models.account import DEFAULT_ACCOUNT_ID, Account
from ledgerbook.models.cash_drawer import CashDrawer
from ledgerbook.models.common import LedgerModel, OperationResult, now_iso
from ledgerbook.models.operations import Reminder, ServiceJob, User, WarrantyCase
from ledgerbook.models.party import Party
from ledgerbook.models.period import (
    BusinessProfile, CloudConfig, DatabaseConfig, PeriodData,
    initial_period_data, merge_period_blob,
)
from ledgerbook.models.product import Product
from ledgerbook.models.transaction import Transaction
from ledgerbook.services.impact import account_delta, apply_impact, party_delta, stock_delta

logger = logging.getLogger(__name__)

BACKUP_VERSION = "2.6"
APP_ID = "LEDGERBOOK"

TABLES = ("transactions", "parties", "products", "accounts",
          "serviceJobs", "warrantyCases", "reminders", "users")

BALANCE_TOLERANCE = 1e-6

T = TypeVar("T", bound=LedgerModel)


class BalanceSummary(BaseModel):
    to_receive: float = 0.0
    to_give: float = 0.0
    cash_in_hand: float = 0.0
    bank_balance: float = 0.0


def _index_of(items: Sequence[Any], obj_id: str) -> int:
    for i, it in enumerate(items):
        if it.id == obj_id:
            return i
    return -1


def _copy(item: T) -> T:
    return item.model_copy(deep=True)


class LedgerEngine:
    """
    Cache en mémoire d'une période et moteur de dérivation des soldes.

    Les soldes tiers, stocks produits et soldes de comptes ne sont modifiés
    que par l'application / l'annulation des transactions du journal :
    la présence d'une transaction dans le journal vaut « appliquée ».
    Chaque appel mutateur est synchrone et déclenche `on_change`
    (persistance + notification côté PeriodRepository).
    Les accesseurs renvoient des copies : l'état n'est modifiable que via le moteur.
    """

    def __init__(
        self,
        state: Optional[PeriodData] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.on_change = on_change
        self.load_state(state or initial_period_data())

    # ---------------- état ---------------- #

    def load_state(self, state: PeriodData) -> None:
        """Remplace l'état courant (chargement / bascule de période). Ne déclenche pas on_change."""
        self._state = state
        self._fill_openings()

    def snapshot(self) -> Dict[str, Any]:
        return self._state.to_blob()

    def state_copy(self) -> PeriodData:
        return self._state.model_copy(deep=True)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # ---------------- transactions ---------------- #

    @property
    def transactions(self) -> List[Transaction]:
        return [_copy(t) for t in self._state.transactions]

    def get_transaction(self, tx_id: str) -> Optional[Transaction]:
        idx = _index_of(self._state.transactions, tx_id)
        return _copy(self._state.transactions[idx]) if idx >= 0 else None

    def transactions_for_party(self, party_id: str) -> List[Transaction]:
        return [_copy(t) for t in self._state.transactions if t.party_id == party_id]

    def apply_transaction(self, t: Transaction) -> Transaction:
        """Ajoute `t` au journal et applique son impact (+1). Références absentes ignorées."""
        stored = _copy(t)
        self._state.transactions.append(stored)
        apply_impact(self._state, stored, 1)
        logger.debug("Transaction %s (%s, %.2f) appliquée", stored.id, stored.kind, stored.total_amount)
        self._changed()
        return _copy(stored)

    def update_transaction(self, tx_id: str, new_t: Transaction) -> OperationResult:
        idx = _index_of(self._state.transactions, tx_id)
        if idx < 0:
            logger.warning("Mise à jour refusée : transaction %s introuvable", tx_id)
            return OperationResult.fail("NOT_FOUND", f"Transaction {tx_id} not found")

        # ordre fixe : annulation de l'ancienne, remplacement, application de la nouvelle
        old = self._state.transactions[idx]
        apply_impact(self._state, old, -1)
        stored = _copy(new_t)
        self._state.transactions[idx] = stored
        apply_impact(self._state, stored, 1)
        logger.debug("Transaction %s remplacée (%s -> %s)", tx_id, old.kind, stored.kind)
        self._changed()
        return OperationResult.ok()

    def delete_transaction(self, tx_id: str) -> OperationResult:
        idx = _index_of(self._state.transactions, tx_id)
        if idx < 0:
            # rien à annuler : l'état reste inchangé
            return OperationResult.fail("NOT_FOUND", f"Transaction {tx_id} not found")
        t = self._state.transactions[idx]
        apply_impact(self._state, t, -1)
        del self._state.transactions[idx]
        logger.debug("Transaction %s annulée et supprimée", tx_id)
        self._changed()
        return OperationResult.ok()

    # ---------------- profil / configuration ---------------- #

    @property
    def profile(self) -> BusinessProfile:
        return _copy(self._state.profile)

    def update_profile(self, profile: BusinessProfile) -> None:
        self._state.profile = _copy(profile)
        self._changed()

    @property
    def cloud_config(self) -> CloudConfig:
        return _copy(self._state.cloud_config)

    def update_cloud_config(self, config: CloudConfig) -> None:
        self._state.cloud_config = _copy(config)
        self._changed()

    @property
    def db_config(self) -> DatabaseConfig:
        return _copy(self._state.db_config)

    # ---------------- tiroir-caisse ---------------- #

    @property
    def cash_drawer(self) -> CashDrawer:
        return _copy(self._state.cash_drawer)

    def update_cash_drawer(self, drawer: CashDrawer) -> None:
        stored = _copy(drawer)
        stored.last_updated = now_iso()
        self._state.cash_drawer = stored
        self._changed()

    # ---------------- helpers CRUD ---------------- #

    def _check_new_ids(self, items: List[T], new: Sequence[T], entity: str) -> None:
        # tout le lot est validé avant la moindre insertion
        seen = {it.id for it in items}
        for it in new:
            if it.id in seen:
                raise ValueError(f"{entity} with id={it.id} already exists")
            seen.add(it.id)

    def _add(self, items: List[T], item: T, entity: str) -> T:
        if _index_of(items, item.id) >= 0:
            raise ValueError(f"{entity} with id={item.id} already exists")
        stored = _copy(item)
        items.append(stored)
        return stored

    def _replace(self, items: List[T], item: T, keep: Sequence[str] = ()) -> bool:
        idx = _index_of(items, item.id)
        if idx < 0:
            return False
        stored = _copy(item)
        # champs dérivés : propriété exclusive du moteur
        for name in keep:
            setattr(stored, name, getattr(items[idx], name))
        items[idx] = stored
        return True

    def _remove(self, items: List[T], obj_id: str) -> bool:
        idx = _index_of(items, obj_id)
        if idx < 0:
            return False
        del items[idx]
        return True

    # ---------------- comptes ---------------- #

    @property
    def accounts(self) -> List[Account]:
        return [_copy(a) for a in self._state.accounts]

    def get_account(self, account_id: str) -> Optional[Account]:
        idx = _index_of(self._state.accounts, account_id)
        return _copy(self._state.accounts[idx]) if idx >= 0 else None

    def add_account(self, account: Account) -> Account:
        stored = self._add(self._state.accounts, account, "Account")
        if stored.opening_balance is None:
            stored.opening_balance = stored.balance
        self._changed()
        return _copy(stored)

    def update_account(self, account: Account) -> bool:
        if not self._replace(self._state.accounts, account, keep=("balance", "opening_balance")):
            return False
        self._changed()
        return True

    def delete_account(self, account_id: str) -> bool:
        if account_id == DEFAULT_ACCOUNT_ID:
            logger.warning("Suppression du compte par défaut refusée")
            return False
        if not self._remove(self._state.accounts, account_id):
            return False
        self._changed()
        return True

    # ---------------- tiers ---------------- #

    @property
    def parties(self) -> List[Party]:
        return [_copy(p) for p in self._state.parties]

    def get_party(self, party_id: str) -> Optional[Party]:
        idx = _index_of(self._state.parties, party_id)
        return _copy(self._state.parties[idx]) if idx >= 0 else None

    def _add_party(self, party: Party) -> Party:
        # le solde saisi à la création est le solde d'ouverture
        stored = self._add(self._state.parties, party, "Party")
        if stored.opening_balance is None:
            stored.opening_balance = stored.balance
        return stored

    def add_party(self, party: Party) -> Party:
        stored = self._add_party(party)
        self._changed()
        return _copy(stored)

    def bulk_add_parties(self, parties: Sequence[Party]) -> int:
        self._check_new_ids(self._state.parties, parties, "Party")
        for p in parties:
            self._add_party(p)
        self._changed()
        return len(parties)

    def update_party(self, party: Party) -> bool:
        if not self._replace(self._state.parties, party, keep=("balance", "opening_balance")):
            return False
        self._changed()
        return True

    # ---------------- produits ---------------- #

    @property
    def products(self) -> List[Product]:
        return [_copy(p) for p in self._state.products]

    def get_product(self, product_id: str) -> Optional[Product]:
        idx = _index_of(self._state.products, product_id)
        return _copy(self._state.products[idx]) if idx >= 0 else None

    def _add_product(self, product: Product) -> Product:
        stored = self._add(self._state.products, product, "Product")
        if stored.opening_stock is None:
            stored.opening_stock = stored.stock
        return stored

    def add_product(self, product: Product) -> Product:
        stored = self._add_product(product)
        self._changed()
        return _copy(stored)

    def bulk_add_products(self, products: Sequence[Product]) -> int:
        self._check_new_ids(self._state.products, products, "Product")
        for p in products:
            self._add_product(p)
        self._changed()
        return len(products)

    def update_product(self, product: Product) -> bool:
        if not self._replace(self._state.products, product, keep=("stock", "opening_stock")):
            return False
        self._changed()
        return True

    def delete_product(self, product_id: str) -> bool:
        if not self._remove(self._state.products, product_id):
            return False
        self._changed()
        return True

    def low_stock_products(self) -> List[Product]:
        return [_copy(p) for p in self._state.products if p.is_low_stock()]

    # ---------------- dossiers SAV / garantie ---------------- #

    @property
    def service_jobs(self) -> List[ServiceJob]:
        return [_copy(j) for j in self._state.service_jobs]

    def add_service_job(self, job: ServiceJob) -> ServiceJob:
        stored = self._add(self._state.service_jobs, job, "ServiceJob")
        self._changed()
        return _copy(stored)

    def update_service_job(self, job: ServiceJob) -> bool:
        if not self._replace(self._state.service_jobs, job):
            return False
        self._changed()
        return True

    def delete_service_job(self, job_id: str) -> bool:
        if not self._remove(self._state.service_jobs, job_id):
            return False
        self._changed()
        return True

    @property
    def warranty_cases(self) -> List[WarrantyCase]:
        return [_copy(w) for w in self._state.warranty_cases]

    def add_warranty_case(self, case: WarrantyCase) -> WarrantyCase:
        stored = self._add(self._state.warranty_cases, case, "WarrantyCase")
        self._changed()
        return _copy(stored)

    def update_warranty_case(self, case: WarrantyCase) -> bool:
        if not self._replace(self._state.warranty_cases, case):
            return False
        self._changed()
        return True

    def delete_warranty_case(self, case_id: str) -> bool:
        if not self._remove(self._state.warranty_cases, case_id):
            return False
        self._changed()
        return True

    # ---------------- rappels / utilisateurs ---------------- #

    @property
    def reminders(self) -> List[Reminder]:
        return [_copy(r) for r in self._state.reminders]

    def add_reminder(self, reminder: Reminder) -> Reminder:
        stored = self._add(self._state.reminders, reminder, "Reminder")
        self._changed()
        return _copy(stored)

    def delete_reminder(self, reminder_id: str) -> bool:
        if not self._remove(self._state.reminders, reminder_id):
            return False
        self._changed()
        return True

    @property
    def users(self) -> List[User]:
        return [_copy(u) for u in self._state.users]

    def add_user(self, user: User) -> User:
        stored = self._add(self._state.users, user, "User")
        self._changed()
        return _copy(stored)

    def update_user(self, user: User) -> bool:
        if not self._replace(self._state.users, user):
            return False
        self._changed()
        return True

    def delete_user(self, user_id: str) -> bool:
        if not self._remove(self._state.users, user_id):
            return False
        self._changed()
        return True

    # ---------------- brouillon de réassort ---------------- #

    @property
    def replenishment_draft(self) -> List[Dict[str, Any]]:
        return [dict(d) for d in self._state.replenishment_draft]

    def update_replenishment_draft(self, draft: Sequence[Dict[str, Any]]) -> None:
        self._state.replenishment_draft = [dict(d) for d in draft]
        self._changed()

    def clear_replenishment_draft(self) -> None:
        self.update_replenishment_draft([])

    # ---------------- soldes dérivés ---------------- #

    def balance_summary(self) -> BalanceSummary:
        s = BalanceSummary()
        for p in self._state.parties:
            if p.balance > 0:
                s.to_receive += p.balance
            elif p.balance < 0:
                s.to_give += -p.balance
        for a in self._state.accounts:
            if a.type == "Cash":
                s.cash_in_hand += a.balance
            else:
                s.bank_balance += a.balance
        return s

    def _log_totals(self):
        """Somme des impacts du journal, par tiers / produit / compte."""
        parties: Dict[str, float] = defaultdict(float)
        stock: Dict[str, float] = defaultdict(float)
        accounts: Dict[str, float] = defaultdict(float)
        for t in self._state.transactions:
            if t.party_id:
                parties[t.party_id] += party_delta(t)
            for item in t.items:
                stock[item.product_id] += stock_delta(t, item.quantity)
            if t.account_id:
                accounts[t.account_id] += account_delta(t)
        return parties, stock, accounts

    def _fill_openings(self) -> None:
        # blobs anciens / restaurés : ouverture = valeur courante - impact du journal
        parties, stock, accounts = self._log_totals()
        for p in self._state.parties:
            if p.opening_balance is None:
                p.opening_balance = p.balance - parties.get(p.id, 0.0)
        for q in self._state.products:
            if q.opening_stock is None:
                q.opening_stock = q.stock - stock.get(q.id, 0.0) if q.tracks_stock else q.stock
        for a in self._state.accounts:
            if a.opening_balance is None:
                a.opening_balance = a.balance - accounts.get(a.id, 0.0)

    def verify_balances(self) -> List[str]:
        """Recalcule chaque solde depuis l'ouverture + le journal ; renvoie les écarts (vide si cohérent)."""
        parties, stock, accounts = self._log_totals()
        issues: List[str] = []

        def check(label: str, actual: float, expected: float) -> None:
            if not math.isclose(actual, expected, rel_tol=0.0, abs_tol=BALANCE_TOLERANCE):
                issues.append(f"{label}: {actual!r} != expected {expected!r}")

        for p in self._state.parties:
            check(f"party {p.id} balance", p.balance, (p.opening_balance or 0.0) + parties.get(p.id, 0.0))
        for q in self._state.products:
            if q.tracks_stock:
                check(f"product {q.id} stock", q.stock, (q.opening_stock or 0.0) + stock.get(q.id, 0.0))
        for a in self._state.accounts:
            check(f"account {a.id} balance", a.balance, (a.opening_balance or 0.0) + accounts.get(a.id, 0.0))
        return issues

    # ---------------- sauvegarde / restauration ---------------- #

    def backup_data(self) -> Dict[str, Any]:
        data = self.snapshot()
        data.update({"backupVersion": BACKUP_VERSION, "timestamp": now_iso(), "appId": APP_ID})
        return data

    def restore_data(self, data: Any) -> OperationResult:
        """Remplace tout le cache par (valeurs par défaut ⊔ champs fournis)."""
        try:
            state = merge_period_blob(data)
        except MalformedInputError as e:
            logger.warning("Restauration refusée : %s", e)
            return OperationResult.fail("MALFORMED_INPUT", "Invalid data format")
        self.load_state(state)
        logger.info(
            "Restauration : %d transactions, %d tiers, %d produits, %d comptes",
            len(state.transactions), len(state.parties), len(state.products), len(state.accounts),
        )
        self._changed()
        return OperationResult.ok()

    def list_tables(self) -> List[str]:
        return list(TABLES)

    def get_table_data(self, table: str) -> List[Dict[str, Any]]:
        if table not in TABLES:
            return []
        return self.snapshot()[table]
