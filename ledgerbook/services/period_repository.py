from __future__ import annotations
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from ledgerbook.config import Settings
from ledgerbook.errors import MalformedInputError, NotFoundError, PersistenceError
from ledgerbook.models.common import gen_id, now_iso
from ledgerbook.models.period import PeriodData, PeriodInfo, initial_period_data, merge_period_blob
from ledgerbook.services.events import ChangeNotifier
from ledgerbook.services.ledger_engine import LedgerEngine
from ledgerbook.storage.json_store import JsonFileStore
from ledgerbook.storage.store import BackingStore

logger = logging.getLogger(__name__)

REGISTRY_KEY = "periods"
ACTIVE_KEY = "active_period_id"


def _db_name(period_id: str) -> str:
    return f"period_{period_id}"


class PeriodRepository:
    """
    Registre des périodes + chargement / bascule / persistance de la période active.

    - un blob par période dans le BackingStore (clé `db_name`)
    - la période active n'est qu'un pointeur : basculer ne touche pas aux autres blobs
    - persist() sérialise l'état tout de suite puis écrit en tâche de fond
      (async_writes) ; un échec d'écriture est journalisé, l'état mémoire fait foi
    """

    def __init__(
        self,
        store: BackingStore,
        engine: Optional[LedgerEngine] = None,
        notifier: Optional[ChangeNotifier] = None,
        *,
        async_writes: bool = False,
    ) -> None:
        self.store = store
        self.engine = engine or LedgerEngine()
        self.engine.on_change = self.persist
        self.notifier = notifier or ChangeNotifier()
        self._active_id: Optional[str] = None
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledgerbook-persist") if async_writes else None
        )
        self._pending: Optional[Future] = None
        self._periods: List[PeriodInfo] = self._load_registry()

    @classmethod
    def from_settings(cls, settings: Settings, notifier: Optional[ChangeNotifier] = None) -> "PeriodRepository":
        store = JsonFileStore(
            settings.data_dir,
            backup_enabled=settings.backup_enabled,
            backup_keep=settings.backup_keep,
        )
        return cls(store, notifier=notifier, async_writes=settings.async_writes)

    # ---------------- E/S protégées ---------------- #

    def _safe_get(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except PersistenceError:
            logger.exception("Lecture impossible de '%s'", key)
            return None

    def _write(self, key: str, blob: Any) -> None:
        try:
            self.store.put(key, blob)
        except PersistenceError:
            # pas de nouvelle tentative : la prochaine mutation réécrit tout l'état
            logger.exception("Échec d'écriture de '%s', l'état en mémoire reste la référence", key)

    def _load_registry(self) -> List[PeriodInfo]:
        raw = self._safe_get(REGISTRY_KEY)
        if not isinstance(raw, list):
            return []
        out: List[PeriodInfo] = []
        for d in raw:
            try:
                out.append(PeriodInfo.model_validate(d))
            except ValidationError:
                logger.warning("Entrée de registre invalide ignorée : %r", d)
                continue
        return out

    def _save_registry(self) -> None:
        self._write(REGISTRY_KEY, [p.to_blob() for p in self._periods])

    # ---------------- registre ---------------- #

    def list_periods(self) -> List[PeriodInfo]:
        return [p.model_copy() for p in self._periods]

    def get_period(self, period_id: str) -> Optional[PeriodInfo]:
        for p in self._periods:
            if p.id == period_id:
                return p.model_copy()
        return None

    def _info(self, period_id: str) -> Optional[PeriodInfo]:
        for p in self._periods:
            if p.id == period_id:
                return p
        return None

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    # ---------------- cycle de vie ---------------- #

    def create(self, name: str) -> str:
        """Crée une période vide (plus le compte par défaut), la persiste et renvoie son id."""
        period_id = gen_id()
        info = PeriodInfo(id=period_id, name=name, db_name=_db_name(period_id))
        self._periods.append(info)
        self._save_registry()
        self._write(info.db_name, initial_period_data(name).to_blob())
        logger.info("Période '%s' créée (%s)", name, period_id)
        self.notifier.emit()
        return period_id

    def read_period(self, period_id: str) -> PeriodData:
        """Lit une période sans l'activer. Blob absent ou illisible -> période vide."""
        if period_id == self._active_id:
            return self.engine.state_copy()
        info = self._info(period_id)
        name = info.name if info else "My Business"
        raw = self._safe_get(info.db_name if info else _db_name(period_id))
        if raw is None:
            return initial_period_data(name)
        try:
            return merge_period_blob(raw, name=name)
        except MalformedInputError as e:
            logger.warning("Blob de la période %s illisible (%s), période vide utilisée", period_id, e)
            return initial_period_data(name)

    def load(self, period_id: str) -> None:
        """Charge la période dans le moteur et en fait la période courante (sans la mémoriser)."""
        # les écritures de la période précédente doivent être terminées
        self.flush()
        state = self.read_period(period_id)
        self.engine.load_state(state)
        self._active_id = period_id
        self.notifier.emit()

    def switch_active(self, period_id: str) -> None:
        if self._info(period_id) is None:
            raise NotFoundError(f"Period {period_id} not found")
        previous = self._active_id
        self.load(period_id)
        self._write(ACTIVE_KEY, period_id)
        logger.info("Période active : %s (précédente : %s)", period_id, previous)

    def activate(self, period_id: str, data: PeriodData) -> None:
        """
        Installe `data` comme état de la période active sans relire le stockage,
        puis le persiste. Sert à ouvrir une période construite en mémoire.
        """
        if self._info(period_id) is None:
            raise NotFoundError(f"Period {period_id} not found")
        self.flush()
        self.engine.load_state(data.model_copy(deep=True))
        self._active_id = period_id
        self._write(ACTIVE_KEY, period_id)
        logger.info("Période active : %s (état installé en mémoire)", period_id)
        self.persist()

    def resume(self) -> Optional[str]:
        """Réactive la période mémorisée au dernier lancement si elle existe encore."""
        period_id = self._safe_get(ACTIVE_KEY)
        if isinstance(period_id, str) and self._info(period_id) is not None:
            self.switch_active(period_id)
            return period_id
        return None

    def persist(self) -> None:
        # sans période active il n'y a rien à écrire, mais les abonnés sont prévenus
        if self._active_id is not None:
            info = self._info(self._active_id)
            key = info.db_name if info else _db_name(self._active_id)
            # sérialisation immédiate : les mutations suivantes ne fuient pas dans cette écriture
            blob = self.engine.snapshot()
            if self._executor is not None:
                self._pending = self._executor.submit(self._write, key, blob)
            else:
                self._write(key, blob)
        self.notifier.emit()

    def mark_closed(self, period_id: str, successor_id: Optional[str] = None) -> None:
        info = self._info(period_id)
        if info is None:
            raise NotFoundError(f"Period {period_id} not found")
        info.status = "CLOSED"
        info.closed_at = now_iso()
        info.successor_id = successor_id
        self._save_registry()

    def logout(self) -> None:
        self.flush()
        self._active_id = None
        try:
            self.store.delete(ACTIVE_KEY)
        except PersistenceError:
            logger.exception("Impossible d'effacer la période active mémorisée")
        self.engine.load_state(initial_period_data())
        self.notifier.emit()

    # ---------------- écritures asynchrones ---------------- #

    def flush(self) -> None:
        """Attend la fin des écritures en cours (un seul worker : l'ordre est conservé)."""
        pending = self._pending
        if pending is not None:
            pending.result()
            self._pending = None

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
