from __future__ import annotations
import copy
import json
import threading
from typing import Any, Dict, List, Optional

from ledgerbook.errors import PersistenceError


class BackingStore:
    """
    Stockage clé -> blob JSON.
    - get(key) -> blob ou None si absent
    - put(key, blob) : dernier écrit gagne, pas de transaction
    Les implémentations lèvent PersistenceError en cas d'échec d'E/S.
    """

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def put(self, key: str, blob: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryStore(BackingStore):
    """Stockage en mémoire (tests, sessions éphémères). Les blobs sont copiés à l'entrée et à la sortie."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self.data:
                return None
            return copy.deepcopy(self.data[key])

    def put(self, key: str, blob: Any) -> None:
        try:
            # même contrainte que le stockage fichier : le blob doit être sérialisable
            json.dumps(blob)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Blob for '{key}' is not JSON serializable: {e}") from e
        with self._lock:
            self.data[key] = copy.deepcopy(blob)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self.data.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self.data)
