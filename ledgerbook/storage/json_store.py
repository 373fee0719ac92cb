from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union

from ledgerbook.errors import PersistenceError
from .store import BackingStore

logger = logging.getLogger(__name__)


def _safe_key(key: str) -> str:
    key = (key or "").strip()
    key = re.sub(r'[\\/:*?"<>|.\s]', "_", key)
    if not key:
        raise ValueError("Store key cannot be empty")
    return key


class JsonFileStore(BackingStore):
    """
    BackingStore sur disque : chaque clé (registre, pointeur actif, blob de période)
    devient `<root>/<clé>.json`.

    Avant d'écraser un blob modifié, l'ancienne version est copiée en
    `<clé>.<horodatage>.bak.json` ; seules les `backup_keep` dernières copies par clé
    sont gardées. Un blob identique au contenu du fichier n'est pas réécrit.
    Un fichier illisible est mis de côté en `<clé>.corrupt.json` et la clé lue comme absente.
    """

    def __init__(
        self,
        root: Union[str, Path],
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / f"{_safe_key(key)}.json"

    # ---------------- I/O bas niveau ---------------- #

    def get(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            # Fichier corrompu -> sauvegarde et repart comme si absent
            logger.warning("Fichier JSON corrompu : %s (copie en .corrupt.json)", path)
            try:
                shutil.copy2(path, path.with_suffix(".corrupt.json"))
            except OSError:
                logger.exception("Copie du fichier corrompu impossible : %s", path)
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read '{key}': {e}") from e

    def _prune_backups(self, path: Path) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        # horodatage dans le nom : l'ordre lexical est chronologique
        backups = sorted(self.root.glob(f"{path.stem}.*.bak.json"))
        for stale in backups[:-self.backup_keep]:
            try:
                stale.unlink(missing_ok=True)
            except OSError:
                logger.warning("Backup obsolète non supprimé : %s", stale)

    def put(self, key: str, blob: Any) -> None:
        path = self.path_for(key)
        try:
            new_dump = json.dumps(blob, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Blob for '{key}' is not JSON serializable: {e}") from e

        with self._lock:
            try:
                # blob inchangé : ni écriture ni backup
                if path.exists():
                    try:
                        if path.read_text(encoding="utf-8") == new_dump:
                            return
                    except (OSError, UnicodeDecodeError):
                        pass

                    # copie horodatée de la version remplacée
                    if self.backup_enabled:
                        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
                        shutil.copy2(path, path.with_suffix(f".{ts}.bak.json"))
                        self._prune_backups(path)

                # fichier temporaire dans le même dossier puis remplacement atomique
                fd, tmp = tempfile.mkstemp(dir=str(self.root), prefix=f".{path.stem}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(new_dump)
                    os.replace(tmp, path)
                except BaseException:
                    Path(tmp).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise PersistenceError(f"Cannot write '{key}': {e}") from e

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        with self._lock:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False
            except OSError as e:
                raise PersistenceError(f"Cannot delete '{key}': {e}") from e

    def keys(self) -> List[str]:
        return sorted(
            p.stem for p in self.root.glob("*.json")
            if not p.name.endswith((".bak.json", ".corrupt.json"))
        )
