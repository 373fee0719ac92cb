from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"
SETTINGS_FILE = "settings.json"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    data_dir: Path = DATA_DIR
    backup_enabled: bool = True
    backup_keep: int = 5
    async_writes: bool = True
    log_level: str = "INFO"


# variable d'environnement -> champ
ENV_VARS = {
    "LEDGERBOOK_DATA_DIR": "data_dir",
    "LEDGERBOOK_BACKUP_ENABLED": "backup_enabled",
    "LEDGERBOOK_BACKUP_KEEP": "backup_keep",
    "LEDGERBOOK_ASYNC_WRITES": "async_writes",
    "LEDGERBOOK_LOG_LEVEL": "log_level",
}


def _load_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Fichier de configuration illisible : %s", path)
        return None


def load_settings(
    data_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Résout la configuration :
    - valeurs par défaut
    - <data_dir>/settings.json (section "ledger" ou objet racine)
    - variables d'environnement LEDGERBOOK_*
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    base = Path(data_dir or env.get("LEDGERBOOK_DATA_DIR") or DATA_DIR)
    s = _load_json(base / SETTINGS_FILE)
    if isinstance(s, dict):
        section = s.get("ledger") if isinstance(s.get("ledger"), dict) else s
        values.update({k: v for k, v in section.items() if k in Settings.model_fields})

    for var, field in ENV_VARS.items():
        if env.get(var):
            values[field] = env[var]
    values["data_dir"] = base

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        logger.warning("Configuration invalide, valeurs par défaut utilisées : %s", e.errors()[:1])
        return Settings(data_dir=base)


def configure_logging(level: Union[str, int, None] = None) -> None:
    if level is None:
        level = load_settings().log_level
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
