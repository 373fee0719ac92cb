from __future__ import annotations


class LedgerError(Exception):
    """Erreur de base du moteur de grand livre."""


class NotFoundError(LedgerError, KeyError):
    """Transaction ou période inconnue."""

    def __str__(self) -> str:
        # KeyError entoure le message de guillemets
        return str(self.args[0]) if self.args else ""


class MalformedInputError(LedgerError, ValueError):
    """Données de restauration ou blob stocké qui n'est pas un objet JSON."""


class PersistenceError(LedgerError):
    """Lecture ou écriture impossible dans le stockage."""
