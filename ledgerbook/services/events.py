from __future__ import annotations
import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """
    Signal « données de la période modifiées », sans charge utile :
    les abonnés relisent l'état eux-mêmes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                # un abonné défaillant ne doit pas interrompre le moteur
                logger.exception("Change listener %r failed", listener)
