# domain/rate_limit.py

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Limite d'appels IA par garage, en fenêtre fixe (10 requêtes / 60 s par défaut).

    État en mémoire du process ; l'horloge est injectable pour les tests.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests doit être >= 1.")
        if window_seconds <= 0:
            raise ValueError("window_seconds doit être > 0.")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        """Retire les fenêtres échues (appelé sous verrou)."""
        expired = [garage_id for garage_id, window in self._windows.items() if now > window.reset_at]
        for garage_id in expired:
            del self._windows[garage_id]

    def check(self, garage_id: str) -> bool:
        """
        Consomme une requête pour le garage. Faux si la limite est atteinte.
        """
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(garage_id)
            if window is None:
                self._windows[garage_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.max_requests:
                logger.warning(
                    "Limite IA atteinte pour le garage %s (%d requêtes / %.0f s).",
                    garage_id, self.max_requests, self.window_seconds,
                )
                return False
            window.count += 1
            return True

    def remaining(self, garage_id: str) -> int:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(garage_id)
            if window is None:
                return self.max_requests
            return max(self.max_requests - window.count, 0)

    def tracked_garages(self) -> int:
        """Nombre de garages ayant une fenêtre en cours."""
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            return len(self._windows)

    def reset(self, garage_id: str | None = None) -> None:
        with self._lock:
            if garage_id is None:
                self._windows.clear()
            else:
                self._windows.pop(garage_id, None)
