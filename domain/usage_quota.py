# domain/usage_quota.py

"""
Quota mensuel d'appels IA par garage.

Le compteur est tenu par période "YYYY-MM" ; un garage sans limite
configurée n'est jamais bloqué.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


def current_period(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year}-{today.month:02d}"


@dataclass(frozen=True)
class QuotaStatus:
    allowed: bool
    current: int = 0
    limit: Optional[int] = None


class UsageTracker:
    """
    Compteur d'usage IA (en mémoire) + limites mensuelles par garage.
    """

    def __init__(
        self,
        limits: Optional[Mapping[str, Optional[int]]] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._limits: Dict[str, Optional[int]] = dict(limits or {})
        self._today = today
        self._usage: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def set_limit(self, garage_id: str, limit: Optional[int]) -> None:
        if limit is not None and limit < 0:
            raise ValueError("Le quota mensuel doit être positif ou nul.")
        with self._lock:
            self._limits[garage_id] = limit

    def usage(self, garage_id: str) -> int:
        period = current_period(self._today())
        with self._lock:
            return self._usage.get((garage_id, period), 0)

    def check(self, garage_id: str) -> QuotaStatus:
        period = current_period(self._today())
        with self._lock:
            limit = self._limits.get(garage_id)
            current = self._usage.get((garage_id, period), 0)

        if limit is None:
            return QuotaStatus(allowed=True, current=current, limit=None)
        if current >= limit:
            logger.warning("Quota IA atteint pour le garage %s (%d/%d, %s).", garage_id, current, limit, period)
            return QuotaStatus(allowed=False, current=current, limit=limit)
        return QuotaStatus(allowed=True, current=current, limit=limit)

    def record(self, garage_id: str) -> int:
        """Ajoute un appel au compteur du mois courant et renvoie le nouveau total."""
        key = (garage_id, current_period(self._today()))
        with self._lock:
            self._usage[key] = self._usage.get(key, 0) + 1
            count = self._usage[key]
        logger.debug("Usage IA garage %s (%s) : %d.", garage_id, key[1], count)
        return count
