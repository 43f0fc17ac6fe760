# domain/safe_ai.py

"""
Enveloppe des appels IA : délai maximum, nouvelle tentative, mesure de la
latence et message d'erreur lisible (jamais de trace côté utilisateur).
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from domain.ai_provider import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 1

MANUAL_MODE_MESSAGE = "Impossible de générer automatiquement. Vous pouvez continuer en mode manuel."
TIMEOUT_MESSAGE = "Délai dépassé. Réessayez."
UNAVAILABLE_MESSAGE = "Service temporairement indisponible."
TOO_MANY_REQUESTS_MESSAGE = "Trop de requêtes. Réessayez plus tard."
ACCESS_DENIED_MESSAGE = "Accès refusé au service IA."


class AICallTimeout(RuntimeError):
    """Appel IA non terminé dans le délai imparti."""


@dataclass
class SafeAICallResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[str] = None
    latency_ms: int = 0
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def to_readable_message(exc: Optional[BaseException]) -> str:
    """Traduit une exception en message utilisateur (français, sans détail technique)."""
    if exc is None:
        return MANUAL_MODE_MESSAGE
    if isinstance(exc, AICallTimeout):
        return TIMEOUT_MESSAGE

    http_status = getattr(exc, "http_status", None)
    message = str(exc).lower()

    if isinstance(exc, ConnectionError) or any(
        marker in message for marker in ("econnrefused", "connection", "connexion")
    ):
        return UNAVAILABLE_MESSAGE
    if http_status == 429 or "429" in message or "rate" in message:
        return TOO_MANY_REQUESTS_MESSAGE
    if http_status in (401, 403) or "401" in message or "403" in message:
        return ACCESS_DENIED_MESSAGE
    return MANUAL_MODE_MESSAGE


def _call_with_timeout(fn: Callable[[], T], timeout_s: float) -> T:
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ai-call")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeoutError as exc:
        raise AICallTimeout(f"Appel IA > {timeout_s:.0f}s") from exc
    finally:
        # Un appel bloqué continue en tâche de fond, sans retenir l'appelant.
        executor.shutdown(wait=False)


def safe_ai_call(
    fn: Callable[[], T],
    *,
    feature: str = "generate_quote_lines",
    garage_id: Optional[str] = None,
    timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    clock: Callable[[], float] = time.monotonic,
) -> SafeAICallResult[T]:
    """
    Exécute `fn` avec un délai maximum et au plus `max_retries` nouvelles
    tentatives. Ne lève jamais : l'échec est décrit par `error`.
    """
    start = clock()
    last_error: Optional[BaseException] = None
    attempts = 0

    for attempt in range(max_retries + 1):
        attempts = attempt + 1
        try:
            data = _call_with_timeout(fn, timeout_s)
            latency_ms = int((clock() - start) * 1000)
            logger.info(
                "[%s] appel IA réussi (garage=%s, tentative=%d, %d ms).",
                feature, garage_id, attempts, latency_ms,
            )
            return SafeAICallResult(data=data, latency_ms=latency_ms, attempts=attempts)
        except (ProviderError, AICallTimeout) as exc:
            last_error = exc
            logger.warning("[%s] tentative %d échouée: %s", feature, attempts, exc)
        except Exception as exc:
            last_error = exc
            logger.exception("[%s] erreur inattendue (tentative %d).", feature, attempts)

    latency_ms = int((clock() - start) * 1000)
    message = to_readable_message(last_error)
    logger.error(
        "[%s] appel IA abandonné après %d tentative(s) (garage=%s, %d ms): %s",
        feature, attempts, garage_id, latency_ms, message,
    )
    return SafeAICallResult(error=message, latency_ms=latency_ms, attempts=attempts)
