# domain/quote_service.py

"""
Cas d'usage "générer les lignes d'un devis par IA".

Enchaînement :
1) limite de requêtes puis quota mensuel du garage
2) contrôle de la description
3) chaîne de providers (Mistral -> Gemini -> OpenAI) via safe_ai_call
4) post-traitement, re-validation par le schéma (repli sur les lignes brutes)
5) mémoire de prix du garage
6) comptage de l'usage

Le service ne lève pas pour un échec IA : il renvoie un résultat en mode
dégradé (`fallback=True`) avec un message lisible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from domain.ai_provider import AIProviderName, ProviderError, QuoteLinesProvider
from domain.ai_status import AIResultStatus
from domain.models import QuoteLine
from domain.price_memory import PriceMemoryStore, apply_price_memory
from domain.quote_lines import PostProcessOptions, PostProcessReport, post_process_with_report
from domain.rate_limit import RateLimiter
from domain.safe_ai import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    MANUAL_MODE_MESSAGE,
    safe_ai_call,
)
from domain.schema import validate_lines
from domain.usage_quota import UsageTracker

logger = logging.getLogger(__name__)

FEATURE_NAME = "generate_quote_lines"

INVALID_INPUT_MESSAGE = "Données invalides. Vérifiez les champs."
RATE_LIMITED_MESSAGE = "Trop de requêtes. Réessayez dans une minute."
QUOTA_EXCEEDED_MESSAGE = "Quota IA atteint. Contactez le support ou augmentez votre plan."
NO_PROVIDER_MESSAGE = (
    "Aucune API IA configurée. Configurez MISTRAL_API_KEY, GEMINI_API_KEY ou OPENAI_API_KEY."
)


@dataclass
class GenerationResult:
    status: AIResultStatus
    lines: List[QuoteLine] = field(default_factory=list)
    error: Optional[str] = None
    provider: Optional[AIProviderName] = None
    latency_ms: int = 0
    fallback: bool = False
    post_process: Optional[PostProcessReport] = None

    @property
    def ok(self) -> bool:
        return bool(self.lines) and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status.value,
            "lines": [line.to_dict() for line in self.lines],
        }
        if self.error:
            payload["error"] = self.error
        if self.fallback:
            payload["fallback"] = True
        if self.status is AIResultStatus.QUOTA_EXCEEDED:
            payload["quotaExceeded"] = True
        if self.provider is not None:
            payload["provider"] = self.provider.value
        payload["latency_ms"] = self.latency_ms
        if self.post_process is not None:
            payload["post_process"] = {
                "status": self.post_process.status.value,
                "reason": self.post_process.reason,
                "original_total": round(self.post_process.original_total, 2),
                "processed_total": round(self.post_process.processed_total, 2),
            }
        return payload


class QuoteLinesService:
    """
    Orchestration de la génération des lignes de devis pour un garage.
    """

    def __init__(
        self,
        providers: Mapping[AIProviderName, QuoteLinesProvider],
        rate_limiter: Optional[RateLimiter] = None,
        usage: Optional[UsageTracker] = None,
        price_memory: Optional[PriceMemoryStore] = None,
        options: Optional[PostProcessOptions] = None,
        timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.providers = dict(providers)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.usage = usage or UsageTracker()
        self.price_memory = price_memory
        self.options = options or PostProcessOptions()
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    # ------------------------------------------------------------------ #
    # Chaîne de providers
    # ------------------------------------------------------------------ #

    def _run_provider_chain(
        self,
        description: str,
        vehicle_make: Optional[str],
        vehicle_model: Optional[str],
    ) -> Tuple[AIProviderName, List[QuoteLine]]:
        last_error: Optional[ProviderError] = None
        for name, provider in self.providers.items():
            try:
                lines = provider.generate_lines(description, vehicle_make, vehicle_model)
            except ProviderError as exc:
                logger.warning("Provider %s en échec (%s): %s", name.value, exc.status.value, exc)
                last_error = exc
                continue
            if lines:
                logger.info("Provider %s : %d ligne(s) générée(s).", name.value, len(lines))
                return name, lines
            last_error = ProviderError(
                f"{name.value} n'a retourné aucune ligne.", status=AIResultStatus.EMPTY_RESPONSE
            )

        raise last_error or ProviderError("Aucun provider disponible.", status=AIResultStatus.NO_PROVIDER)

    # ------------------------------------------------------------------ #
    # Cas d'usage
    # ------------------------------------------------------------------ #

    def generate(
        self,
        garage_id: str,
        description: str,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
    ) -> GenerationResult:
        if not self.rate_limiter.check(garage_id):
            return GenerationResult(status=AIResultStatus.RATE_LIMITED, error=RATE_LIMITED_MESSAGE)

        quota = self.usage.check(garage_id)
        if not quota.allowed:
            return GenerationResult(status=AIResultStatus.QUOTA_EXCEEDED, error=QUOTA_EXCEEDED_MESSAGE)

        description = (description or "").strip()
        if not description:
            return GenerationResult(status=AIResultStatus.INVALID_INPUT, error=INVALID_INPUT_MESSAGE)
        vehicle_make = vehicle_make.strip() if vehicle_make and vehicle_make.strip() else None
        vehicle_model = vehicle_model.strip() if vehicle_model and vehicle_model.strip() else None

        if not self.providers:
            logger.warning("Génération demandée sans provider IA configuré (garage=%s).", garage_id)
            return GenerationResult(
                status=AIResultStatus.NO_PROVIDER, error=NO_PROVIDER_MESSAGE, fallback=True
            )

        call = safe_ai_call(
            lambda: self._run_provider_chain(description, vehicle_make, vehicle_model),
            feature=FEATURE_NAME,
            garage_id=garage_id,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
        )
        if not call.ok or call.data is None:
            return GenerationResult(
                status=AIResultStatus.API_ERROR,
                error=call.error or MANUAL_MODE_MESSAGE,
                latency_ms=call.latency_ms,
                fallback=True,
            )

        provider_name, raw_lines = call.data
        report = post_process_with_report(raw_lines, self.options)
        lines = report.lines
        status = AIResultStatus.OK

        if not validate_lines(lines):
            logger.warning("Lignes post-traitées invalides, utilisation des lignes brutes du provider.")
            lines = list(raw_lines)
            status = AIResultStatus.FALLBACK_USED

        if self.price_memory is not None:
            lines = apply_price_memory(lines, self.price_memory, garage_id, vehicle_make, vehicle_model)

        self.usage.record(garage_id)
        logger.info(
            "Devis IA généré (garage=%s, provider=%s, %d ligne(s), %d ms).",
            garage_id, provider_name.value, len(lines), call.latency_ms,
        )
        return GenerationResult(
            status=status,
            lines=lines,
            provider=provider_name,
            latency_ms=call.latency_ms,
            post_process=report,
        )
