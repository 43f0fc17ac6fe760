# infrastructure/ai_factory.py

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from config.settings import Settings
from domain.ai_provider import AIProviderName, ProviderError, QuoteLinesProvider
from domain.price_memory import InMemoryPriceMemoryStore, JsonFilePriceMemoryStore, PriceMemoryStore
from domain.quote_lines import PostProcessOptions
from domain.quote_service import QuoteLinesService
from domain.rate_limit import RateLimiter
from domain.usage_quota import UsageTracker
from infrastructure.gemini_client import GeminiQuoteLinesClient
from infrastructure.mistral_client import MistralQuoteLinesClient
from infrastructure.openai_client import OpenAIQuoteLinesClient

logger = logging.getLogger(__name__)


def _factories(settings: Settings) -> List[Tuple[AIProviderName, bool, Callable[[], QuoteLinesProvider]]]:
    return [
        (AIProviderName.MISTRAL, bool(settings.mistral_api_key),
         lambda: MistralQuoteLinesClient.from_settings(settings)),
        (AIProviderName.GEMINI, bool(settings.gemini_api_key),
         lambda: GeminiQuoteLinesClient.from_settings(settings)),
        (AIProviderName.OPENAI, bool(settings.openai_api_key),
         lambda: OpenAIQuoteLinesClient.from_settings(settings)),
    ]


def build_providers(settings: Settings) -> Dict[AIProviderName, QuoteLinesProvider]:
    """
    Instancie les providers IA disponibles, dans l'ordre d'essai :
    Mistral -> Gemini -> OpenAI.

    Un provider sans clé est ignoré ; si aucun n'est disponible, loggue et
    retourne un dict vide (le service passe alors en mode manuel).
    """
    providers: Dict[AIProviderName, QuoteLinesProvider] = {}

    for name, configured, factory in _factories(settings):
        if not configured:
            logger.debug("Provider %s non configuré.", name.value)
            continue
        try:
            providers[name] = factory()
            logger.info("Provider %s initialisé.", name.value)
        except ProviderError as exc:
            logger.error("Impossible d'initialiser %s: %s", name.value, exc)

    if not providers:
        logger.critical("Aucun provider IA disponible.")
    else:
        logger.debug("Providers IA disponibles: %s", [name.value for name in providers])

    return providers


def build_price_memory(settings: Settings) -> PriceMemoryStore:
    if settings.price_memory_file:
        return JsonFilePriceMemoryStore(settings.price_memory_file)
    logger.debug("Mémoire de prix en mémoire (PRICE_MEMORY_FILE non défini).")
    return InMemoryPriceMemoryStore()


def build_service(
    settings: Settings,
    providers: Optional[Mapping[AIProviderName, QuoteLinesProvider]] = None,
) -> QuoteLinesService:
    """
    Assemble le service de génération à partir des Settings
    (providers, limite de requêtes, mémoire de prix, options du post-traitement).
    """
    return QuoteLinesService(
        providers if providers is not None else build_providers(settings),
        rate_limiter=RateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds),
        usage=UsageTracker(),
        price_memory=build_price_memory(settings),
        options=PostProcessOptions(
            format_labels=settings.format_labels,
            group_oil_volumes=settings.group_oil_volumes,
        ),
        timeout_s=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )
