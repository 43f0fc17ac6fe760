# infrastructure/mistral_client.py

from __future__ import annotations

import logging
from typing import Optional

import requests

from config.settings import Settings
from domain.ai_provider import AIProviderName
from infrastructure.chat_completions import DEFAULT_HTTP_TIMEOUT_SECONDS, ChatCompletionsClient

logger = logging.getLogger(__name__)


class MistralQuoteLinesClient(ChatCompletionsClient):
    """
    Provider IA Mistral (provider principal : natif français, sortie JSON).

    mistral-large-latest d'abord, mistral-medium-latest ensuite.
    """

    provider = AIProviderName.MISTRAL
    endpoint = "https://api.mistral.ai/v1/chat/completions"
    default_models = ("mistral-large-latest", "mistral-medium-latest")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: Optional[requests.Session] = None,
    ) -> "MistralQuoteLinesClient":
        return cls(
            settings.mistral_api_key,
            model=settings.mistral_model,
            timeout_s=min(settings.ai_timeout_seconds, DEFAULT_HTTP_TIMEOUT_SECONDS),
            session=session,
        )
