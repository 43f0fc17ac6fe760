# infrastructure/openai_client.py

from __future__ import annotations

import logging
from typing import Optional

import requests

from config.settings import Settings
from domain.ai_provider import AIProviderName
from infrastructure.chat_completions import DEFAULT_HTTP_TIMEOUT_SECONDS, ChatCompletionsClient

logger = logging.getLogger(__name__)


class OpenAIQuoteLinesClient(ChatCompletionsClient):
    """
    Provider IA OpenAI (dernier recours de la chaîne).
    """

    provider = AIProviderName.OPENAI
    endpoint = "https://api.openai.com/v1/chat/completions"
    default_models = ("gpt-4o-mini",)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: Optional[requests.Session] = None,
    ) -> "OpenAIQuoteLinesClient":
        return cls(
            settings.openai_api_key,
            model=settings.openai_model,
            timeout_s=min(settings.ai_timeout_seconds, DEFAULT_HTTP_TIMEOUT_SECONDS),
            session=session,
        )
