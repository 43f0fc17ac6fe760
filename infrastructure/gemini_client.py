# infrastructure/gemini_client.py

from __future__ import annotations

import logging
from typing import List, Optional

import google.generativeai as genai

from config.settings import Settings
from domain.ai_provider import AIProviderName, ProviderError, QuoteLinesProvider
from domain.ai_status import AIResultStatus
from domain.models import QuoteLine
from domain.prompt import build_system_prompt, build_user_message
from infrastructure.chat_completions import TEMPERATURE, model_candidates, parse_quote_lines

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODELS = ("gemini-1.5-flash", "gemini-1.5-pro")


class GeminiQuoteLinesClient(QuoteLinesProvider):
    """
    Provider IA Google Gemini (premier fallback après Mistral).

    Pas de response_schema : le prompt exige un JSON, parsé ensuite avec
    safe_json_parse puis validé par le schéma des lignes.
    """

    def __init__(self, api_key: Optional[str], model: Optional[str] = None) -> None:
        logger.debug("Initialisation GeminiQuoteLinesClient...")
        if not api_key:
            raise ProviderError("GEMINI_API_KEY absente.", status=AIResultStatus.NO_PROVIDER)

        genai.configure(api_key=api_key)
        self._models = list(dict.fromkeys(
            self._normalize_model_name(name)
            for name in model_candidates(model, DEFAULT_GEMINI_MODELS)
        ))
        logger.info("GeminiQuoteLinesClient initialisé (modèles=%s).", self._models)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiQuoteLinesClient":
        return cls(settings.gemini_api_key, model=settings.gemini_model)

    @property
    def model_names(self) -> List[str]:
        return list(self._models)

    @property
    def name(self) -> AIProviderName:
        return AIProviderName.GEMINI

    # ------------------------------------------------------------------
    # Méthode principale
    # ------------------------------------------------------------------

    def generate_lines(
        self,
        description: str,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
    ) -> List[QuoteLine]:
        prompt = build_system_prompt() + "\n\n" + build_user_message(
            description, vehicle_make, vehicle_model
        )
        last_error: Optional[ProviderError] = None

        for model_name in self._models:
            try:
                raw_text = self._call_api(model_name, prompt)
                lines = parse_quote_lines(raw_text, AIProviderName.GEMINI)
            except ProviderError as exc:
                logger.warning("Gemini: échec avec le modèle %s: %s", model_name, exc)
                last_error = exc
                continue

            logger.info("Gemini: %d ligne(s) générée(s) (modèle %s).", len(lines), model_name)
            return lines

        raise last_error or ProviderError("Aucun modèle Gemini configuré.")

    # ------------------------------------------------------------------
    # Nom de modèle
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_model_name(model_name: str) -> str:
        """
        Gemini attend le préfixe "models/" ; un nom court
        ("gemini-1.5-flash") est préfixé automatiquement.
        """
        cleaned = (model_name or "").strip()
        if not cleaned:
            raise ProviderError("Nom de modèle Gemini manquant ou vide.", status=AIResultStatus.INVALID_INPUT)
        if not cleaned.startswith("models/"):
            cleaned = f"models/{cleaned}"
        return cleaned

    # ------------------------------------------------------------------
    # Appel API Gemini
    # ------------------------------------------------------------------

    def _call_api(self, model_name: str, prompt: str) -> str:
        logger.debug("Appel API Gemini (model=%s)...", model_name)
        try:
            model = genai.GenerativeModel(model_name)
            response = model.generate_content(
                contents=[prompt],
                generation_config={"temperature": TEMPERATURE},
            )
            text = response.text
        except Exception as exc:
            logger.error("Erreur appel API Gemini (%s): %s", model_name, exc)
            code = getattr(exc, "code", None)
            raise ProviderError(
                f"Erreur API Gemini: {exc}",
                http_status=code if isinstance(code, int) else None,
            ) from exc

        if not text:
            raise ProviderError("Réponse Gemini vide.", status=AIResultStatus.EMPTY_RESPONSE)
        return text
