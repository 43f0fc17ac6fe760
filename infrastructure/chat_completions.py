# infrastructure/chat_completions.py

"""
Base commune des providers au format "chat/completions" (OpenAI, Mistral) :
payload système + utilisateur, sortie JSON forcée, essai successif des
modèles configurés.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from domain.ai_provider import AIProviderName, ProviderError, QuoteLinesProvider
from domain.ai_status import AIResultStatus
from domain.json_utils import as_lines_payload, safe_json_parse
from domain.models import QuoteLine
from domain.prompt import build_system_prompt, build_user_message
from domain.schema import QuoteLinesValidationError, validate_response_payload

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 30
TEMPERATURE = 0.3


def model_candidates(configured: Optional[str], defaults: Sequence[str]) -> List[str]:
    """Modèle configuré en premier, puis les modèles par défaut (sans doublon)."""
    ordered: List[str] = []
    for name in [configured or "", *defaults]:
        cleaned = name.strip()
        if cleaned and cleaned not in ordered:
            ordered.append(cleaned)
    return ordered


def parse_quote_lines(raw_text: Optional[str], provider: AIProviderName) -> List[QuoteLine]:
    """
    Texte brut du modèle -> QuoteLine validées.

    Lève ProviderError (EMPTY_RESPONSE / PARSE_ERROR / SCHEMA_ERROR).
    """
    if not raw_text or not raw_text.strip():
        raise ProviderError(
            f"Réponse {provider.value} vide.", status=AIResultStatus.EMPTY_RESPONSE
        )

    try:
        payload = as_lines_payload(safe_json_parse(raw_text))
    except ValueError as exc:
        raise ProviderError(
            f"Réponse {provider.value} illisible: {exc}", status=AIResultStatus.PARSE_ERROR
        ) from exc

    try:
        return validate_response_payload(payload)
    except QuoteLinesValidationError as exc:
        raise ProviderError(
            f"Réponse {provider.value} non conforme: {exc}", status=AIResultStatus.SCHEMA_ERROR
        ) from exc


class ChatCompletionsClient(QuoteLinesProvider):
    """
    Client HTTP (requests) pour une API compatible /v1/chat/completions.

    Les sous-classes fixent `provider`, `endpoint` et `default_models`.
    """

    provider: AIProviderName
    endpoint: str
    default_models: Sequence[str] = ()

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        timeout_s: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ProviderError(
                f"Clé API {self.provider.value} absente.", status=AIResultStatus.NO_PROVIDER
            )
        self.api_key = api_key
        self.models = model_candidates(model, self.default_models)
        self.timeout_s = timeout_s
        self._http = session or requests
        logger.info("%s initialisé (modèles=%s).", type(self).__name__, self.models)

    @property
    def name(self) -> AIProviderName:
        return self.provider

    # ------------------------------------------------------------------
    # Méthode principale
    # ------------------------------------------------------------------

    def generate_lines(
        self,
        description: str,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
    ) -> List[QuoteLine]:
        user_message = build_user_message(description, vehicle_make, vehicle_model)
        last_error: Optional[ProviderError] = None

        for model in self.models:
            logger.debug("%s: essai avec le modèle %s.", self.provider.value, model)
            try:
                response_json = self._call_api(self._build_payload(model, user_message))
                lines = parse_quote_lines(self._extract_content(response_json), self.provider)
            except ProviderError as exc:
                logger.warning("%s: échec avec le modèle %s: %s", self.provider.value, model, exc)
                last_error = exc
                continue

            logger.info("%s: %d ligne(s) générée(s) (modèle %s).", self.provider.value, len(lines), model)
            return lines

        raise last_error or ProviderError(f"Aucun modèle {self.provider.value} configuré.")

    # ------------------------------------------------------------------
    # Construction du payload
    # ------------------------------------------------------------------

    def _build_payload(self, model: str, user_message: str) -> Dict[str, Any]:
        return {
            "model": model,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": build_system_prompt()},
                {"role": "user", "content": user_message},
            ],
            "temperature": TEMPERATURE,
        }

    # ------------------------------------------------------------------
    # Appel HTTP
    # ------------------------------------------------------------------

    def _call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._http.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout_s,
            )
        except requests.exceptions.Timeout as exc:
            logger.error("Timeout %s.", self.provider.value)
            raise ProviderError(f"Timeout API {self.provider.value}.") from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Erreur réseau %s: %s", self.provider.value, exc)
            raise ProviderError(f"Erreur de connexion {self.provider.value}: {exc}") from exc

        if not response.ok:
            logger.error(
                "Erreur HTTP %s (%d): %s",
                self.provider.value,
                response.status_code,
                response.text[:400],
            )
            raise ProviderError(
                f"Erreur API {self.provider.value} (HTTP {response.status_code})",
                http_status=response.status_code,
            )

        try:
            r_json = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"Réponse HTTP {self.provider.value} non JSON.", status=AIResultStatus.PARSE_ERROR
            ) from exc
        logger.debug("%s réponse reçue (tronc.): %s", self.provider.value, str(r_json)[:400])
        return r_json

    # ------------------------------------------------------------------
    # Extraction du texte généré
    # ------------------------------------------------------------------

    def _extract_content(self, api_response: Dict[str, Any]) -> Optional[str]:
        """
        chat/completions -> choices[0].message.content
        """
        choices = api_response.get("choices") if isinstance(api_response, dict) else None
        if not choices:
            raise ProviderError(
                f"Réponse vide {self.provider.value} (pas de choices).",
                status=AIResultStatus.EMPTY_RESPONSE,
            )
        message = choices[0].get("message") or {}
        return message.get("content")
