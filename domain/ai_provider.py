# domain/ai_provider.py

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from domain.ai_status import AIResultStatus
from domain.models import QuoteLine

logger = logging.getLogger(__name__)


class AIProviderName(Enum):
    """
    Fournisseurs IA, dans l'ordre d'essai par défaut.
    """
    MISTRAL = "mistral"
    GEMINI = "gemini"
    OPENAI = "openai"


class ProviderError(RuntimeError):
    """
    Échec fonctionnel d'un provider (HTTP, JSON illisible, schéma non respecté).

    `status` classe l'échec, `http_status` garde le code HTTP quand il existe.
    """

    def __init__(
        self,
        message: str,
        status: AIResultStatus = AIResultStatus.API_ERROR,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.http_status = http_status


class QuoteLinesProvider(ABC):
    """
    Interface commune des fournisseurs IA.

    Chaque implémentation doit :
    - prendre la description libre de l'intervention (+ véhicule optionnel)
    - renvoyer des QuoteLine validées par le schéma JSON
    - lever ProviderError (ou une sous-classe) en cas de problème
    """

    @property
    @abstractmethod
    def name(self) -> AIProviderName:
        raise NotImplementedError

    @abstractmethod
    def generate_lines(
        self,
        description: str,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
    ) -> List[QuoteLine]:
        raise NotImplementedError
