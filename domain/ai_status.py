# domain/ai_status.py
from __future__ import annotations

from enum import Enum


class AIResultStatus(str, Enum):
    OK = "ok"

    # erreurs IA/format
    PARSE_ERROR = "parse_error"
    SCHEMA_ERROR = "schema_error"
    EMPTY_RESPONSE = "empty_response"

    # erreurs infra
    API_ERROR = "api_error"
    NO_PROVIDER = "no_provider"
    INTERNAL_ERROR = "internal_error"

    # refus côté service
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"

    # dégradations
    FALLBACK_USED = "fallback_used"
