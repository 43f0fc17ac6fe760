# domain/json_utils.py

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Bloc ```json ... ``` contenant un objet ou un tableau
JSON_FENCE_RE = re.compile(
    r"```(?:json)?\s*([\{\[].*?[\}\]])\s*```",
    re.IGNORECASE | re.DOTALL,
)


def _describe(parsed: Any) -> str:
    if isinstance(parsed, dict):
        return f"dict keys={list(parsed.keys())}"
    if isinstance(parsed, list):
        return f"list len={len(parsed)}"
    return type(parsed).__name__


def safe_json_parse(text: str) -> Any:
    """
    Parse la réponse texte d'un LLM en JSON, de manière tolérante.

    Stratégie :
    1) json.loads direct
    2) bloc ```json ... ``` ou ``` ... ```
    3) sous-chaîne du premier '{' au dernier '}'
    4) sinon : ValueError
    """
    if text is None:
        raise ValueError("Texte JSON vide (None).")

    raw = text.strip()
    if not raw:
        raise ValueError("Texte JSON vide.")
    logger.debug("safe_json_parse: début, longueur=%d", len(raw))

    try:
        parsed = json.loads(raw)
        logger.debug("safe_json_parse: parse direct OK (%s)", _describe(parsed))
        return parsed
    except json.JSONDecodeError:
        logger.debug("safe_json_parse: échec parse direct, on tente les fences markdown.")

    m = JSON_FENCE_RE.search(raw)
    if m:
        inner = m.group(1).strip()
        try:
            parsed = json.loads(inner)
            logger.debug("safe_json_parse: parse bloc markdown OK (%s)", _describe(parsed))
            return parsed
        except json.JSONDecodeError as exc:
            logger.error("safe_json_parse: échec parse bloc markdown: %s", exc)

    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        candidate = raw[start : end + 1]
        try:
            parsed = json.loads(candidate)
            logger.debug("safe_json_parse: parse fallback OK (%s)", _describe(parsed))
            return parsed
        except json.JSONDecodeError as exc:
            logger.error("safe_json_parse: échec parse fallback: %s", exc)

    logger.error("Impossible de parser JSON brut. Contenu tronqué: %s", raw[:300])
    raise ValueError("JSON invalide ou introuvable dans le texte brut.")


def as_lines_payload(parsed: Any) -> Dict[str, Any]:
    """
    Ramène une réponse IA à la forme {"lines": [...]} (un tableau nu est accepté).
    """
    if isinstance(parsed, list):
        return {"lines": parsed}
    if isinstance(parsed, dict):
        return parsed
    raise ValueError(f"Réponse IA inattendue (objet ou tableau attendu): {type(parsed).__name__}")
