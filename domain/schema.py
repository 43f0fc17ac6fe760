# domain/schema.py

"""
Schéma JSON (JSON Schema draft 7) des lignes de devis échangées avec l'IA.

Le même contrat sert à valider la réponse brute du provider et à re-valider
les lignes après post-traitement.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from jsonschema import Draft7Validator

from domain.models import QuoteLine

logger = logging.getLogger(__name__)


QUOTE_LINE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": ["piece", "main_oeuvre", "forfait"]},
        "description": {"type": "string", "minLength": 1, "pattern": r"\S"},
        "quantity": {"type": "number", "exclusiveMinimum": 0},
        "unit": {"type": "string", "enum": ["unite", "heure"]},
        "unit_price_ht": {"type": "number", "minimum": 0},
        "isOption": {"type": "boolean"},
        "isIncluded": {"type": "boolean"},
    },
    "required": ["type", "description", "quantity", "unit", "unit_price_ht"],
    "allOf": [
        # isIncluded=true => prix nul
        {
            "if": {
                "properties": {"isIncluded": {"const": True}},
                "required": ["isIncluded"],
            },
            "then": {"properties": {"unit_price_ht": {"const": 0}}},
        },
        # main_oeuvre => heure
        {
            "if": {"properties": {"type": {"const": "main_oeuvre"}}},
            "then": {"properties": {"unit": {"const": "heure"}}},
        },
        # piece / forfait => unite
        {
            "if": {"properties": {"type": {"enum": ["piece", "forfait"]}}},
            "then": {"properties": {"unit": {"const": "unite"}}},
        },
    ],
}

QUOTE_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "lines": {
            "type": "array",
            "minItems": 1,
            "items": QUOTE_LINE_SCHEMA,
        },
    },
    "required": ["lines"],
}

_RESPONSE_VALIDATOR = Draft7Validator(QUOTE_RESPONSE_SCHEMA)


class QuoteLinesValidationError(ValueError):
    """
    Réponse IA (ou lignes post-traitées) non conforme au contrat JSON.
    """

    def __init__(self, errors: List[str]) -> None:
        self.errors = errors
        super().__init__(" / ".join(errors) if errors else "Lignes de devis invalides.")


def collect_errors(payload: Any) -> List[str]:
    """Liste lisible des violations du schéma (vide si conforme)."""
    errors: List[str] = []
    for error in sorted(_RESPONSE_VALIDATOR.iter_errors(payload), key=lambda e: list(e.path)):
        location = "/".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def validate_response_payload(payload: Any) -> List[QuoteLine]:
    """
    Valide un payload {"lines": [...]} et renvoie les QuoteLine correspondantes.
    Lève QuoteLinesValidationError si le contrat n'est pas respecté.
    """
    errors = collect_errors(payload)
    if errors:
        logger.warning("Réponse IA non conforme au schéma (%d erreur(s)): %s", len(errors), errors[:5])
        raise QuoteLinesValidationError(errors)

    try:
        lines = [QuoteLine.from_dict(item) for item in payload["lines"]]
    except ValueError as exc:
        raise QuoteLinesValidationError([str(exc)]) from exc

    logger.debug("Réponse IA conforme au schéma (%d ligne(s)).", len(lines))
    return lines


def validate_lines(lines: Iterable[QuoteLine]) -> bool:
    """
    Re-validation des lignes post-traitées (même contrat que la réponse IA).
    Ne lève pas : renvoie False et journalise les violations.
    """
    payload = {"lines": [line.to_dict() for line in lines]}
    errors = collect_errors(payload)
    if errors:
        logger.warning("Lignes post-traitées invalides: %s", errors[:5])
        return False
    return True
