# domain/quote_lines/text.py

"""
Utilitaires texte partagés par les étapes de post-traitement des lignes de devis.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

# Viscosité d'huile moteur (5W30, 10w40...)
VISCOSITY_RE = re.compile(r"(\d+w\d+)", re.IGNORECASE)
# Volume en litres (4L, 5 l)
VOLUME_RE = re.compile(r"(\d+)\s*l\b", re.IGNORECASE)
# Libellé réduit à un nombre ou une durée ("2", "1.5h")
PLACEHOLDER_RE = re.compile(r"^\d+\.?\d*\s*h?$", re.IGNORECASE)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")

DEFAULT_VISCOSITY = "5W30"
DEFAULT_VOLUME_LITERS = 4


def normalize_for_comparison(text: str) -> str:
    """Minuscules, sans accents, ponctuation remplacée par des espaces."""
    lowered = (text or "").lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = _PUNCT_RE.sub(" ", stripped)
    return _SPACES_RE.sub(" ", stripped).strip()


def similarity(desc1: str, desc2: str) -> float:
    """Similarité de Jaccard (0-1) entre les ensembles de mots normalisés."""
    norm1 = normalize_for_comparison(desc1)
    norm2 = normalize_for_comparison(desc2)

    if norm1 == norm2:
        return 1.0

    words1 = set(norm1.split())
    words2 = set(norm2.split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def extract_viscosity(text: str) -> Optional[str]:
    match = VISCOSITY_RE.search(text or "")
    return match.group(1).upper() if match else None


def extract_volume_liters(text: str) -> Optional[int]:
    match = VOLUME_RE.search(text or "")
    return int(match.group(1)) if match else None


def detect_position(text: str, default: str = "avant") -> str:
    """Position d'une pièce (avant / arrière) déduite du libellé."""
    lowered = (text or "").lower()
    if "avant" in lowered:
        return "avant"
    if "arrière" in lowered or "arriere" in lowered:
        return "arrière"
    return default


def is_placeholder_description(text: str) -> bool:
    """Libellé vide ou réduit à un nombre / une durée sans contexte."""
    stripped = (text or "").strip()
    return not stripped or bool(PLACEHOLDER_RE.match(stripped))


def collapse_spaces(text: str) -> str:
    return _SPACES_RE.sub(" ", text or "").strip()


def is_engine_oil(text: str) -> bool:
    lowered = (text or "").lower()
    return "huile moteur" in lowered or "huile 5w" in lowered or "huile 10w" in lowered


def round_cents(value: float) -> float:
    return round(value * 100) / 100
