# domain/quote_lines/truncation.py

"""
Détection et correction des libellés tronqués produits par l'IA.

- `is_truncated` : heuristique large sur la fin du libellé
- `reformulate_description` : complète un libellé tronqué selon le type de ligne
- `fallback_description` : libellé générique de dernier recours
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from domain.models import LineType, QuoteLine
from domain.quote_lines.text import (
    DEFAULT_VISCOSITY,
    DEFAULT_VOLUME_LITERS,
    detect_position,
    extract_viscosity,
    extract_volume_liters,
    is_placeholder_description,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Libellés canoniques
# ---------------------------------------------------------------------------

CONSUMABLES_LABEL = "Consommables atelier (produits nettoyants, chiffons, petits matériaux)"
BRAKE_CLEANER_LABEL = "Nettoyant circuit de frein"
OIL_FILTER_LABEL = "Filtre à huile"
OIL_CHANGE_WITH_FILTER_LABEL = "Vidange moteur + remplacement filtre"
OIL_CHANGE_LABEL = "Vidange moteur complète"
OPTION_GENERIC_LABEL = "Option recommandée — Service complémentaire"

FALLBACK_PIECE = "Pièce détachée"
FALLBACK_LABOR = "Intervention mécanique"
FALLBACK_FORFAIT = "Forfait atelier"
FALLBACK_ANY = "Ligne de devis"

# ---------------------------------------------------------------------------
# Tables de détection
# ---------------------------------------------------------------------------

TRUNCATED_ENDINGS = ("...", "…", "(", "—", "+", "-", "/", ",")

# Jetons courts valides en fin de libellé : 5W30, 4L, 16, H7, R16, DOT
UNIT_TOKEN_RE = re.compile(
    r"^(?:\d+[a-z]?\d*|\d+(?:[.,]\d+)?l|dot|[a-z]\d{1,3})$",
    re.IGNORECASE,
)

VALID_SHORT_WORDS = frozenset(
    {"à", "de", "en", "le", "la", "un", "et", "ou", "au", "du", "av", "ar"}
)

# Abréviations métier complètes à elles seules : "Filtre GO", "Recharge AC", "Tarif HT"
TRADE_SHORT_TOKENS = frozenset({"go", "ht", "ac"})

# Radicaux de mots coupés par l'IA ("Remplac", "Plaquett"...)
INCOMPLETE_STEMS = (
    "remplac",
    "plaquett",
    "consommabl",
    "vidang",
    "nettoyan",
    "équilibr",
    "changem",
    "diagnos",
)

_TRAILING_PUNCT_RE = re.compile(r"(?:\.\.\.|…|\(|—|-|\+|/|,)\s*$")
_LEADING_ACRONYM_RE = re.compile(r"^[A-Z]\s")


def _is_unit_token(word: str) -> bool:
    return bool(UNIT_TOKEN_RE.match(word)) or word.lower() in TRADE_SHORT_TOKENS


def _has_unmatched_paren(text: str) -> bool:
    return text.count("(") > text.count(")")


# ---------------------------------------------------------------------------
# Détection
# ---------------------------------------------------------------------------

def is_truncated(description: str) -> bool:
    """
    Indique si un libellé semble incomplet. Première règle satisfaite gagnante.
    """
    trimmed = (description or "").strip()

    if not trimmed:
        return True

    if trimmed.endswith(TRUNCATED_ENDINGS):
        return True

    if _has_unmatched_paren(trimmed):
        return True

    if (
        len(trimmed) < 15
        and not any(ch.isdigit() for ch in trimmed)
        and "-" not in trimmed
        and "—" not in trimmed
        and not trimmed[0].isupper()
    ):
        return True

    # "Option recommandée — Ne" : fragment isolé après le dernier tiret long
    if "—" in trimmed:
        tail = trimmed.rsplit("—", 1)[1].strip()
        if 0 < len(tail) < 3 and not _is_unit_token(tail):
            return True

    words = trimmed.split()
    last_word = words[-1]

    if len(last_word) <= 2 and not _is_unit_token(last_word):
        if len(trimmed) < 25 and len(words) <= 3:
            return True
        if len(last_word) == 2 and last_word.lower() not in VALID_SHORT_WORDS:
            return True

    if len(last_word) == 1 and last_word.isupper() and not _LEADING_ACRONYM_RE.match(trimmed):
        return True

    last_lower = last_word.lower().rstrip(".:;")
    if len(last_lower) >= 4 and any(stem.startswith(last_lower) for stem in INCOMPLETE_STEMS):
        return True

    return False


# ---------------------------------------------------------------------------
# Reformulation
# ---------------------------------------------------------------------------

def _oil_label(source: str) -> str:
    viscosity = extract_viscosity(source) or DEFAULT_VISCOSITY
    volume = extract_volume_liters(source) or DEFAULT_VOLUME_LITERS
    return f"Huile moteur {viscosity} — {volume}L"


def _special_case(text: str) -> Optional[str]:
    """Phrases connues, reconnues quel que soit le type de ligne."""
    lowered = text.lower()
    open_paren = _has_unmatched_paren(text)

    if lowered.startswith("option recommandée"):
        parts = re.split(r"[—\-]", text)
        if len(parts) > 1 and len(parts[-1].strip()) < 3:
            return OPTION_GENERIC_LABEL

    if "nettoyant" in lowered and ("frein" in lowered or "circuit" in lowered):
        if open_paren or len(text) < 25:
            return BRAKE_CLEANER_LABEL

    if "consommable" in lowered and "atelier" in lowered:
        if open_paren or len(text) < 25:
            return CONSUMABLES_LABEL

    if "remplacement" in lowered and "plaquette" in lowered:
        if open_paren or (text.endswith("I") and len(text) < 35) or len(text) < 30:
            return f"Remplacement plaquettes de frein {detect_position(text)}"

    if "vidange" in lowered and "moteur" in lowered:
        if "remplac" in lowered and "remplacement" not in lowered:
            return OIL_CHANGE_WITH_FILTER_LABEL
        if "+" in text and len(text) < 35:
            after_plus = text.rsplit("+", 1)[1].strip()
            if len(after_plus) < 10:
                return OIL_CHANGE_WITH_FILTER_LABEL
        if len(text) < 25:
            return OIL_CHANGE_LABEL

    return None


def _strip_incomplete_endings(text: str) -> str:
    cleaned = text.strip()
    previous = None
    while cleaned != previous:
        previous = cleaned
        cleaned = _TRAILING_PUNCT_RE.sub("", cleaned).strip()

    if _has_unmatched_paren(cleaned):
        cleaned = cleaned[: cleaned.rfind("(")].strip()

    if "—" in cleaned:
        head, tail = cleaned.rsplit("—", 1)
        tail = tail.strip()
        if len(tail) < 3 and not _is_unit_token(tail):
            cleaned = head.strip()

    return cleaned


def _enrich_piece(cleaned: str, original: str) -> Optional[str]:
    lowered = cleaned.lower()

    if lowered.startswith("option recommandée"):
        return OPTION_GENERIC_LABEL
    if "nettoyant" in lowered and "frein" in lowered:
        return BRAKE_CLEANER_LABEL
    if "consommable" in lowered and "atelier" in lowered:
        return CONSUMABLES_LABEL

    if len(cleaned) >= 20 and not is_truncated(cleaned):
        return None

    if "plaquette" in lowered:
        return f"Plaquettes de frein {detect_position(cleaned)}"
    if "disque" in lowered:
        return f"Disques de frein {detect_position(cleaned)}"
    if "filtre" in lowered and "huile" in lowered:
        return OIL_FILTER_LABEL
    if "huile" in lowered:
        return _oil_label(original)
    if "nettoyant" in lowered:
        return BRAKE_CLEANER_LABEL
    return None


def _enrich_labor(cleaned: str) -> Optional[str]:
    lowered = cleaned.lower()
    still_truncated = is_truncated(cleaned)

    if "remplacement" in lowered and "plaquette" in lowered:
        if len(cleaned) < 30 or still_truncated:
            return f"Remplacement plaquettes de frein {detect_position(cleaned)}"

    if len(cleaned) >= 20 and not still_truncated:
        return None

    if "remplacement" in lowered and "disque" in lowered:
        return f"Remplacement disques de frein {detect_position(cleaned)}"
    if "vidange" in lowered:
        return OIL_CHANGE_LABEL
    if still_truncated and "remplacement" in lowered:
        return "Remplacement pièce détachée"
    if still_truncated and ("contrôle" in lowered or "vérif" in lowered):
        return "Contrôles de sécurité"
    return None


def _enrich_forfait(cleaned: str) -> Optional[str]:
    lowered = cleaned.lower()
    if "consommable" in lowered and "atelier" in lowered and len(cleaned) < 25:
        return CONSUMABLES_LABEL
    return None


def reformulate_description(description: str, line_type: LineType | str) -> str:
    """
    Complète un libellé tronqué.

    Ordre : phrases connues → nettoyage des fins incomplètes → enrichissement
    par type → suppression d'un dernier mot parasite → libellé de secours.
    """
    line_type = LineType(line_type)
    text = (description or "").strip()

    special = _special_case(text)
    if special:
        logger.debug("reformulate_description: cas connu '%s' -> '%s'", text, special)
        return special

    cleaned = _strip_incomplete_endings(text)

    if line_type is LineType.PIECE:
        enriched = _enrich_piece(cleaned, text)
    elif line_type is LineType.MAIN_OEUVRE:
        enriched = _enrich_labor(cleaned)
    else:
        enriched = _enrich_forfait(cleaned)

    if enriched:
        logger.debug("reformulate_description: enrichi '%s' -> '%s'", text, enriched)
        return enriched

    if cleaned and is_truncated(cleaned):
        words = cleaned.split()
        if len(words) >= 2 and len(words[-1]) <= 2 and not _is_unit_token(words[-1]):
            return " ".join(words[:-1])

    if not cleaned:
        return fallback_description(line_type, text)

    return cleaned


def fallback_description(line_type: LineType | str, original: str) -> str:
    """Libellé générique selon le type et les mots-clés du texte d'origine."""
    lowered = (original or "").lower()
    try:
        line_type = LineType(line_type)
    except ValueError:
        return FALLBACK_ANY

    if line_type is LineType.PIECE:
        if "plaquette" in lowered:
            return "Plaquettes de frein avant"
        if "disque" in lowered:
            return "Disques de frein avant"
        if "filtre" in lowered and "huile" in lowered:
            return OIL_FILTER_LABEL
        if "huile" in lowered:
            return _oil_label(original)
        if "filtre" in lowered:
            return OIL_FILTER_LABEL
        if "nettoyant" in lowered:
            return BRAKE_CLEANER_LABEL
        if "option" in lowered:
            return OPTION_GENERIC_LABEL
        return FALLBACK_PIECE

    if line_type is LineType.MAIN_OEUVRE:
        if "plaquette" in lowered or "frein" in lowered:
            return "Remplacement plaquettes de frein avant"
        if "vidange" in lowered and "remplac" in lowered:
            return OIL_CHANGE_WITH_FILTER_LABEL
        if "vidange" in lowered:
            return OIL_CHANGE_LABEL
        if "remplac" in lowered:
            return "Remplacement pièce détachée"
        return FALLBACK_LABOR

    if "consommable" in lowered:
        return CONSUMABLES_LABEL
    return FALLBACK_FORFAIT


# ---------------------------------------------------------------------------
# Étapes de pipeline
# ---------------------------------------------------------------------------

def fix_truncated_descriptions(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Supprime les lignes sans libellé exploitable et corrige les libellés tronqués.
    """
    result: List[QuoteLine] = []
    for line in lines:
        desc = line.description.strip()

        if is_placeholder_description(desc):
            logger.info("Ligne supprimée (libellé vide ou numérique): %r", line.description)
            continue

        if not is_truncated(desc):
            result.append(line)
            continue

        corrected = reformulate_description(desc, line.type)
        if not corrected.strip() or is_truncated(corrected):
            corrected = fallback_description(line.type, desc)
            logger.debug("Libellé '%s' irrécupérable, secours '%s'.", desc, corrected)
        else:
            logger.debug("Libellé tronqué corrigé: '%s' -> '%s'", desc, corrected)

        result.append(line.with_changes(description=corrected))
    return result


def drop_invalid_lines(lines: List[QuoteLine]) -> List[QuoteLine]:
    """Retire les lignes au libellé vide ou réduit à un nombre / une durée."""
    kept = [line for line in lines if not is_placeholder_description(line.description)]
    if len(kept) != len(lines):
        logger.info("%d ligne(s) invalide(s) retirée(s).", len(lines) - len(kept))
    return kept


def apply_fallback_to_truncated(lines: List[QuoteLine]) -> List[QuoteLine]:
    """Dernier filet : tout libellé encore tronqué reçoit le libellé de secours."""
    result: List[QuoteLine] = []
    for line in lines:
        desc = line.description.strip()
        if desc and is_truncated(desc):
            fallback = fallback_description(line.type, desc)
            logger.debug("Libellé toujours tronqué '%s', secours '%s'.", desc, fallback)
            line = line.with_changes(description=fallback)
        result.append(line)
    return drop_invalid_lines(result)
