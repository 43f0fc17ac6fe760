# domain/quote_lines/wording.py

"""
Réécritures de libellés : formulations client, libellés vagues, options,
forfait consommables, volumes d'huile et formatage.

Les tables de remplacement sont des constantes (tuples de paires regex /
libellé) ; aucune fonction ne modifie d'état global.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Sequence, Tuple

from domain.models import QuoteLine
from domain.quote_lines.text import (
    DEFAULT_VISCOSITY,
    VOLUME_RE,
    collapse_spaces,
    detect_position,
    extract_viscosity,
    is_engine_oil,
)
from domain.quote_lines.truncation import (
    CONSUMABLES_LABEL,
    FALLBACK_LABOR,
    OPTION_GENERIC_LABEL,
)

logger = logging.getLogger(__name__)

OPTION_SUFFIX = "(option recommandée)"
MAX_CLIENT_WORDS = 12
KEPT_CLIENT_WORDS = 10
MAX_LABEL_CHARS = 50
MAX_LABEL_WORDS = 8
MIN_OPTION_CHARS = 15


# ---------------------------------------------------------------------------
# Formulations client
# ---------------------------------------------------------------------------

CLIENT_FRIENDLY_LABOR: Tuple[Tuple[re.Pattern, str], ...] = (
    (
        re.compile(r"^freinage\s*[—\-]\s*remplacement$", re.IGNORECASE),
        "Remplacement plaquettes avant (contrôles et essai inclus)",
    ),
    (re.compile(r"^vidange$", re.IGNORECASE), "Vidange moteur + remplacement filtre"),
    (re.compile(r"^vidange\s+moteur$", re.IGNORECASE), "Vidange moteur + remplacement filtre"),
    (
        re.compile(r"^remplacement\s+plaquettes$", re.IGNORECASE),
        "Remplacement plaquettes avant (contrôles et essai inclus)",
    ),
    (
        re.compile(r"^remplacement\s+disques$", re.IGNORECASE),
        "Remplacement disques avant (contrôles et essai inclus)",
    ),
    (re.compile(r"^montage\s+pneus?$", re.IGNORECASE), "Montage pneus + équilibrage"),
)

_PAD_WORD_RE = re.compile(r"plaquettes?", re.IGNORECASE)
_DISC_WORD_RE = re.compile(r"disques?", re.IGNORECASE)
_OIL_WORD_RE = re.compile(r"huile", re.IGNORECASE)
_TIRE_WORD_RE = re.compile(r"pneus?", re.IGNORECASE)


def _clarify_piece(line: QuoteLine, desc: str) -> str:
    lowered = desc.lower()
    positioned = "avant" in lowered or "arrière" in lowered

    if "plaquette" in lowered and "frein" not in lowered and not positioned:
        desc = _PAD_WORD_RE.sub("Plaquettes de frein avant", desc, count=1)
    elif "disque" in lowered and "frein" not in lowered and not positioned:
        desc = _DISC_WORD_RE.sub("Disques de frein avant", desc, count=1)
    elif (
        "huile" in lowered
        and "moteur" not in lowered
        and "filtre" not in lowered
        and "boîte" not in lowered
        and "boite" not in lowered
        and extract_viscosity(desc) is None
    ):
        desc = _OIL_WORD_RE.sub(f"Huile moteur {DEFAULT_VISCOSITY}", desc, count=1)
    elif (
        "pneu" in lowered
        and "paire" not in lowered
        and not positioned
        and line.quantity == 2
    ):
        desc = _TIRE_WORD_RE.sub("Pneus avant — Paire (2 pneus)", desc, count=1)
    return desc


def improve_client_friendly_descriptions(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Remplace les libellés de main-d'œuvre vagues par des actions explicites,
    précise les pièces vagues (position, viscosité) et coupe les libellés
    de plus de 12 mots.
    """
    result: List[QuoteLine] = []
    for line in lines:
        desc = line.description

        if line.is_labor:
            stripped = desc.strip()
            for pattern, replacement in CLIENT_FRIENDLY_LABOR:
                if pattern.match(stripped):
                    desc = replacement
                    break

        if line.is_piece:
            desc = _clarify_piece(line, desc)

        words = desc.split()
        if len(words) > MAX_CLIENT_WORDS and not line.is_included:
            desc = " ".join(words[:KEPT_CLIENT_WORDS])

        if desc != line.description:
            logger.debug("Libellé client: '%s' -> '%s'", line.description, desc)
            line = line.with_changes(description=desc)
        result.append(line)
    return result


# ---------------------------------------------------------------------------
# Libellés vagues
# ---------------------------------------------------------------------------

_QUALIFIER_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\([^)]*contrôle[^)]*\)", re.IGNORECASE),
    re.compile(r"\([^)]*inclus[^)]*\)", re.IGNORECASE),
    re.compile(r"\([^)]*essai[^)]*\)", re.IGNORECASE),
    re.compile(r"\([^)]*vérification[^)]*\)", re.IGNORECASE),
    re.compile(r"\s*—\s*[^—]+contrôle[^—]*", re.IGNORECASE),
    re.compile(r"\s*—\s*[^—]+inclus[^—]*", re.IGNORECASE),
    re.compile(r"\s*\([^)]*\)"),
)

_TRAILING_N_RE = re.compile(r"\bN\s*(?:\.\.\.|…)$", re.IGNORECASE)

Replacement = Callable[[QuoteLine, Sequence[QuoteLine]], str]


def _brake_pads_from_context(line: QuoteLine, context: Sequence[QuoteLine]) -> str:
    brake_piece = next(
        (l for l in context if l.is_piece and re.search(r"plaquette|disque", l.description, re.IGNORECASE)),
        None,
    )
    position = detect_position(brake_piece.description) if brake_piece else "avant"
    return f"Remplacement plaquettes de frein {position}"


def _replacement_from_context(line: QuoteLine, context: Sequence[QuoteLine]) -> str:
    related = next((l for l in context if l.is_piece and l is not line), None)
    if related:
        return f"Remplacement {related.description.lower()}"
    return "Remplacement pièce détachée"


VAGUE_PHRASES: Tuple[Tuple[re.Pattern, Replacement], ...] = (
    (re.compile(r"^freinage\s*[—\-]\s*remplacement$", re.IGNORECASE), _brake_pads_from_context),
    (re.compile(r"^option\s+recommandée\s*[—\-]?\s*$", re.IGNORECASE), lambda l, c: OPTION_GENERIC_LABEL),
    (re.compile(r"^service\s+moteur$", re.IGNORECASE), lambda l, c: "Contrôle et entretien moteur"),
    (re.compile(r"^intervention\s+diverse$", re.IGNORECASE), lambda l, c: FALLBACK_LABOR),
    (re.compile(r"^remplacement$", re.IGNORECASE), _replacement_from_context),
)


def _strip_qualifiers(desc: str) -> str:
    for pattern in _QUALIFIER_PATTERNS:
        desc = pattern.sub("", desc)
    return collapse_spaces(desc)


def _cap_length(desc: str) -> str:
    if len(desc) <= MAX_LABEL_CHARS:
        return desc
    words = desc.split()
    if len(words) > MAX_LABEL_WORDS:
        desc = " ".join(words[:MAX_LABEL_WORDS])
    if len(desc) > MAX_LABEL_CHARS:
        head = desc[: MAX_LABEL_CHARS - 3]
        last_space = head.rfind(" ")
        desc = head[:last_space] if last_space > 0 else head
    return desc


def improve_vague_descriptions(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Nettoie les libellés restants :

    - retire les qualificatifs (contrôle, inclus, essai, vérification) et
      toutes les parenthèses
    - remplace les formulations vagues ("Service moteur", "Remplacement"...)
    - complète ou retire les fins "N…"
    - limite les libellés hors options à 50 caractères

    Les lignes incluses (dont la ligne "Contrôles & sécurité") sont laissées telles quelles.
    """
    result: List[QuoteLine] = []
    for line in lines:
        if line.is_included:
            result.append(line)
            continue

        desc = _strip_qualifiers(line.description)

        for pattern, replacement in VAGUE_PHRASES:
            if pattern.match(desc):
                desc = replacement(line, lines)
                break

        if _TRAILING_N_RE.search(desc):
            if line.is_option:
                desc = _TRAILING_N_RE.sub("Service complémentaire", desc)
            else:
                desc = _TRAILING_N_RE.sub("", desc).strip()

        if not line.is_option:
            desc = _cap_length(desc)

        if desc != line.description:
            logger.debug("Libellé précisé: '%s' -> '%s'", line.description, desc)
            line = line.with_changes(description=desc)
        result.append(line)
    return result


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

_VAGUE_OPTION_RES: Tuple[re.Pattern, ...] = (
    re.compile(r"^option\s+recommandée\s*[—\-]\s*n\s*(?:\.\.\.|…)?$", re.IGNORECASE),
    re.compile(r"^option\s+recommandée\s*[—\-]?\s*$", re.IGNORECASE),
)
_WORKSHOP_OPTION_RE = re.compile(r"^option\s+atelier$", re.IGNORECASE)
_SAFETY_OPTION_RE = re.compile(r"^option\s+s[ée]curit[ée]$", re.IGNORECASE)


def _option_from_context(lines: Sequence[QuoteLine]) -> str:
    mandatory = [l.description for l in lines if not l.is_option]
    if any(re.search(r"frein|plaquette|disque", d, re.IGNORECASE) for d in mandatory):
        return f"Nettoyant circuit de frein {OPTION_SUFFIX}"
    if any(re.search(r"huile|vidange", d, re.IGNORECASE) for d in mandatory):
        return f"Additif moteur préventif {OPTION_SUFFIX}"
    return f"Service complémentaire {OPTION_SUFFIX}"


def improve_option_descriptions(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Rend les options explicites ("Option atelier" -> service précis) en
    s'appuyant sur le domaine des lignes obligatoires.
    """
    result: List[QuoteLine] = []
    for line in lines:
        if not line.is_option:
            result.append(line)
            continue

        desc = line.description.strip()
        if any(pattern.match(desc) for pattern in _VAGUE_OPTION_RES):
            desc = _option_from_context(lines)
        elif _WORKSHOP_OPTION_RE.match(desc):
            desc = f"Service complémentaire atelier {OPTION_SUFFIX}"
        elif _SAFETY_OPTION_RE.match(desc):
            desc = f"Contrôle sécurité renforcé {OPTION_SUFFIX}"

        if len(desc) < MIN_OPTION_CHARS and "option recommandée" not in desc.lower():
            desc = f"{desc} {OPTION_SUFFIX}"

        if desc != line.description:
            logger.debug("Option précisée: '%s' -> '%s'", line.description, desc)
            line = line.with_changes(description=desc)
        result.append(line)
    return result


# ---------------------------------------------------------------------------
# Forfait consommables
# ---------------------------------------------------------------------------

_BARE_CONSUMABLES = frozenset({"consommables atelier", "consommables"})


def enrich_consumables_forfait(lines: List[QuoteLine]) -> List[QuoteLine]:
    """"Consommables atelier" -> libellé détaillé des consommables."""
    return [
        line.with_changes(description=CONSUMABLES_LABEL)
        if line.is_forfait and line.description.strip().lower() in _BARE_CONSUMABLES
        else line
        for line in lines
    ]


# ---------------------------------------------------------------------------
# Volumes d'huile (optionnel)
# ---------------------------------------------------------------------------

def _format_quantity(quantity: float) -> str:
    return str(int(quantity)) if float(quantity).is_integer() else f"{quantity:g}"


def group_oil_volumes(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Huile moteur en plusieurs bidons : "Huile moteur 5W30 — 8L (2 bidons de 4L)".
    Seul le libellé change (quantité et prix intacts).
    """
    result: List[QuoteLine] = []
    for line in lines:
        desc = line.description
        if (
            not line.is_piece
            or line.quantity <= 1
            or not is_engine_oil(desc)
            or "bidon" in desc.lower()
        ):
            result.append(line)
            continue

        match = VOLUME_RE.search(desc)
        if not match:
            result.append(line)
            continue

        unit_volume = int(match.group(1))
        total_volume = round(line.quantity * unit_volume)
        viscosity = extract_viscosity(desc) or DEFAULT_VISCOSITY
        plural = "s" if line.quantity > 1 else ""
        label = (
            f"Huile moteur {viscosity} — {total_volume}L "
            f"({_format_quantity(line.quantity)} bidon{plural} de {unit_volume}L)"
        )
        result.append(line.with_changes(description=label))
    return result


# ---------------------------------------------------------------------------
# Formatage (optionnel)
# ---------------------------------------------------------------------------

_DASH_SEPARATOR_RE = re.compile(r"\s+[-–]\s+")
_SLASH_SEPARATOR_RE = re.compile(r"\s+/\s+")
_PLUS_RE = re.compile(r"\s*\+\s*")
_EM_DASH_RE = re.compile(r"\s*—\s*")
_TECHNICAL_PART_RE = re.compile(r"^(?:\d+[a-z]\d+|psa|renault|dot|rn\d+)", re.IGNORECASE)
_ACRONYM_RE = re.compile(r"^[A-Z]{2,}$")


def _title_word(word: str) -> str:
    if not word or _ACRONYM_RE.match(word) or any(ch.isdigit() for ch in word):
        return word
    return word[0].upper() + word[1:].lower()


def normalize_formatting(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Séparateurs uniformes (" — ", " + ") et majuscule en tête de chaque mot,
    codes techniques (5W30, DOT, PSA) préservés.
    """
    result: List[QuoteLine] = []
    for line in lines:
        desc = _DASH_SEPARATOR_RE.sub(" — ", line.description)
        desc = _SLASH_SEPARATOR_RE.sub(" — ", desc)
        desc = _PLUS_RE.sub(" + ", desc)
        desc = _EM_DASH_RE.sub(" — ", desc)

        parts: List[str] = []
        for part in desc.split(" — "):
            if _TECHNICAL_PART_RE.match(part.strip()):
                parts.append(part)
            else:
                parts.append(" ".join(_title_word(w) for w in part.split(" ")))
        desc = collapse_spaces(" — ".join(parts))

        result.append(line.with_changes(description=desc) if desc != line.description else line)
    return result
