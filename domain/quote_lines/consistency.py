# domain/quote_lines/consistency.py

"""
Cohérence mécanique et cohérence de vocabulaire pièces / main-d'œuvre.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from domain.models import QuoteLine
from domain.quote_lines.text import (
    DEFAULT_VISCOSITY,
    detect_position,
    extract_viscosity,
    is_engine_oil,
    round_cents,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Viscosités d'huile moteur
# ---------------------------------------------------------------------------

def validate_mechanical_consistency(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Une seule viscosité d'huile moteur par devis.

    Si plusieurs viscosités sont présentes, la première rencontrée est
    conservée : les huiles de même viscosité y sont fusionnées, celles de
    viscosité différente sont retirées (WARNING).
    """
    oil_indexes = [i for i, l in enumerate(lines) if l.is_piece and is_engine_oil(l.description)]
    viscosities = {extract_viscosity(lines[i].description) for i in oil_indexes} - {None}
    if len(viscosities) <= 1:
        return lines

    reference_index: Optional[int] = next(
        i for i in oil_indexes if extract_viscosity(lines[i].description) is not None
    )
    reference = lines[reference_index]
    reference_viscosity = extract_viscosity(reference.description)

    merged = reference
    result: List[QuoteLine] = []
    for index, line in enumerate(lines):
        if index == reference_index:
            result.append(reference)
            continue
        if index not in oil_indexes:
            result.append(line)
            continue

        viscosity = extract_viscosity(line.description)
        if viscosity is None:
            result.append(line)
        elif viscosity == reference_viscosity:
            total_qty = merged.quantity + line.quantity
            total_value = merged.line_total + line.line_total
            price = round_cents(total_value / total_qty) if total_qty > 0 else merged.unit_price_ht
            merged = merged.with_changes(quantity=total_qty, unit_price_ht=price)
        else:
            logger.warning(
                "Huile '%s' retirée : viscosité %s incohérente avec %s.",
                line.description, viscosity, reference_viscosity,
            )

    return [merged if line is reference else line for line in result]


# ---------------------------------------------------------------------------
# Vocabulaire pièces / main-d'œuvre
# ---------------------------------------------------------------------------

_BRAKE_PAD_LABOR_RE = re.compile(
    r"^(?:freinage\s*[—\-]\s*remplacement|remplacement\s+plaquettes(?:\s+de\s+frein)?(?:\s+(?:avant|arrière))?)",
    re.IGNORECASE,
)
_BRAKE_DISC_LABOR_RE = re.compile(
    r"^remplacement\s+disques(?:\s+de\s+frein)?(?:\s+(?:avant|arrière))?",
    re.IGNORECASE,
)
_OIL_CHANGE_LABOR_RE = re.compile(r"^vidange(?:\s+moteur)?", re.IGNORECASE)
_TIRE_FITTING_LABOR_RE = re.compile(r"^montage\s+pneus?(?:\s+(?:avant|arrière))?", re.IGNORECASE)


def _collect_piece_terms(pieces: List[QuoteLine]) -> Dict[str, str]:
    terms: Dict[str, str] = {}
    for piece in pieces:
        lowered = piece.description.lower()
        if "plaquette" in lowered:
            terms["plaquettes"] = f"plaquettes de frein {detect_position(lowered)}"
        if "disque" in lowered:
            terms["disques"] = f"disques de frein {detect_position(lowered)}"
        if "huile moteur" in lowered:
            viscosity = extract_viscosity(piece.description) or DEFAULT_VISCOSITY
            terms["huile"] = f"huile moteur {viscosity}"
        if "filtre à huile" in lowered or "filtre huile" in lowered:
            terms["filtre_huile"] = "filtre à huile"
        if "pneu" in lowered:
            position = detect_position(lowered, default="")
            terms["pneus"] = f"pneus {position}" if position else "pneus"
    return terms


def _harmonize_labor(description: str, terms: Dict[str, str]) -> str:
    if "plaquettes" in terms and _BRAKE_PAD_LABOR_RE.search(description):
        return _BRAKE_PAD_LABOR_RE.sub(f"Remplacement {terms['plaquettes']}", description, count=1)

    if "disques" in terms and _BRAKE_DISC_LABOR_RE.search(description):
        return _BRAKE_DISC_LABOR_RE.sub(f"Remplacement {terms['disques']}", description, count=1)

    if "huile" in terms and "filtre_huile" in terms:
        if _OIL_CHANGE_LABOR_RE.search(description) and "filtre" not in description.lower():
            return _OIL_CHANGE_LABOR_RE.sub(
                f"Vidange moteur + remplacement {terms['filtre_huile']}", description, count=1
            )

    if "pneus" in terms and _TIRE_FITTING_LABOR_RE.search(description):
        replaced = _TIRE_FITTING_LABOR_RE.sub(f"Montage {terms['pneus']}", description, count=1)
        if "équilibrage" not in replaced.lower():
            replaced = f"{replaced} + équilibrage"
        return replaced

    return description


def ensure_piece_labor_consistency(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Aligne le vocabulaire de la main-d'œuvre sur celui des pièces :
    "Freinage — Remplacement" devient "Remplacement plaquettes de frein avant"
    si la pièce "Plaquettes de frein avant" est présente.

    Sortie : lignes non main-d'œuvre d'abord, puis main-d'œuvre.
    """
    pieces = [l for l in lines if l.is_piece and not l.is_option]
    labor = [l for l in lines if l.is_labor and not l.is_option]
    if not pieces or not labor:
        return lines

    terms = _collect_piece_terms(pieces)
    corrected: List[QuoteLine] = []
    for line in labor:
        description = _harmonize_labor(line.description, terms)
        if description != line.description:
            logger.debug("Main-d'œuvre harmonisée: '%s' -> '%s'", line.description, description)
            line = line.with_changes(description=description)
        corrected.append(line)

    others = [l for l in lines if not (l.is_labor and not l.is_option)]
    return others + corrected
