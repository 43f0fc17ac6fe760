# domain/quote_lines/limits.py

from __future__ import annotations

import logging
import re
from typing import List

from domain.models import LineType, QuoteLine, make_line
from domain.quote_lines.text import round_cents

logger = logging.getLogger(__name__)

MAX_PARTS = 3
MAX_LABOR = 2
MAX_LINES_FOR_SIMPLE = 15
OTHER_PARTS_LABEL = "Autres pièces et consommables"
OTHER_OPERATIONS_SUFFIX = "+ autres opérations"

_SIMPLE_INTERVENTION_RE = re.compile(r"frein|plaquette|disque|vidange|huile|pneu|batterie")


def is_simple_intervention(lines: List[QuoteLine]) -> bool:
    text = " ".join(line.description.lower() for line in lines)
    return bool(_SIMPLE_INTERVENTION_RE.search(text)) and len(lines) <= MAX_LINES_FOR_SIMPLE


def limit_lines_per_section(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Intervention simple (freinage, vidange, pneus, batterie) : au plus
    3 pièces et 2 lignes de main-d'œuvre affichées.

    - pièces au-delà des 3 plus gros montants -> "Autres pièces et consommables"
    - main-d'œuvre au-delà des 2 plus longues -> ajoutée à la première
      ("+ autres opérations")
    - options, forfaits et lignes incluses ne sont pas limités

    Sortie réordonnée : pièces → main-d'œuvre → options → forfaits → inclus.
    """
    if not is_simple_intervention(lines):
        return lines

    pieces = [l for l in lines if l.is_piece and not l.is_option and not l.is_included]
    labor = [l for l in lines if l.is_labor and not l.is_option and not l.is_included]
    options = [l for l in lines if l.is_option and not l.is_included]
    forfaits = [l for l in lines if l.is_forfait and not l.is_option and not l.is_included]
    included = [l for l in lines if l.is_included]

    result: List[QuoteLine] = []

    if len(pieces) > MAX_PARTS:
        ranked = sorted(pieces, key=lambda l: l.line_total, reverse=True)
        result.extend(ranked[:MAX_PARTS])
        remaining = ranked[MAX_PARTS:]
        total_qty = sum(l.quantity for l in remaining)
        total_value = sum(l.line_total for l in remaining)
        result.append(
            make_line(
                LineType.PIECE,
                OTHER_PARTS_LABEL,
                total_qty,
                round_cents(total_value / total_qty) if total_qty > 0 else 0.0,
            )
        )
        logger.debug("%d pièce(s) regroupée(s) dans '%s'.", len(remaining), OTHER_PARTS_LABEL)
    else:
        result.extend(pieces)

    if len(labor) > MAX_LABOR:
        ranked = sorted(labor, key=lambda l: l.quantity, reverse=True)
        kept = ranked[:MAX_LABOR]
        remaining = ranked[MAX_LABOR:]
        first = kept[0]
        total_qty = first.quantity + sum(l.quantity for l in remaining)
        total_value = first.line_total + sum(l.line_total for l in remaining)
        kept[0] = first.with_changes(
            quantity=total_qty,
            unit_price_ht=round_cents(total_value / total_qty) if total_qty > 0 else first.unit_price_ht,
            description=f"{first.description} {OTHER_OPERATIONS_SUFFIX}",
        )
        logger.debug("%d ligne(s) de main-d'œuvre ajoutée(s) à '%s'.", len(remaining), first.description)
        result.extend(kept)
    else:
        result.extend(labor)

    return result + options + forfaits + included
