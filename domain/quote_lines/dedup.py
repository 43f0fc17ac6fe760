# domain/quote_lines/dedup.py

from __future__ import annotations

import logging
from typing import List, Set

from domain.models import QuoteLine
from domain.quote_lines.text import round_cents, similarity

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.75
PRICE_ABS_TOLERANCE = 0.01
PRICE_REL_TOLERANCE = 0.05


def is_same_physical_part(desc1: str, desc2: str) -> bool:
    """
    Deux libellés désignant clairement la même pièce malgré un wording
    différent ("Plaquettes de frein avant" / "Plaquettes frein AV").
    """
    a = desc1.lower()
    b = desc2.lower()

    if "plaquette" in a and "plaquette" in b and "frein" in a and "frein" in b:
        return True
    if "huile moteur" in a and "huile moteur" in b:
        return True
    if ("filtre à huile" in a and "filtre" in b and "huile" in b) or (
        "filtre à huile" in b and "filtre" in a and "huile" in a
    ):
        return True
    if "disque" in a and "disque" in b and "frein" in a and "frein" in b:
        return True
    return False


def _prices_close(reference: float, other: float) -> bool:
    diff = abs(reference - other)
    if diff < PRICE_ABS_TOLERANCE:
        return True
    return reference > 0 and diff / reference < PRICE_REL_TOLERANCE


def _is_duplicate(current: QuoteLine, other: QuoteLine) -> bool:
    if current.is_option or other.is_option:
        return False
    if current.type is not other.type or current.unit is not other.unit:
        return False
    if not _prices_close(current.unit_price_ht, other.unit_price_ht):
        return False
    return (
        similarity(current.description, other.description) > SIMILARITY_THRESHOLD
        or is_same_physical_part(current.description, other.description)
    )


def deduplicate_lines(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Fusionne les lignes quasi identiques en une passe gloutonne : la première
    ligne absorbe toutes les suivantes qui lui ressemblent.

    Quantités additionnées, libellé le plus long conservé, prix unitaire
    recalculé (montant total / quantité totale). Les options ne fusionnent jamais.
    """
    if len(lines) <= 1:
        return lines

    consumed: Set[int] = set()
    result: List[QuoteLine] = []

    for i, current in enumerate(lines):
        if i in consumed:
            continue
        consumed.add(i)

        group = [current]
        for j in range(i + 1, len(lines)):
            if j not in consumed and _is_duplicate(current, lines[j]):
                group.append(lines[j])
                consumed.add(j)

        if len(group) == 1:
            result.append(current)
            continue

        total_qty = sum(l.quantity for l in group)
        total_value = sum(l.line_total for l in group)
        description = current.description
        for line in group[1:]:
            if len(line.description) > len(description):
                description = line.description

        unit_price = round_cents(total_value / total_qty) if total_qty > 0 else current.unit_price_ht
        logger.debug("Doublons fusionnés (%d lignes) -> '%s' x%s.", len(group), description, total_qty)
        result.append(
            current.with_changes(description=description, quantity=total_qty, unit_price_ht=unit_price)
        )

    return result
