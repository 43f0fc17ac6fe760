# domain/quote_lines/durations.py

from __future__ import annotations

import logging
from typing import List

from domain.models import QuoteLine

logger = logging.getLogger(__name__)

MIN_LABOR_HOURS = 0.25
# Grille de 0.05 h (3 minutes)
LABOR_GRID_STEPS_PER_HOUR = 20
MIN_PAID_QUANTITY = 0.01
MIN_INCLUDED_QUANTITY = 1


def validate_realistic_durations(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Main-d'œuvre facturée : au moins 0.25 h, arrondie à 0.05 h.
    """
    result: List[QuoteLine] = []
    for line in lines:
        if not line.is_labor or line.is_included:
            result.append(line)
            continue

        quantity = max(line.quantity, MIN_LABOR_HOURS)
        quantity = round(quantity * LABOR_GRID_STEPS_PER_HOUR) / LABOR_GRID_STEPS_PER_HOUR
        quantity = max(quantity, MIN_LABOR_HOURS)

        if quantity <= 0:
            logger.info("Ligne de main-d'œuvre sans durée retirée: '%s'", line.description)
            continue

        if quantity != line.quantity:
            logger.debug("Durée '%s' ajustée: %s h -> %s h", line.description, line.quantity, quantity)
            line = line.with_changes(quantity=quantity)
        result.append(line)
    return result


def ensure_positive_quantities(lines: List[QuoteLine]) -> List[QuoteLine]:
    """Quantité nulle ou négative : 0.01 (payant) ou 1 (inclus)."""
    result: List[QuoteLine] = []
    for line in lines:
        if line.quantity <= 0:
            quantity = MIN_INCLUDED_QUANTITY if line.is_included else MIN_PAID_QUANTITY
            line = line.with_changes(quantity=quantity)
        result.append(line)
    return result
