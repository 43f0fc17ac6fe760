# domain/quote_lines/totals.py

from __future__ import annotations

from typing import Iterable

from domain.models import QuoteLine, compute_total

TOTAL_TOLERANCE = 0.01


def totals_preserved(original: Iterable[QuoteLine], processed: Iterable[QuoteLine]) -> bool:
    """Vrai si le total HT n'a pas bougé de plus d'un centime."""
    return abs(compute_total(original) - compute_total(processed)) < TOTAL_TOLERANCE
