# domain/quote_lines/pipeline.py

"""
Orchestrateur du post-traitement des lignes de devis générées par l'IA.

Les étapes sont des fonctions pures List[QuoteLine] -> List[QuoteLine]
enchaînées dans un ordre fixe. Tout ou rien : une exception ou un total
HT modifié de plus d'un centime renvoie les lignes d'origine inchangées.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from domain.models import QuoteLine, compute_total
from domain.quote_lines.consistency import (
    ensure_piece_labor_consistency,
    validate_mechanical_consistency,
)
from domain.quote_lines.dedup import deduplicate_lines
from domain.quote_lines.durations import ensure_positive_quantities, validate_realistic_durations
from domain.quote_lines.grouping import (
    group_included_lines,
    group_micro_labor_lines,
    group_related_interventions,
)
from domain.quote_lines.limits import limit_lines_per_section
from domain.quote_lines.totals import totals_preserved
from domain.quote_lines.truncation import (
    apply_fallback_to_truncated,
    drop_invalid_lines,
    fix_truncated_descriptions,
)
from domain.quote_lines.wording import (
    enrich_consumables_forfait,
    group_oil_volumes,
    improve_client_friendly_descriptions,
    improve_option_descriptions,
    improve_vague_descriptions,
    normalize_formatting,
)

logger = logging.getLogger(__name__)

Stage = Callable[[List[QuoteLine]], List[QuoteLine]]


class PostProcessStatus(str, Enum):
    """
    Issue d'un post-traitement.
    """
    PROCESSED = "processed"
    EMPTY = "empty"
    TOTAL_MISMATCH = "total_mismatch"
    ERROR = "error"


@dataclass(frozen=True)
class PostProcessOptions:
    """
    Étapes optionnelles (désactivées par défaut) :
    - format_labels     : séparateurs " — " et majuscules en tête de mot
    - group_oil_volumes : "Huile moteur 5W30 — 8L (2 bidons de 4L)"
    """
    format_labels: bool = False
    group_oil_volumes: bool = False


@dataclass
class PostProcessReport:
    status: PostProcessStatus
    lines: List[QuoteLine]
    original_total: float = 0.0
    processed_total: float = 0.0
    reason: Optional[str] = None
    stages: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.status is PostProcessStatus.PROCESSED


def _identity(lines: List[QuoteLine]) -> List[QuoteLine]:
    return lines


def build_stages(options: PostProcessOptions) -> Tuple[Tuple[str, Stage], ...]:
    """Séquence ordonnée (nom, étape) jusqu'au contrôle des totaux exclu."""
    return (
        ("fix_truncated", fix_truncated_descriptions),
        ("drop_invalid", drop_invalid_lines),
        ("deduplicate", deduplicate_lines),
        ("mechanical_consistency", validate_mechanical_consistency),
        ("related_interventions", group_related_interventions),
        ("micro_labor", group_micro_labor_lines),
        ("included_lines", group_included_lines),
        ("piece_labor_wording", ensure_piece_labor_consistency),
        ("client_friendly", improve_client_friendly_descriptions),
        ("vague_descriptions", improve_vague_descriptions),
        ("truncation_recheck", fix_truncated_descriptions),
        ("formatting", normalize_formatting if options.format_labels else _identity),
        ("truncation_fallback", apply_fallback_to_truncated),
        ("option_descriptions", improve_option_descriptions),
        ("durations", validate_realistic_durations),
        ("positive_quantities", ensure_positive_quantities),
        ("section_limits", limit_lines_per_section),
        ("oil_volumes", group_oil_volumes if options.group_oil_volumes else _identity),
        ("consumables_forfait", enrich_consumables_forfait),
    )


def _run_stages(lines: List[QuoteLine], stages: Sequence[Tuple[str, Stage]], trace: List[str]) -> List[QuoteLine]:
    processed = list(lines)
    for name, stage in stages:
        if stage is _identity:
            continue
        before = len(processed)
        processed = stage(processed)
        trace.append(name)
        if len(processed) != before:
            logger.debug("Étape %s : %d -> %d ligne(s).", name, before, len(processed))
    return processed


def post_process_with_report(
    lines: List[QuoteLine],
    options: Optional[PostProcessOptions] = None,
) -> PostProcessReport:
    """
    Post-traite les lignes et décrit l'issue.

    Ne lève jamais : en cas d'erreur ou de dérive du total, le rapport
    porte les lignes d'origine.
    """
    original = list(lines or [])
    if not original:
        return PostProcessReport(status=PostProcessStatus.EMPTY, lines=original)

    options = options or PostProcessOptions()
    original_total = compute_total(original)
    trace: List[str] = []

    try:
        processed = _run_stages(original, build_stages(options), trace)

        if not totals_preserved(original, processed):
            processed_total = compute_total(processed)
            logger.warning(
                "Post-traitement annulé : total %.2f € -> %.2f €, lignes d'origine conservées.",
                original_total, processed_total,
            )
            return PostProcessReport(
                status=PostProcessStatus.TOTAL_MISMATCH,
                lines=original,
                original_total=original_total,
                processed_total=processed_total,
                reason="Total HT modifié par le post-traitement.",
                stages=trace,
            )

        processed = apply_fallback_to_truncated(processed)
        trace.append("final_cleanup")

    except Exception as exc:
        logger.exception("Erreur pendant le post-traitement des lignes de devis.")
        return PostProcessReport(
            status=PostProcessStatus.ERROR,
            lines=original,
            original_total=original_total,
            processed_total=original_total,
            reason=str(exc) or exc.__class__.__name__,
            stages=trace,
        )

    logger.info("Post-traitement terminé : %d -> %d ligne(s).", len(original), len(processed))
    return PostProcessReport(
        status=PostProcessStatus.PROCESSED,
        lines=processed,
        original_total=original_total,
        processed_total=compute_total(processed),
        stages=trace,
    )


def post_process_quote_items(
    lines: List[QuoteLine],
    options: Optional[PostProcessOptions] = None,
) -> List[QuoteLine]:
    """
    Point d'entrée du post-traitement : lignes nettoyées, ou lignes
    d'origine si une étape échoue ou si le total HT change.
    """
    return post_process_with_report(lines, options).lines
