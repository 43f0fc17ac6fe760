# domain/quote_lines/__init__.py

"""
Post-traitement des lignes de devis générées par l'IA.

Chaque étape est une fonction pure sur une liste de QuoteLine ; l'orchestrateur
`post_process_quote_items` les enchaîne et garantit le total HT.
"""

from domain.quote_lines.text import (
    normalize_for_comparison,
    similarity,
    extract_viscosity,
    extract_volume_liters,
    detect_position,
    is_placeholder_description,
)
from domain.quote_lines.truncation import (
    is_truncated,
    reformulate_description,
    fallback_description,
    fix_truncated_descriptions,
    drop_invalid_lines,
    apply_fallback_to_truncated,
)
from domain.quote_lines.families import WORK_FAMILIES, detect_work_family
from domain.quote_lines.grouping import (
    group_related_interventions,
    group_micro_labor_lines,
    group_included_lines,
)
from domain.quote_lines.dedup import deduplicate_lines, is_same_physical_part
from domain.quote_lines.consistency import (
    validate_mechanical_consistency,
    ensure_piece_labor_consistency,
)
from domain.quote_lines.wording import (
    improve_client_friendly_descriptions,
    improve_vague_descriptions,
    improve_option_descriptions,
    enrich_consumables_forfait,
    group_oil_volumes,
    normalize_formatting,
)
from domain.quote_lines.durations import validate_realistic_durations, ensure_positive_quantities
from domain.quote_lines.limits import limit_lines_per_section
from domain.quote_lines.totals import totals_preserved
from domain.quote_lines.pipeline import (
    PostProcessOptions,
    PostProcessReport,
    PostProcessStatus,
    post_process_quote_items,
    post_process_with_report,
)

__all__ = [
    # Text
    "normalize_for_comparison",
    "similarity",
    "extract_viscosity",
    "extract_volume_liters",
    "detect_position",
    "is_placeholder_description",
    # Truncation
    "is_truncated",
    "reformulate_description",
    "fallback_description",
    "fix_truncated_descriptions",
    "drop_invalid_lines",
    "apply_fallback_to_truncated",
    # Grouping
    "WORK_FAMILIES",
    "detect_work_family",
    "group_related_interventions",
    "group_micro_labor_lines",
    "group_included_lines",
    "deduplicate_lines",
    "is_same_physical_part",
    # Consistency / wording
    "validate_mechanical_consistency",
    "ensure_piece_labor_consistency",
    "improve_client_friendly_descriptions",
    "improve_vague_descriptions",
    "improve_option_descriptions",
    "enrich_consumables_forfait",
    "group_oil_volumes",
    "normalize_formatting",
    # Durations / limits / totals
    "validate_realistic_durations",
    "ensure_positive_quantities",
    "limit_lines_per_section",
    "totals_preserved",
    # Orchestrator
    "PostProcessOptions",
    "PostProcessReport",
    "PostProcessStatus",
    "post_process_quote_items",
    "post_process_with_report",
]
