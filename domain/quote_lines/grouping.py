# domain/quote_lines/grouping.py

"""
Regroupements de lignes :

- interventions liées (vidange + filtre, micro-opérations de freinage)
- micro-lignes de main-d'œuvre (< 0.5 h) rattachées à la ligne principale
  de la même famille
- lignes incluses (0 €) repliées dans la ligne principale ou dans une
  ligne synthétique "Contrôles & sécurité (Inclus)"

Chaque fonction travaille sur des index et un ensemble "consommé" ; les
lignes d'entrée ne sont jamais modifiées.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from domain.models import LineType, QuoteLine, make_line
from domain.quote_lines.families import detect_work_family
from domain.quote_lines.text import detect_position, round_cents

logger = logging.getLogger(__name__)

MAIN_LABOR_MIN_HOURS = 0.5
RELATED_FILTER_MAX_HOURS = 0.75
RELATED_BRAKE_MAX_HOURS = 0.5
MAX_PAID_MICRO_IN_LABEL = 2
MAX_INCLUDED_IN_LABEL = 3

INCLUDED_GROUP_PREFIX = "Contrôles & sécurité (Inclus)"
OIL_AND_FILTER_LABEL = "Vidange moteur + remplacement filtre"

_BRAKE_KEYWORDS = ("frein", "plaquette", "disque")


def _unique(descriptions: List[str]) -> List[str]:
    seen: List[str] = []
    for desc in descriptions:
        if desc not in seen:
            seen.append(desc)
    return seen


def _mentions_brake(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in _BRAKE_KEYWORDS)


# ---------------------------------------------------------------------------
# Interventions liées
# ---------------------------------------------------------------------------

def _merged_related_label(group: List[QuoteLine], pieces: List[QuoteLine]) -> Optional[str]:
    has_oil_change = any("vidange" in l.description.lower() for l in group)
    has_filter = any("filtre" in l.description.lower() for l in group)
    if has_oil_change and has_filter:
        return OIL_AND_FILTER_LABEL

    has_brake = any(
        "frein" in l.description.lower() or "plaquette" in l.description.lower() for l in group
    )
    if has_brake:
        brake_piece = next(
            (
                p
                for p in pieces
                if "plaquette" in p.description.lower() or "disque" in p.description.lower()
            ),
            None,
        )
        position = detect_position(brake_piece.description) if brake_piece else "avant"
        return f"Remplacement plaquettes de frein {position}"

    return None


def group_related_interventions(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Regroupe les opérations qui forment une seule intervention atelier :
    vidange + remplacement filtre, et les micro-opérations de freinage
    (≤ 0.5 h) rattachées à la ligne de freinage.

    Sortie réordonnée : pièces → main-d'œuvre → forfaits → options → inclus.
    """
    labor = [l for l in lines if l.is_labor and not l.is_option and not l.is_included]
    if not labor:
        return lines

    pieces = [l for l in lines if l.is_piece and not l.is_option and not l.is_included]
    forfaits = [l for l in lines if l.is_forfait and not l.is_option and not l.is_included]
    options = [l for l in lines if l.is_option and not l.is_included]
    included = [l for l in lines if l.is_included]

    consumed: Set[int] = set()
    grouped: List[QuoteLine] = []

    for i, current in enumerate(labor):
        if i in consumed:
            continue
        consumed.add(i)
        lowered = current.description.lower()
        group = [current]

        if "vidange" in lowered and "filtre" not in lowered:
            for j, other in enumerate(labor):
                if j in consumed:
                    continue
                if "filtre" in other.description.lower() and other.quantity <= RELATED_FILTER_MAX_HOURS:
                    group.append(other)
                    consumed.add(j)
                    break

        elif "filtre" in lowered and "vidange" not in lowered:
            for j, other in enumerate(labor):
                if j in consumed:
                    continue
                other_lower = other.description.lower()
                if "vidange" in other_lower and "filtre" not in other_lower:
                    group = [other, current]
                    consumed.add(j)
                    break

        if _mentions_brake(current.description):
            for j, other in enumerate(labor):
                if j in consumed:
                    continue
                if _mentions_brake(other.description) and other.quantity <= RELATED_BRAKE_MAX_HOURS:
                    group.append(other)
                    consumed.add(j)

        if len(group) == 1:
            grouped.append(current)
            continue

        total_qty = sum(l.quantity for l in group)
        total_value = sum(l.line_total for l in group)
        rounded_qty = round(total_qty * 20) / 20
        label = _merged_related_label(group, pieces) or group[0].description
        unit_price = round_cents(total_value / rounded_qty) if rounded_qty > 0 else group[0].unit_price_ht

        logger.debug(
            "Interventions liées regroupées (%d lignes) -> '%s' (%.2f h).",
            len(group), label, rounded_qty,
        )
        grouped.append(
            group[0].with_changes(description=label, quantity=rounded_qty, unit_price_ht=unit_price)
        )

    return pieces + grouped + forfaits + options + included


# ---------------------------------------------------------------------------
# Micro-lignes de main-d'œuvre
# ---------------------------------------------------------------------------

def group_micro_labor_lines(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Rattache les micro-lignes de main-d'œuvre (< 0.5 h ou incluses) à la
    ligne principale de la même famille.

    - les micro-lignes payantes ajoutent leur durée et leur montant
    - les micro-lignes à 0 € enrichissent seulement le libellé ("… inclus")
    - le prix unitaire devient la moyenne pondérée

    Sortie réordonnée : pièces → main-d'œuvre → options → forfaits.
    """
    labor = [l for l in lines if l.is_labor and not l.is_option]
    others = [l for l in lines if not (l.is_labor and not l.is_option)]
    if not labor:
        return lines

    mains = [l for l in labor if l.quantity >= MAIN_LABOR_MIN_HOURS and not l.is_included]
    micros = [l for l in labor if not (l.quantity >= MAIN_LABOR_MIN_HOURS and not l.is_included)]

    consumed: Set[int] = set()
    grouped: List[QuoteLine] = []

    for main in mains:
        family = detect_work_family(main.description)
        claimed: List[QuoteLine] = []
        for i, micro in enumerate(micros):
            if i in consumed:
                continue
            if (family and detect_work_family(micro.description) == family) or micro.is_included:
                claimed.append(micro)
                consumed.add(i)

        if not claimed:
            grouped.append(main)
            continue

        paid = [m for m in claimed if not m.is_included and m.unit_price_ht > 0]
        free = [m for m in claimed if m.is_included or m.unit_price_ht == 0]

        total_qty = main.quantity + sum(m.quantity for m in paid)
        total_value = main.line_total + sum(m.line_total for m in paid)

        description = main.description
        paid_labels = _unique([m.description for m in paid])
        if 0 < len(paid_labels) <= MAX_PAID_MICRO_IN_LABEL:
            description = f"{description} — {', '.join(paid_labels)}"

        free_labels = _unique([m.description for m in free])
        if free_labels:
            free_text = ", ".join(free_labels)
            if "inclus" in description:
                description = f"{description}, {free_text}"
            else:
                description = f"{description} — {free_text} inclus"

        unit_price = round_cents(total_value / total_qty) if total_qty > 0 else main.unit_price_ht
        logger.debug(
            "Ligne '%s' : %d micro-ligne(s) rattachée(s) (%d payante(s)).",
            main.description, len(claimed), len(paid),
        )
        grouped.append(
            main.with_changes(
                description=description,
                quantity=total_qty,
                unit_price_ht=unit_price,
                is_included=False,
            )
        )

    grouped.extend(micro for i, micro in enumerate(micros) if i not in consumed)

    return (
        [l for l in others if l.is_piece and not l.is_option]
        + grouped
        + [l for l in others if l.is_option]
        + [l for l in others if l.is_forfait and not l.is_option]
    )


# ---------------------------------------------------------------------------
# Lignes incluses (0 €)
# ---------------------------------------------------------------------------

def _find_main_labor_index(lines: List[QuoteLine]) -> Optional[int]:
    for index, line in enumerate(lines):
        if (
            line.is_labor
            and not line.is_option
            and not line.is_included
            and line.quantity >= MAIN_LABOR_MIN_HOURS
            and "inclus" not in line.description.lower()
        ):
            return index
    return None


def _capped_included_text(descriptions: List[str]) -> str:
    if len(descriptions) > MAX_INCLUDED_IN_LABEL:
        return f"{', '.join(descriptions[:MAX_INCLUDED_IN_LABEL])} et autres contrôles"
    return ", ".join(descriptions)


def group_included_lines(lines: List[QuoteLine]) -> List[QuoteLine]:
    """
    Replie les lignes incluses à 0 € :

    - dans la ligne de main-d'œuvre principale (≥ 0.5 h) si elle existe
    - sinon une ligne incluse unique est conservée (quantité ≥ 1)
    - sinon plusieurs lignes deviennent une ligne synthétique
      "Contrôles & sécurité (Inclus) — a, b, c"
    """
    included = [l for l in lines if l.is_included and l.unit_price_ht == 0]
    others = [l for l in lines if not (l.is_included and l.unit_price_ht == 0)]
    if not included:
        return lines

    main_index = _find_main_labor_index(others)

    if len(included) == 1:
        single = included[0]
        if main_index is not None and single.description.strip():
            main = others[main_index]
            others[main_index] = main.with_changes(
                description=f"{main.description} — {single.description} inclus"
            )
            logger.debug("Ligne incluse '%s' intégrée à '%s'.", single.description, main.description)
            return others
        if single.quantity <= 0:
            single = single.with_changes(quantity=1)
        return others + [single]

    descriptions = _unique([l.description for l in included if l.description.strip()])
    if not descriptions:
        return others

    included_text = _capped_included_text(descriptions)

    if main_index is not None:
        main = others[main_index]
        others[main_index] = main.with_changes(
            description=f"{main.description} — {included_text} inclus"
        )
        logger.debug("%d lignes incluses intégrées à '%s'.", len(included), main.description)
        return others

    synthetic = make_line(
        LineType.MAIN_OEUVRE,
        f"{INCLUDED_GROUP_PREFIX} — {included_text}",
        1,
        0,
        is_included=True,
    )
    logger.debug("%d lignes incluses regroupées en ligne synthétique.", len(included))
    return others + [synthetic]
