# domain/models.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional


logger = logging.getLogger(__name__)


class LineType(str, Enum):
    """
    Nature d'une ligne de devis.
    """
    PIECE = "piece"
    MAIN_OEUVRE = "main_oeuvre"
    FORFAIT = "forfait"


class LineUnit(str, Enum):
    """
    Unité de quantité : pièces/forfaits à l'unité, main-d'œuvre à l'heure.
    """
    UNITE = "unite"
    HEURE = "heure"


def expected_unit(line_type: LineType) -> LineUnit:
    """Unité imposée par le type de ligne."""
    return LineUnit.HEURE if line_type is LineType.MAIN_OEUVRE else LineUnit.UNITE


@dataclass(frozen=True)
class QuoteLine:
    """
    Ligne de devis transitoire (générée par l'IA, post-traitée, puis affichée).

    Objet immuable : chaque étape du post-traitement produit de nouvelles
    instances via `with_changes`.
    """

    type: LineType
    description: str
    quantity: float
    unit: LineUnit
    unit_price_ht: float
    is_option: bool = False
    is_included: bool = False

    # ------------------------------------------------------------------ #
    # Helpers métier
    # ------------------------------------------------------------------ #

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price_ht

    @property
    def is_labor(self) -> bool:
        return self.type is LineType.MAIN_OEUVRE

    @property
    def is_piece(self) -> bool:
        return self.type is LineType.PIECE

    @property
    def is_forfait(self) -> bool:
        return self.type is LineType.FORFAIT

    def with_changes(self, **changes: Any) -> "QuoteLine":
        return replace(self, **changes)

    # ------------------------------------------------------------------ #
    # Fabriques
    # ------------------------------------------------------------------ #

    @staticmethod
    def _parse_number(raw: Any, field_name: str) -> float:
        if isinstance(raw, bool):
            raise ValueError(f"Champ '{field_name}' numérique attendu, booléen reçu.")
        if isinstance(raw, (int, float)):
            value = float(raw)
        elif isinstance(raw, str) and raw.strip():
            try:
                value = float(raw.strip().replace(",", "."))
            except ValueError as exc:
                raise ValueError(f"Champ '{field_name}' non numérique: {raw!r}") from exc
        else:
            raise ValueError(f"Champ '{field_name}' manquant ou invalide: {raw!r}")

        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Champ '{field_name}' non fini: {raw!r}")
        return value

    @staticmethod
    def _parse_flag(data: Dict[str, Any], *keys: str) -> bool:
        for key in keys:
            if key in data and data[key] is not None:
                return bool(data[key])
        return False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteLine":
        """
        Construit une QuoteLine depuis un dict au format JSON (clés isOption /
        isIncluded) ou snake_case (is_option / is_included).

        Lève ValueError si le type, l'unité ou un nombre est invalide.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Ligne de devis invalide (dict attendu): {data!r}")

        try:
            line_type = LineType(str(data.get("type", "")).strip())
        except ValueError as exc:
            raise ValueError(f"Type de ligne inconnu: {data.get('type')!r}") from exc

        raw_unit = data.get("unit")
        if raw_unit is None or not str(raw_unit).strip():
            unit = expected_unit(line_type)
            logger.debug("QuoteLine.from_dict: unité absente, déduite du type (%s).", unit.value)
        else:
            try:
                unit = LineUnit(str(raw_unit).strip())
            except ValueError as exc:
                raise ValueError(f"Unité inconnue: {raw_unit!r}") from exc

        description = data.get("description")
        if description is None:
            description = ""

        return cls(
            type=line_type,
            description=str(description),
            quantity=cls._parse_number(data.get("quantity"), "quantity"),
            unit=unit,
            unit_price_ht=cls._parse_number(data.get("unit_price_ht"), "unit_price_ht"),
            is_option=cls._parse_flag(data, "isOption", "is_option"),
            is_included=cls._parse_flag(data, "isIncluded", "is_included"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Sérialise au format JSON échangé avec l'IA et l'appelant.
        """
        return {
            "type": self.type.value,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit.value,
            "unit_price_ht": self.unit_price_ht,
            "isOption": self.is_option,
            "isIncluded": self.is_included,
        }


def compute_total(lines: Iterable[QuoteLine]) -> float:
    """Somme HT des lignes (quantité × prix unitaire)."""
    return sum(line.line_total for line in lines)


def make_line(
    line_type: LineType,
    description: str,
    quantity: float,
    unit_price_ht: float,
    *,
    is_option: bool = False,
    is_included: bool = False,
    unit: Optional[LineUnit] = None,
) -> QuoteLine:
    """Raccourci de construction avec unité déduite du type."""
    return QuoteLine(
        type=line_type,
        description=description,
        quantity=quantity,
        unit=unit or expected_unit(line_type),
        unit_price_ht=unit_price_ht,
        is_option=is_option,
        is_included=is_included,
    )
