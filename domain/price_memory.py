# domain/price_memory.py

"""
Mémoire de prix par garage : prix préférés des pièces, de la main-d'œuvre
et des forfaits, éventuellement par véhicule (marque / modèle).

Recherche : règle contextuelle (même véhicule) puis règle globale.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
import threading
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from domain.models import LineType, QuoteLine

logger = logging.getLogger(__name__)

# "à" devient "a" après retrait des accents
STOP_WORDS_RE = re.compile(r"\b(?:de|du|des|le|la|les|un|une|et|en|au|aux|a|pour)\b")
_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")
_SPACES_RE = re.compile(r"\s+")

MAX_LABEL_LENGTH = 500


class PriceBookItemType(str, Enum):
    PART = "part"
    LABOR = "labor"
    FORFAIT = "forfait"


_ITEM_TYPE_BY_LINE_TYPE = {
    LineType.PIECE: PriceBookItemType.PART,
    LineType.MAIN_OEUVRE: PriceBookItemType.LABOR,
    LineType.FORFAIT: PriceBookItemType.FORFAIT,
}


def item_type_for(line_type: LineType) -> PriceBookItemType:
    return _ITEM_TYPE_BY_LINE_TYPE.get(line_type, PriceBookItemType.PART)


def normalize_key(text: Optional[str]) -> str:
    """
    Clé de recherche stable d'un libellé : minuscules, sans accents ni
    ponctuation, sans mots courants ("Plaquettes de frein avant" et
    "Plaquettes frein avant" donnent la même clé).
    """
    if not text or not isinstance(text, str):
        return ""
    lowered = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in lowered if unicodedata.category(ch) != "Mn")
    stripped = _NON_ALNUM_RE.sub(" ", stripped)
    stripped = STOP_WORDS_RE.sub(" ", stripped)
    return _SPACES_RE.sub(" ", stripped).strip()


def _clean_vehicle(value: Optional[str]) -> str:
    return (value or "").strip()


@dataclass
class PriceMemoryEntry:
    garage_id: str
    item_type: str
    item_key: str
    item_label: str
    last_price: float
    vehicle_make: str = ""
    vehicle_model: str = ""
    currency: str = "EUR"
    updated_at: str = ""

    @property
    def storage_key(self) -> Tuple[str, str, str, str, str]:
        return (self.garage_id, self.item_type, self.item_key, self.vehicle_make, self.vehicle_model)


# ---------------------------------------------------------------------------
# Stockage
# ---------------------------------------------------------------------------

class PriceMemoryStore(ABC):
    """
    Stockage de la mémoire de prix. `get` est une recherche exacte
    (véhicule vide = règle globale).
    """

    @abstractmethod
    def get(
        self,
        garage_id: str,
        item_type: PriceBookItemType,
        item_key: str,
        vehicle_make: str = "",
        vehicle_model: str = "",
    ) -> Optional[float]:
        raise NotImplementedError

    @abstractmethod
    def upsert(
        self,
        garage_id: str,
        item_type: PriceBookItemType,
        item_key: str,
        item_label: str,
        last_price: float,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
    ) -> None:
        raise NotImplementedError


class InMemoryPriceMemoryStore(PriceMemoryStore):
    def __init__(self, entries: Iterable[PriceMemoryEntry] = ()) -> None:
        self._entries: Dict[Tuple[str, str, str, str, str], PriceMemoryEntry] = {}
        self._lock = threading.Lock()
        for entry in entries:
            self._entries[entry.storage_key] = entry

    def entries(self) -> List[PriceMemoryEntry]:
        with self._lock:
            return list(self._entries.values())

    def get(self, garage_id, item_type, item_key, vehicle_make="", vehicle_model=""):
        key = (garage_id, PriceBookItemType(item_type).value, item_key, vehicle_make, vehicle_model)
        with self._lock:
            entry = self._entries.get(key)
        return entry.last_price if entry else None

    def upsert(
        self,
        garage_id,
        item_type,
        item_key,
        item_label,
        last_price,
        vehicle_make=None,
        vehicle_model=None,
    ):
        if not item_key.strip():
            return
        entry = PriceMemoryEntry(
            garage_id=garage_id,
            item_type=PriceBookItemType(item_type).value,
            item_key=item_key,
            item_label=(item_label or "")[:MAX_LABEL_LENGTH],
            last_price=float(last_price),
            vehicle_make=_clean_vehicle(vehicle_make),
            vehicle_model=_clean_vehicle(vehicle_model),
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            previous = self._entries.get(entry.storage_key)
            self._entries[entry.storage_key] = entry
            try:
                self._after_write()
            except Exception:
                if previous is None:
                    del self._entries[entry.storage_key]
                else:
                    self._entries[entry.storage_key] = previous
                raise

    def _after_write(self) -> None:
        """Point d'extension des stockages persistants, appelé sous verrou."""


class JsonFilePriceMemoryStore(InMemoryPriceMemoryStore):
    """
    Mémoire de prix persistée dans un fichier JSON (liste d'entrées),
    réécrit à chaque mise à jour.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[PriceMemoryEntry]:
        if not self.path.exists():
            logger.info("Mémoire de prix absente (%s), démarrage à vide.", self.path)
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Mémoire de prix illisible (%s): %s", self.path, exc)
            raise RuntimeError(f"Mémoire de prix illisible: {self.path}") from exc

        entries = [PriceMemoryEntry(**item) for item in raw]
        logger.info("Mémoire de prix chargée: %d entrée(s) depuis %s.", len(entries), self.path)
        return entries

    def _after_write(self) -> None:
        # Écriture atomique : fichier temporaire puis remplacement
        payload = [asdict(entry) for entry in self._entries.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", dir=self.path.parent, suffix=".tmp", delete=False, encoding="utf-8"
        ) as tmp:
            tmp_path = Path(tmp.name)
            try:
                json.dump(payload, tmp, ensure_ascii=False, indent=2)
            except Exception:
                tmp.close()
                tmp_path.unlink(missing_ok=True)
                raise
        try:
            tmp_path.replace(self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            logger.error("Écriture de la mémoire de prix impossible (%s): %s", self.path, exc)
            raise


# ---------------------------------------------------------------------------
# Recherche / application
# ---------------------------------------------------------------------------

def lookup_price(
    store: PriceMemoryStore,
    garage_id: str,
    item_type: PriceBookItemType,
    item_key: str,
    vehicle_make: Optional[str] = None,
    vehicle_model: Optional[str] = None,
) -> Optional[float]:
    """Règle du même véhicule si marque ou modèle fourni, puis règle globale."""
    if not item_key.strip():
        return None
    make = _clean_vehicle(vehicle_make)
    model = _clean_vehicle(vehicle_model)

    if make or model:
        price = store.get(garage_id, item_type, item_key, make, model)
        if price is not None:
            return price
    return store.get(garage_id, item_type, item_key, "", "")


def apply_price_memory(
    lines: List[QuoteLine],
    store: PriceMemoryStore,
    garage_id: str,
    vehicle_make: Optional[str] = None,
    vehicle_model: Optional[str] = None,
) -> List[QuoteLine]:
    """
    Remplace le prix unitaire des lignes connues de la mémoire du garage.
    Les lignes incluses restent à 0 €.
    """
    result: List[QuoteLine] = []
    for line in lines:
        key = normalize_key(line.description)
        if line.is_included or not key:
            result.append(line)
            continue

        price = lookup_price(store, garage_id, item_type_for(line.type), key, vehicle_make, vehicle_model)
        if price is not None and price != line.unit_price_ht:
            logger.debug("Prix mémorisé appliqué à '%s': %.2f -> %.2f", line.description, line.unit_price_ht, price)
            line = line.with_changes(unit_price_ht=price)
        result.append(line)
    return result


def remember_prices(
    lines: Iterable[QuoteLine],
    store: PriceMemoryStore,
    garage_id: str,
    vehicle_make: Optional[str] = None,
    vehicle_model: Optional[str] = None,
) -> int:
    """Enregistre les prix d'un devis validé ; renvoie le nombre d'entrées écrites."""
    written = 0
    for line in lines:
        key = normalize_key(line.description)
        if line.is_included or line.is_option or not key:
            continue
        store.upsert(
            garage_id,
            item_type_for(line.type),
            key,
            line.description,
            line.unit_price_ht,
            vehicle_make,
            vehicle_model,
        )
        written += 1
    return written
