# domain/quote_lines/families.py

"""
Familles de travaux (freinage, vidange...) utilisées pour décider si deux
lignes de main-d'œuvre relèvent de la même intervention.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

# L'ordre compte : première famille trouvée gagnante.
WORK_FAMILIES: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "freinage": ("frein", "plaquette", "disque", "étrier", "liquide frein", "purge frein"),
        "vidange": ("vidange", "huile moteur", "filtre huile", "filtre à huile", "huile boîte"),
        "distribution": ("distribution", "courroie", "tendeur", "pompe eau", "pompe à eau"),
        "climatisation": ("climatisation", "clim", "gaz", "recharge clim", "filtre habitacle"),
        "pneus": ("pneu", "pneus", "équilibrage", "géométrie", "parallélisme"),
        "batterie": ("batterie", "alternateur", "démarreur", "charge batterie"),
        "éclairage": ("phare", "ampoule", "éclairage", "feu"),
        "suspension": ("suspension", "amortisseur", "rotule", "biellette"),
        "moteur": ("bougie", "filtre air", "filtre à air", "injecteur", "vanne egr"),
    }
)


def detect_work_family(description: str) -> Optional[str]:
    """Famille de travail du libellé, ou None si aucun mot-clé ne correspond."""
    lowered = (description or "").lower()
    for family, keywords in WORK_FAMILIES.items():
        if any(keyword in lowered for keyword in keywords):
            return family
    return None
