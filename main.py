# main.py

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from config.log_config import setup_logging
from config.settings import load_settings
from presentation.cli import run


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Point d'entrée principal.

    - Initialise le logging
    - Charge la configuration (Settings)
    - Exécute la commande CLI (les providers IA sont construits à la demande)
    """
    # ------------------------------------------------------------------
    # Chargement Settings
    # ------------------------------------------------------------------
    setup_logging(logging.INFO)
    logger = logging.getLogger(__name__)

    try:
        settings = load_settings()
    except Exception as exc:
        logger.critical("Impossible de charger la configuration (Settings). Erreur: %s", exc)
        return 1

    setup_logging(settings.log_level)
    logger.info("Démarrage de l'assistant de devis garage.")

    # ------------------------------------------------------------------
    # Commande
    # ------------------------------------------------------------------
    try:
        exit_code = run(argv, settings)
    except KeyboardInterrupt:
        logger.warning("Interruption clavier - fermeture.")
        return 130

    if exit_code == 0:
        logger.success("Commande terminée.")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
