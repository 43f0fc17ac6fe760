# config/log_config.py

from __future__ import annotations

import copy
import logging
import logging.config
from typing import Any, Dict, Union

# -----------------------------
# Niveau custom "SUCCESS"
# -----------------------------
SUCCESS_LEVEL = 25  # entre INFO (20) et WARNING (30)
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


def success(self: logging.Logger, msg: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(SUCCESS_LEVEL):
        self._log(SUCCESS_LEVEL, msg, args, **kwargs)


if not hasattr(logging.Logger, "success"):
    setattr(logging.Logger, "success", success)


LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
            "level": "DEBUG",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        # urllib3 (requests) est très bavard en DEBUG
        "urllib3": {"level": "WARNING"},
    },
    "root": {
        "handlers": ["console"],
        "level": "DEBUG",
    },
}


def _coerce_level(level: Union[int, str]) -> int:
    """Accepte un niveau numérique ou un nom ("INFO", "success"...)."""
    if isinstance(level, int):
        return level

    name = str(level).strip().upper()
    resolved = logging.getLevelName(name)
    if isinstance(resolved, int):
        return resolved

    logging.getLogger(__name__).warning(
        "Niveau de log inconnu '%s', utilisation de DEBUG.", level
    )
    return logging.DEBUG


def setup_logging(level: Union[int, str] = logging.DEBUG) -> None:
    """Initialise la configuration de logging de l'application."""
    numeric_level = _coerce_level(level)
    try:
        # deepcopy : dictConfig ne doit pas muter la config de référence
        config = copy.deepcopy(LOGGING_CONFIG)
        config["root"]["level"] = logging.getLevelName(numeric_level)
        logging.config.dictConfig(config)

        logger = logging.getLogger(__name__)
        logger.debug("Logging initialisé (niveau=%s).", logging.getLevelName(numeric_level))
        logger.success("Niveau SUCCESS activé (niveau=%s).", SUCCESS_LEVEL)

    except Exception:
        # Filet de sécurité : ne jamais casser l'app à cause du logging
        logging.basicConfig(level=numeric_level)
        logging.getLogger(__name__).exception("Échec setup_logging, fallback basicConfig.")
