# config/settings.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MISTRAL_MODEL = "mistral-large-latest"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

_TRUE_VALUES = {"1", "true", "yes", "oui", "on"}
_FALSE_VALUES = {"0", "false", "no", "non", "off"}


def _load_dotenv_if_present(env_file: str | Path = ".env") -> None:
    """
    Charge un fichier `.env` local si présent et injecte les variables
    manquantes dans l'environnement process.

    - ignore les lignes vides ou commentées
    - ne surcharge jamais une variable déjà définie dans l'environnement
    - retire les guillemets simples/doubles autour des valeurs
    """
    env_path = Path(env_file)
    logger.debug("Recherche d'un fichier .env local à charger: %s", env_path)

    if not env_path.exists():
        logger.info("Aucun fichier .env trouvé à %s, passage en mode variables système.", env_path)
        return

    try:
        for line_no, raw_line in enumerate(env_path.read_text(encoding="utf-8").splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")

            if not key:
                logger.warning("Ligne %d du .env ignorée (clé vide).", line_no)
                continue

            if os.getenv(key) is None:
                os.environ[key] = value
                logger.debug("Variable %s chargée depuis .env.", key)
            else:
                logger.debug("Variable %s déjà définie dans l'environnement, .env laissé intact.", key)

        logger.info("Chargement du fichier .env terminé.")
    except Exception as exc:  # pragma: no cover - robustesse
        logger.exception("Echec du chargement du fichier .env: %s", exc)
        raise RuntimeError(f"Erreur lors du chargement du fichier .env: {exc}") from exc


@dataclass
class Settings:
    """
    Configuration applicative centrale.

    Providers IA (tous optionnels, essayés dans l'ordre Mistral → Gemini → OpenAI) :
    - mistral_api_key / mistral_model
    - gemini_api_key  / gemini_model
    - openai_api_key  / openai_model

    Appels IA :
    - ai_timeout_seconds : délai max par tentative d'appel IA
    - ai_max_retries     : nombre de nouvelles tentatives après un échec
    - rate_limit_max / rate_limit_window_seconds : limite par garage

    Post-traitement :
    - format_labels      : casse/séparateurs uniformes sur les libellés
    - group_oil_volumes  : libellés huile "8L (2 bidons de 4L)"

    Mémoire de prix :
    - price_memory_file  : fichier JSON de la mémoire de prix (None = en mémoire)
    """
    mistral_api_key: Optional[str] = None
    mistral_model: str = DEFAULT_MISTRAL_MODEL

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL

    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL

    ai_timeout_seconds: float = 30.0
    ai_max_retries: int = 1

    rate_limit_max: int = 10
    rate_limit_window_seconds: float = 60.0

    format_labels: bool = False
    group_oil_volumes: bool = False

    price_memory_file: Optional[Path] = None
    log_level: str = "DEBUG"

    @property
    def has_ai_provider(self) -> bool:
        return bool(self.mistral_api_key or self.gemini_api_key or self.openai_api_key)


# ----------------------------------------------------------------------
# Lecture typée des variables d'environnement
# ----------------------------------------------------------------------

def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is not None and raw.strip():
        return raw.strip()
    if raw is not None:
        logger.warning("%s est défini mais vide, utilisation de la valeur par défaut '%s'.", name, default)
    return default


def _env_secret(name: str) -> Optional[str]:
    raw = os.getenv(name)
    return raw.strip() if raw and raw.strip() else None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip().replace(",", "."))
    except ValueError as exc:
        logger.error("%s invalide (%r) : nombre attendu.", name, raw)
        raise RuntimeError(f"{name} doit être un nombre (reçu {raw!r}).") from exc
    if value <= 0:
        logger.error("%s invalide (%r) : valeur positive attendue.", name, raw)
        raise RuntimeError(f"{name} doit être strictement positif (reçu {raw!r}).")
    return value


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        logger.error("%s invalide (%r) : entier attendu.", name, raw)
        raise RuntimeError(f"{name} doit être un entier (reçu {raw!r}).") from exc
    if value < minimum:
        raise RuntimeError(f"{name} doit être >= {minimum} (reçu {raw!r}).")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("%s a une valeur booléenne inconnue (%r), défaut=%s conservé.", name, raw, default)
    return default


def load_settings(env_file: str | Path = ".env") -> Settings:
    """
    Charge la configuration à partir des variables d'environnement
    (après préchargement optionnel d'un fichier .env local).

    Aucune clé n'est obligatoire : sans provider IA, le service répond
    en mode dégradé (saisie manuelle).

    Lève RuntimeError en cas de valeur invalide et loggue en détail l'erreur.
    """
    logger.debug("Chargement des Settings depuis les variables d'environnement.")

    try:
        _load_dotenv_if_present(env_file)
    except Exception as env_exc:
        logger.error("Impossible de précharger le fichier .env: %s", env_exc, exc_info=True)
        raise

    try:
        price_memory_raw = _env_secret("PRICE_MEMORY_FILE")

        settings = Settings(
            mistral_api_key=_env_secret("MISTRAL_API_KEY"),
            mistral_model=_env_str("MISTRAL_MODEL", DEFAULT_MISTRAL_MODEL),
            gemini_api_key=_env_secret("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            openai_api_key=_env_secret("OPENAI_API_KEY"),
            openai_model=_env_str("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            ai_timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", 30.0),
            ai_max_retries=_env_int("AI_MAX_RETRIES", 1),
            rate_limit_max=_env_int("AI_RATE_LIMIT_MAX", 10, minimum=1),
            rate_limit_window_seconds=_env_float("AI_RATE_LIMIT_WINDOW_SECONDS", 60.0),
            format_labels=_env_bool("QUOTE_FORMAT_LABELS", False),
            group_oil_volumes=_env_bool("QUOTE_GROUP_OIL_VOLUMES", False),
            price_memory_file=Path(price_memory_raw) if price_memory_raw else None,
            log_level=_env_str("LOG_LEVEL", "DEBUG"),
        )

        logger.info(
            "Settings chargés (Mistral=%s, Gemini=%s, OpenAI=%s, timeout=%.0fs, retries=%d).",
            "présente" if settings.mistral_api_key else "absente",
            "présente" if settings.gemini_api_key else "absente",
            "présente" if settings.openai_api_key else "absente",
            settings.ai_timeout_seconds,
            settings.ai_max_retries,
        )
        if not settings.has_ai_provider:
            logger.warning(
                "Aucune clé IA configurée (MISTRAL_API_KEY, GEMINI_API_KEY, OPENAI_API_KEY) : "
                "génération automatique indisponible."
            )
        return settings

    except RuntimeError:
        # Erreur fonctionnelle déjà logguée, on la propage telle quelle
        raise
    except Exception as exc:
        logger.exception("Erreur inattendue lors du chargement des Settings.")
        raise RuntimeError(
            f"Erreur inattendue lors du chargement de la configuration: {exc}"
        ) from exc
