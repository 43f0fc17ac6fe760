# presentation/cli.py

"""
Interface en ligne de commande :

    garage-devis generate "Vidange + filtre" --make Renault --model Clio
    garage-devis postprocess devis.json      (ou "-" pour stdin)
    garage-devis remember devis.json --garage g1

Les résultats sont écrits en JSON sur stdout, les logs sur stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO

from config.settings import Settings
from domain.ai_status import AIResultStatus
from domain.json_utils import as_lines_payload, safe_json_parse
from domain.models import QuoteLine
from domain.price_memory import remember_prices
from domain.quote_lines import PostProcessOptions, post_process_with_report
from domain.quote_service import QuoteLinesService
from domain.schema import QuoteLinesValidationError, validate_response_payload
from infrastructure.ai_factory import build_price_memory, build_service

logger = logging.getLogger(__name__)

DEFAULT_GARAGE_ID = "local"

EXIT_OK = 0
EXIT_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="garage-devis",
        description="Génération IA et nettoyage des lignes de devis garage.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Générer les lignes d'un devis depuis une description.")
    gen.add_argument("description", help="Description libre de l'intervention.")
    gen.add_argument("--make", dest="vehicle_make", default=None, help="Marque du véhicule.")
    gen.add_argument("--model", dest="vehicle_model", default=None, help="Modèle du véhicule.")
    gen.add_argument("--garage", dest="garage_id", default=DEFAULT_GARAGE_ID, help="Identifiant du garage.")

    post = sub.add_parser("postprocess", help="Post-traiter des lignes JSON existantes.")
    post.add_argument("input", help='Fichier JSON ({"lines": [...]} ou tableau), "-" pour stdin.')
    post.add_argument("--format-labels", action="store_true", default=None,
                      help="Uniformiser la casse et les séparateurs des libellés.")
    post.add_argument("--group-oil-volumes", action="store_true", default=None,
                      help='Regrouper les volumes d\'huile ("8L (2 bidons de 4L)").')

    remember = sub.add_parser("remember", help="Mémoriser les prix d'un devis validé.")
    remember.add_argument("input", help='Fichier JSON des lignes, "-" pour stdin.')
    remember.add_argument("--garage", dest="garage_id", default=DEFAULT_GARAGE_ID)
    remember.add_argument("--make", dest="vehicle_make", default=None)
    remember.add_argument("--model", dest="vehicle_model", default=None)

    return parser


# ----------------------------------------------------------------------
# Lecture / écriture
# ----------------------------------------------------------------------

def read_lines(source: str, stdin: TextIO) -> List[QuoteLine]:
    """
    Lit des lignes de devis depuis un fichier ou stdin ("-").

    Lève ValueError (JSON illisible ou non conforme) ou OSError.
    """
    if source == "-":
        text = stdin.read()
    else:
        text = Path(source).read_text(encoding="utf-8")

    payload = as_lines_payload(safe_json_parse(text))
    try:
        return validate_response_payload(payload)
    except QuoteLinesValidationError as exc:
        raise ValueError(f"Lignes non conformes: {exc}") from exc


def _write_json(payload: Dict[str, Any], stdout: TextIO) -> None:
    stdout.write(json.dumps(payload, ensure_ascii=False, indent=2))
    stdout.write("\n")


def _error(message: str, stderr: TextIO) -> int:
    stderr.write(f"Erreur: {message}\n")
    return EXIT_ERROR


# ----------------------------------------------------------------------
# Commandes
# ----------------------------------------------------------------------

def _cmd_generate(args: argparse.Namespace, service: QuoteLinesService, stdout: TextIO) -> int:
    result = service.generate(
        args.garage_id,
        args.description,
        vehicle_make=args.vehicle_make,
        vehicle_model=args.vehicle_model,
    )
    _write_json(result.to_dict(), stdout)
    if result.status in (AIResultStatus.OK, AIResultStatus.FALLBACK_USED) and result.lines:
        return EXIT_OK
    return EXIT_ERROR


def _cmd_postprocess(args: argparse.Namespace, settings: Settings, stdin: TextIO, stdout: TextIO) -> int:
    lines = read_lines(args.input, stdin)
    options = PostProcessOptions(
        format_labels=settings.format_labels if args.format_labels is None else args.format_labels,
        group_oil_volumes=(
            settings.group_oil_volumes if args.group_oil_volumes is None else args.group_oil_volumes
        ),
    )
    report = post_process_with_report(lines, options)
    _write_json(
        {
            "status": report.status.value,
            "reason": report.reason,
            "original_total": round(report.original_total, 2),
            "processed_total": round(report.processed_total, 2),
            "lines": [line.to_dict() for line in report.lines],
        },
        stdout,
    )
    return EXIT_OK


def _cmd_remember(args: argparse.Namespace, settings: Settings, stdin: TextIO, stdout: TextIO) -> int:
    lines = read_lines(args.input, stdin)
    store = build_price_memory(settings)
    written = remember_prices(lines, store, args.garage_id, args.vehicle_make, args.vehicle_model)
    _write_json({"garage": args.garage_id, "remembered": written}, stdout)
    return EXIT_OK


def run(
    argv: Optional[Sequence[str]],
    settings: Settings,
    service_factory: Callable[[Settings], QuoteLinesService] = build_service,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """
    Exécute une commande et renvoie le code de sortie (0 succès, 1 erreur).
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    args = build_parser().parse_args(argv)
    logger.debug("Commande CLI: %s", args.command)

    try:
        if args.command == "generate":
            return _cmd_generate(args, service_factory(settings), stdout)
        if args.command == "postprocess":
            return _cmd_postprocess(args, settings, stdin, stdout)
        if args.command == "remember":
            return _cmd_remember(args, settings, stdin, stdout)
    except (OSError, ValueError, RuntimeError) as exc:
        logger.error("Commande %s en échec: %s", args.command, exc)
        return _error(str(exc), stderr)

    return _error(f"Commande inconnue: {args.command}", stderr)
