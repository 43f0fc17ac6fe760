import logging
import re
import unittest
from unittest import mock

import pytest

from domain.models import LineType, QuoteLine, compute_total, make_line
from domain.quote_lines import (
    PostProcessOptions,
    PostProcessStatus,
    post_process_quote_items,
    post_process_with_report,
)

PLACEHOLDER_RE = re.compile(r"^\d+\.?\d*\s*h?$", re.IGNORECASE)


def oil(desc, price):
    return QuoteLine.from_dict(
        {
            "type": "piece",
            "description": desc,
            "quantity": 1,
            "unit": "unite",
            "unit_price_ht": price,
            "isOption": False,
            "isIncluded": False,
        }
    )


def labor(desc, qty, price=60.0, **kwargs):
    return make_line(LineType.MAIN_OEUVRE, desc, qty, price, **kwargs)


class PipelineScenariosTestCase(unittest.TestCase):
    def test_identical_oil_lines_are_merged(self) -> None:
        lines = [oil("Huile moteur 5W30 — 4L", 25), oil("Huile moteur 5W30 — 4L", 25)]

        result = post_process_quote_items(lines)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].description, "Huile moteur 5W30 — 4L")
        self.assertEqual(result[0].quantity, 2)
        self.assertEqual(result[0].unit_price_ht, 25)

    def test_oil_change_and_filter_labor_become_one_line(self) -> None:
        lines = [labor("Vidange moteur", 0.5), labor("Remplacement filtre", 0.25)]

        result = post_process_quote_items(lines)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].type, LineType.MAIN_OEUVRE)
        self.assertEqual(result[0].description, "Vidange moteur + remplacement filtre")
        self.assertAlmostEqual(result[0].quantity, 0.75)
        self.assertEqual(result[0].unit_price_ht, 60)

    def test_included_lines_without_main_labor_become_synthetic_line(self) -> None:
        lines = [
            labor("Contrôle niveaux", 0.25, 0, is_included=True),
            labor("Contrôle pression pneus", 0.25, 0, is_included=True),
            labor("Essai routier", 0.25, 0, is_included=True),
        ]

        result = post_process_quote_items(lines)

        self.assertEqual(len(result), 1)
        line = result[0]
        self.assertEqual(line.type, LineType.MAIN_OEUVRE)
        self.assertTrue(line.description.startswith("Contrôles & sécurité (Inclus) —"))
        self.assertEqual(line.quantity, 1)
        self.assertEqual(line.unit_price_ht, 0)
        self.assertTrue(line.is_included)

    def test_conflicting_viscosity_rolls_back_through_total_guard(self) -> None:
        lines = [oil("Huile moteur 5W30 — 4L", 25), oil("Huile moteur 5W40 — 4L", 35)]

        with self.assertLogs("domain.quote_lines", level=logging.WARNING) as logs:
            report = post_process_with_report(lines)

        self.assertEqual(report.status, PostProcessStatus.TOTAL_MISMATCH)
        self.assertEqual(report.lines, lines)
        self.assertAlmostEqual(report.original_total, 60)
        self.assertAlmostEqual(report.processed_total, 25)
        self.assertFalse(report.changed)
        self.assertTrue(any("5W40" in message for message in logs.output))

    def test_truncated_brake_labor_is_reformulated(self) -> None:
        lines = [labor("Remplacement plaquettes (", 1.0)]

        result = post_process_quote_items(lines)

        self.assertEqual([l.description for l in result], ["Remplacement plaquettes de frein avant"])


class PipelineOptionsTestCase(unittest.TestCase):
    def test_oil_volumes_option(self) -> None:
        lines = [oil("Huile moteur 5W30 — 4L", 25), oil("Huile moteur 5W30 — 4L", 25)]

        report = post_process_with_report(lines, PostProcessOptions(group_oil_volumes=True))

        self.assertEqual(report.status, PostProcessStatus.PROCESSED)
        self.assertEqual(report.lines[0].description, "Huile moteur 5W30 — 8L (2 bidons de 4L)")
        self.assertIn("oil_volumes", report.stages)
        self.assertNotIn("formatting", report.stages)

    def test_format_labels_option(self) -> None:
        lines = [labor("Vidange moteur", 0.5), labor("Remplacement filtre", 0.25)]
        result = post_process_quote_items(lines, PostProcessOptions(format_labels=True))
        self.assertEqual(result[0].description, "Vidange Moteur + Remplacement Filtre")


class PipelineSafetyTestCase(unittest.TestCase):
    def test_empty_input(self) -> None:
        report = post_process_with_report([])
        self.assertEqual(report.status, PostProcessStatus.EMPTY)
        self.assertEqual(report.lines, [])

    def test_stage_failure_returns_original_lines(self) -> None:
        lines = [labor("Vidange moteur", 0.5), labor("Remplacement filtre", 0.25)]

        with mock.patch(
            "domain.quote_lines.pipeline.deduplicate_lines", side_effect=RuntimeError("boom")
        ), self.assertLogs("domain.quote_lines.pipeline", level=logging.ERROR):
            report = post_process_with_report(lines)

        self.assertEqual(report.status, PostProcessStatus.ERROR)
        self.assertEqual(report.lines, lines)
        self.assertEqual(report.reason, "boom")

    def test_rounded_micro_labor_rate_rolls_back(self) -> None:
        lines = [
            labor("Remplacement kit distribution", 8),
            labor("Remplacement tendeur courroie", 0.35, 47),
        ]

        report = post_process_with_report(lines)

        self.assertEqual(report.status, PostProcessStatus.TOTAL_MISMATCH)
        self.assertEqual(report.lines, lines)

    def test_input_list_is_not_modified(self) -> None:
        lines = [labor("Vidange moteur", 0.5), labor("Remplacement filtre", 0.25)]
        snapshot = list(lines)
        post_process_quote_items(lines)
        self.assertEqual(lines, snapshot)


@pytest.mark.parametrize(
    "lines",
    [
        [
            make_line(LineType.PIECE, "Plaquettes de frein avant", 1, 45),
            make_line(LineType.PIECE, "Plaquettes frein AV", 1, 45),
            labor("Freinage — Remplacement", 1.0),
            labor("Purge liquide de frein", 0.25),
            labor("Contrôle niveaux", 0.25, 0, is_included=True),
            make_line(LineType.FORFAIT, "Consommables atelier", 1, 8),
        ],
        [
            make_line(LineType.PIECE, "Huile moteur 5W30 — 5L", 1, 38),
            make_line(LineType.PIECE, "Filtre à huile", 1, 12),
            labor("Vidange", 0.5),
            make_line(LineType.PIECE, "Option recommandée —", 1, 15, is_option=True),
        ],
        [
            make_line(LineType.PIECE, "Pneus Michelin 205/55 R16", 2, 85),
            labor("Montage pneus", 0.5),
            labor("Géométrie", 0.6),
        ],
    ],
)
def test_total_is_preserved_or_input_returned(lines):
    report = post_process_with_report(lines)

    assert compute_total(report.lines) == pytest.approx(compute_total(lines), abs=0.01)
    if report.status is not PostProcessStatus.PROCESSED:
        assert report.lines == lines
    assert all(line.description.strip() for line in report.lines)
    for line in report.lines:
        assert not PLACEHOLDER_RE.match(line.description.strip())
        if line.is_included:
            assert line.unit_price_ht == 0
        elif line.is_labor:
            assert line.quantity >= 0.25
            assert line.quantity * 20 == pytest.approx(round(line.quantity * 20))


@pytest.mark.parametrize(
    "lines",
    [
        [
            labor("Contrôle niveaux", 0.25, 0, is_included=True),
            labor("Contrôle pression pneus", 0.25, 0, is_included=True),
            labor("Essai routier", 0.25, 0, is_included=True),
        ],
        [
            make_line(LineType.PIECE, "Plaquettes de frein avant", 1, 45),
            labor("Remplacement plaquettes de frein avant", 1.0),
            labor("Contrôle niveaux", 0.25, 0, is_included=True),
            labor("Essai routier", 0.25, 0, is_included=True),
        ],
        [
            make_line(LineType.PIECE, "Plaquettes de frein avant", 1, 45),
            labor("Remplacement plaquettes de frein avant", 1.0),
            make_line(LineType.PIECE, "Nettoyant", 1, 12, is_option=True),
        ],
    ],
)
def test_second_pass_changes_nothing(lines):
    first = post_process_quote_items(lines)
    assert post_process_quote_items(first) == first
