import unittest

from domain.models import LineType, make_line
from domain.quote_lines import (
    apply_fallback_to_truncated,
    detect_work_family,
    drop_invalid_lines,
    fallback_description,
    fix_truncated_descriptions,
    is_truncated,
    reformulate_description,
)
from domain.quote_lines.truncation import (
    BRAKE_CLEANER_LABEL,
    CONSUMABLES_LABEL,
    OIL_CHANGE_WITH_FILTER_LABEL,
    OPTION_GENERIC_LABEL,
)


class TruncationDetectionTestCase(unittest.TestCase):
    def test_truncated_endings(self) -> None:
        self.assertTrue(is_truncated("Remplacement plaquettes ("))
        self.assertTrue(is_truncated("Nettoyant circuit de frein..."))
        self.assertTrue(is_truncated("Vidange moteur +"))
        self.assertTrue(is_truncated(""))

    def test_fragment_after_em_dash(self) -> None:
        self.assertTrue(is_truncated("Option recommandée — Ne"))

    def test_short_dangling_word(self) -> None:
        self.assertTrue(is_truncated("Contrôle niveaux de"))
        self.assertTrue(is_truncated("frein"))

    def test_trade_abbreviations_are_complete(self) -> None:
        for label in ("Filtre GO", "Recharge clim AC", "Forfait main-d'œuvre HT"):
            with self.subTest(label=label):
                self.assertFalse(is_truncated(label))
        line = make_line(LineType.PIECE, "Filtre GO", 1, 18)
        self.assertIs(fix_truncated_descriptions([line])[0], line)

    def test_cut_stem(self) -> None:
        self.assertTrue(is_truncated("Vidange moteur + remplac"))

    def test_complete_labels(self) -> None:
        for label in (
            "Plaquettes de frein avant",
            "Huile moteur 5W30 — 4L",
            "Filtre à huile",
            "Pneus 205/55 R16",
            "Batterie 12V",
        ):
            with self.subTest(label=label):
                self.assertFalse(is_truncated(label))


class ReformulationTestCase(unittest.TestCase):
    def test_brake_pads_with_open_parenthesis(self) -> None:
        self.assertEqual(
            reformulate_description("Remplacement plaquettes (", LineType.MAIN_OEUVRE),
            "Remplacement plaquettes de frein avant",
        )

    def test_known_phrases(self) -> None:
        self.assertEqual(reformulate_description("Nettoyant frein (", "piece"), BRAKE_CLEANER_LABEL)
        self.assertEqual(reformulate_description("Option recommandée — N", "piece"), OPTION_GENERIC_LABEL)
        self.assertEqual(
            reformulate_description("Vidange moteur + remplac", "main_oeuvre"),
            OIL_CHANGE_WITH_FILTER_LABEL,
        )
        self.assertEqual(reformulate_description("Consommables atelier (", "forfait"), CONSUMABLES_LABEL)

    def test_oil_piece_gets_default_grade_and_volume(self) -> None:
        self.assertEqual(
            reformulate_description("Huile moteur ...", LineType.PIECE),
            "Huile moteur 5W30 — 4L",
        )

    def test_brake_piece_position_defaults_to_front(self) -> None:
        self.assertEqual(
            reformulate_description("Plaquettes frein AV", LineType.PIECE),
            "Plaquettes de frein avant",
        )

    def test_trailing_separator_removed(self) -> None:
        self.assertEqual(reformulate_description("Forfait xyz -", LineType.FORFAIT), "Forfait xyz")

    def test_fallback_descriptions(self) -> None:
        self.assertEqual(
            fallback_description("main_oeuvre", "Remplacement courroie"), "Remplacement pièce détachée"
        )
        self.assertEqual(fallback_description(LineType.FORFAIT, "Consommables"), CONSUMABLES_LABEL)
        self.assertEqual(fallback_description("piece", "xyz"), "Pièce détachée")
        self.assertEqual(fallback_description("inconnu", "xyz"), "Ligne de devis")


class TruncationStagesTestCase(unittest.TestCase):
    def test_fix_truncated_drops_placeholders_and_rewrites(self) -> None:
        lines = [
            make_line(LineType.PIECE, "2", 1, 10),
            make_line(LineType.MAIN_OEUVRE, "1.5h", 1.5, 60),
            make_line(LineType.PIECE, "Plaquettes de frein avant", 1, 45),
            make_line(LineType.MAIN_OEUVRE, "Remplacement plaquettes (", 1, 60),
        ]

        result = fix_truncated_descriptions(lines)

        self.assertEqual(
            [l.description for l in result],
            ["Plaquettes de frein avant", "Remplacement plaquettes de frein avant"],
        )
        self.assertIs(result[0], lines[2])

    def test_drop_invalid_lines(self) -> None:
        lines = [make_line(LineType.PIECE, "  ", 1, 10), make_line(LineType.PIECE, "Joint", 1, 3)]
        self.assertEqual([l.description for l in drop_invalid_lines(lines)], ["Joint"])

    def test_final_fallback(self) -> None:
        lines = [make_line(LineType.MAIN_OEUVRE, "Vidange moteur + remplac", 0.75, 60)]
        result = apply_fallback_to_truncated(lines)
        self.assertEqual(result[0].description, OIL_CHANGE_WITH_FILTER_LABEL)
        self.assertEqual(result[0].quantity, 0.75)


def test_work_families():
    assert detect_work_family("Remplacement plaquettes de frein avant") == "freinage"
    assert detect_work_family("Vidange moteur") == "vidange"
    assert detect_work_family("Montage pneus") == "pneus"
    assert detect_work_family("Recharge climatisation") == "climatisation"
    assert detect_work_family("Contrôle niveaux") is None
