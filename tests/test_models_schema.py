import unittest

import pytest

from domain.json_utils import as_lines_payload, safe_json_parse
from domain.models import LineType, LineUnit, QuoteLine, compute_total, make_line
from domain.schema import (
    QuoteLinesValidationError,
    collect_errors,
    validate_lines,
    validate_response_payload,
)


def valid_line(**overrides):
    data = {
        "type": "main_oeuvre",
        "description": "Vidange moteur",
        "quantity": 0.5,
        "unit": "heure",
        "unit_price_ht": 60,
        "isOption": False,
        "isIncluded": False,
    }
    data.update(overrides)
    return data


class QuoteLineTestCase(unittest.TestCase):
    def test_from_dict_accepts_both_flag_spellings(self) -> None:
        camel = QuoteLine.from_dict(valid_line(isIncluded=True, unit_price_ht=0))
        snake = QuoteLine.from_dict(
            {"type": "piece", "description": "Joint", "quantity": "2", "unit_price_ht": "3,5", "is_option": True}
        )

        self.assertTrue(camel.is_included)
        self.assertEqual(snake.unit, LineUnit.UNITE)
        self.assertEqual(snake.quantity, 2.0)
        self.assertEqual(snake.unit_price_ht, 3.5)
        self.assertTrue(snake.is_option)

    def test_from_dict_rejects_bad_values(self) -> None:
        for data in (
            valid_line(type="gratuit"),
            valid_line(unit="minute"),
            valid_line(quantity="beaucoup"),
            valid_line(unit_price_ht=True),
            "pas un dict",
        ):
            with self.subTest(data=data):
                with self.assertRaises(ValueError):
                    QuoteLine.from_dict(data)

    def test_to_dict_round_trip_keys(self) -> None:
        line = make_line(LineType.PIECE, "Filtre à huile", 1, 12, is_option=True)
        self.assertEqual(
            line.to_dict(),
            {
                "type": "piece",
                "description": "Filtre à huile",
                "quantity": 1,
                "unit": "unite",
                "unit_price_ht": 12,
                "isOption": True,
                "isIncluded": False,
            },
        )

    def test_with_changes_returns_new_instance(self) -> None:
        line = make_line(LineType.MAIN_OEUVRE, "Vidange moteur", 0.5, 60)
        changed = line.with_changes(quantity=0.75)
        self.assertEqual(line.quantity, 0.5)
        self.assertEqual(changed.line_total, 45)
        self.assertEqual(compute_total([line, changed]), 75)


class SchemaTestCase(unittest.TestCase):
    def test_valid_payload(self) -> None:
        lines = validate_response_payload({"lines": [valid_line()]})
        self.assertEqual(lines[0].type, LineType.MAIN_OEUVRE)

    def test_contract_violations(self) -> None:
        cases = {
            "labor in units": valid_line(unit="unite"),
            "piece in hours": valid_line(type="piece"),
            "included but priced": valid_line(isIncluded=True),
            "zero quantity": valid_line(quantity=0),
            "negative price": valid_line(unit_price_ht=-1),
            "blank description": valid_line(description="   "),
        }
        for name, line in cases.items():
            with self.subTest(name):
                self.assertTrue(collect_errors({"lines": [line]}))
                with self.assertRaises(QuoteLinesValidationError):
                    validate_response_payload({"lines": [line]})

    def test_empty_lines_rejected(self) -> None:
        self.assertTrue(collect_errors({"lines": []}))
        self.assertTrue(collect_errors({"items": [valid_line()]}))

    def test_validate_lines_never_raises(self) -> None:
        good = make_line(LineType.MAIN_OEUVRE, "Vidange moteur", 0.5, 60)
        bad = make_line(LineType.PIECE, "Joint", 0, 2)
        self.assertTrue(validate_lines([good]))
        self.assertFalse(validate_lines([good, bad]))


def test_safe_json_parse_variants():
    assert safe_json_parse('{"lines": []}') == {"lines": []}
    assert safe_json_parse('```json\n{"lines": [1]}\n```') == {"lines": [1]}
    assert safe_json_parse('Voici le devis : {"lines": [2]} Bonne journée') == {"lines": [2]}
    assert safe_json_parse("[1, 2]") == [1, 2]


def test_safe_json_parse_rejects_garbage():
    with pytest.raises(ValueError):
        safe_json_parse("pas du json")
    with pytest.raises(ValueError):
        safe_json_parse("   ")


def test_as_lines_payload():
    assert as_lines_payload([{"a": 1}]) == {"lines": [{"a": 1}]}
    assert as_lines_payload({"lines": []}) == {"lines": []}
    with pytest.raises(ValueError):
        as_lines_payload("texte")
