import unittest
from decimal import Decimal

from licitasis.errors import ValidationError
from licitasis.licitacoes.validators import (
    FormReader,
    format_cpf_cnpj,
    format_telefone,
    normalize_date,
    parse_bool,
    parse_number,
    read_item,
)
from licitasis.ui_strings import field_message


class ParsersTest(unittest.TestCase):
    def test_parse_number_accepts_brazilian_format(self) -> None:
        self.assertEqual(parse_number("1.234,56"), Decimal("1234.56"))
        self.assertEqual(parse_number("1,234.56"), Decimal("1234.56"))
        self.assertEqual(parse_number("12,5"), Decimal("12.5"))
        self.assertEqual(parse_number(3), Decimal("3"))
        self.assertIsNone(parse_number("abc"))
        self.assertIsNone(parse_number("NaN"))
        self.assertIsNone(parse_number(True))

    def test_normalize_date_cuts_iso_datetime(self) -> None:
        self.assertEqual(normalize_date("2026-05-10T13:00:00Z"), "2026-05-10")
        self.assertIsNone(normalize_date(""))
        with self.assertRaises(ValueError):
            normalize_date("10/05/2026")

    def test_cpf_cnpj_mask(self) -> None:
        self.assertEqual(format_cpf_cnpj("12345678901"), "123.456.789-01")
        self.assertEqual(format_cpf_cnpj("12.345.678/0001-90"), "12.345.678/0001-90")
        self.assertIsNone(format_cpf_cnpj("123"))

    def test_telefone_mask(self) -> None:
        self.assertEqual(format_telefone("11987654321"), "(11) 98765-4321")
        self.assertEqual(format_telefone("1134567890"), "(11) 3456-7890")
        self.assertIsNone(format_telefone(""))

    def test_parse_bool(self) -> None:
        for value in ("1", "true", "Sim", True):
            self.assertTrue(parse_bool(value))
        for value in ("0", "", None, "nao"):
            self.assertFalse(parse_bool(value))


class FormReaderTest(unittest.TestCase):
    def test_collects_one_message_per_field(self) -> None:
        form = FormReader({"quantidade": "-1", "data": "ontem", "tipo": "x"})
        form.text("descricao", required=True)
        form.number("quantidade", positive=True)
        form.date("data")
        form.choice("tipo", ["ITEM", "GRUPO"])

        self.assertEqual(form.errors["descricao"], field_message("required"))
        self.assertEqual(form.errors["quantidade"], field_message("must_be_positive"))
        self.assertEqual(form.errors["data"], field_message("invalid_date"))
        self.assertEqual(form.errors["tipo"], field_message("invalid_option"))

        with self.assertRaises(ValidationError) as ctx:
            form.raise_if_errors()
        self.assertEqual(ctx.exception.http_status, 400)
        self.assertEqual(set(ctx.exception.payload["fields"]), {"descricao", "quantidade", "data", "tipo"})

    def test_partial_mode_skips_missing_required_fields(self) -> None:
        form = FormReader({"numero_pregao": "10/2026"}, partial=True)
        self.assertIsNone(form.text("orgao", required=True))
        self.assertEqual(form.text("numero_pregao", required=True), "10/2026")
        self.assertEqual(form.errors, {})

    def test_choice_normalizes_case(self) -> None:
        form = FormReader({"tipo": "grupo"})
        self.assertEqual(form.choice("tipo", ["ITEM", "GRUPO"]), "GRUPO")

    def test_percent_is_bounded(self) -> None:
        form = FormReader({"imposto": "120"})
        form.percent("imposto")
        self.assertEqual(form.errors["imposto"], field_message("invalid_percent"))

    def test_email_is_lowercased_and_checked(self) -> None:
        form = FormReader({"email": "Joao@Exemplo.COM", "outro": "sem-arroba"})
        self.assertEqual(form.email("email"), "joao@exemplo.com")
        form.email("outro")
        self.assertIn("outro", form.errors)


class ReadItemTest(unittest.TestCase):
    def test_prefixed_errors_for_line(self) -> None:
        item, errors = read_item({"descricao": "Caneta", "quantidade": "0"}, prefix="itens[2].")
        self.assertEqual(item["unidade_medida"], "UN")
        self.assertIn("itens[2].quantidade", errors)
        self.assertIn("itens[2].preco_unitario", errors)
        self.assertNotIn("itens[2].descricao", errors)

    def test_valid_line(self) -> None:
        item, errors = read_item({"descricao": "Papel A4", "quantidade": "10", "preco_unitario": "25,90"})
        self.assertEqual(errors, {})
        self.assertEqual(item["preco_unitario"], Decimal("25.90"))


if __name__ == "__main__":
    unittest.main()
