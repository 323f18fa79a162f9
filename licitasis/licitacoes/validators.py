from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping

from licitasis.errors import field_errors
from licitasis.ui_strings import field_message


_DIGITS = re.compile(r"\D+")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_number(value: Any) -> Decimal | None:
    """Accepts numbers and pt-BR text such as ``1.234,56``."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    text = str(value).strip()
    if not text:
        return None
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on", "sim"}


def normalize_date(value: Any) -> str | None:
    """Returns ``YYYY-MM-DD``; ISO datetimes are cut at the ``T``."""
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value.isoformat()[:10]
    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    text = text[:10]
    date.fromisoformat(text)
    return text


def only_digits(value: Any) -> str:
    return _DIGITS.sub("", str(value or ""))


def format_cpf_cnpj(value: Any) -> str | None:
    digits = only_digits(value)
    if len(digits) == 11:
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
    if len(digits) == 14:
        return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"
    return None


def format_telefone(value: Any) -> str | None:
    digits = only_digits(value)
    if not digits:
        return None
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return str(value).strip()


class FormReader:
    """Reads a JSON/form payload and collects per-field error messages."""

    def __init__(self, payload: Mapping[str, Any] | None, *, partial: bool = False) -> None:
        self.payload = dict(payload or {})
        self.partial = partial
        self.errors: Dict[str, str] = {}

    def has(self, field: str) -> bool:
        return field in self.payload

    def skip(self, field: str) -> bool:
        return self.partial and field not in self.payload

    def _error(self, field: str, key: str) -> None:
        self.errors.setdefault(field, field_message(key))

    def text(self, field: str, *, required: bool = False, default: str | None = None) -> str | None:
        raw = self.payload.get(field)
        value = str(raw).strip() if raw is not None else ""
        if not value:
            if required and not self.skip(field):
                self._error(field, "required")
            return default
        return value

    def number(
        self,
        field: str,
        *,
        required: bool = False,
        positive: bool = False,
        non_negative: bool = False,
        default: Decimal | None = None,
    ) -> Decimal | None:
        raw = self.payload.get(field)
        if raw in (None, ""):
            if required and not self.skip(field):
                self._error(field, "required")
            return default
        value = parse_number(raw)
        if value is None:
            self._error(field, "invalid_number")
            return default
        if positive and value <= 0:
            self._error(field, "must_be_positive")
        elif non_negative and value < 0:
            self._error(field, "must_not_be_negative")
        return value

    def percent(self, field: str) -> Decimal | None:
        value = self.number(field, non_negative=True)
        if value is not None and value > 100:
            self._error(field, "invalid_percent")
        return value

    def integer(self, field: str, *, required: bool = False, non_negative: bool = False) -> int | None:
        raw = self.payload.get(field)
        if raw in (None, ""):
            if required and not self.skip(field):
                self._error(field, "required")
            return None
        value = parse_optional_int(raw)
        if value is None:
            self._error(field, "invalid_number")
            return None
        if non_negative and value < 0:
            self._error(field, "must_not_be_negative")
        return value

    def date(self, field: str, *, required: bool = False) -> str | None:
        raw = self.payload.get(field)
        if raw in (None, ""):
            if required and not self.skip(field):
                self._error(field, "required")
            return None
        try:
            return normalize_date(raw)
        except ValueError:
            self._error(field, "invalid_date")
            return None

    def choice(self, field: str, options: Iterable[str], *, default: str | None = None) -> str | None:
        value = self.text(field)
        if value is None:
            return default
        allowed = list(options)
        if value not in allowed:
            upper = value.upper()
            if upper in allowed:
                return upper
            self._error(field, "invalid_option")
            return default
        return value

    def boolean(self, field: str, default: bool = False) -> bool:
        if field not in self.payload:
            return default
        return parse_bool(self.payload.get(field))

    def email(self, field: str, *, required: bool = False) -> str | None:
        value = self.text(field, required=required)
        if value is None:
            return None
        value = value.lower()
        if not _EMAIL.match(value):
            self._error(field, "invalid_email")
        return value

    def cpf_cnpj(self, field: str, *, required: bool = False) -> str | None:
        value = self.text(field, required=required)
        if value is None:
            return None
        formatted = format_cpf_cnpj(value)
        if formatted is None:
            self._error(field, "invalid_cpf_cnpj")
        return formatted

    def add_error(self, field: str, key: str) -> None:
        self._error(field, key)

    def raise_if_errors(self) -> None:
        if self.errors:
            raise field_errors(self.errors)


def read_item(payload: Mapping[str, Any], *, prefix: str = "") -> tuple[Dict[str, Any], Dict[str, str]]:
    """Validates one bid line; returns the cleaned item and its field errors."""
    form = FormReader(payload)
    item = {
        "codigo_item": form.text("codigo_item"),
        "descricao": form.text("descricao", required=True),
        "unidade_medida": form.text("unidade_medida", default="UN"),
        "quantidade": form.number("quantidade", required=True, positive=True),
        "preco_unitario": form.number("preco_unitario", required=True, positive=True),
        "custo_unitario": form.number("custo_unitario", non_negative=True),
        "marca_modelo": form.text("marca_modelo"),
        "especificacoes_tecnicas": form.text("especificacoes_tecnicas"),
        "observacoes": form.text("observacoes"),
        "posicao": form.integer("posicao", non_negative=True),
    }
    errors = {f"{prefix}{field}": message for field, message in form.errors.items()}
    return item, errors
