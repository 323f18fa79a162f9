from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict


TIPOS_DOCUMENTO = (
    "IDENTIDADE_SOCIOS",
    "CERTIDAO_CASAMENTO",
    "CARTAO_CNPJ",
    "CCMEI_CONTRATO_SOCIAL",
    "INSCRICAO_ESTADUAL",
    "INSCRICAO_MUNICIPAL",
    "CERTIDAO_NEGATIVA_DEBITOS_ESTADUAIS",
    "CERTIDAO_NEGATIVA_DEBITOS_MUNICIPAIS",
    "CERTIDAO_IMPROBIDADE_INELEGIBILIDADE",
    "CERTIDAO_NEGATIVA_DEBITOS_FEDERAL",
    "CERTIDAO_NEGATIVA_DEBITOS_TRABALHISTAS",
    "CERTIDAO_NEGATIVA_DEBITO_FGTS",
    "CERTIDAO_FALENCIA_CONCORDATA",
    "BALANCO_ABERTURA",
    "BALANCO_PATRIMONIAL",
    "ALVARA",
    "ATESTADO_CAPACIDADE",
    "SICAF",
    "REGISTRO_CADASTRO_ORGAO",
    "DRE",
    "TERMO_AUTENTICACAO",
    "NAO_INSCRICAO_CONTRIBUINTE_ESTADUAL",
    "OUTRO",
)

TIPOS_SEM_VALIDADE = frozenset(
    {
        "IDENTIDADE_SOCIOS",
        "CERTIDAO_CASAMENTO",
        "CARTAO_CNPJ",
        "CCMEI_CONTRATO_SOCIAL",
        "INSCRICAO_ESTADUAL",
        "INSCRICAO_MUNICIPAL",
        "REGISTRO_CADASTRO_ORGAO",
        "NAO_INSCRICAO_CONTRIBUINTE_ESTADUAL",
    }
)

TIPOS_BALANCO = frozenset({"BALANCO", "BALANCO_ABERTURA", "BALANCO_PATRIMONIAL"})

SICAF_VALIDADE_DIAS = 45
STATUS_DOCUMENTO = ("ATIVO", "VENCENDO", "EXPIRADO")
PASTA_ATESTADOS = "ATESTADOS_CAPACIDADE"


def _as_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def tipo_tem_validade(tipo_documento: str | None) -> bool:
    return str(tipo_documento or "") not in TIPOS_SEM_VALIDADE


def validade_por_regra(tipo_documento: str | None, data_emissao: Any) -> date | None:
    """Validity implied by the document type, or None when the type has no rule."""
    emissao = _as_date(data_emissao)
    if emissao is None:
        return None
    tipo = str(tipo_documento or "")
    if tipo == "SICAF":
        return emissao + timedelta(days=SICAF_VALIDADE_DIAS)
    if tipo in TIPOS_BALANCO:
        return date(emissao.year, 12, 31)
    return None


def resolve_validade(tipo_documento: str | None, data_emissao: Any, data_validade: Any) -> str | None:
    if not tipo_tem_validade(tipo_documento):
        return None
    by_rule = validade_por_regra(tipo_documento, data_emissao)
    if by_rule is not None:
        return by_rule.isoformat()
    informed = _as_date(data_validade)
    return informed.isoformat() if informed else None


def status_documento(data_validade: Any, *, warning_days: int = 5, today: date | None = None) -> str:
    validade = _as_date(data_validade)
    if validade is None:
        return "ATIVO"
    today = today or date.today()
    if validade < today:
        return "EXPIRADO"
    if (validade - today).days <= max(0, int(warning_days)):
        return "VENCENDO"
    return "ATIVO"


def dias_para_vencer(data_validade: Any, *, today: date | None = None) -> int | None:
    validade = _as_date(data_validade)
    if validade is None:
        return None
    return (validade - (today or date.today())).days


def pasta_documento(tipo_documento: str | None) -> str:
    tipo = str(tipo_documento or "OUTRO")
    if tipo == "ATESTADO_CAPACIDADE":
        return PASTA_ATESTADOS
    return tipo


def recalcular_documento(documento: Dict[str, Any], *, warning_days: int, today: date | None = None) -> Dict[str, Any]:
    """Recomputes validity and status; returns only the fields that changed."""
    validade = resolve_validade(
        documento.get("tipo_documento"),
        documento.get("data_emissao"),
        documento.get("data_validade"),
    )
    status = status_documento(validade, warning_days=warning_days, today=today)
    changes: Dict[str, Any] = {}
    current_validade = _as_date(documento.get("data_validade"))
    if (current_validade.isoformat() if current_validade else None) != validade:
        changes["data_validade"] = validade
    if documento.get("status") != status:
        changes["status"] = status
    return changes
