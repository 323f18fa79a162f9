from __future__ import annotations

import json
import logging
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request
from typing import Dict

from flask import current_app

from licitasis.observability import observe_uasg_lookup


LOGGER = logging.getLogger(__name__)

UASG_ENDPOINT = "/modulo-uasg/1_consultarUasg"
MIN_UASG_LENGTH = 3

_FIELD_MAP = {
    "nome_orgao": "nomeUasg",
    "cnpj_cpf_orgao": "cnpjCpfOrgao",
    "cnpj_cpf_uasg": "cnpjCpfUasg",
    "sigla_uf": "siglaUf",
    "codigo_municipio": "codigoMunicipioIbge",
    "nome_municipio_ibge": "nomeMunicipioIbge",
}


class UasgLookupError(RuntimeError):
    pass


def normalize_uasg(codigo: object) -> str:
    return str(codigo or "").strip()


def fetch_uasg(codigo: object) -> Dict[str, object] | None:
    """Looks up a procuring unit on the public procurement API.

    Returns the organisation fields mapped to licitacao columns, or ``None``
    when the API knows no unit with that code.
    """
    uasg = normalize_uasg(codigo)
    base_url = str(_get_config("UASG_API_BASE_URL", "https://dadosabertos.compras.gov.br")).rstrip("/")
    query = urllib.parse.urlencode({"codigoUasg": uasg, "pagina": 1})
    url = f"{base_url}{UASG_ENDPOINT}?{query}"

    try:
        payload = _request_json(url)
    except UasgLookupError:
        observe_uasg_lookup("error")
        raise

    record = _first_record(payload)
    if record is None:
        observe_uasg_lookup("not_found")
        return None

    observe_uasg_lookup("found")
    mapped: Dict[str, object] = {"uasg": uasg}
    for column, source_key in _FIELD_MAP.items():
        value = record.get(source_key)
        mapped[column] = str(value).strip() if value not in (None, "") else None
    mapped["raw"] = record
    return mapped


def _first_record(payload: object) -> dict | None:
    if isinstance(payload, dict):
        records = payload.get("resultado") or payload.get("data") or []
    elif isinstance(payload, list):
        records = payload
    else:
        records = []
    for record in records:
        if isinstance(record, dict):
            return record
    return None


def _request_json(url: str) -> object:
    timeout = _int_config("UASG_TIMEOUT_SECONDS", 10)
    request = urllib.request.Request(url, headers={"Accept": "application/json"}, method="GET")

    context = None
    if not _bool_config("UASG_VERIFY_SSL", True):
        context = ssl._create_unverified_context()

    try:
        with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
            body = response.read().decode("utf-8")
            if not body:
                return {}
            return json.loads(body)
    except urllib.error.HTTPError as exc:  # noqa: PERF203
        error_body = exc.read().decode("utf-8") if exc.fp else ""
        LOGGER.warning("uasg_lookup_http_error", extra={"http_status": exc.code, "url": url})
        raise UasgLookupError(f"UASG HTTP {exc.code}: {error_body[:200]}") from exc
    except urllib.error.URLError as exc:
        LOGGER.warning("uasg_lookup_connection_error", extra={"reason": str(exc.reason), "url": url})
        raise UasgLookupError(f"Erro de conexao UASG: {exc.reason}") from exc
    except TimeoutError as exc:
        raise UasgLookupError("Tempo esgotado na consulta de UASG.") from exc
    except json.JSONDecodeError as exc:
        raise UasgLookupError("API de UASG retornou JSON invalido.") from exc


def _get_config(key: str, default: object | None = None) -> object | None:
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return os.environ.get(key, default)


def _int_config(key: str, default: int) -> int:
    value = _get_config(key, default)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _bool_config(key: str, default: bool) -> bool:
    value = _get_config(key, default)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
