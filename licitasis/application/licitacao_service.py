from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Tuple

from licitasis.domain.contracts import LicitacaoComItensInput, ServiceOutput
from licitasis.errors import (
    ConflictError,
    NotFoundError,
    PermissionError as AppPermissionError,
    UserActionError,
    field_errors,
)
from licitasis.infrastructure.repositories.licitacoes import (
    ClienteRepository,
    ContratoRepository,
    GrupoLicitacaoRepository,
    ItemLicitacaoRepository,
    LicitacaoRepository,
    PedidoRepository,
)
from licitasis.licitacoes.calculos import (
    calcular_item_totais,
    derive_licitacao_fields,
    next_codigo_item,
    tax_rate_for,
    to_decimal,
    totais_por_itens,
)
from licitasis.licitacoes.flow_policy import flow_meta
from licitasis.licitacoes.validators import FormReader, read_item
from licitasis.pagination import paginate, page_payload
from licitasis.uasg_client import MIN_UASG_LENGTH, UasgLookupError, fetch_uasg, normalize_uasg
from licitasis.ui_strings import TIPO_CLASSIFICACAO_OPTIONS, TIPO_LICITACAO_OPTIONS, status_keys_for_group


LOGGER = logging.getLogger(__name__)

LICITACAO_STATUSES = status_keys_for_group("licitacao")
DEFAULT_PORTAL = "COMPRAS NET"
ORGAO_FIELDS = (
    "nome_orgao",
    "cnpj_cpf_orgao",
    "cnpj_cpf_uasg",
    "sigla_uf",
    "codigo_municipio",
    "nome_municipio_ibge",
)


def read_licitacao_header(payload: Mapping[str, Any], *, partial: bool = False) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Validates the bid header; derived money fields are never read from the client."""
    form = FormReader(payload, partial=partial)
    values = [
        ("cliente_id", form.integer("cliente_id", required=True)),
        ("descricao", form.text("descricao", required=True)),
        ("uasg", form.text("uasg", required=True)),
        ("tipo_licitacao", form.choice("tipo_licitacao", TIPO_LICITACAO_OPTIONS)),
        ("numero", form.text("numero", required=True)),
        ("posicao", form.text("posicao")),
        ("data_licitacao", form.date("data_licitacao", required=True)),
        ("custo", form.number("custo", non_negative=True, default=0)),
        ("preco_inicial", form.number("preco_inicial", non_negative=True, default=0)),
        ("preco_final", form.number("preco_final", non_negative=True, default=0)),
        ("portal", form.text("portal", default=DEFAULT_PORTAL)),
        ("status", form.choice("status", LICITACAO_STATUSES, default="AGUARDANDO")),
        ("observacoes", form.text("observacoes")),
        ("tipo_classificacao", form.choice("tipo_classificacao", TIPO_CLASSIFICACAO_OPTIONS, default="ITEM")),
        ("api_id", form.text("api_id")),
    ]
    values.extend((field, form.text(field)) for field in ORGAO_FIELDS)
    fields = {name: value for name, value in values if not form.skip(name)}
    return fields, dict(form.errors)


def _with_flow(licitacao: dict) -> dict:
    licitacao["flow"] = flow_meta("licitacao", licitacao.get("status"))
    return licitacao


class LicitacaoService:
    # Scope is the caller's cliente id, or None for admins.

    def _load(self, db, licitacao_id: int, *, scope: int | None) -> dict:
        row = LicitacaoRepository(cliente_id=scope).get_by_id(db, licitacao_id)
        if not row:
            raise NotFoundError(code="licitacao_not_found", message_key="licitacao_not_found")
        return row

    def _load_cliente(self, db, cliente_id: int, *, scope: int | None) -> dict:
        if scope is not None and int(cliente_id) != int(scope):
            raise AppPermissionError(code="permission_denied", message_key="permission_denied")
        cliente = ClienteRepository().get_by_id(db, cliente_id)
        if not cliente:
            raise NotFoundError(
                code="cliente_not_found",
                message_key="cliente_not_found",
                payload={"fields": {"cliente_id": "Cliente nao encontrado."}},
            )
        return cliente

    def _tax_rate(self, cliente: dict, default_rate: float) -> float:
        return tax_rate_for(cliente.get("imposto_cliente"), default_rate)

    def list_licitacoes(
        self,
        db,
        *,
        scope: int | None,
        filters: Dict[str, Any],
        page: Any = None,
        limit: Any = None,
    ) -> Any:
        repository = LicitacaoRepository(cliente_id=scope)
        if page in (None, ""):
            return repository.list(db, filters)
        meta = paginate(repository.count(db, filters), page, limit or 25)
        rows = repository.list(db, filters, limit=meta["limit"], offset=meta["offset"])
        return page_payload(rows, meta)

    def get_licitacao(self, db, licitacao_id: int, *, scope: int | None) -> dict:
        licitacao = self._load(db, licitacao_id, scope=scope)
        licitacao["grupos"] = GrupoLicitacaoRepository().list_by_licitacao(db, licitacao_id)
        licitacao["itens"] = ItemLicitacaoRepository().list_by_licitacao(db, licitacao_id)
        return _with_flow(licitacao)

    def create_licitacao(
        self,
        db,
        payload: Mapping[str, Any],
        *,
        scope: int | None,
        user_id: int | None,
        default_rate: float,
    ) -> ServiceOutput:
        fields, errors = read_licitacao_header(payload)
        if errors:
            raise field_errors(errors)
        cliente = self._load_cliente(db, fields["cliente_id"], scope=scope)
        fields.update(derive_licitacao_fields(fields["custo"], fields["preco_final"], self._tax_rate(cliente, default_rate)))

        repository = LicitacaoRepository()
        fields["user_criador_id"] = user_id
        fields["indice"] = repository.next_indice(db, fields["cliente_id"])
        licitacao_id = repository.create(db, fields)
        return ServiceOutput(_with_flow(repository.get_by_id(db, licitacao_id)), 201)

    def update_licitacao(
        self,
        db,
        licitacao_id: int,
        payload: Mapping[str, Any],
        *,
        scope: int | None,
        default_rate: float,
    ) -> ServiceOutput:
        current = self._load(db, licitacao_id, scope=scope)
        fields, errors = read_licitacao_header(payload, partial=True)
        if errors:
            raise field_errors(errors)

        cliente_id = fields.get("cliente_id", current["cliente_id"])
        cliente = self._load_cliente(db, cliente_id, scope=scope)
        merged = {**current, **fields}
        fields.update(derive_licitacao_fields(merged["custo"], merged["preco_final"], self._tax_rate(cliente, default_rate)))

        repository = LicitacaoRepository()
        repository.update(db, licitacao_id, fields)
        return ServiceOutput(_with_flow(repository.get_by_id(db, licitacao_id)))

    def delete_licitacao(self, db, licitacao_id: int, *, scope: int | None) -> ServiceOutput:
        self._load(db, licitacao_id, scope=scope)
        repository = LicitacaoRepository()
        dependencies = repository.dependency_counts(db, licitacao_id)
        if dependencies["pedidos"] or dependencies["contratos"]:
            raise ConflictError(
                code="licitacao_has_dependencies",
                message_key="licitacao_has_dependencies",
                payload={"dependencies": dependencies},
            )
        repository.delete(db, licitacao_id)
        return ServiceOutput({"deleted": True, "id": licitacao_id})

    # Itemised bids

    def _read_linhas(self, raw_itens: Any, prefix: str, errors: Dict[str, str]) -> List[Dict[str, Any]]:
        if raw_itens is None:
            return []
        if not isinstance(raw_itens, list):
            errors[prefix] = "Lista invalida."
            return []
        itens: List[Dict[str, Any]] = []
        for index, raw in enumerate(raw_itens):
            if not isinstance(raw, Mapping):
                errors[f"{prefix}[{index}]"] = "Item invalido."
                continue
            item, item_errors = read_item(raw, prefix=f"{prefix}[{index}].")
            item["id"] = raw.get("id")
            errors.update(item_errors)
            itens.append(item)
        return itens

    def _read_com_itens(
        self,
        payload: Mapping[str, Any],
        *,
        partial: bool,
        current_tipo: str | None = None,
    ) -> Tuple[LicitacaoComItensInput, Dict[str, str]]:
        header, errors = read_licitacao_header(payload, partial=partial)
        tipo = str(payload.get("tipo_classificacao") or current_tipo or header.get("tipo_classificacao") or "ITEM").upper()
        if tipo not in TIPO_CLASSIFICACAO_OPTIONS:
            errors["tipo_classificacao"] = "Opcao invalida."
            tipo = "ITEM"
        header["tipo_classificacao"] = tipo

        itens: List[Dict[str, Any]] = []
        grupos: List[Dict[str, Any]] = []
        if tipo == "ITEM":
            informadas = "itens" in payload
            itens = self._read_linhas(payload.get("itens"), "itens", errors)
        else:
            informadas = "grupos" in payload
            raw_grupos = payload.get("grupos")
            if raw_grupos is not None and not isinstance(raw_grupos, list):
                errors["grupos"] = "Lista invalida."
                raw_grupos = []
            for g_index, raw_grupo in enumerate(raw_grupos or []):
                if not isinstance(raw_grupo, Mapping):
                    errors[f"grupos[{g_index}]"] = "Grupo invalido."
                    continue
                form = FormReader(raw_grupo)
                grupo = {
                    "id": raw_grupo.get("id"),
                    "nome": form.text("nome", required=True),
                    "posicao": form.integer("posicao", non_negative=True),
                    "itens": self._read_linhas(raw_grupo.get("itens"), f"grupos[{g_index}].itens", errors),
                }
                errors.update({f"grupos[{g_index}].{field}": message for field, message in form.errors.items()})
                grupos.append(grupo)
        data = LicitacaoComItensInput(
            header=header,
            tipo_classificacao=tipo,
            itens=itens,
            grupos=grupos,
            linhas_informadas=informadas or not partial,
        )
        return data, errors

    def _quantidades_em_uso(self, db, licitacao_id: int) -> Dict[int, Decimal]:
        """Per bid item, the larger of the open ordered and the contracted quantity."""
        em_uso = dict(PedidoRepository().quantidades_solicitadas(db, licitacao_id))
        for item_id, quantidade in ContratoRepository().quantidades_contratadas(db, licitacao_id).items():
            em_uso[item_id] = max(em_uso.get(item_id, Decimal("0")), quantidade)
        return em_uso

    def _check_quantidade(self, item_id: int, quantidade: Any, em_uso: Dict[int, Decimal]) -> None:
        minima = em_uso.get(item_id, Decimal("0"))
        if to_decimal(quantidade) < minima:
            raise ConflictError(
                code="item_quantity_below_used",
                message_key="item_quantity_below_used",
                payload={"item_id": item_id, "quantidade_minima": float(minima)},
            )

    def _store_itens(self, db, licitacao_id: int, data: LicitacaoComItensInput) -> List[Dict[str, Any]]:
        """Upserts groups and items by id; lines missing from the payload are removed.

        Existing lines cannot drop below what open orders or the contract already use.
        """
        item_repository = ItemLicitacaoRepository()
        grupo_repository = GrupoLicitacaoRepository()
        existing_itens = {int(row["id"]): row for row in item_repository.list_by_licitacao(db, licitacao_id)}
        existing_grupos = {int(row["id"]): row for row in grupo_repository.list_by_licitacao(db, licitacao_id)}

        lines: List[Tuple[int | None, Dict[str, Any]]] = []
        kept_grupos: set[int] = set()
        if data.tipo_classificacao == "GRUPO":
            for position, grupo in enumerate(data.grupos, start=1):
                grupo_fields = {"nome": grupo["nome"], "posicao": grupo["posicao"] if grupo["posicao"] is not None else position}
                grupo_id = _as_id(grupo.get("id"))
                if grupo_id in existing_grupos:
                    grupo_repository.update(db, grupo_id, grupo_fields)
                else:
                    grupo_id = grupo_repository.create(db, {"licitacao_id": licitacao_id, **grupo_fields})
                kept_grupos.add(grupo_id)
                lines.extend((grupo_id, item) for item in grupo["itens"])
        else:
            lines.extend((None, item) for item in data.itens)

        incoming_ids = {_as_id(item.get("id")) for _, item in lines} - {None}
        em_uso = self._quantidades_em_uso(db, licitacao_id)
        for _, item in lines:
            item_id = _as_id(item.get("id"))
            if item_id in existing_itens:
                self._check_quantidade(item_id, item["quantidade"], em_uso)
        for item_id in existing_itens:
            if item_id in incoming_ids:
                continue
            if item_repository.is_referenced_by_pedidos(db, item_id):
                raise ConflictError(code="item_in_use", message_key="item_in_use", payload={"item_id": item_id})
            item_repository.delete(db, item_id)

        codes = [row["codigo_item"] for item_id, row in existing_itens.items() if item_id in incoming_ids]
        stored: List[Dict[str, Any]] = []
        for position, (grupo_id, item) in enumerate(lines, start=1):
            item_fields = {key: value for key, value in item.items() if key != "id"}
            item_fields["grupo_id"] = grupo_id
            if item_fields.get("posicao") is None:
                item_fields["posicao"] = position
            item_fields.update(
                calcular_item_totais(item_fields["quantidade"], item_fields["preco_unitario"], item_fields["custo_unitario"])
            )
            item_id = _as_id(item.get("id"))
            if item_id in existing_itens:
                if not item_fields.get("codigo_item"):
                    item_fields["codigo_item"] = existing_itens[item_id]["codigo_item"]
                item_repository.update(db, item_id, item_fields)
            else:
                if not item_fields.get("codigo_item"):
                    item_fields["codigo_item"] = next_codigo_item(codes)
                codes.append(item_fields["codigo_item"])
                item_repository.create(db, {"licitacao_id": licitacao_id, **item_fields})
            stored.append(item_fields)

        for grupo_id in existing_grupos:
            if grupo_id not in kept_grupos:
                grupo_repository.delete(db, grupo_id)
        return stored

    def create_com_itens(
        self,
        db,
        payload: Mapping[str, Any],
        *,
        scope: int | None,
        user_id: int | None,
        default_rate: float,
    ) -> ServiceOutput:
        data, errors = self._read_com_itens(payload, partial=False)
        if errors:
            raise field_errors(errors)
        header = dict(data.header)
        cliente = self._load_cliente(db, header["cliente_id"], scope=scope)

        repository = LicitacaoRepository()
        header["user_criador_id"] = user_id
        header["indice"] = repository.next_indice(db, header["cliente_id"])
        licitacao_id = repository.create(db, header)
        stored = self._store_itens(db, licitacao_id, data)
        repository.update(db, licitacao_id, totais_por_itens(stored, self._tax_rate(cliente, default_rate)))
        return ServiceOutput(self.get_licitacao(db, licitacao_id, scope=None), 201)

    def update_com_itens(
        self,
        db,
        licitacao_id: int,
        payload: Mapping[str, Any],
        *,
        scope: int | None,
        default_rate: float,
    ) -> ServiceOutput:
        current = self._load(db, licitacao_id, scope=scope)
        data, errors = self._read_com_itens(payload, partial=True, current_tipo=current.get("tipo_classificacao"))
        if errors:
            raise field_errors(errors)
        header = dict(data.header)
        cliente = self._load_cliente(db, header.get("cliente_id", current["cliente_id"]), scope=scope)

        repository = LicitacaoRepository()
        if not data.linhas_informadas:
            repository.update(db, licitacao_id, header)
            self.recalcular_totais(db, licitacao_id, default_rate=default_rate)
            return ServiceOutput(self.get_licitacao(db, licitacao_id, scope=None))

        stored = self._store_itens(db, licitacao_id, data)
        header.update(totais_por_itens(stored, self._tax_rate(cliente, default_rate)))
        repository.update(db, licitacao_id, header)
        return ServiceOutput(self.get_licitacao(db, licitacao_id, scope=None))

    # Single items and groups

    def recalcular_totais(self, db, licitacao_id: int, *, default_rate: float) -> None:
        licitacao = LicitacaoRepository().get_by_id(db, licitacao_id)
        itens = ItemLicitacaoRepository().list_by_licitacao(db, licitacao_id)
        rate = tax_rate_for(licitacao.get("cliente_imposto"), default_rate)
        LicitacaoRepository().update(db, licitacao_id, totais_por_itens(itens, rate))

    def list_itens(self, db, licitacao_id: int, *, scope: int | None) -> list[dict]:
        self._load(db, licitacao_id, scope=scope)
        return ItemLicitacaoRepository().list_by_licitacao(db, licitacao_id)

    def _load_item(self, db, item_id: int, *, scope: int | None) -> Tuple[dict, dict]:
        item = ItemLicitacaoRepository().get_by_id(db, item_id)
        if not item:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        licitacao = LicitacaoRepository(cliente_id=scope).get_by_id(db, item["licitacao_id"])
        if not licitacao:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        return item, licitacao

    def _check_grupo(self, db, licitacao_id: int, grupo_id: Any) -> int | None:
        grupo_id = _as_id(grupo_id)
        if grupo_id is None:
            return None
        grupo = GrupoLicitacaoRepository().get_by_id(db, grupo_id)
        if not grupo or int(grupo["licitacao_id"]) != int(licitacao_id):
            raise NotFoundError(code="grupo_not_found", message_key="grupo_not_found")
        return grupo_id

    def create_item(self, db, licitacao_id: int, payload: Mapping[str, Any], *, scope: int | None, default_rate: float) -> ServiceOutput:
        self._load(db, licitacao_id, scope=scope)
        item, errors = read_item(payload)
        if errors:
            raise field_errors(errors)
        repository = ItemLicitacaoRepository()
        item["grupo_id"] = self._check_grupo(db, licitacao_id, payload.get("grupo_id"))
        if not item.get("codigo_item"):
            item["codigo_item"] = next_codigo_item(repository.codes(db, licitacao_id))
        item.update(calcular_item_totais(item["quantidade"], item["preco_unitario"], item["custo_unitario"]))
        item_id = repository.create(db, {"licitacao_id": licitacao_id, **item})
        self.recalcular_totais(db, licitacao_id, default_rate=default_rate)
        return ServiceOutput(repository.get_by_id(db, item_id), 201)

    def update_item(self, db, item_id: int, payload: Mapping[str, Any], *, scope: int | None, default_rate: float) -> ServiceOutput:
        current, licitacao = self._load_item(db, item_id, scope=scope)
        merged = {**current, **dict(payload or {})}
        item, errors = read_item(merged)
        if errors:
            raise field_errors(errors)
        if "grupo_id" in (payload or {}):
            item["grupo_id"] = self._check_grupo(db, licitacao["id"], payload.get("grupo_id"))
        self._check_quantidade(item_id, item["quantidade"], self._quantidades_em_uso(db, licitacao["id"]))
        item["codigo_item"] = item.get("codigo_item") or current["codigo_item"]
        item.update(calcular_item_totais(item["quantidade"], item["preco_unitario"], item["custo_unitario"]))
        repository = ItemLicitacaoRepository()
        repository.update(db, item_id, item)
        self.recalcular_totais(db, licitacao["id"], default_rate=default_rate)
        return ServiceOutput(repository.get_by_id(db, item_id))

    def delete_item(self, db, item_id: int, *, scope: int | None, default_rate: float) -> ServiceOutput:
        _, licitacao = self._load_item(db, item_id, scope=scope)
        repository = ItemLicitacaoRepository()
        if repository.is_referenced_by_pedidos(db, item_id):
            raise ConflictError(code="item_in_use", message_key="item_in_use")
        repository.delete(db, item_id)
        self.recalcular_totais(db, licitacao["id"], default_rate=default_rate)
        return ServiceOutput({"deleted": True, "id": item_id})

    def list_grupos(self, db, licitacao_id: int, *, scope: int | None) -> list[dict]:
        self._load(db, licitacao_id, scope=scope)
        grupos = GrupoLicitacaoRepository().list_by_licitacao(db, licitacao_id)
        itens = ItemLicitacaoRepository().list_by_licitacao(db, licitacao_id)
        for grupo in grupos:
            grupo["itens"] = [item for item in itens if item.get("grupo_id") == grupo["id"]]
        return grupos

    def _read_grupo(self, payload: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
        form = FormReader(payload, partial=partial)
        values = (
            ("nome", form.text("nome", required=True)),
            ("posicao", form.integer("posicao", non_negative=True)),
        )
        form.raise_if_errors()
        return {name: value for name, value in values if not form.skip(name)}

    def create_grupo(self, db, licitacao_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        self._load(db, licitacao_id, scope=scope)
        fields = self._read_grupo(payload, partial=False)
        repository = GrupoLicitacaoRepository()
        if fields.get("posicao") is None:
            fields["posicao"] = len(repository.list_by_licitacao(db, licitacao_id)) + 1
        grupo_id = repository.create(db, {"licitacao_id": licitacao_id, **fields})
        return ServiceOutput(repository.get_by_id(db, grupo_id), 201)

    def _load_grupo(self, db, grupo_id: int, *, scope: int | None) -> dict:
        grupo = GrupoLicitacaoRepository().get_by_id(db, grupo_id)
        if not grupo or not LicitacaoRepository(cliente_id=scope).get_by_id(db, grupo["licitacao_id"]):
            raise NotFoundError(code="grupo_not_found", message_key="grupo_not_found")
        return grupo

    def update_grupo(self, db, grupo_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        self._load_grupo(db, grupo_id, scope=scope)
        repository = GrupoLicitacaoRepository()
        repository.update(db, grupo_id, self._read_grupo(payload, partial=True))
        return ServiceOutput(repository.get_by_id(db, grupo_id))

    def delete_grupo(self, db, grupo_id: int, *, scope: int | None) -> ServiceOutput:
        self._load_grupo(db, grupo_id, scope=scope)
        GrupoLicitacaoRepository().delete(db, grupo_id)
        return ServiceOutput({"deleted": True, "id": grupo_id})

    # Public procurement API

    def buscar_uasg(self, codigo: Any) -> ServiceOutput:
        uasg = normalize_uasg(codigo)
        if len(uasg) < MIN_UASG_LENGTH:
            raise UserActionError(code="uasg_code_too_short", message_key="uasg_code_too_short")
        data = fetch_uasg(uasg)
        if data is None:
            raise NotFoundError(code="uasg_not_found", message_key="uasg_not_found", payload={"uasg": uasg})
        return ServiceOutput({"success": True, "data": {key: value for key, value in data.items() if key != "raw"}})

    def atualizar_api(self, db, licitacao_id: int, *, scope: int | None) -> ServiceOutput:
        licitacao = self._load(db, licitacao_id, scope=scope)
        data = fetch_uasg(licitacao["uasg"])
        if data is None:
            raise NotFoundError(code="uasg_not_found", message_key="uasg_not_found", payload={"uasg": licitacao["uasg"]})
        fields = {field: data.get(field) for field in ORGAO_FIELDS}
        fields["resultado_api"] = json.dumps(data.get("raw") or {}, ensure_ascii=False, default=str)
        fields["ultima_atualizacao_api"] = datetime.now(timezone.utc).isoformat()
        repository = LicitacaoRepository()
        repository.update(db, licitacao_id, fields)
        return ServiceOutput(_with_flow(repository.get_by_id(db, licitacao_id)))

    def atualizar_todas_api(self, db) -> ServiceOutput:
        ids = LicitacaoRepository().list_ids(db)
        atualizadas = 0
        erros = 0
        for licitacao_id in ids:
            try:
                self.atualizar_api(db, licitacao_id, scope=None)
            except (UasgLookupError, NotFoundError) as exc:
                erros += 1
                LOGGER.warning(
                    "uasg_refresh_failed",
                    extra={"licitacao_id": licitacao_id, "details": str(exc)},
                )
                continue
            atualizadas += 1
        return ServiceOutput({"atualizadas": atualizadas, "erros": erros, "total": len(ids)})


def _as_id(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
