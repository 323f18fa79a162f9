from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Tuple

from licitasis.application.pedido_service import agrupar_por_grupo, disponibilidade_itens
from licitasis.domain.contracts import ContratoItemInput, ServiceOutput
from licitasis.errors import ConflictError, NotFoundError, UserActionError, field_errors
from licitasis.infrastructure.repositories.licitacoes import (
    ContratoRepository,
    GrupoLicitacaoRepository,
    ItemLicitacaoRepository,
    LicitacaoRepository,
    PedidoRepository,
)
from licitasis.licitacoes.calculos import money, resumo_financeiro, to_decimal
from licitasis.licitacoes.flow_policy import flow_meta
from licitasis.licitacoes.validators import FormReader
from licitasis.pagination import page_payload, paginate
from licitasis.ui_strings import TIPO_ENTREGA_OPTIONS, status_keys_for_group


CONTRATO_STATUSES = status_keys_for_group("contrato")
ITENS_DIRETOS = "ITENS_DIRETOS"


def read_contrato_form(payload: Mapping[str, Any], *, partial: bool = False) -> Tuple[Dict[str, Any], Dict[str, str]]:
    form = FormReader(payload, partial=partial)
    values = [
        ("numero_contrato", form.text("numero_contrato", required=True)),
        ("data_contrato", form.date("data_contrato", required=True)),
        ("valor_contrato", form.number("valor_contrato", non_negative=True)),
        ("tipo_entrega", form.choice("tipo_entrega", TIPO_ENTREGA_OPTIONS, default="ENTREGA_UNICA")),
        ("prazo_contrato", form.integer("prazo_contrato", non_negative=True)),
        ("status", form.choice("status", CONTRATO_STATUSES, default="ATIVO")),
        ("observacoes", form.text("observacoes")),
    ]
    fields = {name: value for name, value in values if not form.skip(name)}
    return fields, dict(form.errors)


def read_itens_contrato(raw_itens: Any) -> Tuple[List[ContratoItemInput], Dict[str, str]]:
    itens: List[ContratoItemInput] = []
    errors: Dict[str, str] = {}
    for index, raw in enumerate(raw_itens if isinstance(raw_itens, list) else []):
        form = FormReader(raw if isinstance(raw, Mapping) else {})
        item_id = form.integer("item_licitacao_id", required=True)
        quantidade = form.number("quantidade_contratada", required=True, positive=True)
        errors.update({f"itens_contrato[{index}].{field}": message for field, message in form.errors.items()})
        if item_id and quantidade is not None and quantidade > 0:
            itens.append(ContratoItemInput(item_licitacao_id=item_id, quantidade_contratada=quantidade))
    return itens, errors


class ContratoService:
    def _load(self, db, contrato_id: int, *, scope: int | None) -> dict:
        row = ContratoRepository(cliente_id=scope).get_by_id(db, contrato_id)
        if not row:
            raise NotFoundError(code="contrato_not_found", message_key="contrato_not_found")
        return row

    def _load_licitacao(self, db, licitacao_id: Any, *, scope: int | None) -> dict:
        licitacao = LicitacaoRepository(cliente_id=scope).get_by_id(db, int(licitacao_id)) if licitacao_id else None
        if not licitacao:
            raise NotFoundError(
                code="licitacao_not_found",
                message_key="licitacao_not_found",
                payload={"fields": {"licitacao_id": "Licitacao nao encontrada."}},
            )
        return licitacao

    def _detail(self, db, contrato: dict) -> dict:
        contrato["itens_contrato"] = ContratoRepository().itens(db, contrato["id"])
        contrato["total_pedidos"] = PedidoRepository().count_by_contrato(db, contrato["id"])
        contrato["flow"] = flow_meta("contrato", contrato.get("status"))
        return contrato

    def _resolver_itens(self, db, licitacao_id: int, itens: List[ContratoItemInput] | None) -> List[Dict[str, Any]]:
        licitados = {int(item["id"]): item for item in ItemLicitacaoRepository().list_by_licitacao(db, licitacao_id)}
        if itens is None:
            return [
                {"item_licitacao_id": item_id, "quantidade_contratada": to_decimal(item["quantidade"])}
                for item_id, item in licitados.items()
            ]

        resolvidos: Dict[int, Decimal] = {}
        for item in itens:
            if item.item_licitacao_id not in licitados:
                raise UserActionError(
                    code="item_not_in_licitacao",
                    message_key="item_not_in_licitacao",
                    payload={"item_licitacao_id": item.item_licitacao_id},
                )
            quantidade = resolvidos.get(item.item_licitacao_id, Decimal("0")) + to_decimal(item.quantidade_contratada)
            if quantidade > to_decimal(licitados[item.item_licitacao_id]["quantidade"]):
                raise UserActionError(
                    code="item_quantity_exceeds_licitacao",
                    message_key="item_quantity_exceeds_licitacao",
                    payload={
                        "item_licitacao_id": item.item_licitacao_id,
                        "quantidade_licitacao": float(to_decimal(licitados[item.item_licitacao_id]["quantidade"])),
                    },
                )
            resolvidos[item.item_licitacao_id] = quantidade
        return [{"item_licitacao_id": item_id, "quantidade_contratada": qty} for item_id, qty in resolvidos.items()]

    def list_contratos(self, db, *, scope: int | None, filters: Dict[str, Any], page: Any = None, limit: Any = None) -> Any:
        repository = ContratoRepository(cliente_id=scope)
        if page in (None, ""):
            return repository.list(db, filters)
        meta = paginate(repository.count(db, filters), page, limit or 25)
        return page_payload(repository.list(db, filters, limit=meta["limit"], offset=meta["offset"]), meta)

    def get_contrato(self, db, contrato_id: int, *, scope: int | None) -> dict:
        return self._detail(db, self._load(db, contrato_id, scope=scope))

    def create_contrato(self, db, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        payload = dict(payload or {})
        licitacao = self._load_licitacao(db, FormReader(payload).integer("licitacao_id"), scope=scope)
        repository = ContratoRepository()
        if repository.get_by_licitacao(db, licitacao["id"]):
            raise ConflictError(code="contrato_already_exists", message_key="contrato_already_exists")

        fields, errors = read_contrato_form(payload)
        itens = None
        if "itens_contrato" in payload:
            itens, item_errors = read_itens_contrato(payload.get("itens_contrato"))
            errors.update(item_errors)
        if errors:
            raise field_errors(errors)

        if fields.get("valor_contrato") is None:
            fields["valor_contrato"] = money(licitacao.get("preco_final"))
        resolvidos = self._resolver_itens(db, licitacao["id"], itens)

        fields["licitacao_id"] = licitacao["id"]
        contrato_id = repository.create(db, fields)
        repository.replace_itens(db, contrato_id, resolvidos)
        return ServiceOutput(self._detail(db, repository.get_by_id(db, contrato_id)), 201)

    def update_contrato(self, db, contrato_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        payload = dict(payload or {})
        current = self._load(db, contrato_id, scope=scope)
        fields, errors = read_contrato_form(payload, partial=True)
        itens = None
        if "itens_contrato" in payload:
            itens, item_errors = read_itens_contrato(payload.get("itens_contrato"))
            errors.update(item_errors)
        if errors:
            raise field_errors(errors)

        repository = ContratoRepository()
        repository.update(db, contrato_id, fields)
        if itens is not None:
            repository.replace_itens(db, contrato_id, self._resolver_itens(db, current["licitacao_id"], itens))
        return ServiceOutput(self._detail(db, repository.get_by_id(db, contrato_id)))

    def delete_contrato(self, db, contrato_id: int, *, scope: int | None) -> ServiceOutput:
        self._load(db, contrato_id, scope=scope)
        total = PedidoRepository().count_by_contrato(db, contrato_id)
        if total:
            raise ConflictError(
                code="contrato_has_pedidos",
                message_key="contrato_has_pedidos",
                payload={"pedidos": total},
            )
        ContratoRepository().delete(db, contrato_id)
        return ServiceOutput({"deleted": True, "id": contrato_id})

    def stats(self, db, *, scope: int | None, cliente_id: int | None = None) -> dict:
        stats = ContratoRepository(cliente_id=scope).stats(db, cliente_id=cliente_id)
        stats["valor_total_contratos"] = money(stats["valor_total_contratos"])
        return stats

    def grupos_itens(self, db, licitacao_id: int, *, scope: int | None) -> dict:
        """Bid items arranged by group, plus a financial summary of all items."""
        licitacao = self._load_licitacao(db, licitacao_id, scope=scope)
        itens = ItemLicitacaoRepository().list_by_licitacao(db, licitacao["id"])
        grupos = GrupoLicitacaoRepository().list_by_licitacao(db, licitacao["id"])

        grupos_itens = []
        for grupo in grupos:
            do_grupo = [item for item in itens if item.get("grupo_id") == grupo["id"]]
            grupos_itens.append(
                {
                    "grupo_id": grupo["id"],
                    "nome": grupo["nome"],
                    "posicao": grupo.get("posicao"),
                    "itens": do_grupo,
                    "resumo": resumo_financeiro(do_grupo),
                }
            )
        diretos = [item for item in itens if not item.get("grupo_id")]
        if diretos:
            grupos_itens.append(
                {
                    "grupo_id": ITENS_DIRETOS,
                    "nome": "Itens diretos",
                    "posicao": None,
                    "itens": diretos,
                    "resumo": resumo_financeiro(diretos),
                }
            )
        return {"grupos_itens": grupos_itens, "resumo_financeiro": resumo_financeiro(itens)}

    def itens_para_pedido(self, db, contrato_id: int, *, scope: int | None) -> dict:
        contrato = self._load(db, contrato_id, scope=scope)
        licitacao = LicitacaoRepository().get_by_id(db, contrato["licitacao_id"])
        itens = disponibilidade_itens(db, licitacao)
        disponiveis = [item for item in itens if item["quantidade_disponivel"] > 0]
        grupos = agrupar_por_grupo(db, licitacao["id"], itens) if licitacao.get("tipo_classificacao") == "GRUPO" else []
        return {
            "contrato_id": contrato["id"],
            "licitacao_id": licitacao["id"],
            "itens": itens,
            "total_itens_disponiveis": len(disponiveis),
            "grupos_licitacao": grupos,
        }
