from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Tuple

from licitasis.domain.contracts import PedidoLinhaInput, ServiceOutput
from licitasis.errors import ConflictError, NotFoundError, UserActionError, field_errors
from licitasis.infrastructure.repositories.licitacoes import (
    ContratoRepository,
    GrupoLicitacaoRepository,
    ItemLicitacaoRepository,
    LicitacaoRepository,
    PedidoRepository,
    UsuarioRepository,
)
from licitasis.licitacoes.calculos import money, to_decimal, totais_pedido
from licitasis.licitacoes.flow_policy import (
    action_allowed,
    build_process_steps,
    flow_meta,
    stage_for_pedido,
    sugerir_status_geral,
)
from licitasis.licitacoes.validators import FormReader
from licitasis.pagination import page_payload, paginate
from licitasis.ui_strings import status_keys_for_group


PEDIDO_STATUSES = status_keys_for_group("pedido")
PAGAMENTO_STATUSES = status_keys_for_group("pagamento")

_FLAGS = ("empenho_feito", "pedido_orgao_feito", "contrato_feito", "outros_documentos", "entrega_feita")
_DATES = (
    "empenho_data",
    "pedido_orgao_data",
    "contrato_data",
    "outros_documentos_data",
    "entrega_data",
    "data_pagamento",
    "data_pagamento_previsto",
)
_TEXTS = (
    "empenho_observacoes",
    "pedido_orgao_observacoes",
    "contrato_observacoes",
    "outros_documentos_descricao",
    "entrega_observacoes",
    "observacoes_pagamento",
    "observacoes_gerais",
    "numero_nota_fiscal",
)


def read_pedido_form(payload: Mapping[str, Any], *, partial: bool = False) -> Tuple[Dict[str, Any], Dict[str, str]]:
    source = dict(payload or {})
    if "status_geral" not in source and "status" in source:
        source["status_geral"] = source["status"]
    form = FormReader(source, partial=partial)
    values: List[Tuple[str, Any]] = [(flag, int(form.boolean(flag))) for flag in _FLAGS]
    values.extend((field, form.date(field)) for field in _DATES)
    values.extend((field, form.text(field)) for field in _TEXTS)
    values.extend(
        [
            ("valor_pago", form.number("valor_pago", non_negative=True, default=Decimal("0"))),
            ("valor_nota_fiscal", form.number("valor_nota_fiscal", non_negative=True)),
            ("status_pagamento", form.choice("status_pagamento", PAGAMENTO_STATUSES, default="PENDENTE")),
            ("status_geral", form.choice("status_geral", PEDIDO_STATUSES)),
        ]
    )
    fields = {name: value for name, value in values if not form.skip(name)}
    if not form.has("status_geral") or fields.get("status_geral") is None:
        fields.pop("status_geral", None)
    return fields, dict(form.errors)


def read_linhas(raw_itens: Any) -> Tuple[List[PedidoLinhaInput], Dict[str, str]]:
    if not isinstance(raw_itens, list) or not raw_itens:
        raise UserActionError(code="pedido_itens_required", message_key="pedido_itens_required")
    linhas: List[PedidoLinhaInput] = []
    errors: Dict[str, str] = {}
    for index, raw in enumerate(raw_itens):
        form = FormReader(raw if isinstance(raw, Mapping) else {})
        item_id = form.integer("item_licitacao_id", required=True)
        quantidade = form.number("quantidade_solicitada", required=True, positive=True)
        errors.update({f"itens[{index}].{field}": message for field, message in form.errors.items()})
        if item_id and quantidade is not None and quantidade > 0:
            linhas.append(PedidoLinhaInput(item_licitacao_id=item_id, quantidade_solicitada=quantidade))
    return linhas, errors


def disponibilidade_itens(db, licitacao: dict, *, exclude_pedido_id: int | None = None) -> List[Dict[str, Any]]:
    """Per bid item: bid, contracted, already requested and still available quantities."""
    itens = ItemLicitacaoRepository().list_by_licitacao(db, licitacao["id"])
    contrato = ContratoRepository().get_by_licitacao(db, licitacao["id"])
    contratadas = ContratoRepository().quantidades_contratadas(db, licitacao["id"]) if contrato else {}
    solicitadas = PedidoRepository().quantidades_solicitadas(db, licitacao["id"], exclude_pedido_id=exclude_pedido_id)

    resultado: List[Dict[str, Any]] = []
    for item in itens:
        item_id = int(item["id"])
        quantidade_licitacao = to_decimal(item["quantidade"])
        quantidade_contratada = contratadas.get(item_id, Decimal("0")) if contrato else None
        base = quantidade_contratada if contrato else quantidade_licitacao
        pedida = solicitadas.get(item_id, Decimal("0"))
        disponivel = max(base - pedida, Decimal("0"))
        resultado.append(
            {
                "item_id": item_id,
                "item_licitacao_id": item_id,
                "codigo_item": item["codigo_item"],
                "descricao": item["descricao"],
                "unidade_medida": item["unidade_medida"],
                "grupo_id": item.get("grupo_id"),
                "preco_unitario": float(to_decimal(item["preco_unitario"])),
                "custo_unitario": float(to_decimal(item.get("custo_unitario"))),
                "quantidade_licitacao": float(quantidade_licitacao),
                "quantidade_contratada": float(quantidade_contratada) if quantidade_contratada is not None else None,
                "quantidade_pedida": float(pedida),
                "quantidade_disponivel": float(disponivel),
            }
        )
    return resultado


def agrupar_por_grupo(db, licitacao_id: int, itens: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    grupos = GrupoLicitacaoRepository().list_by_licitacao(db, licitacao_id)
    resultado = [
        {
            "grupo_id": grupo["id"],
            "nome": grupo["nome"],
            "posicao": grupo.get("posicao"),
            "itens": [item for item in itens if item.get("grupo_id") == grupo["id"]],
        }
        for grupo in grupos
    ]
    soltos = [item for item in itens if not item.get("grupo_id")]
    if soltos:
        resultado.append({"grupo_id": None, "nome": "Itens sem grupo", "posicao": None, "itens": soltos})
    return resultado


class PedidoService:
    def _load(self, db, pedido_id: int, *, scope: int | None) -> dict:
        row = PedidoRepository(cliente_id=scope).get_by_id(db, pedido_id)
        if not row:
            raise NotFoundError(code="pedido_not_found", message_key="pedido_not_found")
        return row

    def _load_licitacao(self, db, licitacao_id: Any, *, scope: int | None) -> dict:
        licitacao = None
        if licitacao_id:
            licitacao = LicitacaoRepository(cliente_id=scope).get_by_id(db, int(licitacao_id))
        if not licitacao:
            raise NotFoundError(
                code="licitacao_not_found",
                message_key="licitacao_not_found",
                payload={"fields": {"licitacao_id": "Licitacao nao encontrada."}},
            )
        return licitacao

    def _detail(self, db, pedido: dict) -> dict:
        repository = PedidoRepository()
        pedido["licitacao"] = LicitacaoRepository().get_by_id(db, pedido["licitacao_id"])
        pedido["user_criador"] = (
            UsuarioRepository().get_by_id(db, pedido["user_criador_id"]) if pedido.get("user_criador_id") else None
        )
        pedido["itens_pedido"] = repository.itens(db, pedido["id"])
        pedido["empenhos"] = repository.empenhos(db, pedido["id"])
        stage = stage_for_pedido(pedido)
        pedido["flow"] = {**flow_meta("pedido", pedido.get("status_geral")), "process_stage": stage}
        pedido["process_steps"] = build_process_steps(stage)
        return pedido

    def _precificar_linhas(
        self,
        db,
        licitacao: dict,
        linhas: List[PedidoLinhaInput],
        *,
        exclude_pedido_id: int | None = None,
    ) -> List[Dict[str, Any]]:
        disponiveis = {item["item_id"]: item for item in disponibilidade_itens(db, licitacao, exclude_pedido_id=exclude_pedido_id)}

        solicitado: Dict[int, Decimal] = {}
        for linha in linhas:
            if linha.item_licitacao_id not in disponiveis:
                raise UserActionError(
                    code="item_not_in_licitacao",
                    message_key="item_not_in_licitacao",
                    payload={"item_licitacao_id": linha.item_licitacao_id},
                )
            solicitado[linha.item_licitacao_id] = solicitado.get(linha.item_licitacao_id, Decimal("0")) + to_decimal(
                linha.quantidade_solicitada
            )

        excedidos = [
            {
                "item_licitacao_id": item_id,
                "codigo_item": disponiveis[item_id]["codigo_item"],
                "quantidade_solicitada": float(quantidade),
                "quantidade_disponivel": disponiveis[item_id]["quantidade_disponivel"],
            }
            for item_id, quantidade in solicitado.items()
            if quantidade > to_decimal(disponiveis[item_id]["quantidade_disponivel"])
        ]
        if excedidos:
            raise UserActionError(
                code="quantity_exceeds_available",
                message_key="quantity_exceeds_available",
                payload={"itens": excedidos},
            )

        precificadas = []
        for linha in linhas:
            item = disponiveis[linha.item_licitacao_id]
            quantidade = to_decimal(linha.quantidade_solicitada)
            preco = to_decimal(item["preco_unitario"])
            custo = to_decimal(item["custo_unitario"])
            precificadas.append(
                {
                    "item_licitacao_id": linha.item_licitacao_id,
                    "quantidade_solicitada": quantidade,
                    "preco_unitario": preco,
                    "custo_unitario": custo,
                    "preco_total": money(quantidade * preco),
                    "custo_total": money(quantidade * custo),
                }
            )
        return precificadas

    def _read_empenhos(self, raw_empenhos: Any) -> List[Dict[str, Any]]:
        empenhos: List[Dict[str, Any]] = []
        errors: Dict[str, str] = {}
        for index, raw in enumerate(raw_empenhos if isinstance(raw_empenhos, list) else []):
            form = FormReader(raw if isinstance(raw, Mapping) else {})
            empenho = {
                "numero_empenho": form.text("numero_empenho", required=True),
                "data_empenho": form.date("data_empenho"),
                "valor_empenhado": form.number("valor_empenhado", non_negative=True, default=Decimal("0")),
                "status": form.text("status", default="EMITIDO"),
                "observacoes": form.text("observacoes"),
            }
            errors.update({f"empenhos[{index}].{field}": message for field, message in form.errors.items()})
            empenhos.append(empenho)
        if errors:
            raise field_errors(errors)
        return empenhos

    @staticmethod
    def _apply_pagamento(fields: Dict[str, Any], payload: Mapping[str, Any], current: Dict[str, Any]) -> None:
        if "pagamento_confirmado" not in payload:
            return
        confirmado = FormReader(payload).boolean("pagamento_confirmado")
        if confirmado:
            fields["status_pagamento"] = "PAGO"
            valor_pago = fields.get("valor_pago") or current.get("valor_pago")
            fields["valor_pago"] = valor_pago if to_decimal(valor_pago) > 0 else fields.get("valor_total", current.get("valor_total"))
            fields["data_pagamento"] = fields.get("data_pagamento") or current.get("data_pagamento") or date.today().isoformat()
        else:
            fields["status_pagamento"] = "PENDENTE"
            fields["valor_pago"] = 0
            fields["data_pagamento"] = None

    def list_pedidos(self, db, *, scope: int | None, filters: Dict[str, Any], page: Any = None, limit: Any = None) -> Any:
        repository = PedidoRepository(cliente_id=scope)
        if page in (None, ""):
            return repository.list(db, filters)
        meta = paginate(repository.count(db, filters), page, limit or 25)
        return page_payload(repository.list(db, filters, limit=meta["limit"], offset=meta["offset"]), meta)

    def get_pedido(self, db, pedido_id: int, *, scope: int | None) -> dict:
        return self._detail(db, self._load(db, pedido_id, scope=scope))

    def pedido_da_licitacao(self, db, licitacao_id: int, *, scope: int | None) -> dict | None:
        self._load_licitacao(db, licitacao_id, scope=scope)
        pedido = PedidoRepository(cliente_id=scope).latest_for_licitacao(db, licitacao_id)
        return self._detail(db, pedido) if pedido else None

    def create_pedido(self, db, payload: Mapping[str, Any], *, scope: int | None, user_id: int | None) -> ServiceOutput:
        payload = dict(payload or {})
        licitacao = self._load_licitacao(db, FormReader(payload).integer("licitacao_id"), scope=scope)
        if not action_allowed("licitacao", licitacao.get("status"), "create_pedido"):
            raise ConflictError(
                code="licitacao_not_won",
                message_key="licitacao_not_won",
                payload={"status": licitacao.get("status")},
            )

        contrato = ContratoRepository().get_by_licitacao(db, licitacao["id"])
        if contrato and not action_allowed("contrato", contrato.get("status"), "create_pedido"):
            raise ConflictError(
                code="contrato_blocks_pedido",
                message_key="contrato_blocks_pedido",
                payload={"contrato_status": contrato.get("status")},
            )

        fields, errors = read_pedido_form(payload)
        linhas: List[PedidoLinhaInput] = []
        if "itens" in payload:
            linhas, linha_errors = read_linhas(payload.get("itens"))
            errors.update(linha_errors)
        if errors:
            raise field_errors(errors)

        precificadas = self._precificar_linhas(db, licitacao, linhas) if linhas else []
        if precificadas:
            fields.update(totais_pedido(precificadas))
        else:
            fields["valor_total"] = money(licitacao.get("preco_final"))
            fields["custo_total"] = money(licitacao.get("custo"))

        empenhos = self._read_empenhos(payload.get("empenhos"))
        if empenhos and "empenho_feito" not in payload:
            fields["empenho_feito"] = 1

        self._apply_pagamento(fields, payload, {})
        if not fields.get("status_geral"):
            fields["status_geral"] = sugerir_status_geral(fields)

        fields["licitacao_id"] = licitacao["id"]
        fields["contrato_id"] = contrato["id"] if contrato else None
        fields["user_criador_id"] = user_id

        repository = PedidoRepository()
        pedido_id = repository.create(db, fields)
        if precificadas:
            repository.replace_itens(db, pedido_id, precificadas)
        if empenhos:
            repository.replace_empenhos(db, pedido_id, empenhos)
        return ServiceOutput(self._detail(db, repository.get_by_id(db, pedido_id)), 201)

    def update_pedido(self, db, pedido_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        payload = dict(payload or {})
        current = self._load(db, pedido_id, scope=scope)
        fields, errors = read_pedido_form(payload, partial=True)
        linhas: List[PedidoLinhaInput] = []
        if "itens" in payload:
            linhas, linha_errors = read_linhas(payload.get("itens"))
            errors.update(linha_errors)
        if errors:
            raise field_errors(errors)

        repository = PedidoRepository()
        licitacao = LicitacaoRepository().get_by_id(db, current["licitacao_id"])
        precificadas = None
        if "itens" in payload:
            precificadas = self._precificar_linhas(db, licitacao, linhas, exclude_pedido_id=pedido_id)
            fields.update(totais_pedido(precificadas))
        elif current.get("status_geral") == "CANCELADO" and fields.get("status_geral") not in (None, "CANCELADO"):
            # Reactivating puts the stored lines back into the availability count.
            stored = [
                PedidoLinhaInput(
                    item_licitacao_id=int(row["item_licitacao_id"]),
                    quantidade_solicitada=float(row["quantidade_solicitada"] or 0),
                )
                for row in repository.itens(db, pedido_id)
            ]
            if stored:
                self._precificar_linhas(db, licitacao, stored, exclude_pedido_id=pedido_id)

        empenhos = self._read_empenhos(payload.get("empenhos")) if "empenhos" in payload else None
        if empenhos and "empenho_feito" not in payload:
            fields["empenho_feito"] = 1

        self._apply_pagamento(fields, payload, current)
        repository.update(db, pedido_id, fields)
        if precificadas is not None:
            repository.replace_itens(db, pedido_id, precificadas)
        if empenhos is not None:
            repository.replace_empenhos(db, pedido_id, empenhos)
        return ServiceOutput(self._detail(db, repository.get_by_id(db, pedido_id)))

    def delete_pedido(self, db, pedido_id: int, *, scope: int | None) -> ServiceOutput:
        self._load(db, pedido_id, scope=scope)
        PedidoRepository().delete(db, pedido_id)
        return ServiceOutput({"deleted": True, "id": pedido_id})

    def stats(self, db, *, scope: int | None, cliente_id: int | None = None) -> dict:
        return PedidoRepository(cliente_id=scope).stats(db, cliente_id=cliente_id)

    def quantidades_disponiveis(self, db, licitacao_id: int, *, scope: int | None, exclude_pedido_id: int | None = None) -> dict:
        licitacao = self._load_licitacao(db, licitacao_id, scope=scope)
        itens = disponibilidade_itens(db, licitacao, exclude_pedido_id=exclude_pedido_id)
        contrato = ContratoRepository().get_by_licitacao(db, licitacao["id"])
        tipo = licitacao.get("tipo_classificacao") or "ITEM"
        return {
            "licitacao_id": licitacao["id"],
            "tipo_classificacao": tipo,
            "contrato_id": contrato["id"] if contrato else None,
            "itens_disponiveis": itens if tipo == "ITEM" else agrupar_por_grupo(db, licitacao["id"], itens),
            "valor_final": money(licitacao.get("preco_final")),
            "custo_total": money(licitacao.get("custo")),
        }
