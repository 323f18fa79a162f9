from __future__ import annotations

from flask import Blueprint, jsonify, request

from licitasis.application.pedido_service import PedidoService
from licitasis.application.relatorio_service import RelatorioService
from licitasis.db import get_db
from licitasis.routes.common import (
    API_PREFIX,
    cliente_filter,
    default_tax_rate,
    json_payload,
    page_args,
    parse_optional_int,
    scope,
)
from licitasis.scope import current_user_id


pedido_bp = Blueprint("pedidos", __name__, url_prefix=f"{API_PREFIX}/pedidos")

_PEDIDO_SERVICE = PedidoService()


def _list_filters() -> dict:
    args = request.args
    return {
        "status_geral": args.get("status_geral") or args.get("status"),
        "status_pagamento": args.get("status_pagamento"),
        "cliente_id": cliente_filter(),
        "licitacao_id": parse_optional_int(args.get("licitacao_id")),
        "search": args.get("search"),
    }


@pedido_bp.route("/", methods=["GET", "POST"])
def pedidos_api():
    db = get_db()
    if request.method == "POST":
        result = _PEDIDO_SERVICE.create_pedido(db, json_payload(), scope=scope(), user_id=current_user_id())
        db.commit()
        return jsonify(result.payload), result.status_code

    page, limit = page_args()
    return jsonify(_PEDIDO_SERVICE.list_pedidos(db, scope=scope(), filters=_list_filters(), page=page, limit=limit))


@pedido_bp.route("/<int:pedido_id>", methods=["GET", "PUT", "DELETE"])
def pedido_api(pedido_id: int):
    db = get_db()
    if request.method == "PUT":
        result = _PEDIDO_SERVICE.update_pedido(db, pedido_id, json_payload(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        result = _PEDIDO_SERVICE.delete_pedido(db, pedido_id, scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_PEDIDO_SERVICE.get_pedido(db, pedido_id, scope=scope()))


@pedido_bp.route("/licitacao/<int:licitacao_id>", methods=["GET"])
def pedido_da_licitacao_api(licitacao_id: int):
    return jsonify(_PEDIDO_SERVICE.pedido_da_licitacao(get_db(), licitacao_id, scope=scope()))


@pedido_bp.route("/licitacao/<int:licitacao_id>/quantidades-disponiveis", methods=["GET"])
def pedido_quantidades_disponiveis_api(licitacao_id: int):
    return jsonify(
        _PEDIDO_SERVICE.quantidades_disponiveis(
            get_db(),
            licitacao_id,
            scope=scope(),
            exclude_pedido_id=parse_optional_int(request.args.get("pedido_id")),
        )
    )


@pedido_bp.route("/dashboard/stats", methods=["GET"])
def pedido_dashboard_stats_api():
    return jsonify(_PEDIDO_SERVICE.stats(get_db(), scope=scope(), cliente_id=cliente_filter()))


@pedido_bp.route("/relatorios/por-status", methods=["GET"])
def pedido_relatorio_por_status_api():
    relatorios = RelatorioService(default_rate=default_tax_rate())
    return jsonify(relatorios.pedidos_por_status(get_db(), scope=scope(), cliente_id=cliente_filter()))
