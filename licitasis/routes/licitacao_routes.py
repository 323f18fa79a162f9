from __future__ import annotations

from flask import Blueprint, jsonify, request

from licitasis.application.licitacao_service import LicitacaoService
from licitasis.application.relatorio_service import RelatorioService
from licitasis.db import get_db
from licitasis.licitacoes.validators import parse_bool
from licitasis.policies import require_admin
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


licitacao_bp = Blueprint("licitacoes", __name__, url_prefix=f"{API_PREFIX}/licitacoes")

_LICITACAO_SERVICE = LicitacaoService()


def _relatorios() -> RelatorioService:
    return RelatorioService(default_rate=default_tax_rate())


def _list_filters() -> dict:
    args = request.args
    return {
        "search": args.get("search"),
        "status": args.get("status_filter") or args.get("status"),
        "cliente_id": cliente_filter(),
        "data_inicio": args.get("data_inicio"),
        "data_fim": args.get("data_fim"),
        "tipo_licitacao": args.get("tipo_licitacao"),
        "sem_pedidos": parse_bool(args.get("sem_pedidos")),
        "sem_contrato": parse_bool(args.get("sem_contrato")),
    }


@licitacao_bp.route("/", methods=["GET", "POST"])
def licitacoes_api():
    db = get_db()
    if request.method == "POST":
        result = _LICITACAO_SERVICE.create_licitacao(
            db,
            json_payload(),
            scope=scope(),
            user_id=current_user_id(),
            default_rate=default_tax_rate(),
        )
        db.commit()
        return jsonify(result.payload), result.status_code

    page, limit = page_args()
    return jsonify(_LICITACAO_SERVICE.list_licitacoes(db, scope=scope(), filters=_list_filters(), page=page, limit=limit))


@licitacao_bp.route("/<int:licitacao_id>", methods=["GET", "PUT", "DELETE"])
def licitacao_api(licitacao_id: int):
    db = get_db()
    if request.method == "PUT":
        result = _LICITACAO_SERVICE.update_licitacao(
            db,
            licitacao_id,
            json_payload(),
            scope=scope(),
            default_rate=default_tax_rate(),
        )
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        result = _LICITACAO_SERVICE.delete_licitacao(db, licitacao_id, scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_LICITACAO_SERVICE.get_licitacao(db, licitacao_id, scope=scope()))


@licitacao_bp.route("/com-itens", methods=["POST"])
def licitacao_com_itens_create_api():
    db = get_db()
    result = _LICITACAO_SERVICE.create_com_itens(
        db,
        json_payload(),
        scope=scope(),
        user_id=current_user_id(),
        default_rate=default_tax_rate(),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/<int:licitacao_id>/com-itens", methods=["PUT"])
def licitacao_com_itens_update_api(licitacao_id: int):
    db = get_db()
    result = _LICITACAO_SERVICE.update_com_itens(
        db,
        licitacao_id,
        json_payload(),
        scope=scope(),
        default_rate=default_tax_rate(),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/<int:licitacao_id>/itens", methods=["GET", "POST"])
def licitacao_itens_api(licitacao_id: int):
    db = get_db()
    if request.method == "POST":
        result = _LICITACAO_SERVICE.create_item(
            db,
            licitacao_id,
            json_payload(),
            scope=scope(),
            default_rate=default_tax_rate(),
        )
        db.commit()
        return jsonify(result.payload), result.status_code
    return jsonify(_LICITACAO_SERVICE.list_itens(db, licitacao_id, scope=scope()))


@licitacao_bp.route("/itens/<int:item_id>", methods=["PUT", "DELETE"])
def licitacao_item_api(item_id: int):
    db = get_db()
    if request.method == "DELETE":
        result = _LICITACAO_SERVICE.delete_item(db, item_id, scope=scope(), default_rate=default_tax_rate())
    else:
        result = _LICITACAO_SERVICE.update_item(
            db,
            item_id,
            json_payload(),
            scope=scope(),
            default_rate=default_tax_rate(),
        )
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/<int:licitacao_id>/grupos", methods=["GET", "POST"])
def licitacao_grupos_api(licitacao_id: int):
    db = get_db()
    if request.method == "POST":
        result = _LICITACAO_SERVICE.create_grupo(db, licitacao_id, json_payload(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code
    return jsonify(_LICITACAO_SERVICE.list_grupos(db, licitacao_id, scope=scope()))


@licitacao_bp.route("/grupos/<int:grupo_id>", methods=["PUT", "DELETE"])
def licitacao_grupo_api(grupo_id: int):
    db = get_db()
    if request.method == "DELETE":
        result = _LICITACAO_SERVICE.delete_grupo(db, grupo_id, scope=scope())
    else:
        result = _LICITACAO_SERVICE.update_grupo(db, grupo_id, json_payload(), scope=scope())
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/uasg/<string:uasg>", methods=["GET"])
def licitacao_uasg_api(uasg: str):
    result = _LICITACAO_SERVICE.buscar_uasg(uasg)
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/<int:licitacao_id>/atualizar-api", methods=["POST"])
def licitacao_atualizar_api(licitacao_id: int):
    db = get_db()
    result = _LICITACAO_SERVICE.atualizar_api(db, licitacao_id, scope=scope())
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/atualizar-todas-api", methods=["POST"])
def licitacao_atualizar_todas_api():
    require_admin()
    db = get_db()
    result = _LICITACAO_SERVICE.atualizar_todas_api(db)
    db.commit()
    return jsonify(result.payload), result.status_code


@licitacao_bp.route("/dashboard/stats", methods=["GET"])
def licitacao_dashboard_stats_api():
    db = get_db()
    return jsonify(_relatorios().dashboard_stats(db, scope=scope(), cliente_id=cliente_filter()))


@licitacao_bp.route("/relatorios/por-cliente", methods=["GET"])
def relatorio_por_cliente_api():
    require_admin()
    return jsonify(_relatorios().por_cliente(get_db(), scope=None))


@licitacao_bp.route("/relatorios/por-status", methods=["GET"])
def relatorio_por_status_api():
    return jsonify(_relatorios().por_status(get_db(), scope=scope(), cliente_id=cliente_filter()))


@licitacao_bp.route("/relatorios/estatisticas-gerais", methods=["GET"])
def relatorio_estatisticas_gerais_api():
    return jsonify(
        _relatorios().estatisticas_gerais(
            get_db(),
            scope=scope(),
            cliente_id=cliente_filter(),
            pedido_id=parse_optional_int(request.args.get("pedido_id")),
        )
    )


@licitacao_bp.route("/relatorios/tendencia-performance", methods=["GET"])
def relatorio_tendencia_performance_api():
    return jsonify(_relatorios().tendencia_performance(get_db(), scope=scope(), cliente_id=cliente_filter()))


@licitacao_bp.route("/relatorios/distribuicao-portal", methods=["GET"])
def relatorio_distribuicao_portal_api():
    return jsonify(_relatorios().distribuicao_portal(get_db(), scope=scope(), cliente_id=cliente_filter()))


@licitacao_bp.route("/relatorios/por-modalidade", methods=["GET"])
def relatorio_por_modalidade_api():
    return jsonify(_relatorios().por_modalidade(get_db(), scope=scope(), cliente_id=cliente_filter()))
