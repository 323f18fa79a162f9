from __future__ import annotations

from flask import Blueprint, jsonify, request

from licitasis.application.contrato_service import ContratoService
from licitasis.db import get_db
from licitasis.routes.common import API_PREFIX, cliente_filter, json_payload, page_args, scope


contrato_bp = Blueprint("contratos", __name__, url_prefix=f"{API_PREFIX}/contratos")

_CONTRATO_SERVICE = ContratoService()


@contrato_bp.route("/", methods=["GET", "POST"])
def contratos_api():
    db = get_db()
    if request.method == "POST":
        result = _CONTRATO_SERVICE.create_contrato(db, json_payload(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    filters = {
        "search": request.args.get("search"),
        "status": request.args.get("status"),
        "cliente_id": cliente_filter(),
    }
    page, limit = page_args()
    return jsonify(_CONTRATO_SERVICE.list_contratos(db, scope=scope(), filters=filters, page=page, limit=limit))


@contrato_bp.route("/stats", methods=["GET"])
def contrato_stats_api():
    return jsonify(_CONTRATO_SERVICE.stats(get_db(), scope=scope(), cliente_id=cliente_filter()))


@contrato_bp.route("/<int:contrato_id>", methods=["GET", "PUT", "DELETE"])
def contrato_api(contrato_id: int):
    db = get_db()
    if request.method == "PUT":
        result = _CONTRATO_SERVICE.update_contrato(db, contrato_id, json_payload(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        result = _CONTRATO_SERVICE.delete_contrato(db, contrato_id, scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_CONTRATO_SERVICE.get_contrato(db, contrato_id, scope=scope()))


@contrato_bp.route("/licitacao/<int:licitacao_id>/grupos-itens", methods=["GET"])
def contrato_grupos_itens_api(licitacao_id: int):
    return jsonify(_CONTRATO_SERVICE.grupos_itens(get_db(), licitacao_id, scope=scope()))


@contrato_bp.route("/<int:contrato_id>/itens-para-pedido", methods=["GET"])
def contrato_itens_para_pedido_api(contrato_id: int):
    return jsonify(_CONTRATO_SERVICE.itens_para_pedido(get_db(), contrato_id, scope=scope()))
