from __future__ import annotations

from flask import Blueprint, jsonify, request

from licitasis.application.relatorio_service import RelatorioService
from licitasis.db import get_db
from licitasis.routes.common import API_PREFIX, cliente_filter, default_tax_rate, parse_optional_int, scope
from licitasis.ui_strings import frontend_bundle


relatorio_bp = Blueprint("relatorios", __name__, url_prefix=API_PREFIX)


@relatorio_bp.route("/relatorios/financeiro", methods=["GET"])
def relatorio_financeiro_api():
    relatorios = RelatorioService(default_rate=default_tax_rate())
    return jsonify(
        relatorios.financeiro(
            get_db(),
            scope=scope(),
            cliente_id=cliente_filter(),
            pedido_id=parse_optional_int(request.args.get("pedido_id")),
        )
    )


@relatorio_bp.route("/meta/ui", methods=["GET"])
def meta_ui_api():
    return jsonify(frontend_bundle())
