from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from licitasis.application.cliente_service import ClienteService
from licitasis.application.documentacao_service import DocumentacaoService
from licitasis.application.usuario_service import UsuarioService
from licitasis.db import get_db
from licitasis.policies import require_admin
from licitasis.routes.common import API_PREFIX, json_payload, scope
from licitasis.scope import current_user_id


cliente_bp = Blueprint("clientes", __name__, url_prefix=API_PREFIX)

_CLIENTE_SERVICE = ClienteService()
_USUARIO_SERVICE = UsuarioService(cliente_service=_CLIENTE_SERVICE)


@cliente_bp.route("/clientes/", methods=["GET", "POST"])
def clientes_api():
    db = get_db()
    if request.method == "POST":
        require_admin()
        result = _CLIENTE_SERVICE.create_cliente(db, json_payload())
        db.commit()
        return jsonify(result.payload), result.status_code

    rows = _CLIENTE_SERVICE.list_clientes(db, scope=scope(), search=request.args.get("search"))
    return jsonify(rows)


@cliente_bp.route("/clientes/<int:cliente_id>", methods=["GET", "PUT", "DELETE"])
def cliente_api(cliente_id: int):
    db = get_db()
    if request.method == "PUT":
        result = _CLIENTE_SERVICE.update_cliente(db, cliente_id, json_payload(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        require_admin()
        result = _CLIENTE_SERVICE.delete_cliente(db, cliente_id)
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_CLIENTE_SERVICE.get_cliente(db, cliente_id, scope=scope()))


def _arquivos() -> DocumentacaoService:
    return DocumentacaoService(
        current_app.config["UPLOAD_DIR"],
        warning_days=int(current_app.config.get("DOC_EXPIRY_WARNING_DAYS", 5)),
    )


@cliente_bp.route("/clientes/corrigir-pastas", methods=["POST"])
def clientes_corrigir_pastas_api():
    require_admin()
    return jsonify(_arquivos().corrigir_pastas(get_db(), scope=None)), 200


@cliente_bp.route("/clientes/mover-arquivos", methods=["POST"])
def clientes_mover_arquivos_api():
    require_admin()
    db = get_db()
    payload = _arquivos().mover_arquivos(db, scope=None)
    db.commit()
    return jsonify(payload), 200


@cliente_bp.route("/usuarios/", methods=["GET", "POST"])
def usuarios_api():
    require_admin()
    db = get_db()
    if request.method == "POST":
        result = _USUARIO_SERVICE.create_usuario(db, json_payload())
        db.commit()
        return jsonify(result.payload), result.status_code
    return jsonify(_USUARIO_SERVICE.list_usuarios(db))


@cliente_bp.route("/usuarios/<int:usuario_id>", methods=["GET", "PUT", "DELETE"])
def usuario_api(usuario_id: int):
    require_admin()
    db = get_db()
    if request.method == "PUT":
        result = _USUARIO_SERVICE.update_usuario(db, usuario_id, json_payload())
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        result = _USUARIO_SERVICE.delete_usuario(db, usuario_id, current_user_id=current_user_id())
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_USUARIO_SERVICE.get_usuario(db, usuario_id))
