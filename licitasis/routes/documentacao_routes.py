from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, send_file

from licitasis.application.documentacao_service import ZIP_NAME, DocumentacaoService
from licitasis.db import get_db
from licitasis.domain.contracts import UploadedDocumento
from licitasis.routes.common import API_PREFIX, cliente_filter, json_payload, parse_int, scope
from licitasis.scope import current_user_id


documentacao_bp = Blueprint("documentacoes", __name__, url_prefix=f"{API_PREFIX}/documentacoes")


def _service() -> DocumentacaoService:
    return DocumentacaoService(
        current_app.config["UPLOAD_DIR"],
        warning_days=int(current_app.config.get("DOC_EXPIRY_WARNING_DAYS", 5)),
    )


def _form_or_json() -> dict:
    if request.form:
        return request.form.to_dict()
    return json_payload()


def _uploaded_file() -> UploadedDocumento | None:
    storage = request.files.get("arquivo")
    if storage is None or not storage.filename:
        return None
    return UploadedDocumento(filename=storage.filename, content=storage.read())


@documentacao_bp.route("", methods=["POST"])
@documentacao_bp.route("/", methods=["POST"])
def documentacao_upload_api():
    db = get_db()
    result = _service().upload(
        db,
        _form_or_json(),
        _uploaded_file(),
        scope=scope(),
        user_id=current_user_id(),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@documentacao_bp.route("/listar", methods=["GET"])
def documentacao_listar_api():
    filters = {
        "cliente_id": cliente_filter(),
        "status": request.args.get("status"),
        "tipo_documento": request.args.get("tipo_documento"),
    }
    return jsonify(_service().listar(get_db(), scope=scope(), filters=filters))


@documentacao_bp.route("/<int:documento_id>", methods=["GET", "PUT", "DELETE"])
def documentacao_api(documento_id: int):
    db = get_db()
    if request.method == "PUT":
        result = _service().update_documento(db, documento_id, _form_or_json(), scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    if request.method == "DELETE":
        result = _service().delete_documento(db, documento_id, scope=scope())
        db.commit()
        return jsonify(result.payload), result.status_code

    return jsonify(_service().get_documento(db, documento_id, scope=scope()))


@documentacao_bp.route("/<int:documento_id>/arquivo", methods=["GET"])
def documentacao_arquivo_api(documento_id: int):
    caminho, nome = _service().arquivo(get_db(), documento_id, scope=scope())
    return send_file(caminho, mimetype="application/pdf", as_attachment=True, download_name=nome)


@documentacao_bp.route("/<int:documento_id>/dados-extraidos", methods=["GET"])
def documentacao_dados_extraidos_api(documento_id: int):
    return jsonify(_service().dados_extraidos(get_db(), documento_id, scope=scope()))


@documentacao_bp.route("/relatorios/vencendo", methods=["GET"])
def documentacao_vencendo_api():
    service = _service()
    dias = parse_int(request.args.get("dias"), default=service.warning_days, min_value=0, max_value=365)
    return jsonify(service.vencendo(get_db(), scope=scope(), dias=dias, cliente_id=cliente_filter()))


@documentacao_bp.route("/relatorios/notificacoes", methods=["GET"])
def documentacao_notificacoes_api():
    return jsonify(_service().notificacoes(get_db(), scope=scope(), cliente_id=cliente_filter()))


@documentacao_bp.route("/relatorios/por-status", methods=["GET"])
def documentacao_por_status_api():
    return jsonify(_service().por_status(get_db(), scope=scope(), cliente_id=cliente_filter()))


@documentacao_bp.route("/atualizar-datas-emissao", methods=["POST"])
def documentacao_atualizar_datas_api():
    db = get_db()
    payload = _service().atualizar_datas_emissao(db, scope=scope())
    db.commit()
    return jsonify(payload), 200


@documentacao_bp.route("/mover-atestados-capacidade", methods=["POST"])
def documentacao_mover_atestados_api():
    db = get_db()
    payload = _service().mover_atestados_capacidade(db, scope=scope())
    db.commit()
    return jsonify(payload), 200


@documentacao_bp.route("/download-habilitacao", methods=["GET"])
def documentacao_download_habilitacao_api():
    buffer = _service().habilitacao_zip(get_db(), scope=scope(), cliente_id=cliente_filter())
    return send_file(buffer, mimetype="application/zip", as_attachment=True, download_name=ZIP_NAME)
