from __future__ import annotations

import io
import logging
import os
import shutil
import uuid
import zipfile
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Tuple

from werkzeug.utils import secure_filename

from licitasis.domain.contracts import ServiceOutput, UploadedDocumento
from licitasis.errors import NotFoundError, PermissionError as AppPermissionError, UserActionError, field_errors
from licitasis.infrastructure.repositories.licitacoes import ClienteRepository, DocumentacaoRepository
from licitasis.licitacoes.documentos import (
    PASTA_ATESTADOS,
    STATUS_DOCUMENTO,
    TIPOS_DOCUMENTO,
    dias_para_vencer,
    pasta_documento,
    recalcular_documento,
    resolve_validade,
    status_documento,
)
from licitasis.licitacoes.validators import FormReader
from licitasis.ui_strings import success_message


LOGGER = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
ZIP_NAME = "Habilitacao.zip"
_EXTRACTED_FIELDS = (
    "cnpj_extraido",
    "razao_social_extraida",
    "data_emissao_extraida",
    "numero_documento_extraido",
)


def is_pdf(upload: UploadedDocumento) -> bool:
    name = str(upload.filename or "").lower()
    return name.endswith(".pdf") and upload.content[:4] == PDF_MAGIC


def read_documento_form(payload: Mapping[str, Any], *, partial: bool = False) -> Tuple[Dict[str, Any], Dict[str, str]]:
    form = FormReader(payload, partial=partial)
    values = [
        ("titulo", form.text("titulo", required=True)),
        ("descricao", form.text("descricao")),
        ("tipo_documento", form.choice("tipo_documento", TIPOS_DOCUMENTO)),
        ("data_emissao", form.date("data_emissao")),
        ("data_validade", form.date("data_validade")),
        ("dados_extraidos", form.text("dados_extraidos")),
    ]
    values.extend((field, form.text(field)) for field in _EXTRACTED_FIELDS)
    fields = {name: value for name, value in values if not form.skip(name)}
    if partial and fields.get("tipo_documento") is None:
        fields.pop("tipo_documento", None)
    elif not fields.get("tipo_documento") and "tipo_documento" not in form.errors:
        form.add_error("tipo_documento", "required")
    return fields, dict(form.errors)


class DocumentacaoService:
    def __init__(self, upload_dir: str, *, warning_days: int = 5) -> None:
        self.upload_dir = upload_dir
        self.warning_days = int(warning_days)

    def _load(self, db, documento_id: int, *, scope: int | None) -> dict:
        row = DocumentacaoRepository(cliente_id=scope).get_by_id(db, documento_id)
        if not row:
            raise NotFoundError(code="documentacao_not_found", message_key="documentacao_not_found")
        return row

    def _check_cliente(self, db, cliente_id: int | None, *, scope: int | None) -> int:
        cliente_id = cliente_id or scope
        if not cliente_id:
            raise field_errors({"cliente_id": "Campo obrigatorio."})
        if scope is not None and int(cliente_id) != int(scope):
            raise AppPermissionError(code="permission_denied", message_key="permission_denied")
        if not ClienteRepository().get_by_id(db, cliente_id):
            raise NotFoundError(code="cliente_not_found", message_key="cliente_not_found")
        return int(cliente_id)

    def _pasta(self, cliente_id: int, tipo_documento: str | None) -> str:
        return os.path.join(self.upload_dir, str(cliente_id), pasta_documento(tipo_documento))

    def _caminho(self, documento: dict) -> str:
        return os.path.join(self.upload_dir, documento["arquivo_pdf"])

    def _with_prazo(self, documento: dict) -> dict:
        # The stored status is only refreshed by the scheduler; reads use today's date.
        documento["status"] = self._status(documento.get("data_validade"))
        documento["dias_para_vencer"] = dias_para_vencer(documento.get("data_validade"))
        return documento

    def _current(self, db, *, scope: int | None, filters: Dict[str, Any]) -> list[dict]:
        return [self._with_prazo(row) for row in DocumentacaoRepository(cliente_id=scope).list(db, filters)]

    def _status(self, data_validade: Any) -> str:
        return status_documento(data_validade, warning_days=self.warning_days)

    def upload(
        self,
        db,
        payload: Mapping[str, Any],
        upload: UploadedDocumento | None,
        *,
        scope: int | None,
        user_id: int | None,
    ) -> ServiceOutput:
        if upload is None or not upload.filename:
            raise UserActionError(code="arquivo_required", message_key="arquivo_required")
        if not is_pdf(upload):
            raise UserActionError(code="arquivo_not_pdf", message_key="arquivo_not_pdf")

        fields, errors = read_documento_form(payload)
        form = FormReader(payload)
        cliente_id = form.integer("cliente_id")
        errors.update(form.errors)
        if errors:
            raise field_errors(errors)
        cliente_id = self._check_cliente(db, cliente_id, scope=scope)

        fields["data_validade"] = resolve_validade(fields["tipo_documento"], fields.get("data_emissao"), fields.get("data_validade"))
        fields["status"] = self._status(fields["data_validade"])

        pasta = self._pasta(cliente_id, fields["tipo_documento"])
        os.makedirs(pasta, exist_ok=True)
        nome = f"{uuid.uuid4().hex[:8]}_{secure_filename(upload.filename) or 'documento.pdf'}"
        with open(os.path.join(pasta, nome), "wb") as handle:
            handle.write(upload.content)

        fields.update(
            {
                "arquivo_pdf": os.path.relpath(os.path.join(pasta, nome), self.upload_dir).replace(os.sep, "/"),
                "data_upload": datetime.now(timezone.utc).isoformat(),
                "cliente_id": cliente_id,
                "user_upload_id": user_id,
            }
        )
        documento_id = DocumentacaoRepository().create(db, fields)
        LOGGER.info(
            "documento_uploaded",
            extra={"documento_id": documento_id, "cliente_id": cliente_id, "tipo_documento": fields["tipo_documento"]},
        )
        return ServiceOutput(self._with_prazo(DocumentacaoRepository().get_by_id(db, documento_id)), 201)

    def listar(self, db, *, scope: int | None, filters: Dict[str, Any]) -> list[dict]:
        if filters.get("status") and filters["status"] not in STATUS_DOCUMENTO:
            raise UserActionError(code="status_invalid", message_key="status_invalid")
        if filters.get("tipo_documento") and filters["tipo_documento"] not in TIPOS_DOCUMENTO:
            raise UserActionError(code="tipo_documento_invalid", message_key="tipo_documento_invalid")
        status = filters.get("status")
        documentos = self._current(db, scope=scope, filters={key: value for key, value in filters.items() if key != "status"})
        return [row for row in documentos if not status or row["status"] == status]

    def get_documento(self, db, documento_id: int, *, scope: int | None) -> dict:
        return self._with_prazo(self._load(db, documento_id, scope=scope))

    def update_documento(self, db, documento_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        current = self._load(db, documento_id, scope=scope)
        fields, errors = read_documento_form(payload, partial=True)
        if errors:
            raise field_errors(errors)

        merged = {**current, **fields}
        fields["data_validade"] = resolve_validade(merged.get("tipo_documento"), merged.get("data_emissao"), merged.get("data_validade"))
        fields["status"] = self._status(fields["data_validade"])

        if merged.get("tipo_documento") != current.get("tipo_documento"):
            fields["arquivo_pdf"] = self._mover(current, merged["tipo_documento"])

        DocumentacaoRepository().update(db, documento_id, fields)
        return ServiceOutput(self._with_prazo(DocumentacaoRepository().get_by_id(db, documento_id)))

    def delete_documento(self, db, documento_id: int, *, scope: int | None) -> ServiceOutput:
        documento = self._load(db, documento_id, scope=scope)
        DocumentacaoRepository().delete(db, documento_id)
        caminho = self._caminho(documento)
        if os.path.isfile(caminho):
            os.remove(caminho)
        return ServiceOutput({"deleted": True, "id": documento_id})

    def arquivo(self, db, documento_id: int, *, scope: int | None) -> Tuple[str, str]:
        """Absolute path and download name of the stored PDF."""
        documento = self._load(db, documento_id, scope=scope)
        caminho = self._caminho(documento)
        if not os.path.isfile(caminho):
            raise NotFoundError(code="arquivo_not_found", message_key="arquivo_not_found")
        return caminho, os.path.basename(caminho)

    def dados_extraidos(self, db, documento_id: int, *, scope: int | None) -> dict:
        documento = self._load(db, documento_id, scope=scope)
        data = {field: documento.get(field) for field in _EXTRACTED_FIELDS}
        data["documento_id"] = documento["id"]
        data["dados_extraidos"] = documento.get("dados_extraidos")
        return data

    def vencendo(self, db, *, scope: int | None, dias: int | None = None, cliente_id: int | None = None) -> list[dict]:
        dias = self.warning_days if dias is None else max(0, int(dias))
        hoje = date.today()
        filters = {
            "cliente_id": cliente_id,
            "validade_desde": hoje.isoformat(),
            "validade_ate": (hoje + timedelta(days=dias)).isoformat(),
        }
        return self._current(db, scope=scope, filters=filters)

    def notificacoes(self, db, *, scope: int | None, cliente_id: int | None = None) -> dict:
        documentos = self._current(db, scope=scope, filters={"cliente_id": cliente_id})
        expirados = [row for row in documentos if row["status"] == "EXPIRADO"]
        vencendo = [row for row in documentos if row["status"] == "VENCENDO"]
        return {
            "expirados": expirados,
            "vencendo": vencendo,
            "total": len(expirados) + len(vencendo),
        }

    def por_status(self, db, *, scope: int | None, cliente_id: int | None = None) -> dict:
        resultado = {status: 0 for status in STATUS_DOCUMENTO}
        for row in self._current(db, scope=scope, filters={"cliente_id": cliente_id}):
            resultado[row["status"]] += 1
        resultado["total"] = sum(resultado.values())
        return resultado

    def atualizar_status(self, db, *, scope: int | None = None, today: date | None = None) -> Tuple[int, int]:
        """Recomputes rule-based validity and status; returns (updated, processed)."""
        repository = DocumentacaoRepository(cliente_id=scope)
        documentos = repository.list(db, {})
        atualizadas = 0
        for documento in documentos:
            changes = recalcular_documento(documento, warning_days=self.warning_days, today=today)
            if changes:
                repository.update(db, documento["id"], changes)
                atualizadas += 1
        return atualizadas, len(documentos)

    def atualizar_datas_emissao(self, db, *, scope: int | None) -> dict:
        atualizadas, total = self.atualizar_status(db, scope=scope)
        return {
            "message": success_message("datas_emissao_atualizadas"),
            "atualizadas": atualizadas,
            "total_processadas": total,
        }

    def _mover(self, documento: dict, tipo_documento: str | None) -> str:
        origem = self._caminho(documento)
        pasta = self._pasta(int(documento["cliente_id"]), tipo_documento)
        destino = os.path.join(pasta, os.path.basename(origem))
        if os.path.isfile(origem) and os.path.abspath(origem) != os.path.abspath(destino):
            os.makedirs(pasta, exist_ok=True)
            shutil.move(origem, destino)
        return os.path.relpath(destino, self.upload_dir).replace(os.sep, "/")

    def _arquivo_esperado(self, documento: dict) -> str:
        nome = os.path.basename(str(documento["arquivo_pdf"]).replace("/", os.sep))
        return "/".join([str(documento["cliente_id"]), pasta_documento(documento.get("tipo_documento")), nome])

    def corrigir_pastas(self, db, *, scope: int | None) -> dict:
        """Creates the per-cliente folder and one folder per stored document type."""
        clientes = ClienteRepository(cliente_id=scope).list_all(db)
        documentos = DocumentacaoRepository(cliente_id=scope).list(db, {})
        corrigidos = 0
        for cliente in clientes:
            tipos = {row.get("tipo_documento") for row in documentos if int(row["cliente_id"]) == int(cliente["id"])}
            pastas = [os.path.join(self.upload_dir, str(cliente["id"]))]
            pastas.extend(self._pasta(int(cliente["id"]), tipo) for tipo in sorted(tipos, key=str))
            faltando = [pasta for pasta in pastas if not os.path.isdir(pasta)]
            for pasta in faltando:
                os.makedirs(pasta, exist_ok=True)
            if faltando:
                corrigidos += 1
        LOGGER.info("pastas_clientes_corrigidas", extra={"corrigidos": corrigidos, "total": len(clientes)})
        return {
            "message": success_message("pastas_corrigidas"),
            "corrigidos": corrigidos,
            "total_processados": len(clientes),
        }

    def mover_arquivos(self, db, *, scope: int | None) -> dict:
        """Moves every stored PDF to ``<cliente_id>/<tipo>/`` and fixes its path."""
        repository = DocumentacaoRepository(cliente_id=scope)
        documentos = repository.list(db, {})
        movidas = 0
        for documento in documentos:
            esperado = self._arquivo_esperado(documento)
            if str(documento["arquivo_pdf"]) == esperado:
                continue
            if not os.path.isfile(self._caminho(documento)):
                LOGGER.warning("documento_arquivo_ausente", extra={"documento_id": documento["id"]})
                continue
            repository.update(db, documento["id"], {"arquivo_pdf": self._mover(documento, documento.get("tipo_documento"))})
            movidas += 1
        return {
            "message": success_message("arquivos_movidos"),
            "movidas": movidas,
            "total_processadas": len(documentos),
        }

    def mover_atestados_capacidade(self, db, *, scope: int | None) -> dict:
        repository = DocumentacaoRepository(cliente_id=scope)
        atestados = repository.list(db, {"tipo_documento": "ATESTADO_CAPACIDADE"})
        movidas = 0
        for documento in atestados:
            pasta_atual = os.path.dirname(str(documento["arquivo_pdf"]).replace("/", os.sep))
            if os.path.basename(pasta_atual) == PASTA_ATESTADOS:
                continue
            novo = self._mover(documento, "ATESTADO_CAPACIDADE")
            repository.update(db, documento["id"], {"arquivo_pdf": novo})
            movidas += 1
        return {
            "message": success_message("atestados_movidos"),
            "movidas": movidas,
            "total_processadas": len(atestados),
        }

    def habilitacao_zip(self, db, *, scope: int | None, cliente_id: int | None = None) -> io.BytesIO:
        """Zip of the non-expired documents, one folder per document type."""
        documentos = [
            row
            for row in self._current(db, scope=scope, filters={"cliente_id": cliente_id})
            if row["status"] != "EXPIRADO"
        ]
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for documento in documentos:
                caminho = self._caminho(documento)
                if not os.path.isfile(caminho):
                    LOGGER.warning("documento_arquivo_ausente", extra={"documento_id": documento["id"]})
                    continue
                arcname = "/".join(
                    [
                        secure_filename(str(documento.get("cliente_nome") or documento["cliente_id"])) or "cliente",
                        pasta_documento(documento.get("tipo_documento")),
                        os.path.basename(caminho),
                    ]
                )
                archive.write(caminho, arcname)
        buffer.seek(0)
        return buffer

