from __future__ import annotations

from typing import Any, Dict, Mapping

from werkzeug.security import generate_password_hash

from licitasis.application.cliente_service import ClienteService, read_cliente_form
from licitasis.domain.contracts import ServiceOutput
from licitasis.errors import ConflictError, NotFoundError, UserActionError, field_errors
from licitasis.infrastructure.repositories.licitacoes import ClienteRepository, UsuarioRepository
from licitasis.licitacoes.validators import FormReader


class UsuarioService:
    def __init__(self, cliente_service: ClienteService | None = None) -> None:
        self.cliente_service = cliente_service or ClienteService()
        self.repository = UsuarioRepository()

    def list_usuarios(self, db) -> list[dict]:
        return self.repository.list_all(db)

    def get_usuario(self, db, usuario_id: int) -> dict:
        row = self.repository.get_by_id(db, usuario_id)
        if not row:
            raise NotFoundError(code="usuario_not_found", message_key="usuario_not_found")
        return row

    def _check_unique(self, db, fields: Dict[str, Any], *, exclude_id: int | None = None) -> None:
        if fields.get("email") and self.repository.email_taken(db, fields["email"], exclude_id=exclude_id):
            raise ConflictError(code="email_already_registered", message_key="email_already_registered")
        if fields.get("username") and self.repository.username_taken(db, fields["username"], exclude_id=exclude_id):
            raise ConflictError(code="username_already_registered", message_key="username_already_registered")

    def _resolve_cliente(self, db, payload: Mapping[str, Any], form: FormReader, user_fields: Dict[str, Any]) -> int | None:
        """Links an existing cliente or creates one from the ``cliente_*`` fields."""
        cliente_id = form.integer("cliente_id")
        if cliente_id:
            if not ClienteRepository().get_by_id(db, cliente_id):
                raise NotFoundError(code="cliente_not_found", message_key="cliente_not_found")
            return cliente_id

        wants_new = any(str(key).startswith("cliente_") and payload.get(key) for key in payload if key != "cliente_id")
        if not wants_new:
            return None

        source = dict(payload)
        if not source.get("cliente_nome"):
            source["cliente_nome"] = user_fields.get("full_name") or user_fields.get("username")
        if not source.get("cliente_email"):
            source["cliente_email"] = user_fields.get("email")
        cliente_fields, errors = read_cliente_form(source, prefix="cliente_")
        if errors:
            raise field_errors(errors)
        cliente = self.cliente_service.create_from_fields(db, cliente_fields)
        return int(cliente["id"])

    def create_usuario(self, db, payload: Mapping[str, Any]) -> ServiceOutput:
        form = FormReader(payload)
        fields: Dict[str, Any] = {
            "email": form.email("email", required=True),
            "username": form.text("username", required=True),
            "full_name": form.text("full_name"),
            "is_active": form.boolean("is_active", default=True),
            "is_admin": form.boolean("is_admin", default=False),
        }
        password = form.text("password", required=True)
        form.raise_if_errors()
        self._check_unique(db, fields)

        cliente_id = self._resolve_cliente(db, payload, form, fields)
        form.raise_if_errors()
        if not fields["is_admin"] and not cliente_id:
            raise UserActionError(
                code="cliente_required",
                message_key="cliente_required",
                payload={"fields": {"cliente_id": "Selecione ou informe um cliente."}},
            )

        fields["cliente_id"] = cliente_id
        fields["password_hash"] = generate_password_hash(password)
        fields["is_active"] = int(fields["is_active"])
        fields["is_admin"] = int(fields["is_admin"])
        usuario_id = self.repository.create(db, fields)
        return ServiceOutput(self.repository.get_by_id(db, usuario_id), 201)

    def update_usuario(self, db, usuario_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        current = self.get_usuario(db, usuario_id)
        form = FormReader(payload, partial=True)
        fields: Dict[str, Any] = {}
        if form.has("email"):
            fields["email"] = form.email("email", required=True)
        if form.has("username"):
            fields["username"] = form.text("username", required=True)
        if form.has("full_name"):
            fields["full_name"] = form.text("full_name")
        if form.has("is_active"):
            fields["is_active"] = int(form.boolean("is_active"))
        if form.has("is_admin"):
            fields["is_admin"] = int(form.boolean("is_admin"))
        password = form.text("password")
        form.raise_if_errors()
        self._check_unique(db, fields, exclude_id=usuario_id)

        merged = {**current, **fields}
        cliente_id = self._resolve_cliente(db, payload, form, merged)
        form.raise_if_errors()
        if cliente_id:
            fields["cliente_id"] = cliente_id
        elif form.has("cliente_id") and not payload.get("cliente_id"):
            fields["cliente_id"] = None

        if not merged.get("is_admin") and not fields.get("cliente_id", current.get("cliente_id")):
            raise UserActionError(code="cliente_required", message_key="cliente_required")
        if password:
            fields["password_hash"] = generate_password_hash(password)

        self.repository.update(db, usuario_id, fields)
        return ServiceOutput(self.repository.get_by_id(db, usuario_id))

    def delete_usuario(self, db, usuario_id: int, *, current_user_id: int | None) -> ServiceOutput:
        self.get_usuario(db, usuario_id)
        if current_user_id is not None and int(current_user_id) == int(usuario_id):
            raise UserActionError(code="cannot_delete_self", message_key="cannot_delete_self")
        self.repository.delete(db, usuario_id)
        return ServiceOutput({"deleted": True, "id": usuario_id})
