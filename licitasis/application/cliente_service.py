from __future__ import annotations

from typing import Any, Dict, Mapping, Tuple

from licitasis.domain.contracts import ServiceOutput
from licitasis.errors import ConflictError, NotFoundError, field_errors
from licitasis.infrastructure.repositories.licitacoes import ClienteRepository
from licitasis.licitacoes.validators import FormReader, format_telefone


def read_cliente_form(
    payload: Mapping[str, Any],
    *,
    partial: bool = False,
    prefix: str = "",
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Validates cliente fields; ``prefix`` maps e.g. ``cliente_nome`` onto ``nome``."""
    source = {key[len(prefix):]: value for key, value in dict(payload or {}).items() if key.startswith(prefix)}
    form = FormReader(source, partial=partial)
    values = (
        ("nome", form.text("nome", required=True)),
        ("cpf_cnpj", form.cpf_cnpj("cpf_cnpj", required=True)),
        ("email", form.email("email")),
        ("telefone", format_telefone(form.text("telefone"))),
        ("endereco", form.text("endereco")),
        ("imposto_cliente", form.percent("imposto_cliente")),
    )
    fields = {name: value for name, value in values if not form.skip(name)}
    errors = {f"{prefix}{name}": message for name, message in form.errors.items()}
    return fields, errors


class ClienteService:
    def list_clientes(self, db, *, scope: int | None, search: str | None = None) -> list[dict]:
        return ClienteRepository(cliente_id=scope).list_all(db, search=(search or "").strip() or None)

    def get_cliente(self, db, cliente_id: int, *, scope: int | None) -> dict:
        row = ClienteRepository(cliente_id=scope).get_by_id(db, cliente_id)
        if not row:
            raise NotFoundError(code="cliente_not_found", message_key="cliente_not_found")
        return row

    def create_from_fields(self, db, fields: Dict[str, Any]) -> dict:
        repository = ClienteRepository()
        if repository.get_by_cpf_cnpj(db, fields["cpf_cnpj"]):
            raise ConflictError(code="cpf_cnpj_already_registered", message_key="cpf_cnpj_already_registered")
        cliente_id = repository.create(db, fields)
        return repository.get_by_id(db, cliente_id)

    def create_cliente(self, db, payload: Mapping[str, Any]) -> ServiceOutput:
        fields, errors = read_cliente_form(payload)
        if errors:
            raise field_errors(errors)
        return ServiceOutput(self.create_from_fields(db, fields), 201)

    def update_cliente(self, db, cliente_id: int, payload: Mapping[str, Any], *, scope: int | None) -> ServiceOutput:
        repository = ClienteRepository(cliente_id=scope)
        self.get_cliente(db, cliente_id, scope=scope)
        fields, errors = read_cliente_form(payload, partial=True)
        if errors:
            raise field_errors(errors)
        if "cpf_cnpj" in fields:
            existing = ClienteRepository().get_by_cpf_cnpj(db, fields["cpf_cnpj"])
            if existing and int(existing["id"]) != int(cliente_id):
                raise ConflictError(code="cpf_cnpj_already_registered", message_key="cpf_cnpj_already_registered")
        repository.update(db, cliente_id, fields)
        return ServiceOutput(repository.get_by_id(db, cliente_id))

    def delete_cliente(self, db, cliente_id: int) -> ServiceOutput:
        repository = ClienteRepository()
        self.get_cliente(db, cliente_id, scope=None)
        if repository.count_licitacoes(db, cliente_id):
            raise ConflictError(code="cliente_has_licitacoes", message_key="cliente_has_licitacoes")
        repository.delete(db, cliente_id)
        return ServiceOutput({"deleted": True, "id": cliente_id})
