from __future__ import annotations

from typing import Any, Dict

from licitasis.infrastructure.repositories.base import BaseRepository


class ClienteRepository(BaseRepository):
    table = "clientes"
    scope_column = "id"

    def get_by_id(self, db, cliente_id: int) -> dict | None:
        conditions = ["id = ?"]
        params: list[Any] = [cliente_id]
        self.scope_conditions(conditions, params)
        row = db.execute(
            f"SELECT * FROM clientes {self.where_sql(conditions)} LIMIT 1",
            tuple(params),
        ).fetchone()
        return self.row_to_dict(row)

    def get_by_cpf_cnpj(self, db, cpf_cnpj: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM clientes WHERE cpf_cnpj = ? LIMIT 1",
            (cpf_cnpj,),
        ).fetchone()
        return self.row_to_dict(row)

    def list_all(self, db, *, search: str | None = None) -> list[dict]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params)
        if search:
            like = f"%{search.lower()}%"
            conditions.append("(LOWER(nome) LIKE ? OR LOWER(cpf_cnpj) LIKE ? OR LOWER(COALESCE(email, '')) LIKE ?)")
            params.extend([like, like, like])
        rows = db.execute(
            f"SELECT * FROM clientes {self.where_sql(conditions)} ORDER BY nome ASC, id ASC",
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_licitacoes(self, db, cliente_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM licitacoes WHERE cliente_id = ?",
            (cliente_id,),
        ).fetchone()
        return int(row["total"] or 0)

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, cliente_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, cliente_id, fields)

    def delete(self, db, cliente_id: int) -> None:
        db.execute("UPDATE usuarios SET cliente_id = NULL WHERE cliente_id = ?", (cliente_id,))
        self.delete_by_id(db, cliente_id)
