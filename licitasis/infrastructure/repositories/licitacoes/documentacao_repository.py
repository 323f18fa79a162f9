from __future__ import annotations

from typing import Any, Dict, List, Tuple

from licitasis.infrastructure.repositories.base import BaseRepository


class DocumentacaoRepository(BaseRepository):
    table = "documentacoes"

    def get_by_id(self, db, documento_id: int) -> dict | None:
        conditions = ["d.id = ?"]
        params: list[Any] = [documento_id]
        self.scope_conditions(conditions, params, table_alias="d")
        row = db.execute(
            f"""
            SELECT d.*, c.nome AS cliente_nome
            FROM documentacoes d
            JOIN clientes c ON c.id = d.cliente_id
            {self.where_sql(conditions)}
            LIMIT 1
            """,
            tuple(params),
        ).fetchone()
        return self.row_to_dict(row)

    def _filters(self, filters: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="d")
        if filters.get("cliente_id"):
            conditions.append("d.cliente_id = ?")
            params.append(filters["cliente_id"])
        if filters.get("tipo_documento"):
            conditions.append("d.tipo_documento = ?")
            params.append(filters["tipo_documento"])
        if filters.get("validade_ate"):
            conditions.append("d.data_validade IS NOT NULL AND d.data_validade <= ?")
            params.append(filters["validade_ate"])
        if filters.get("validade_desde"):
            conditions.append("d.data_validade >= ?")
            params.append(filters["validade_desde"])
        return conditions, params

    def list(self, db, filters: Dict[str, Any] | None = None) -> list[dict]:
        conditions, params = self._filters(filters or {})
        rows = db.execute(
            f"""
            SELECT d.*, c.nome AS cliente_nome
            FROM documentacoes d
            JOIN clientes c ON c.id = d.cliente_id
            {self.where_sql(conditions)}
            ORDER BY d.tipo_documento ASC, d.data_validade ASC, d.id ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, documento_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, documento_id, fields)

    def delete(self, db, documento_id: int) -> None:
        self.delete_by_id(db, documento_id)
