from __future__ import annotations

from typing import Any, Dict, List, Tuple

from licitasis.infrastructure.repositories.base import BaseRepository


class LicitacaoRepository(BaseRepository):
    table = "licitacoes"

    def get_by_id(self, db, licitacao_id: int) -> dict | None:
        conditions = ["l.id = ?"]
        params: list[Any] = [licitacao_id]
        self.scope_conditions(conditions, params, table_alias="l")
        row = db.execute(
            f"""
            SELECT l.*, c.nome AS cliente_nome, c.imposto_cliente AS cliente_imposto
            FROM licitacoes l
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            LIMIT 1
            """,
            tuple(params),
        ).fetchone()
        return self.row_to_dict(row)

    def _filters(self, filters: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")

        search = str(filters.get("search") or "").strip().lower()
        if search:
            like = f"%{search}%"
            conditions.append(
                """
                (LOWER(l.descricao) LIKE ? OR LOWER(l.numero) LIKE ? OR LOWER(l.uasg) LIKE ?
                 OR LOWER(COALESCE(l.nome_orgao, '')) LIKE ?)
                """
            )
            params.extend([like, like, like, like])
        if filters.get("status"):
            conditions.append("l.status = ?")
            params.append(filters["status"])
        if filters.get("cliente_id"):
            conditions.append("l.cliente_id = ?")
            params.append(filters["cliente_id"])
        if filters.get("data_inicio"):
            conditions.append("l.data_licitacao >= ?")
            params.append(filters["data_inicio"])
        if filters.get("data_fim"):
            conditions.append("l.data_licitacao <= ?")
            params.append(filters["data_fim"])
        if filters.get("tipo_licitacao"):
            conditions.append("l.tipo_licitacao = ?")
            params.append(filters["tipo_licitacao"])
        if filters.get("sem_pedidos"):
            conditions.append("NOT EXISTS (SELECT 1 FROM pedidos p WHERE p.licitacao_id = l.id)")
        if filters.get("sem_contrato"):
            conditions.append("NOT EXISTS (SELECT 1 FROM contratos ct WHERE ct.licitacao_id = l.id)")
        return conditions, params

    def count(self, db, filters: Dict[str, Any]) -> int:
        conditions, params = self._filters(filters)
        row = db.execute(
            f"SELECT COUNT(*) AS total FROM licitacoes l {self.where_sql(conditions)}",
            tuple(params),
        ).fetchone()
        return int(row["total"] or 0)

    def list(self, db, filters: Dict[str, Any], *, limit: int | None = None, offset: int = 0) -> list[dict]:
        conditions, params = self._filters(filters)
        paging = ""
        if limit is not None:
            paging = "LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])
        rows = db.execute(
            f"""
            SELECT l.*, c.nome AS cliente_nome
            FROM licitacoes l
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            ORDER BY l.data_licitacao DESC, l.id DESC
            {paging}
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def next_indice(self, db, cliente_id: int) -> int:
        row = db.execute(
            "SELECT COALESCE(MAX(indice), 0) AS ultimo FROM licitacoes WHERE cliente_id = ?",
            (cliente_id,),
        ).fetchone()
        return int(row["ultimo"] or 0) + 1

    def dependency_counts(self, db, licitacao_id: int) -> Dict[str, int]:
        pedidos = db.execute(
            "SELECT COUNT(*) AS total FROM pedidos WHERE licitacao_id = ?",
            (licitacao_id,),
        ).fetchone()
        contratos = db.execute(
            "SELECT COUNT(*) AS total FROM contratos WHERE licitacao_id = ?",
            (licitacao_id,),
        ).fetchone()
        return {"pedidos": int(pedidos["total"] or 0), "contratos": int(contratos["total"] or 0)}

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, licitacao_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, licitacao_id, fields)

    def delete(self, db, licitacao_id: int) -> None:
        db.execute("DELETE FROM itens_licitacao WHERE licitacao_id = ?", (licitacao_id,))
        db.execute("DELETE FROM grupos_licitacao WHERE licitacao_id = ?", (licitacao_id,))
        self.delete_by_id(db, licitacao_id)

    def list_ids(self, db) -> list[int]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")
        rows = db.execute(
            f"SELECT l.id FROM licitacoes l {self.where_sql(conditions)} ORDER BY l.id",
            tuple(params),
        ).fetchall()
        return [int(row["id"]) for row in rows]


class ItemLicitacaoRepository(BaseRepository):
    table = "itens_licitacao"

    def list_by_licitacao(self, db, licitacao_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM itens_licitacao
            WHERE licitacao_id = ?
            ORDER BY COALESCE(posicao, 0) ASC, codigo_item ASC, id ASC
            """,
            (licitacao_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, item_id: int) -> dict | None:
        row = db.execute("SELECT * FROM itens_licitacao WHERE id = ? LIMIT 1", (item_id,)).fetchone()
        return self.row_to_dict(row)

    def codes(self, db, licitacao_id: int) -> list[str]:
        rows = db.execute(
            "SELECT codigo_item FROM itens_licitacao WHERE licitacao_id = ?",
            (licitacao_id,),
        ).fetchall()
        return [str(row["codigo_item"]) for row in rows]

    def is_referenced_by_pedidos(self, db, item_id: int) -> bool:
        row = db.execute(
            "SELECT 1 FROM itens_pedido WHERE item_licitacao_id = ? LIMIT 1",
            (item_id,),
        ).fetchone()
        return row is not None

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, item_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, item_id, fields)

    def delete(self, db, item_id: int) -> None:
        self.delete_by_id(db, item_id)

    def delete_by_licitacao(self, db, licitacao_id: int) -> None:
        db.execute("DELETE FROM itens_licitacao WHERE licitacao_id = ?", (licitacao_id,))


class GrupoLicitacaoRepository(BaseRepository):
    table = "grupos_licitacao"

    def list_by_licitacao(self, db, licitacao_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM grupos_licitacao
            WHERE licitacao_id = ?
            ORDER BY COALESCE(posicao, 0) ASC, id ASC
            """,
            (licitacao_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, grupo_id: int) -> dict | None:
        row = db.execute("SELECT * FROM grupos_licitacao WHERE id = ? LIMIT 1", (grupo_id,)).fetchone()
        return self.row_to_dict(row)

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, grupo_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, grupo_id, fields)

    def delete(self, db, grupo_id: int) -> None:
        db.execute("UPDATE itens_licitacao SET grupo_id = NULL WHERE grupo_id = ?", (grupo_id,))
        self.delete_by_id(db, grupo_id)

    def delete_by_licitacao(self, db, licitacao_id: int) -> None:
        db.execute("DELETE FROM grupos_licitacao WHERE licitacao_id = ?", (licitacao_id,))
