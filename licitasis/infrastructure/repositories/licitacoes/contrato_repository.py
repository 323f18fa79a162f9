from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from licitasis.infrastructure.repositories.base import BaseRepository


_CONTRATO_COLUMNS = """
    ct.*, l.cliente_id, l.numero AS licitacao_numero, l.descricao AS licitacao_descricao,
    l.uasg AS licitacao_uasg, l.preco_final AS licitacao_preco_final, c.nome AS cliente_nome
"""


class ContratoRepository(BaseRepository):
    table = "contratos"

    def get_by_id(self, db, contrato_id: int) -> dict | None:
        conditions = ["ct.id = ?"]
        params: list[Any] = [contrato_id]
        self.scope_conditions(conditions, params, table_alias="l")
        row = db.execute(
            f"""
            SELECT {_CONTRATO_COLUMNS}
            FROM contratos ct
            JOIN licitacoes l ON l.id = ct.licitacao_id
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            LIMIT 1
            """,
            tuple(params),
        ).fetchone()
        return self.row_to_dict(row)

    def get_by_licitacao(self, db, licitacao_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM contratos WHERE licitacao_id = ? LIMIT 1",
            (licitacao_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def _filters(self, filters: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")
        search = str(filters.get("search") or "").strip().lower()
        if search:
            like = f"%{search}%"
            conditions.append("(LOWER(ct.numero_contrato) LIKE ? OR LOWER(l.numero) LIKE ? OR LOWER(l.descricao) LIKE ?)")
            params.extend([like, like, like])
        if filters.get("status"):
            conditions.append("ct.status = ?")
            params.append(filters["status"])
        if filters.get("cliente_id"):
            conditions.append("l.cliente_id = ?")
            params.append(filters["cliente_id"])
        return conditions, params

    def count(self, db, filters: Dict[str, Any]) -> int:
        conditions, params = self._filters(filters)
        row = db.execute(
            f"""
            SELECT COUNT(*) AS total
            FROM contratos ct
            JOIN licitacoes l ON l.id = ct.licitacao_id
            {self.where_sql(conditions)}
            """,
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
            SELECT {_CONTRATO_COLUMNS}
            FROM contratos ct
            JOIN licitacoes l ON l.id = ct.licitacao_id
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            ORDER BY ct.data_contrato DESC, ct.id DESC
            {paging}
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def stats(self, db, *, cliente_id: int | None = None) -> Dict[str, Any]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")
        if cliente_id:
            conditions.append("l.cliente_id = ?")
            params.append(cliente_id)
        rows = db.execute(
            f"""
            SELECT ct.status AS status, COUNT(*) AS total, COALESCE(SUM(ct.valor_contrato), 0) AS valor
            FROM contratos ct
            JOIN licitacoes l ON l.id = ct.licitacao_id
            {self.where_sql(conditions)}
            GROUP BY ct.status
            """,
            tuple(params),
        ).fetchall()
        counts = {str(row["status"]): int(row["total"] or 0) for row in rows}
        valor_total = sum((Decimal(str(row["valor"] or 0)) for row in rows), Decimal("0"))
        return {
            "total_contratos": sum(counts.values()),
            "contratos_ativos": counts.get("ATIVO", 0),
            "contratos_suspensos": counts.get("SUSPENSO", 0),
            "contratos_encerrados": counts.get("ENCERRADO", 0),
            "valor_total_contratos": valor_total,
        }

    def itens(self, db, contrato_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT ic.id, ic.contrato_id, ic.item_licitacao_id, ic.quantidade_contratada,
                   il.codigo_item, il.descricao, il.unidade_medida, il.quantidade AS quantidade_licitacao,
                   il.preco_unitario, il.custo_unitario, il.grupo_id
            FROM itens_contrato ic
            JOIN itens_licitacao il ON il.id = ic.item_licitacao_id
            WHERE ic.contrato_id = ?
            ORDER BY COALESCE(il.posicao, 0) ASC, il.codigo_item ASC
            """,
            (contrato_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def quantidades_contratadas(self, db, licitacao_id: int) -> Dict[int, Decimal]:
        rows = db.execute(
            """
            SELECT ic.item_licitacao_id, ic.quantidade_contratada
            FROM itens_contrato ic
            JOIN contratos ct ON ct.id = ic.contrato_id
            WHERE ct.licitacao_id = ?
            """,
            (licitacao_id,),
        ).fetchall()
        return {int(row["item_licitacao_id"]): Decimal(str(row["quantidade_contratada"] or 0)) for row in rows}

    def replace_itens(self, db, contrato_id: int, itens: Iterable[Dict[str, Any]]) -> None:
        db.execute("DELETE FROM itens_contrato WHERE contrato_id = ?", (contrato_id,))
        for item in itens:
            db.execute(
                """
                INSERT INTO itens_contrato (contrato_id, item_licitacao_id, quantidade_contratada)
                VALUES (?, ?, ?)
                """,
                (contrato_id, item["item_licitacao_id"], item["quantidade_contratada"]),
            )

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, contrato_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, contrato_id, fields)

    def delete(self, db, contrato_id: int) -> None:
        db.execute("DELETE FROM itens_contrato WHERE contrato_id = ?", (contrato_id,))
        self.delete_by_id(db, contrato_id)
