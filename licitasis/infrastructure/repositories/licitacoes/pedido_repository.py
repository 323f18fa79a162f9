from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from licitasis.infrastructure.repositories.base import BaseRepository


_PEDIDO_COLUMNS = """
    p.*, l.cliente_id, l.numero AS licitacao_numero, l.descricao AS licitacao_descricao,
    l.uasg AS licitacao_uasg, l.status AS licitacao_status, c.nome AS cliente_nome
"""


class PedidoRepository(BaseRepository):
    """Orders are scoped through the cliente of their licitação."""

    table = "pedidos"

    def get_by_id(self, db, pedido_id: int) -> dict | None:
        conditions = ["p.id = ?"]
        params: list[Any] = [pedido_id]
        self.scope_conditions(conditions, params, table_alias="l")
        row = db.execute(
            f"""
            SELECT {_PEDIDO_COLUMNS}
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
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
        if filters.get("status_geral"):
            conditions.append("p.status_geral = ?")
            params.append(filters["status_geral"])
        if filters.get("status_pagamento"):
            conditions.append("p.status_pagamento = ?")
            params.append(filters["status_pagamento"])
        if filters.get("cliente_id"):
            conditions.append("l.cliente_id = ?")
            params.append(filters["cliente_id"])
        if filters.get("licitacao_id"):
            conditions.append("p.licitacao_id = ?")
            params.append(filters["licitacao_id"])
        search = str(filters.get("search") or "").strip().lower()
        if search:
            like = f"%{search}%"
            conditions.append("(LOWER(l.numero) LIKE ? OR LOWER(l.descricao) LIKE ? OR LOWER(COALESCE(p.numero_nota_fiscal, '')) LIKE ?)")
            params.extend([like, like, like])
        return conditions, params

    def count(self, db, filters: Dict[str, Any]) -> int:
        conditions, params = self._filters(filters)
        row = db.execute(
            f"""
            SELECT COUNT(*) AS total
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
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
            SELECT {_PEDIDO_COLUMNS}
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            ORDER BY p.created_at DESC, p.id DESC
            {paging}
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def latest_for_licitacao(self, db, licitacao_id: int) -> dict | None:
        conditions = ["p.licitacao_id = ?"]
        params: list[Any] = [licitacao_id]
        self.scope_conditions(conditions, params, table_alias="l")
        row = db.execute(
            f"""
            SELECT {_PEDIDO_COLUMNS}
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT 1
            """,
            tuple(params),
        ).fetchone()
        return self.row_to_dict(row)

    def count_by_contrato(self, db, contrato_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM pedidos WHERE contrato_id = ?",
            (contrato_id,),
        ).fetchone()
        return int(row["total"] or 0)

    def stats(self, db, *, cliente_id: int | None = None) -> Dict[str, int]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")
        if cliente_id:
            conditions.append("l.cliente_id = ?")
            params.append(cliente_id)
        rows = db.execute(
            f"""
            SELECT p.status_geral AS status, COUNT(*) AS total
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
            {self.where_sql(conditions)}
            GROUP BY p.status_geral
            """,
            tuple(params),
        ).fetchall()
        counts = {str(row["status"]): int(row["total"] or 0) for row in rows}
        return {
            "total_pedidos": sum(counts.values()),
            "pedidos_pendentes": counts.get("PENDENTE", 0),
            "pedidos_em_andamento": counts.get("EM_ANDAMENTO", 0),
            "pedidos_concluidos": counts.get("CONCLUIDO", 0),
            "pedidos_cancelados": counts.get("CANCELADO", 0),
        }

    def itens(self, db, pedido_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT ip.*, il.codigo_item, il.descricao, il.unidade_medida, il.grupo_id
            FROM itens_pedido ip
            JOIN itens_licitacao il ON il.id = ip.item_licitacao_id
            WHERE ip.pedido_id = ?
            ORDER BY il.codigo_item ASC, ip.id ASC
            """,
            (pedido_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def empenhos(self, db, pedido_id: int) -> list[dict]:
        rows = db.execute(
            "SELECT * FROM empenhos WHERE pedido_id = ? ORDER BY data_empenho ASC, id ASC",
            (pedido_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def replace_itens(self, db, pedido_id: int, linhas: Iterable[Dict[str, Any]]) -> None:
        db.execute("DELETE FROM itens_pedido WHERE pedido_id = ?", (pedido_id,))
        for linha in linhas:
            db.execute(
                """
                INSERT INTO itens_pedido (
                    pedido_id, item_licitacao_id, quantidade_solicitada,
                    preco_unitario, custo_unitario, preco_total, custo_total
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pedido_id,
                    linha["item_licitacao_id"],
                    linha["quantidade_solicitada"],
                    linha["preco_unitario"],
                    linha["custo_unitario"],
                    linha["preco_total"],
                    linha["custo_total"],
                ),
            )

    def replace_empenhos(self, db, pedido_id: int, empenhos: Iterable[Dict[str, Any]]) -> None:
        db.execute("DELETE FROM empenhos WHERE pedido_id = ?", (pedido_id,))
        for empenho in empenhos:
            db.execute(
                """
                INSERT INTO empenhos (pedido_id, numero_empenho, data_empenho, valor_empenhado, status, observacoes)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    pedido_id,
                    empenho["numero_empenho"],
                    empenho.get("data_empenho"),
                    empenho.get("valor_empenhado") or 0,
                    empenho.get("status") or "EMITIDO",
                    empenho.get("observacoes"),
                ),
            )

    def quantidades_solicitadas(
        self,
        db,
        licitacao_id: int,
        *,
        exclude_pedido_id: int | None = None,
    ) -> Dict[int, Decimal]:
        """Quantity already requested per bid item, optionally ignoring one order."""
        rows = db.execute(
            """
            SELECT ip.item_licitacao_id, SUM(ip.quantidade_solicitada) AS total
            FROM itens_pedido ip
            JOIN pedidos p ON p.id = ip.pedido_id
            WHERE p.licitacao_id = ? AND p.id <> ? AND p.status_geral <> 'CANCELADO'
            GROUP BY ip.item_licitacao_id
            """,
            (licitacao_id, exclude_pedido_id or 0),
        ).fetchall()
        return {int(row["item_licitacao_id"]): Decimal(str(row["total"] or 0)) for row in rows}

    def create(self, db, fields: Dict[str, Any]) -> int:
        return self.insert(db, fields)

    def update(self, db, pedido_id: int, fields: Dict[str, Any]) -> None:
        self.update_fields(db, pedido_id, fields)

    def delete(self, db, pedido_id: int) -> None:
        db.execute("DELETE FROM itens_pedido WHERE pedido_id = ?", (pedido_id,))
        db.execute("DELETE FROM empenhos WHERE pedido_id = ?", (pedido_id,))
        self.delete_by_id(db, pedido_id)
