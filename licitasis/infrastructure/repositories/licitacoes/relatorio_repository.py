from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from licitasis.infrastructure.repositories.base import BaseRepository


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class RelatorioRepository(BaseRepository):
    """Read-only aggregates behind the dashboard and report pages."""

    def _licitacao_conditions(self, cliente_id: int | None, *, pedido_id: int | None = None) -> Tuple[List[str], List[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        self.scope_conditions(conditions, params, table_alias="l")
        if cliente_id:
            conditions.append("l.cliente_id = ?")
            params.append(cliente_id)
        if pedido_id:
            conditions.append("l.id IN (SELECT licitacao_id FROM pedidos WHERE id = ?)")
            params.append(pedido_id)
        return conditions, params

    def licitacoes_por_status(self, db, *, cliente_id: int | None = None, pedido_id: int | None = None) -> list[dict]:
        conditions, params = self._licitacao_conditions(cliente_id, pedido_id=pedido_id)
        rows = db.execute(
            f"""
            SELECT l.status AS status, COUNT(*) AS quantidade, COALESCE(SUM(l.preco_final), 0) AS valor_total
            FROM licitacoes l
            {self.where_sql(conditions)}
            GROUP BY l.status
            ORDER BY quantidade DESC, l.status ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def margem_media_ganhas(self, db, *, cliente_id: int | None = None, pedido_id: int | None = None) -> float:
        conditions, params = self._licitacao_conditions(cliente_id, pedido_id=pedido_id)
        conditions.extend(["l.status = 'GANHO'", "l.margem_percentual > 0"])
        row = db.execute(
            f"SELECT AVG(l.margem_percentual) AS media FROM licitacoes l {self.where_sql(conditions)}",
            tuple(params),
        ).fetchone()
        return float(row["media"] or 0)

    def licitacoes_por_cliente(self, db, *, pendentes: Sequence[str]) -> list[dict]:
        conditions: list[str] = []
        params: list[Any] = list(pendentes)
        self.scope_conditions(conditions, params, table_alias="c", column_name="id")
        rows = db.execute(
            f"""
            SELECT c.id AS cliente_id, c.nome AS cliente_nome,
                   COUNT(l.id) AS total_licitacoes,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN 1 ELSE 0 END), 0) AS licitacoes_ganhas,
                   COALESCE(SUM(CASE WHEN l.status IN ({_placeholders(pendentes)}) THEN 1 ELSE 0 END), 0) AS licitacoes_pendentes,
                   COALESCE(SUM(CASE WHEN l.status = 'DESCLASSIFICADO' THEN 1 ELSE 0 END), 0) AS licitacoes_desclassificadas,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN l.preco_final ELSE 0 END), 0) AS valor_total_ganho
            FROM clientes c
            LEFT JOIN licitacoes l ON l.cliente_id = c.id
            {self.where_sql(conditions)}
            GROUP BY c.id, c.nome
            ORDER BY total_licitacoes DESC, c.nome ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def licitacoes_por_mes(self, db, *, desde: str, cliente_id: int | None = None) -> list[dict]:
        conditions, params = self._licitacao_conditions(cliente_id)
        conditions.append("l.data_licitacao >= ?")
        params.append(desde)
        rows = db.execute(
            f"""
            SELECT SUBSTR(l.data_licitacao, 1, 7) AS mes,
                   COUNT(*) AS total_licitacoes,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN 1 ELSE 0 END), 0) AS licitacoes_ganhas,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN l.preco_final ELSE 0 END), 0) AS valor_ganho
            FROM licitacoes l
            {self.where_sql(conditions)}
            GROUP BY SUBSTR(l.data_licitacao, 1, 7)
            ORDER BY mes ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def licitacoes_por_portal(self, db, *, cliente_id: int | None = None) -> list[dict]:
        conditions, params = self._licitacao_conditions(cliente_id)
        rows = db.execute(
            f"""
            SELECT COALESCE(l.portal, '') AS portal, COUNT(*) AS quantidade
            FROM licitacoes l
            {self.where_sql(conditions)}
            GROUP BY COALESCE(l.portal, '')
            ORDER BY quantidade DESC, portal ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def licitacoes_por_modalidade(self, db, *, pendentes: Sequence[str], cliente_id: int | None = None) -> list[dict]:
        conditions, params = self._licitacao_conditions(cliente_id)
        params = list(pendentes) + params
        rows = db.execute(
            f"""
            SELECT COALESCE(l.tipo_licitacao, '') AS modalidade,
                   COUNT(*) AS total_licitacoes,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN 1 ELSE 0 END), 0) AS licitacoes_ganhas,
                   COALESCE(SUM(CASE WHEN l.status IN ({_placeholders(pendentes)}) THEN 1 ELSE 0 END), 0) AS licitacoes_pendentes,
                   COALESCE(SUM(pa.pendentes), 0) AS pedidos_pendentes,
                   COALESCE(SUM(pa.entregues), 0) AS pedidos_entregues,
                   COALESCE(SUM(CASE WHEN l.status = 'GANHO' THEN l.preco_final ELSE 0 END), 0) AS valor_total_ganho
            FROM licitacoes l
            LEFT JOIN (
                SELECT licitacao_id,
                       SUM(CASE WHEN status_geral = 'PENDENTE' THEN 1 ELSE 0 END) AS pendentes,
                       SUM(CASE WHEN entrega_feita = 1 AND status_geral <> 'CANCELADO' THEN 1 ELSE 0 END) AS entregues
                FROM pedidos
                GROUP BY licitacao_id
            ) pa ON pa.licitacao_id = l.id
            {self.where_sql(conditions)}
            GROUP BY COALESCE(l.tipo_licitacao, '')
            ORDER BY total_licitacoes DESC, modalidade ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def pedidos_por_status(self, db, *, cliente_id: int | None = None) -> list[dict]:
        conditions, params = self._licitacao_conditions(cliente_id)
        rows = db.execute(
            f"""
            SELECT p.status_geral AS status, COUNT(*) AS quantidade, COALESCE(SUM(p.valor_total), 0) AS valor_total
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
            {self.where_sql(conditions)}
            GROUP BY p.status_geral
            ORDER BY quantidade DESC, p.status_geral ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def pedidos_financeiro(self, db, *, cliente_id: int | None = None, pedido_id: int | None = None) -> list[dict]:
        """Non-cancelled orders with what the finance report needs."""
        conditions, params = self._licitacao_conditions(cliente_id)
        conditions.append("p.status_geral <> 'CANCELADO'")
        if pedido_id:
            conditions.append("p.id = ?")
            params.append(pedido_id)
        rows = db.execute(
            f"""
            SELECT p.id AS pedido_id, p.licitacao_id, l.numero AS licitacao_numero,
                   l.cliente_id, c.nome AS cliente_nome, c.imposto_cliente,
                   p.status_geral, p.status_pagamento, p.entrega_feita,
                   p.valor_total, p.custo_total, p.valor_pago
            FROM pedidos p
            JOIN licitacoes l ON l.id = p.licitacao_id
            JOIN clientes c ON c.id = l.cliente_id
            {self.where_sql(conditions)}
            ORDER BY p.id ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)
