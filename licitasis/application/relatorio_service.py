from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List

from licitasis.infrastructure.repositories.licitacoes import RelatorioRepository
from licitasis.licitacoes.calculos import calcular_imposto, money, tax_rate_for, to_decimal


PENDING_LICITACAO_STATUSES = ("AGUARDANDO", "AGUARDANDO PEDIDO", "AINDA NÃO FOI ENCERRADO")
TENDENCIA_MESES = 12


def percentual(parte: Any, total: Any) -> float:
    total_dec = to_decimal(total)
    if total_dec <= 0:
        return 0.0
    return money(to_decimal(parte) / total_dec * 100)


def meses_anteriores(hoje: date, quantidade: int) -> List[str]:
    """``YYYY-MM`` keys for the last ``quantidade`` months, oldest first."""
    meses = []
    ano, mes = hoje.year, hoje.month
    for _ in range(quantidade):
        meses.append(f"{ano:04d}-{mes:02d}")
        mes -= 1
        if mes == 0:
            ano, mes = ano - 1, 12
    return list(reversed(meses))


class RelatorioService:
    def __init__(self, default_rate: float = 6.0) -> None:
        self.default_rate = default_rate

    def dashboard_stats(self, db, *, scope: int | None, cliente_id: int | None = None, pedido_id: int | None = None) -> dict:
        repository = RelatorioRepository(cliente_id=scope)
        por_status = {
            row["status"]: row
            for row in repository.licitacoes_por_status(db, cliente_id=cliente_id, pedido_id=pedido_id)
        }

        def quantidade(status: str) -> int:
            return int(por_status.get(status, {}).get("quantidade") or 0)

        return {
            "total_licitacoes": sum(int(row["quantidade"] or 0) for row in por_status.values()),
            "licitacoes_ganhas": quantidade("GANHO"),
            "licitacoes_pendentes": sum(quantidade(status) for status in PENDING_LICITACAO_STATUSES),
            "licitacoes_desclassificadas": quantidade("DESCLASSIFICADO"),
            "valor_total_ganho": money(por_status.get("GANHO", {}).get("valor_total")),
            "margem_media": money(repository.margem_media_ganhas(db, cliente_id=cliente_id, pedido_id=pedido_id)),
        }

    def por_cliente(self, db, *, scope: int | None) -> list[dict]:
        rows = RelatorioRepository(cliente_id=scope).licitacoes_por_cliente(db, pendentes=PENDING_LICITACAO_STATUSES)
        for row in rows:
            row["valor_total_ganho"] = money(row["valor_total_ganho"])
            row["taxa_sucesso"] = percentual(row["licitacoes_ganhas"], row["total_licitacoes"])
        return rows

    def por_status(self, db, *, scope: int | None, cliente_id: int | None = None) -> list[dict]:
        rows = RelatorioRepository(cliente_id=scope).licitacoes_por_status(db, cliente_id=cliente_id)
        total = sum(int(row["quantidade"] or 0) for row in rows)
        for row in rows:
            row["valor_total"] = money(row["valor_total"])
            row["percentual"] = percentual(row["quantidade"], total)
        return rows

    def estatisticas_gerais(self, db, *, scope: int | None, cliente_id: int | None = None, pedido_id: int | None = None) -> dict:
        stats = self.dashboard_stats(db, scope=scope, cliente_id=cliente_id, pedido_id=pedido_id)
        financeiro = self.financeiro(db, scope=scope, cliente_id=cliente_id, pedido_id=pedido_id)
        stats["taxa_sucesso"] = percentual(stats["licitacoes_ganhas"], stats["total_licitacoes"])
        stats["financeiro_pedidos"] = financeiro["totais"]
        return stats

    def tendencia_performance(self, db, *, scope: int | None, cliente_id: int | None = None, hoje: date | None = None) -> list[dict]:
        meses = meses_anteriores(hoje or date.today(), TENDENCIA_MESES)
        rows = RelatorioRepository(cliente_id=scope).licitacoes_por_mes(db, desde=f"{meses[0]}-01", cliente_id=cliente_id)
        por_mes = {row["mes"]: row for row in rows}
        resultado = []
        for mes in meses:
            row = por_mes.get(mes, {})
            total = int(row.get("total_licitacoes") or 0)
            ganhas = int(row.get("licitacoes_ganhas") or 0)
            resultado.append(
                {
                    "mes": mes,
                    "total_licitacoes": total,
                    "licitacoes_ganhas": ganhas,
                    "valor_ganho": money(row.get("valor_ganho")),
                    "taxa_sucesso": percentual(ganhas, total),
                }
            )
        return resultado

    def distribuicao_portal(self, db, *, scope: int | None, cliente_id: int | None = None) -> list[dict]:
        rows = RelatorioRepository(cliente_id=scope).licitacoes_por_portal(db, cliente_id=cliente_id)
        total = sum(int(row["quantidade"] or 0) for row in rows)
        for row in rows:
            row["percentual"] = percentual(row["quantidade"], total)
        return rows

    def por_modalidade(self, db, *, scope: int | None, cliente_id: int | None = None) -> list[dict]:
        rows = RelatorioRepository(cliente_id=scope).licitacoes_por_modalidade(
            db,
            pendentes=PENDING_LICITACAO_STATUSES,
            cliente_id=cliente_id,
        )
        for row in rows:
            row["valor_total_ganho"] = money(row["valor_total_ganho"])
            row["taxa_sucesso"] = percentual(row["licitacoes_ganhas"], row["total_licitacoes"])
        return rows

    def pedidos_por_status(self, db, *, scope: int | None, cliente_id: int | None = None) -> list[dict]:
        rows = RelatorioRepository(cliente_id=scope).pedidos_por_status(db, cliente_id=cliente_id)
        total = sum(int(row["quantidade"] or 0) for row in rows)
        for row in rows:
            row["valor_total"] = money(row["valor_total"])
            row["percentual"] = percentual(row["quantidade"], total)
        return rows

    def financeiro(self, db, *, scope: int | None, cliente_id: int | None = None, pedido_id: int | None = None) -> Dict[str, Any]:
        """Per-order tax and margin, using the cliente's tax rate; cancelled orders are left out."""
        rows = RelatorioRepository(cliente_id=scope).pedidos_financeiro(db, cliente_id=cliente_id, pedido_id=pedido_id)
        totais = {key: Decimal("0") for key in ("valor_total", "custo_total", "imposto", "margem_dinheiro", "valor_pago")}
        a_receber = Decimal("0")
        a_pagar = Decimal("0")
        pago_parcial = Decimal("0")
        entregues = 0
        pedidos = []
        for row in rows:
            rate = tax_rate_for(row.pop("imposto_cliente", None), self.default_rate)
            valor_total = to_decimal(row["valor_total"])
            custo_total = to_decimal(row["custo_total"])
            valor_pago = to_decimal(row["valor_pago"])
            imposto = to_decimal(calcular_imposto(valor_total, rate))
            linha = {
                **row,
                "valor_total": money(valor_total),
                "custo_total": money(custo_total),
                "imposto": money(imposto),
                "margem_dinheiro": money(valor_total - custo_total - imposto),
                "valor_pago": money(valor_pago),
            }
            for key in totais:
                totais[key] += to_decimal(linha[key])
            a_receber += max(valor_total - valor_pago, Decimal("0"))
            # Supplier cost and tax stay payable until the order is concluded.
            if row["status_geral"] != "CONCLUIDO":
                a_pagar += custo_total + imposto
            if row["status_pagamento"] == "PARCIAL":
                pago_parcial += valor_pago
            if int(row.get("entrega_feita") or 0):
                entregues += 1
            pedidos.append(linha)

        custos_reais = totais["custo_total"] + totais["imposto"]
        return {
            "total_pedidos": len(pedidos),
            "pedidos_pagos": money(totais["valor_pago"]),
            "pedidos_pagamento_parcial": money(pago_parcial),
            "pedidos_entregues": entregues,
            "valores_receber": money(a_receber),
            "valores_pagar": money(a_pagar),
            "impostos_taxas": money(totais["imposto"]),
            "custos_produtos_servicos": money(totais["custo_total"]),
            "total_custos_reais": money(custos_reais),
            "lucro_liquido": money(totais["valor_total"] - custos_reais),
            "resumo_financeiro": {
                "valor_total_ganho": money(totais["valor_total"]),
                "custos_reais": money(custos_reais),
                "margem_real": money(totais["valor_total"] - custos_reais),
            },
            "pedidos": pedidos,
            "totais": {key: money(value) for key, value in totais.items()},
        }
