import unittest
from datetime import date

from tests.helpers.api import ApiTestCase


class PedidoApiTest(ApiTestCase):
    sandbox_prefix = "pedidos_api"

    def setUp(self) -> None:
        super().setUp()
        self.cliente = self.create_cliente()
        self.licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        self.caneta, self.papel = self.licitacao["itens"]

    def create_pedido(self, linhas, expected: int = 201, **extra) -> dict:
        payload = {
            "licitacao_id": self.licitacao["id"],
            "itens": [
                {"item_licitacao_id": item["id"], "quantidade_solicitada": quantidade} for item, quantidade in linhas
            ],
        }
        payload.update(extra)
        return self.post_json("/api/v1/pedidos/", payload, expected=expected)

    def disponiveis(self) -> dict:
        payload = self.get_json(f"/api/v1/pedidos/licitacao/{self.licitacao['id']}/quantidades-disponiveis")
        return {item["codigo_item"]: item["quantidade_disponivel"] for item in payload["itens_disponiveis"]}

    def test_create_prices_lines_from_bid(self) -> None:
        pedido = self.create_pedido([(self.caneta, 40), (self.papel, 5)])
        self.assertEqual(pedido["valor_total"], 250.0)
        self.assertEqual(pedido["custo_total"], 160.0)
        self.assertEqual(pedido["status_geral"], "PENDENTE")
        self.assertEqual(pedido["status_pagamento"], "PENDENTE")
        self.assertEqual(len(pedido["itens_pedido"]), 2)
        self.assertEqual(pedido["licitacao"]["id"], self.licitacao["id"])
        self.assertEqual(pedido["flow"]["process_stage"], "pedido")
        self.assertEqual([step["state"] for step in pedido["process_steps"]][:3], ["completed", "completed", "current"])
        self.assertEqual(self.disponiveis(), {"001": 60.0, "002": 5.0})

    def test_quantity_above_availability_is_rejected(self) -> None:
        self.create_pedido([(self.caneta, 40)])
        response = self.client.post(
            "/api/v1/pedidos/",
            json={
                "licitacao_id": self.licitacao["id"],
                "itens": [{"item_licitacao_id": self.caneta["id"], "quantidade_solicitada": 70}],
            },
        )
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "quantity_exceeds_available")
        self.assertEqual(payload["itens"][0]["quantidade_disponivel"], 60.0)

    def test_cancelled_orders_release_quantities(self) -> None:
        pedido = self.create_pedido([(self.caneta, 100)])
        self.assertEqual(self.disponiveis()["001"], 0.0)
        self.put_json(f"/api/v1/pedidos/{pedido['id']}", {"status_geral": "CANCELADO"})
        self.assertEqual(self.disponiveis()["001"], 100.0)

    def test_reactivating_cancelled_order_checks_availability(self) -> None:
        cancelado = self.create_pedido([(self.caneta, 100)])
        self.put_json(f"/api/v1/pedidos/{cancelado['id']}", {"status_geral": "CANCELADO"})
        self.create_pedido([(self.caneta, 100)])

        response = self.client.put(f"/api/v1/pedidos/{cancelado['id']}", json={"status_geral": "EM_ANDAMENTO"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "quantity_exceeds_available")
        self.assertEqual(self.disponiveis()["001"], 0.0)

        pedido = self.get_json(f"/api/v1/pedidos/{cancelado['id']}")
        self.assertEqual(pedido["status_geral"], "CANCELADO")

    def test_reactivating_cancelled_order_with_room_left(self) -> None:
        pedido = self.create_pedido([(self.caneta, 30)])
        self.put_json(f"/api/v1/pedidos/{pedido['id']}", {"status_geral": "CANCELADO"})
        self.create_pedido([(self.caneta, 50)])

        updated = self.put_json(f"/api/v1/pedidos/{pedido['id']}", {"status_geral": "EM_ANDAMENTO"})
        self.assertEqual(updated["status_geral"], "EM_ANDAMENTO")
        self.assertEqual(self.disponiveis()["001"], 20.0)

    def test_editing_lines_ignores_own_quantities(self) -> None:
        pedido = self.create_pedido([(self.caneta, 100)])
        updated = self.put_json(
            f"/api/v1/pedidos/{pedido['id']}",
            {"itens": [{"item_licitacao_id": self.caneta["id"], "quantidade_solicitada": 80}]},
        )
        self.assertEqual(updated["valor_total"], 200.0)
        self.assertEqual(self.disponiveis()["001"], 20.0)

    def test_line_errors(self) -> None:
        response = self.client.post("/api/v1/pedidos/", json={"licitacao_id": self.licitacao["id"], "itens": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "pedido_itens_required")

        response = self.client.post(
            "/api/v1/pedidos/",
            json={"licitacao_id": self.licitacao["id"], "itens": [{"item_licitacao_id": 9999, "quantidade_solicitada": 1}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "item_not_in_licitacao")

    def test_payment_confirmation(self) -> None:
        pedido = self.create_pedido([(self.caneta, 40), (self.papel, 5)])
        updated = self.put_json(
            f"/api/v1/pedidos/{pedido['id']}",
            {"pagamento_confirmado": True, "entrega_feita": True},
        )
        self.assertEqual(updated["status_pagamento"], "PAGO")
        self.assertEqual(updated["valor_pago"], 250.0)
        self.assertEqual(updated["data_pagamento"], date.today().isoformat())
        self.assertEqual(updated["flow"]["process_stage"], "pagamento")
        # status_geral only changes when the user sets it
        self.assertEqual(updated["status_geral"], "PENDENTE")

        reverted = self.put_json(f"/api/v1/pedidos/{pedido['id']}", {"pagamento_confirmado": False})
        self.assertEqual(reverted["status_pagamento"], "PENDENTE")
        self.assertEqual(reverted["valor_pago"], 0)
        self.assertIsNone(reverted["data_pagamento"])

    def test_empenhos_mark_milestone(self) -> None:
        pedido = self.create_pedido(
            [(self.caneta, 10)],
            empenhos=[{"numero_empenho": "2026NE000123", "valor_empenhado": 25}],
        )
        self.assertEqual(pedido["empenho_feito"], 1)
        self.assertEqual(pedido["status_geral"], "EM_ANDAMENTO")
        self.assertEqual(pedido["empenhos"][0]["numero_empenho"], "2026NE000123")
        self.assertEqual(pedido["flow"]["process_stage"], "entrega")

    def test_list_stats_and_latest_for_bid(self) -> None:
        self.create_pedido([(self.caneta, 10)])
        segundo = self.create_pedido([(self.papel, 1)], status_geral="CONCLUIDO")

        rows = self.get_json("/api/v1/pedidos/?status_geral=CONCLUIDO")
        self.assertEqual([row["id"] for row in rows], [segundo["id"]])

        stats = self.get_json("/api/v1/pedidos/dashboard/stats")
        self.assertEqual(stats["total_pedidos"], 2)
        self.assertEqual(stats["pedidos_pendentes"], 1)
        self.assertEqual(stats["pedidos_concluidos"], 1)

        latest = self.get_json(f"/api/v1/pedidos/licitacao/{self.licitacao['id']}")
        self.assertEqual(latest["id"], segundo["id"])

        response = self.client.delete(f"/api/v1/pedidos/{segundo['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/v1/pedidos/{segundo['id']}").status_code, 404)


class PedidoRulesTest(ApiTestCase):
    sandbox_prefix = "pedidos_rules"

    def setUp(self) -> None:
        super().setUp()
        self.cliente = self.create_cliente()

    def test_bid_must_be_won(self) -> None:
        licitacao = self.create_licitacao(self.cliente["id"])
        response = self.client.post("/api/v1/pedidos/", json={"licitacao_id": licitacao["id"]})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "licitacao_not_won")

    def test_order_without_lines_uses_bid_totals(self) -> None:
        licitacao = self.create_licitacao(self.cliente["id"], status="AGUARDANDO PEDIDO")
        pedido = self.post_json("/api/v1/pedidos/", {"licitacao_id": licitacao["id"]})
        self.assertEqual(pedido["valor_total"], 1500.0)
        self.assertEqual(pedido["custo_total"], 1000.0)
        self.assertEqual(pedido["itens_pedido"], [])

    def test_suspended_contract_blocks_orders(self) -> None:
        licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        self.post_json(
            "/api/v1/contratos/",
            {
                "licitacao_id": licitacao["id"],
                "numero_contrato": "CT-1/2026",
                "data_contrato": "2026-06-10",
                "status": "SUSPENSO",
            },
        )
        response = self.client.post("/api/v1/pedidos/", json={"licitacao_id": licitacao["id"]})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "contrato_blocks_pedido")

    def test_missing_bid(self) -> None:
        response = self.client.post("/api/v1/pedidos/", json={})
        self.assertEqual(response.status_code, 404)
        self.assertIn("licitacao_id", response.get_json()["fields"])


if __name__ == "__main__":
    unittest.main()
