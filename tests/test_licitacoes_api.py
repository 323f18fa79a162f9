import unittest
from unittest.mock import patch

from licitasis.uasg_client import UasgLookupError
from licitasis.ui_strings import field_message
from tests.helpers.api import ApiTestCase


class LicitacaoCrudTest(ApiTestCase):
    sandbox_prefix = "licitacao_crud"

    def setUp(self) -> None:
        super().setUp()
        self.cliente = self.create_cliente()

    def test_create_derives_tax_and_margin(self) -> None:
        licitacao = self.create_licitacao(self.cliente["id"])
        self.assertEqual(licitacao["imposto"], 90.0)
        self.assertEqual(licitacao["imposto_nota"], 90.0)
        self.assertEqual(licitacao["margem_percentual"], 137.61)
        self.assertEqual(licitacao["margem_dinheiro"], 410.0)
        self.assertEqual(licitacao["indice"], 1)
        self.assertEqual(licitacao["portal"], "COMPRAS NET")
        self.assertEqual(licitacao["flow"]["primary_action"], "edit_licitacao")

    def test_cliente_tax_rate_is_used(self) -> None:
        cliente = self.create_cliente(nome="Beta", cpf_cnpj="98765432000110", imposto_cliente="10")
        licitacao = self.create_licitacao(cliente["id"])
        self.assertEqual(licitacao["imposto"], 150.0)
        self.assertEqual(licitacao["margem_dinheiro"], 350.0)

    def test_missing_fields_return_field_errors(self) -> None:
        response = self.client.post("/api/v1/licitacoes/", json={"cliente_id": self.cliente["id"]})
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "validation_error")
        for field in ("descricao", "uasg", "numero", "data_licitacao"):
            self.assertEqual(payload["fields"][field], field_message("required"))

    def test_update_recomputes_derived_fields(self) -> None:
        licitacao = self.create_licitacao(self.cliente["id"])
        updated = self.put_json(
            f"/api/v1/licitacoes/{licitacao['id']}",
            {"preco_final": "2000", "status": "GANHO", "margem_dinheiro": 1},
        )
        self.assertEqual(updated["status"], "GANHO")
        self.assertEqual(updated["imposto"], 120.0)
        self.assertEqual(updated["margem_dinheiro"], 880.0)
        self.assertEqual(updated["descricao"], "Material de expediente")
        self.assertIn("create_pedido", updated["flow"]["allowed_actions"])

    def test_list_filters_and_pagination(self) -> None:
        self.create_licitacao(self.cliente["id"], numero="1/2026", status="GANHO")
        self.create_licitacao(self.cliente["id"], numero="2/2026", data_licitacao="2026-07-01")

        rows = self.get_json("/api/v1/licitacoes/?status_filter=GANHO")
        self.assertEqual([row["numero"] for row in rows], ["1/2026"])

        page = self.get_json("/api/v1/licitacoes/?page=1&limit=1")
        self.assertEqual(page["total"], 2)
        self.assertEqual(page["total_pages"], 2)
        self.assertEqual(page["data"][0]["numero"], "2/2026")

        sem_pedidos = self.get_json("/api/v1/licitacoes/?sem_pedidos=true")
        self.assertEqual(len(sem_pedidos), 2)

    def test_delete_and_not_found(self) -> None:
        licitacao = self.create_licitacao(self.cliente["id"])
        response = self.client.delete(f"/api/v1/licitacoes/{licitacao['id']}")
        self.assertEqual(response.status_code, 200)
        response = self.client.get(f"/api/v1/licitacoes/{licitacao['id']}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "licitacao_not_found")


class LicitacaoComItensTest(ApiTestCase):
    sandbox_prefix = "licitacao_itens"

    def setUp(self) -> None:
        super().setUp()
        self.cliente = self.create_cliente()

    def test_itemised_totals(self) -> None:
        licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        self.assertEqual(licitacao["preco_final"], 550.0)
        self.assertEqual(licitacao["custo"], 350.0)
        self.assertEqual(licitacao["imposto"], 33.0)
        self.assertEqual(licitacao["margem_percentual"], 57.14)
        self.assertEqual(licitacao["margem_dinheiro"], 167.0)
        self.assertEqual([item["codigo_item"] for item in licitacao["itens"]], ["001", "002"])
        self.assertEqual(licitacao["itens"][0]["preco_total"], 250.0)

    def test_item_errors_are_prefixed(self) -> None:
        response = self.client.post(
            "/api/v1/licitacoes/com-itens",
            json={
                "cliente_id": self.cliente["id"],
                "descricao": "Papelaria",
                "uasg": "160123",
                "numero": "1/2026",
                "data_licitacao": "2026-06-01",
                "itens": [{"descricao": "Caneta", "quantidade": 0, "preco_unitario": 1}],
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("itens[0].quantidade", response.get_json()["fields"])

    def test_update_upserts_by_id_and_removes_missing(self) -> None:
        licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        caneta = licitacao["itens"][0]
        updated = self.put_json(
            f"/api/v1/licitacoes/{licitacao['id']}/com-itens",
            {
                "itens": [
                    {"id": caneta["id"], "descricao": "Caneta preta", "quantidade": 200, "preco_unitario": 2.5},
                    {"descricao": "Grampeador", "quantidade": 5, "preco_unitario": 40},
                ]
            },
        )
        itens = {item["descricao"]: item for item in updated["itens"]}
        self.assertEqual(set(itens), {"Caneta preta", "Grampeador"})
        self.assertEqual(itens["Caneta preta"]["id"], caneta["id"])
        self.assertEqual(itens["Caneta preta"]["codigo_item"], "001")
        self.assertEqual(itens["Grampeador"]["codigo_item"], "002")
        self.assertEqual(updated["preco_final"], 700.0)

    def test_grouped_bid(self) -> None:
        licitacao = self.post_json(
            "/api/v1/licitacoes/com-itens",
            {
                "cliente_id": self.cliente["id"],
                "descricao": "Informatica",
                "uasg": "160123",
                "numero": "9/2026",
                "data_licitacao": "2026-06-01",
                "tipo_classificacao": "GRUPO",
                "grupos": [
                    {"nome": "Lote 1", "itens": [{"descricao": "Mouse", "quantidade": 10, "preco_unitario": 50}]},
                    {"nome": "Lote 2", "itens": [{"descricao": "Teclado", "quantidade": 5, "preco_unitario": 80}]},
                ],
            },
        )
        self.assertEqual(licitacao["tipo_classificacao"], "GRUPO")
        self.assertEqual([grupo["nome"] for grupo in licitacao["grupos"]], ["Lote 1", "Lote 2"])
        self.assertEqual(licitacao["preco_final"], 900.0)

        grupos = self.get_json(f"/api/v1/licitacoes/{licitacao['id']}/grupos")
        self.assertEqual([len(grupo["itens"]) for grupo in grupos], [1, 1])

    def test_single_item_crud_recomputes_header(self) -> None:
        licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        item = self.post_json(
            f"/api/v1/licitacoes/{licitacao['id']}/itens",
            {"descricao": "Clips", "quantidade": 10, "preco_unitario": 5},
        )
        self.assertEqual(item["codigo_item"], "003")
        detalhe = self.get_json(f"/api/v1/licitacoes/{licitacao['id']}")
        self.assertEqual(detalhe["preco_final"], 600.0)

        self.put_json(f"/api/v1/licitacoes/itens/{item['id']}", {"quantidade": 20})
        detalhe = self.get_json(f"/api/v1/licitacoes/{licitacao['id']}")
        self.assertEqual(detalhe["preco_final"], 650.0)

        response = self.client.delete(f"/api/v1/licitacoes/itens/{item['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(self.get_json(f"/api/v1/licitacoes/{licitacao['id']}/itens")), 2)

    def test_non_object_lines_are_field_errors(self) -> None:
        base = {
            "cliente_id": self.cliente["id"],
            "descricao": "Papelaria",
            "uasg": "160123",
            "numero": "1/2026",
            "data_licitacao": "2026-06-01",
        }
        cases = [
            ({"itens": ["x"]}, "itens[0]"),
            ({"itens": {"descricao": "Caneta"}}, "itens"),
            ({"tipo_classificacao": "GRUPO", "grupos": [1]}, "grupos[0]"),
            ({"tipo_classificacao": "GRUPO", "grupos": "Lote 1"}, "grupos"),
            ({"tipo_classificacao": "GRUPO", "grupos": [{"nome": "Lote 1", "itens": [None]}]}, "grupos[0].itens[0]"),
        ]
        for extra, field in cases:
            with self.subTest(field=field):
                response = self.client.post("/api/v1/licitacoes/com-itens", json={**base, **extra})
                self.assertEqual(response.status_code, 400)
                payload = response.get_json()
                self.assertEqual(payload["error"], "validation_error")
                self.assertIn(field, payload["fields"])

    def test_update_without_lines_keeps_items(self) -> None:
        licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        updated = self.put_json(
            f"/api/v1/licitacoes/{licitacao['id']}/com-itens",
            {"descricao": "Papelaria 2026"},
        )
        self.assertEqual(updated["descricao"], "Papelaria 2026")
        self.assertEqual([item["id"] for item in updated["itens"]], [item["id"] for item in licitacao["itens"]])
        self.assertEqual(updated["preco_final"], 550.0)

        vazio = self.put_json(f"/api/v1/licitacoes/{licitacao['id']}/com-itens", {"itens": []})
        self.assertEqual(vazio["itens"], [])
        self.assertEqual(vazio["preco_final"], 0.0)


class LicitacaoItensEmUsoTest(ApiTestCase):
    sandbox_prefix = "licitacao_itens_em_uso"

    def setUp(self) -> None:
        super().setUp()
        self.cliente = self.create_cliente()
        self.licitacao = self.create_licitacao_com_itens(self.cliente["id"])
        self.caneta, self.papel = self.licitacao["itens"]
        self.pedido = self.post_json(
            "/api/v1/pedidos/",
            {
                "licitacao_id": self.licitacao["id"],
                "itens": [{"item_licitacao_id": self.caneta["id"], "quantidade_solicitada": 100}],
            },
        )

    def test_ordered_item_cannot_be_deleted(self) -> None:
        response = self.client.delete(f"/api/v1/licitacoes/itens/{self.caneta['id']}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "item_in_use")
        self.assertEqual(len(self.get_json(f"/api/v1/licitacoes/{self.licitacao['id']}/itens")), 2)

        response = self.client.delete(f"/api/v1/licitacoes/itens/{self.papel['id']}")
        self.assertEqual(response.status_code, 200)

    def test_ordered_item_cannot_be_dropped_from_com_itens(self) -> None:
        response = self.client.put(
            f"/api/v1/licitacoes/{self.licitacao['id']}/com-itens",
            json={"itens": [{"id": self.papel["id"], "descricao": "Papel A4", "quantidade": 10, "preco_unitario": 30}]},
        )
        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "item_in_use")
        self.assertEqual(payload["item_id"], self.caneta["id"])
        self.assertEqual(len(self.get_json(f"/api/v1/licitacoes/{self.licitacao['id']}/itens")), 2)

    def test_quantity_cannot_drop_below_ordered(self) -> None:
        response = self.client.put(f"/api/v1/licitacoes/itens/{self.caneta['id']}", json={"quantidade": 10})
        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "item_quantity_below_used")
        self.assertEqual(payload["quantidade_minima"], 100.0)

        response = self.client.put(
            f"/api/v1/licitacoes/{self.licitacao['id']}/com-itens",
            json={
                "itens": [
                    {"id": self.caneta["id"], "descricao": "Caneta azul", "quantidade": 50, "preco_unitario": 2.5},
                    {"id": self.papel["id"], "descricao": "Papel A4", "quantidade": 10, "preco_unitario": 30},
                ]
            },
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "item_quantity_below_used")

        item = self.put_json(f"/api/v1/licitacoes/itens/{self.caneta['id']}", {"quantidade": 150})
        self.assertEqual(item["quantidade"], 150.0)

    def test_cancelled_orders_do_not_hold_quantity(self) -> None:
        self.put_json(f"/api/v1/pedidos/{self.pedido['id']}", {"status_geral": "CANCELADO"})
        item = self.put_json(f"/api/v1/licitacoes/itens/{self.caneta['id']}", {"quantidade": 10})
        self.assertEqual(item["quantidade"], 10.0)


class LicitacaoUasgTest(ApiTestCase):
    sandbox_prefix = "licitacao_uasg"

    def test_short_code_is_rejected(self) -> None:
        response = self.client.get("/api/v1/licitacoes/uasg/12")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "uasg_code_too_short")

    def test_lookup_returns_mapped_fields(self) -> None:
        data = {"nome_orgao": "MINISTERIO X", "sigla_uf": "DF", "raw": {"codigoUasg": "160123"}}
        with patch("licitasis.application.licitacao_service.fetch_uasg", return_value=data):
            payload = self.get_json("/api/v1/licitacoes/uasg/160123")
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["nome_orgao"], "MINISTERIO X")
        self.assertNotIn("raw", payload["data"])

    def test_not_found_and_unavailable(self) -> None:
        with patch("licitasis.application.licitacao_service.fetch_uasg", return_value=None):
            response = self.client.get("/api/v1/licitacoes/uasg/999999")
        self.assertEqual(response.status_code, 404)

        with patch(
            "licitasis.application.licitacao_service.fetch_uasg",
            side_effect=UasgLookupError("uasg http 503"),
        ):
            response = self.client.get("/api/v1/licitacoes/uasg/160123")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.get_json()["error"], "uasg_unavailable")

        with patch(
            "licitasis.application.licitacao_service.fetch_uasg",
            side_effect=UasgLookupError("uasg http 400"),
        ):
            response = self.client.get("/api/v1/licitacoes/uasg/160123")
        self.assertEqual(response.status_code, 422)

    def test_refresh_stores_organ_data(self) -> None:
        cliente = self.create_cliente()
        licitacao = self.create_licitacao(cliente["id"])
        data = {"nome_orgao": "PREFEITURA Y", "nome_municipio_ibge": "Campinas", "raw": {"a": 1}}
        with patch("licitasis.application.licitacao_service.fetch_uasg", return_value=data):
            refreshed = self.post_json(f"/api/v1/licitacoes/{licitacao['id']}/atualizar-api", {}, expected=200)
        self.assertEqual(refreshed["nome_orgao"], "PREFEITURA Y")
        self.assertEqual(refreshed["nome_municipio_ibge"], "Campinas")
        self.assertTrue(refreshed["ultima_atualizacao_api"])

        with patch("licitasis.application.licitacao_service.fetch_uasg", side_effect=UasgLookupError("timeout")):
            summary = self.post_json("/api/v1/licitacoes/atualizar-todas-api", {}, expected=200)
        self.assertEqual(summary, {"atualizadas": 0, "erros": 1, "total": 1})


if __name__ == "__main__":
    unittest.main()
