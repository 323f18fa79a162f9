import unittest
from unittest.mock import patch

from licitasis.ui_strings import error_message
from tests.helpers.api import ApiTestCase


class ErrorHandlingApiTest(ApiTestCase):
    sandbox_prefix = "error_api"
    config_overrides = {"PROPAGATE_EXCEPTIONS": False}

    def test_unknown_api_route_returns_json_404(self) -> None:
        response = self.client.get("/api/v1/nao-existe", headers={"X-Request-Id": "req-404"})
        self.assertEqual(response.status_code, 404)
        payload = response.get_json()
        self.assertEqual(payload["error"], "not_found")
        self.assertEqual(payload["message"], error_message("not_found"))
        self.assertEqual(payload["request_id"], "req-404")
        self.assertEqual(response.headers.get("X-Request-Id"), "req-404")

    def test_wrong_method_returns_json_405(self) -> None:
        response = self.client.patch("/api/v1/licitacoes/")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.get_json()["error"], "method_not_allowed")

    def test_domain_error_carries_message_and_request_id(self) -> None:
        response = self.client.get("/api/v1/pedidos/999")
        self.assertEqual(response.status_code, 404)
        payload = response.get_json()
        self.assertEqual(payload["error"], "pedido_not_found")
        self.assertEqual(payload["message"], error_message("pedido_not_found"))
        self.assertTrue(payload["request_id"].strip())

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        with patch(
            "licitasis.application.licitacao_service.LicitacaoService.list_licitacoes",
            side_effect=RuntimeError("stack_secret_token"),
        ):
            response = self.client.get("/api/v1/licitacoes/")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)

    def test_conflict_on_dependent_delete(self) -> None:
        cliente = self.create_cliente()
        licitacao = self.create_licitacao(cliente["id"], status="GANHO")
        self.post_json("/api/v1/pedidos/", {"licitacao_id": licitacao["id"]})

        response = self.client.delete(f"/api/v1/licitacoes/{licitacao['id']}")
        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "licitacao_has_dependencies")
        self.assertEqual(payload["dependencies"], {"pedidos": 1, "contratos": 0})


if __name__ == "__main__":
    unittest.main()
