from __future__ import annotations

import unittest

from licitasis import create_app
from licitasis.config import Config
from licitasis.db import close_db
from licitasis.observability import reset_metrics_for_tests
from licitasis.security import reset_rate_limiter_for_tests
from tests.helpers.temp_db import TempDbSandbox


def build_temp_app(temp_db: TempDbSandbox, **overrides):
    reset_rate_limiter_for_tests()
    reset_metrics_for_tests()
    return create_app(temp_db.make_config(Config, **overrides))


class ApiTestCase(unittest.TestCase):
    """Flask test client over a throwaway sqlite database, auth disabled by default."""

    sandbox_prefix = "licitasis_api"
    config_overrides: dict = {}

    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix=self.sandbox_prefix)
        self.app = build_temp_app(self._temp_db, **self.config_overrides)
        self.client = self.app.test_client()
        self.headers: dict = {}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def post_json(self, path: str, payload: dict, expected: int = 201) -> dict:
        response = self.client.post(path, json=payload, headers=self.headers)
        self.assertEqual(response.status_code, expected, response.get_data(as_text=True))
        return response.get_json()

    def put_json(self, path: str, payload: dict, expected: int = 200) -> dict:
        response = self.client.put(path, json=payload, headers=self.headers)
        self.assertEqual(response.status_code, expected, response.get_data(as_text=True))
        return response.get_json()

    def get_json(self, path: str, expected: int = 200):
        response = self.client.get(path, headers=self.headers)
        self.assertEqual(response.status_code, expected, response.get_data(as_text=True))
        return response.get_json()

    def create_cliente(self, nome: str = "Comercial Alfa", cpf_cnpj: str = "12345678000190", **extra) -> dict:
        return self.post_json("/api/v1/clientes/", {"nome": nome, "cpf_cnpj": cpf_cnpj, **extra})

    def create_licitacao(self, cliente_id: int, **extra) -> dict:
        payload = {
            "cliente_id": cliente_id,
            "descricao": "Material de expediente",
            "uasg": "160123",
            "tipo_licitacao": "Pregão Eletrônico",
            "numero": "12/2026",
            "data_licitacao": "2026-05-10",
            "custo": "1000",
            "preco_inicial": "1800",
            "preco_final": "1500",
            "status": "AGUARDANDO",
        }
        payload.update(extra)
        return self.post_json("/api/v1/licitacoes/", payload)

    def create_licitacao_com_itens(self, cliente_id: int, *, status: str = "GANHO", **extra) -> dict:
        payload = {
            "cliente_id": cliente_id,
            "descricao": "Papelaria",
            "uasg": "160123",
            "numero": "20/2026",
            "data_licitacao": "2026-06-01",
            "status": status,
            "tipo_classificacao": "ITEM",
            "itens": [
                {"descricao": "Caneta azul", "quantidade": 100, "preco_unitario": 2.5, "custo_unitario": 1.5},
                {"descricao": "Papel A4", "quantidade": 10, "preco_unitario": 30, "custo_unitario": 20},
            ],
        }
        payload.update(extra)
        return self.post_json("/api/v1/licitacoes/com-itens", payload)
