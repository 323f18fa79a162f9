import unittest

from tests.helpers.api import ApiTestCase


class AuthApiTest(ApiTestCase):
    sandbox_prefix = "auth_api"
    config_overrides = {"AUTH_ENABLED": True, "SECRET_KEY": "test-secret"}

    def login(self, username: str, password: str) -> str:
        response = self.client.post("/api/v1/auth/login", json={"username": username, "password": password})
        self.assertEqual(response.status_code, 200, response.get_data(as_text=True))
        payload = response.get_json()
        self.assertEqual(payload["token_type"], "bearer")
        return payload["access_token"]

    def login_admin(self) -> None:
        self.headers = {"Authorization": f"Bearer {self.login('admin', 'admin123')}"}

    def test_api_requires_token(self) -> None:
        response = self.client.get("/api/v1/licitacoes/")
        self.assertEqual(response.status_code, 401)
        payload = response.get_json()
        self.assertEqual(payload["error"], "auth_required")
        self.assertTrue(payload["request_id"])

    def test_health_stays_public(self) -> None:
        self.assertEqual(self.client.get("/health").status_code, 200)

    def test_invalid_credentials_and_token(self) -> None:
        response = self.client.post("/api/v1/auth/login", json={"username": "admin", "password": "errada"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "invalid_credentials")

        response = self.client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nao-e-um-token"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "token_invalid")

    def test_login_by_email_and_me(self) -> None:
        token = self.login("admin@licitasis.local", "admin123")
        response = self.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 200)
        me = response.get_json()
        self.assertEqual(me["username"], "admin")
        self.assertTrue(me["is_admin"])
        self.assertNotIn("password_hash", me)

    def test_cliente_user_sees_only_own_data(self) -> None:
        self.login_admin()
        alfa = self.create_cliente()
        beta = self.create_cliente(nome="Beta", cpf_cnpj="98765432000110")
        self.create_licitacao(alfa["id"], numero="A-1")
        self.create_licitacao(beta["id"], numero="B-1")
        self.post_json(
            "/api/v1/usuarios/",
            {"email": "ana@alfa.com", "username": "ana", "password": "segredo1", "cliente_id": alfa["id"]},
        )

        self.headers = {"Authorization": f"Bearer {self.login('ana', 'segredo1')}"}
        rows = self.get_json("/api/v1/licitacoes/")
        self.assertEqual([row["numero"] for row in rows], ["A-1"])

        clientes = self.get_json("/api/v1/clientes/")
        self.assertEqual([row["id"] for row in clientes], [alfa["id"]])

        response = self.client.get("/api/v1/usuarios/", headers=self.headers)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "permission_denied")

        response = self.client.post(
            "/api/v1/licitacoes/",
            headers=self.headers,
            json={
                "cliente_id": beta["id"],
                "descricao": "Fora do escopo",
                "uasg": "160123",
                "numero": "X-1",
                "data_licitacao": "2026-05-10",
            },
        )
        self.assertEqual(response.status_code, 403)

    def test_inactive_user_cannot_login(self) -> None:
        self.login_admin()
        cliente = self.create_cliente()
        self.post_json(
            "/api/v1/usuarios/",
            {
                "email": "rui@alfa.com",
                "username": "rui",
                "password": "segredo1",
                "cliente_id": cliente["id"],
                "is_active": False,
            },
        )
        response = self.client.post("/api/v1/auth/login", json={"username": "rui", "password": "segredo1"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "inactive_user")


if __name__ == "__main__":
    unittest.main()
