import unittest

from tests.helpers.api import ApiTestCase


class ClienteApiTest(ApiTestCase):
    sandbox_prefix = "clientes_api"

    def test_create_formats_document_and_phone(self) -> None:
        cliente = self.create_cliente(telefone="11987654321", email="Compras@Alfa.com.br")
        self.assertEqual(cliente["cpf_cnpj"], "12.345.678/0001-90")
        self.assertEqual(cliente["telefone"], "(11) 98765-4321")
        self.assertEqual(cliente["email"], "compras@alfa.com.br")

    def test_duplicate_cpf_cnpj_conflicts(self) -> None:
        self.create_cliente()
        response = self.client.post(
            "/api/v1/clientes/",
            json={"nome": "Outro", "cpf_cnpj": "12.345.678/0001-90"},
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "cpf_cnpj_already_registered")

    def test_invalid_fields(self) -> None:
        response = self.client.post("/api/v1/clientes/", json={"cpf_cnpj": "123", "imposto_cliente": "150"})
        self.assertEqual(response.status_code, 400)
        fields = response.get_json()["fields"]
        self.assertEqual(set(fields), {"nome", "cpf_cnpj", "imposto_cliente"})

    def test_update_search_and_delete(self) -> None:
        cliente = self.create_cliente()
        self.create_cliente(nome="Papelaria Beta", cpf_cnpj="98765432000110")

        updated = self.put_json(f"/api/v1/clientes/{cliente['id']}", {"imposto_cliente": "8,5"})
        self.assertEqual(updated["imposto_cliente"], 8.5)
        self.assertEqual(updated["nome"], "Comercial Alfa")

        rows = self.get_json("/api/v1/clientes/?search=beta")
        self.assertEqual([row["nome"] for row in rows], ["Papelaria Beta"])

        response = self.client.delete(f"/api/v1/clientes/{cliente['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/v1/clientes/{cliente['id']}").status_code, 404)

    def test_delete_blocked_by_licitacoes(self) -> None:
        cliente = self.create_cliente()
        self.create_licitacao(cliente["id"])
        response = self.client.delete(f"/api/v1/clientes/{cliente['id']}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "cliente_has_licitacoes")


class UsuarioApiTest(ApiTestCase):
    sandbox_prefix = "usuarios_api"

    def test_bootstrap_admin_is_listed_without_password(self) -> None:
        rows = self.get_json("/api/v1/usuarios/")
        self.assertEqual([row["username"] for row in rows], ["admin"])
        self.assertNotIn("password_hash", rows[0])

    def test_non_admin_requires_cliente(self) -> None:
        response = self.client.post(
            "/api/v1/usuarios/",
            json={"email": "joao@alfa.com", "username": "joao", "password": "segredo1"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "cliente_required")

    def test_create_with_new_cliente(self) -> None:
        usuario = self.post_json(
            "/api/v1/usuarios/",
            {
                "email": "joao@alfa.com",
                "username": "joao",
                "full_name": "Joao Silva",
                "password": "segredo1",
                "cliente_nome": "Alfa Ltda",
                "cliente_cpf_cnpj": "12345678000190",
            },
        )
        self.assertEqual(usuario["cliente_nome"], "Alfa Ltda")
        clientes = self.get_json("/api/v1/clientes/")
        self.assertEqual(len(clientes), 1)
        self.assertEqual(clientes[0]["email"], "joao@alfa.com")

    def test_duplicates_and_self_delete(self) -> None:
        cliente = self.create_cliente()
        payload = {"email": "ana@alfa.com", "username": "ana", "password": "segredo1", "cliente_id": cliente["id"]}
        usuario = self.post_json("/api/v1/usuarios/", payload)

        response = self.client.post("/api/v1/usuarios/", json={**payload, "username": "ana2"})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "email_already_registered")

        response = self.client.post("/api/v1/usuarios/", json={**payload, "email": "outra@alfa.com"})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "username_already_registered")

        updated = self.put_json(f"/api/v1/usuarios/{usuario['id']}", {"full_name": "Ana Souza", "is_active": False})
        self.assertEqual(updated["full_name"], "Ana Souza")
        self.assertFalse(updated["is_active"])

        response = self.client.delete(f"/api/v1/usuarios/{usuario['id']}")
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
