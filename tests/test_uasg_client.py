import io
import json
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

from licitasis.errors import classify_uasg_failure
from licitasis.observability import metrics_snapshot, reset_metrics_for_tests
from licitasis.uasg_client import UasgLookupError, fetch_uasg


def _response(payload: object) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value.read.return_value = json.dumps(payload).encode("utf-8")
    return response


class UasgClientTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    @patch("licitasis.uasg_client.urllib.request.urlopen")
    def test_maps_first_record(self, urlopen) -> None:
        urlopen.return_value = _response(
            {
                "resultado": [
                    {
                        "nomeUasg": " PREFEITURA MUNICIPAL DE ITU ",
                        "cnpjCpfOrgao": "46634440000100",
                        "siglaUf": "SP",
                        "codigoMunicipioIbge": 3523909,
                        "nomeMunicipioIbge": "Itu",
                        "cnpjCpfUasg": "",
                    }
                ]
            }
        )

        dados = fetch_uasg(" 985123 ")

        self.assertEqual(dados["uasg"], "985123")
        self.assertEqual(dados["nome_orgao"], "PREFEITURA MUNICIPAL DE ITU")
        self.assertEqual(dados["sigla_uf"], "SP")
        self.assertEqual(dados["codigo_municipio"], "3523909")
        self.assertIsNone(dados["cnpj_cpf_uasg"])
        self.assertIn("nomeUasg", dados["raw"])
        request = urlopen.call_args.args[0]
        self.assertIn("codigoUasg=985123", request.full_url)
        self.assertEqual(metrics_snapshot()["uasg_lookups"], {"found": 1})

    @patch("licitasis.uasg_client.urllib.request.urlopen")
    def test_empty_result_returns_none(self, urlopen) -> None:
        urlopen.return_value = _response({"resultado": [], "totalRegistros": 0})
        self.assertIsNone(fetch_uasg("160123"))
        self.assertEqual(metrics_snapshot()["uasg_lookups"], {"not_found": 1})

    @patch("licitasis.uasg_client.urllib.request.urlopen")
    def test_http_error_is_wrapped(self, urlopen) -> None:
        urlopen.side_effect = urllib.error.HTTPError(
            "https://dadosabertos.compras.gov.br",
            503,
            "Service Unavailable",
            hdrs=None,
            fp=io.BytesIO(b"manutencao"),
        )

        with self.assertRaises(UasgLookupError) as ctx:
            fetch_uasg("160123")

        self.assertIn("UASG HTTP 503", str(ctx.exception))
        self.assertEqual(classify_uasg_failure(str(ctx.exception))[2], 502)
        self.assertEqual(metrics_snapshot()["uasg_lookups"], {"error": 1})

    @patch("licitasis.uasg_client.urllib.request.urlopen")
    def test_connection_error_is_wrapped(self, urlopen) -> None:
        urlopen.side_effect = urllib.error.URLError("Name or service not known")
        with self.assertRaises(UasgLookupError) as ctx:
            fetch_uasg("160123")
        self.assertIn("conexao", str(ctx.exception))

    def test_failure_classification(self) -> None:
        self.assertEqual(classify_uasg_failure("UASG HTTP 400: bad")[2], 422)
        self.assertEqual(classify_uasg_failure("UASG HTTP 429: slow down")[2], 502)
        self.assertEqual(classify_uasg_failure("Erro de conexao UASG: timeout")[2], 502)


if __name__ == "__main__":
    unittest.main()
