import unittest

from licitasis.ui_strings import error_message
from tests.helpers.api import ApiTestCase


class SecurityHardeningTest(ApiTestCase):
    sandbox_prefix = "security_hardening"
    config_overrides = {
        "RATE_LIMIT_ENABLED": True,
        "RATE_LIMIT_WINDOW_SECONDS": 60,
        "RATE_LIMIT_MAX_REQUESTS": 2,
    }

    def test_rate_limit_blocks_excessive_api_calls(self) -> None:
        first = self.client.get("/api/v1/clientes/")
        second = self.client.get("/api/v1/clientes/")
        third = self.client.get("/api/v1/clientes/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limit_exceeded"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 0)

    def test_rate_limit_headers_track_remaining_budget(self) -> None:
        first = self.client.get("/api/v1/licitacoes/")
        self.assertEqual(first.headers.get("X-RateLimit-Limit"), "2")
        self.assertEqual(first.headers.get("X-RateLimit-Remaining"), "1")

        self.client.get("/api/v1/licitacoes/")
        blocked = self.client.get("/api/v1/licitacoes/")
        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked.headers.get("X-RateLimit-Remaining"), "0")
        self.assertIsNotNone(blocked.headers.get("Retry-After"))

    def test_health_is_not_rate_limited(self) -> None:
        for _ in range(4):
            response = self.client.get("/health")
            self.assertEqual(response.status_code, 200)
            self.assertIsNone(response.headers.get("X-RateLimit-Limit"))

    def test_security_headers_present(self) -> None:
        response = self.client.get("/api/v1/clientes/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertEqual(response.headers.get("Referrer-Policy"), "strict-origin-when-cross-origin")
        self.assertEqual(response.headers.get("Cache-Control"), "no-store")
        self.assertIn("default-src 'none'", response.headers.get("Content-Security-Policy") or "")
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())
        self.assertTrue((response.headers.get("X-Response-Time-Ms") or "").strip())


class LoginThrottleTest(ApiTestCase):
    sandbox_prefix = "security_login_throttle"
    config_overrides = {
        "AUTH_ENABLED": True,
        "SECRET_KEY": "test-secret",
        "RATE_LIMIT_ENABLED": True,
        "RATE_LIMIT_LOGIN_MAX_REQUESTS": 2,
    }

    def test_repeated_logins_are_throttled_per_username(self) -> None:
        for _ in range(2):
            response = self.client.post("/api/v1/auth/login", data={"username": "admin", "password": "errada"})
            self.assertEqual(response.status_code, 401)

        blocked = self.client.post("/api/v1/auth/login", data={"username": "admin", "password": "admin123"})
        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked.get_json()["error"], "rate_limit_exceeded")

        other = self.client.post("/api/v1/auth/login", data={"username": "outro", "password": "x"})
        self.assertEqual(other.status_code, 401)

    def test_unauthenticated_calls_are_rejected_before_counting(self) -> None:
        for _ in range(4):
            response = self.client.get("/api/v1/clientes/")
            self.assertEqual(response.status_code, 401)
            self.assertIsNone(response.headers.get("X-RateLimit-Limit"))


if __name__ == "__main__":
    unittest.main()
