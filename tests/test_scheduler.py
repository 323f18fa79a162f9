import unittest
from datetime import date, timedelta
from unittest.mock import patch

from licitasis.db import get_db
from licitasis.observability import metrics_snapshot
from licitasis.scheduler import DocStatusScheduler, scheduler_state
from tests.helpers.api import ApiTestCase


class DocStatusSchedulerTest(ApiTestCase):
    sandbox_prefix = "doc_status_scheduler"
    config_overrides = {
        "DOC_STATUS_SCHEDULER_INTERVAL_SECONDS": 3600,
        "DOC_STATUS_SCHEDULER_MIN_BACKOFF_SECONDS": 60,
        "DOC_STATUS_SCHEDULER_MAX_BACKOFF_SECONDS": 600,
    }

    def _insert_stale_document(self) -> int:
        cliente = self.create_cliente()
        vencido = (date.today() - timedelta(days=3)).isoformat()
        with self.app.app_context():
            db = get_db()
            cursor = db.execute(
                """
                INSERT INTO documentacoes
                    (cliente_id, titulo, tipo_documento, arquivo_pdf, data_upload, data_validade, status)
                VALUES (?, ?, ?, ?, ?, ?, 'ATIVO')
                RETURNING id
                """,
                (
                    cliente["id"],
                    "Alvara de funcionamento",
                    "ALVARA",
                    f"{cliente['id']}/ALVARA/alvara.pdf",
                    date.today().isoformat(),
                    vencido,
                ),
            )
            documento_id = int(cursor.fetchone()[0])
            db.commit()
        return documento_id

    def test_not_registered_in_tests(self) -> None:
        self.assertEqual(scheduler_state(self.app), {"enabled": False, "running": False})

    def test_run_once_refreshes_statuses(self) -> None:
        documento_id = self._insert_stale_document()
        scheduler = DocStatusScheduler(self.app)

        self.assertTrue(scheduler.run_once())

        state = scheduler.state()
        self.assertEqual(state["last_result"], "succeeded")
        self.assertEqual(state["last_updated"], 1)
        self.assertEqual(state["failure_count"], 0)
        self.assertFalse(state["running"])
        with self.app.app_context():
            row = get_db().execute("SELECT status FROM documentacoes WHERE id = ?", (documento_id,)).fetchone()
        self.assertEqual(row["status"], "EXPIRADO")
        self.assertEqual(metrics_snapshot()["doc_status_runs"], {"succeeded": 1})

    def test_failure_backs_off(self) -> None:
        scheduler = DocStatusScheduler(self.app)
        with patch(
            "licitasis.scheduler.DocumentacaoService.atualizar_status",
            side_effect=RuntimeError("database is locked"),
        ):
            self.assertTrue(scheduler.run_once())
            self.assertFalse(scheduler.run_once())

        state = scheduler.state()
        self.assertEqual(state["failure_count"], 1)
        self.assertEqual(state["last_result"], "failed")
        self.assertEqual(metrics_snapshot()["doc_status_runs"], {"failed": 1})

        scheduler._next_run_at = 0.0
        self.assertTrue(scheduler.run_once())
        self.assertEqual(scheduler.state()["failure_count"], 0)
        self.assertEqual(scheduler.state()["last_result"], "succeeded")

    def test_wait_follows_backoff_after_failure(self) -> None:
        scheduler = DocStatusScheduler(self.app)
        self.assertEqual(scheduler.seconds_until_next_run(), 3600.0)

        with patch(
            "licitasis.scheduler.DocumentacaoService.atualizar_status",
            side_effect=RuntimeError("database is locked"),
        ):
            scheduler.run_once()
        self.assertLessEqual(scheduler.seconds_until_next_run(), 60.0)
        self.assertGreater(scheduler.seconds_until_next_run(), 50.0)

        scheduler._next_run_at = 0.0
        self.assertEqual(scheduler.seconds_until_next_run(), 1.0)
        scheduler.run_once()
        self.assertEqual(scheduler.seconds_until_next_run(), 3600.0)


if __name__ == "__main__":
    unittest.main()
