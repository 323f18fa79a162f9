import os
import sqlite3
import tempfile
import unittest

from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_path


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(db_path))
        self.assertTrue(os.path.realpath(db_path).startswith(os.path.realpath(tempfile.gettempdir())))
        self.assertEqual(os.path.dirname(sandbox.upload_dir), temp_dir)

        conn = sqlite3.connect(db_path)
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS sanity (id INTEGER PRIMARY KEY, value TEXT)")
            conn.execute("INSERT INTO sanity (value) VALUES ('ok')")
            row = conn.execute("SELECT COUNT(*) FROM sanity").fetchone()
            self.assertEqual(int(row[0]), 1)
        finally:
            conn.close()

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.path.dirname(os.path.dirname(__file__)), "licitasis_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_path(workspace_db)

    def test_config_overrides(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_config")
        try:
            config = sandbox.make_config(object, AUTH_ENABLED=True)
            self.assertEqual(config.DB_PATH, sandbox.db_path)
            self.assertTrue(config.AUTH_ENABLED)
            self.assertFalse(config.DOC_STATUS_SCHEDULER_ENABLED)
        finally:
            sandbox.cleanup()


if __name__ == "__main__":
    unittest.main()
