import logging
import sqlite3
import tempfile
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch

from openpyxl import load_workbook

from sql_report import cli
from sql_report.config import DEFAULT_COMMAND_TIMEOUT, DEFAULT_CONNECTION_URL, ReportConfig


class ConfigFromArgsTest(TestCase):
    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            config = ReportConfig.from_args(cli.parse_args([]))

        self.assertEqual(config.sql_folder, Path("./SQL"))
        self.assertIsNone(config.excel_path)
        self.assertEqual(config.target_path, Path("./SQL_Report.xlsx"))
        self.assertFalse(config.create_new)
        self.assertEqual(config.connection_url, DEFAULT_CONNECTION_URL)
        self.assertIn("Trusted_Connection%3Dyes", config.connection_url)
        self.assertEqual(config.command_timeout, DEFAULT_COMMAND_TIMEOUT)
        self.assertIsNone(config.log_dir)

    def test_environment_overrides(self) -> None:
        env = {
            "SQL_REPORT_DB_URL": "sqlite:///x.db",
            "SQL_REPORT_COMMAND_TIMEOUT": "not-a-number",
            "SQL_REPORT_LOG_DIR": "logs",
        }
        with patch.dict("os.environ", env, clear=True):
            config = ReportConfig.from_args(
                cli.parse_args(["--create-new-file", "--excel-file-path", "out.xlsx"])
            )

        self.assertTrue(config.create_new)
        self.assertTrue(config.path_supplied)
        self.assertEqual(config.connection_url, "sqlite:///x.db")
        self.assertEqual(config.command_timeout, DEFAULT_COMMAND_TIMEOUT)
        self.assertEqual(config.log_dir, Path("logs"))

    def test_long_timeout_is_kept(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            config = ReportConfig.from_args(cli.parse_args(["--command-timeout", "7200"]))
        self.assertEqual(config.command_timeout, 7200)

    def test_timeout_below_one_is_raised_to_one(self) -> None:
        with patch.dict("os.environ", {"SQL_REPORT_COMMAND_TIMEOUT": "0"}, clear=True):
            config = ReportConfig.from_args(cli.parse_args([]))
        self.assertEqual(config.command_timeout, 1)


class MainTest(TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        logger = logging.getLogger(cli.LOG_NAME)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        self.tmpdir.cleanup()

    def test_missing_folder_exits_non_zero(self) -> None:
        code = cli.main(["--sql-folder-path", str(self.root / "missing"), "--excel-file-path", str(self.root / "r.xlsx")])
        self.assertEqual(code, 1)
        self.assertFalse((self.root / "r.xlsx").exists())

    def test_end_to_end_with_log_file(self) -> None:
        db_path = self.root / "db.sqlite"
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE t (v TEXT)")
        conn.execute("INSERT INTO t VALUES ('hello')")
        conn.commit()
        conn.close()
        sql_dir = self.root / "SQL"
        sql_dir.mkdir()
        (sql_dir / "greeting.sql").write_text("SELECT v FROM t", encoding="utf-8")
        (sql_dir / "broken.sql").write_text("SELEC", encoding="utf-8")
        report = self.root / "report.xlsx"

        code = cli.main(
            [
                "--sql-folder-path",
                str(sql_dir),
                "--excel-file-path",
                str(report),
                "--connection-url",
                f"sqlite:///{db_path}",
                "--log-dir",
                str(self.root / "logs"),
            ]
        )

        self.assertEqual(code, 0)
        ws = load_workbook(report).worksheets[0]
        self.assertEqual(ws["A1"].value, "Script: greeting.sql")
        self.assertEqual(ws["A3"].value, "hello")
        logs = list((self.root / "logs").glob("sql_report_*.log"))
        self.assertEqual(len(logs), 1)
        self.assertIn("broken.sql", logs[0].read_text(encoding="utf-8"))
