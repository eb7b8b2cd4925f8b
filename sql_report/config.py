from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote_plus

DEFAULT_SQL_FOLDER = "./SQL"
DEFAULT_EXCEL_PATH = "./SQL_Report.xlsx"
DEFAULT_QUERY_EXTENSION = ".sql"
DEFAULT_COMMAND_TIMEOUT = 300
DEFAULT_ODBC_CONNECT = (
    "DRIVER={ODBC Driver 17 for SQL Server};"
    "SERVER=localhost;"
    "DATABASE=master;"
    "Trusted_Connection=yes"
)
DEFAULT_CONNECTION_URL = f"mssql+pyodbc:///?odbc_connect={quote_plus(DEFAULT_ODBC_CONNECT)}"
TIMESTAMP_FORMAT = "%Y-%m-%d %H-%M"
REPORT_NAME_TEMPLATE = "SQL_Report_{timestamp}.xlsx"


def _min_int(val: Any, lo: int, default: int) -> int:
    try:
        num = int(val)
    except (TypeError, ValueError):
        return default
    return max(lo, num)


@dataclass
class ReportConfig:
    sql_folder: Path
    excel_path: Optional[Path]
    create_new: bool = False
    connection_url: str = DEFAULT_CONNECTION_URL
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    extension: str = DEFAULT_QUERY_EXTENSION
    log_dir: Optional[Path] = None

    @property
    def target_path(self) -> Path:
        return self.excel_path if self.excel_path is not None else Path(DEFAULT_EXCEL_PATH)

    @property
    def path_supplied(self) -> bool:
        return self.excel_path is not None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ReportConfig":
        """Build the run configuration, falling back to SQL_REPORT_* env vars."""
        connection_url = args.connection_url or os.getenv("SQL_REPORT_DB_URL") or DEFAULT_CONNECTION_URL
        timeout_raw = args.command_timeout
        if timeout_raw is None:
            timeout_raw = os.getenv("SQL_REPORT_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT)
        log_dir = args.log_dir or os.getenv("SQL_REPORT_LOG_DIR") or None
        return cls(
            sql_folder=Path(args.sql_folder_path),
            excel_path=Path(args.excel_file_path) if args.excel_file_path else None,
            create_new=bool(args.create_new_file),
            connection_url=connection_url,
            command_timeout=_min_int(timeout_raw, 1, DEFAULT_COMMAND_TIMEOUT),
            log_dir=Path(log_dir) if log_dir else None,
        )
