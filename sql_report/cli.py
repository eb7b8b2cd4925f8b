"""Command-line entrypoint: run every SQL script of a folder into an Excel report.

Usage:
    python -m sql_report
    python -m sql_report --sql-folder-path ./SQL --excel-file-path ./SQL_Report.xlsx
    python -m sql_report --create-new-file
    python -m sql_report --connection-url sqlite:///warehouse.db --log-dir logs
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_SQL_FOLDER, ReportConfig
from .errors import ApplicationUnavailableError, ConfigurationError
from .pipeline import run_report

LOG_NAME = "sql_report"

logger = logging.getLogger(LOG_NAME)


def setup_logging(log_dir: Optional[Path], run_tag: str, verbose: bool = False) -> Optional[Path]:
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_dir is None:
        return None
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"sql_report_{run_tag}.log"
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return log_path


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run SQL scripts and collect the results into an Excel report.")
    parser.add_argument(
        "--create-new-file",
        action="store_true",
        help="Create a new report even if the target workbook already exists.",
    )
    parser.add_argument(
        "--excel-file-path",
        default=None,
        help="Report workbook path (default: ./SQL_Report.xlsx).",
    )
    parser.add_argument(
        "--sql-folder-path",
        default=DEFAULT_SQL_FOLDER,
        help=f"Folder with the .sql scripts (default: {DEFAULT_SQL_FOLDER}).",
    )
    parser.add_argument(
        "--connection-url",
        default=None,
        help="SQLAlchemy database URL (default: $SQL_REPORT_DB_URL or local SQL Server, trusted connection).",
    )
    parser.add_argument(
        "--command-timeout",
        type=int,
        default=None,
        help="Per-query command timeout in seconds (default: 300).",
    )
    parser.add_argument("--log-dir", default=None, help="Directory for the run log file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = ReportConfig.from_args(args)
    run_tag = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = setup_logging(config.log_dir, run_tag, verbose=args.verbose)
    if log_path:
        logger.info("[Main] Logging to %s", log_path)

    try:
        run = run_report(config)
    except ConfigurationError as exc:
        logger.error("[Main] %s", exc)
        return 1
    except ApplicationUnavailableError as exc:
        logger.error("[Main] Excel workbook unavailable: %s", exc)
        return 1

    if not run.succeeded:
        logger.error("[Main] Report generation failed: %s", run.error)
        return 1
    if run.skipped:
        logger.warning("[Main] Skipped script(s): %s", ", ".join(run.skipped))
    logger.info("[Main] Done. Report -> %s", run.report_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
