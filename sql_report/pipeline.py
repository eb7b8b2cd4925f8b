from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import REPORT_NAME_TEMPLATE, TIMESTAMP_FORMAT, ReportConfig
from .errors import SheetCapacityError, UnexpectedError
from .executor import QueryExecutor
from .query_files import list_query_files, read_query_file
from .writer import Block, ReportDocument, autofit_columns, write_block

logger = logging.getLogger(__name__)


@dataclass
class ReportRun:
    report_path: Optional[Path] = None
    sheet_title: str = ""
    blocks: List[Block] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[UnexpectedError] = None
    saved: bool = False

    @property
    def succeeded(self) -> bool:
        return self.saved and self.error is None


def run_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def resolve_new_report_path(config: ReportConfig, timestamp: str) -> Path:
    """
    Target of a save-as run.

    A forced new report without an explicit or existing target path gets a
    timestamped name so earlier reports are not overwritten.
    """
    target = config.target_path
    if config.create_new and (not config.path_supplied or not target.exists()):
        directory = target.parent if config.path_supplied else Path(".")
        return directory / REPORT_NAME_TEMPLATE.format(timestamp=timestamp)
    return target


def acquire_document(config: ReportConfig, timestamp: str) -> ReportDocument:
    target = config.target_path
    if config.create_new or not target.exists():
        return ReportDocument.create(resolve_new_report_path(config, timestamp), timestamp)
    return ReportDocument.open_existing(target.resolve(), timestamp)


def run_report(
    config: ReportConfig,
    executor: Optional[QueryExecutor] = None,
    now: Optional[datetime] = None,
) -> ReportRun:
    """
    Execute every query script in ``config.sql_folder`` and write the results
    into one new sheet of the report workbook.

    ConfigurationError and ApplicationUnavailableError propagate; per-file
    failures are logged and skipped; anything else is recorded on the
    returned ReportRun. The workbook is closed in every case.
    """
    timestamp = run_timestamp(now)
    query_paths = list_query_files(config.sql_folder, config.extension)
    logger.info("[Main] %s query file(s) in %s", len(query_paths), config.sql_folder)

    own_executor = executor is None
    if executor is None:
        executor = QueryExecutor(config.connection_url, config.command_timeout)

    document = acquire_document(config, timestamp)
    run = ReportRun(report_path=document.path, sheet_title=document.sheet.title)
    try:
        session = document.new_session()
        total = len(query_paths)
        for idx, path in enumerate(query_paths, start=1):
            logger.info("[Query] (%s/%s) Processing %s", idx, total, path.name)
            try:
                query_file = read_query_file(path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("[Query] %s could not be read: %s", path.name, exc)
                run.skipped.append(path.name)
                continue

            result = executor.execute(query_file)
            if result is None:
                run.skipped.append(query_file.name)
                continue
            if not result.row_count:
                logger.warning("[Query] %s returned no data rows", query_file.name)

            try:
                block = write_block(session, query_file, result)
            except SheetCapacityError as exc:
                logger.error("[Report] %s skipped: %s", query_file.name, exc)
                run.skipped.append(query_file.name)
                continue
            run.blocks.append(block)

        autofit_columns(document.sheet)
        run.report_path = document.persist()
        run.saved = True
        logger.info(
            "[Main] Report saved to %s (sheet '%s', %s block(s), %s skipped)",
            run.report_path,
            run.sheet_title,
            len(run.blocks),
            len(run.skipped),
        )
    except Exception as exc:
        logger.exception("[Main] Unexpected error while building the report: %s", exc)
        run.error = UnexpectedError(str(exc))
    finally:
        document.close()
        if own_executor:
            executor.dispose()
    return run
