from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Sequence

import pandas as pd
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from .config import DEFAULT_COMMAND_TIMEOUT, DEFAULT_CONNECTION_URL
from .errors import QueryExecutionError
from .query_files import QueryFile

logger = logging.getLogger(__name__)


def display_value(value: Any) -> str:
    """String form written to the report; every cell is text."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    return str(value)


class ResultSet:
    """
    Column names plus an object-dtype frame of display strings.

    The frame is labelled by position so duplicate or blank column names
    from the database never collide; ``columns`` keeps the real names.
    """

    def __init__(
        self,
        columns: Sequence[Any],
        rows: Optional[Sequence[Sequence[str]]] = None,
        frame: Optional[pd.DataFrame] = None,
    ) -> None:
        self.columns: List[str] = ["" if col is None else str(col) for col in columns]
        if frame is None:
            frame = pd.DataFrame(
                [list(r) for r in rows or []],
                columns=range(len(self.columns)),
                dtype=object,
            )
        self.frame = frame

    @property
    def rows(self) -> List[List[str]]:
        return self.frame.values.tolist()

    @property
    def row_count(self) -> int:
        return len(self.frame.index)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @classmethod
    def from_records(cls, columns: Sequence[Any], records: Sequence[Sequence[Any]]) -> "ResultSet":
        frame = pd.DataFrame(
            [tuple(r) for r in records],
            columns=range(len(columns)),
            dtype=object,
        )
        return cls(columns, frame=frame.map(display_value))


class QueryExecutor:
    """Runs each query file on its own connection and materialises the result."""

    def __init__(
        self,
        connection_url: str = DEFAULT_CONNECTION_URL,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.connection_url = connection_url
        self.command_timeout = command_timeout
        self._engine: Optional[Engine] = None

    def _get_engine(self) -> Engine:
        if self._engine is None:
            # NullPool: every execute() opens and closes a real connection
            engine = create_engine(
                self.connection_url,
                poolclass=NullPool,
                isolation_level="AUTOCOMMIT",
            )
            if engine.dialect.driver == "pyodbc":
                event.listen(engine, "connect", self._apply_command_timeout)
            self._engine = engine
        return self._engine

    def _apply_command_timeout(self, dbapi_connection, connection_record) -> None:
        dbapi_connection.timeout = self.command_timeout

    @staticmethod
    def _failure(query_file: QueryFile, exc: BaseException) -> QueryExecutionError:
        orig = getattr(exc, "orig", None) or exc
        text = str(orig).strip()
        message = text.splitlines()[0] if text else type(orig).__name__
        return QueryExecutionError(query_file.name, message)

    def _fetch_last_result(self, engine: Engine, batches: Sequence[str]) -> ResultSet:
        # raw DBAPI cursor: SQLAlchemy results expose only the first result set,
        # and row counts from INSERT/UPDATE may come before the SELECT
        dbapi = engine.dialect.loaded_dbapi
        result_set = ResultSet(columns=[])
        raw = engine.raw_connection()
        try:
            cursor = raw.cursor()
            try:
                for batch in batches:
                    cursor.execute(batch)
                    while True:
                        if cursor.description:
                            columns = [d[0] for d in cursor.description]
                            result_set = ResultSet.from_records(columns, cursor.fetchall())
                        nextset = getattr(cursor, "nextset", None)
                        if nextset is None:
                            break
                        try:
                            if not nextset():
                                break
                        except dbapi.NotSupportedError:
                            break
            finally:
                cursor.close()
        finally:
            raw.close()
        return result_set

    def run(self, query_file: QueryFile) -> ResultSet:
        """Execute every batch of *query_file*; raise QueryExecutionError on failure."""
        try:
            engine = self._get_engine()
            dbapi_error = engine.dialect.loaded_dbapi.Error
        except (SQLAlchemyError, ImportError) as exc:
            raise self._failure(query_file, exc) from exc
        try:
            return self._fetch_last_result(engine, query_file.batches)
        except (SQLAlchemyError, dbapi_error, OSError) as exc:
            raise self._failure(query_file, exc) from exc

    def execute(self, query_file: QueryFile) -> Optional[ResultSet]:
        """Return the result, or None when the script could not be executed."""
        try:
            result_set = self.run(query_file)
        except QueryExecutionError as exc:
            logger.error("[Query] %s failed: %s", exc.script, exc.message)
            return None
        logger.debug(
            "[Query] %s returned %s row(s) x %s column(s)",
            query_file.name,
            result_set.row_count,
            result_set.column_count,
        )
        return result_set

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
