from .errors import (
    ApplicationUnavailableError,
    ConfigurationError,
    QueryExecutionError,
    ReportError,
    SheetCapacityError,
    UnexpectedError,
)
from .config import ReportConfig
from .executor import QueryExecutor, ResultSet
from .pipeline import ReportRun, run_report
from .query_files import QueryFile, list_query_files, read_query_file

__all__ = [
    "ApplicationUnavailableError",
    "ConfigurationError",
    "QueryExecutionError",
    "QueryExecutor",
    "QueryFile",
    "ReportConfig",
    "ReportError",
    "ReportRun",
    "ResultSet",
    "SheetCapacityError",
    "UnexpectedError",
    "list_query_files",
    "read_query_file",
    "run_report",
]
