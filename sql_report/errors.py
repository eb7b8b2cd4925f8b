from __future__ import annotations


class ReportError(Exception):
    pass


class ConfigurationError(ReportError):
    """Raised when the query folder cannot be resolved."""


class ApplicationUnavailableError(ReportError):
    """Raised when the report workbook cannot be created or opened."""


class QueryExecutionError(ReportError):
    def __init__(self, script: str, message: str) -> None:
        super().__init__(f"{script}: {message}")
        self.script = script
        self.message = message


class SheetCapacityError(ReportError):
    pass


class UnexpectedError(ReportError):
    pass
