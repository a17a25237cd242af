from typing import Any, Dict, Optional


class QueryPipelineError(Exception):
    """Base class for failures raised while answering a question."""


class PlannerError(QueryPipelineError):
    """The model did not return a usable SQL payload."""


class SQLGuardError(QueryPipelineError, ValueError):
    """A candidate statement violated one of the structural safety rules."""


class DatabaseUnavailableError(QueryPipelineError, ConnectionError):
    """The connection pool could not be created or could not hand out a connection."""

    PREFIX = "DATABASE_CONNECTION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"{self.PREFIX}: {reason}")


class QueryExecutionError(QueryPipelineError):
    """A database-reported failure for a single statement."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        detail: Optional[str] = None,
        hint: Optional[str] = None,
        position: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail
        self.hint = hint
        self.position = position

    @classmethod
    def from_exception(cls, exc: BaseException) -> "QueryExecutionError":
        """Wrap an asyncpg (or driver-agnostic) exception, keeping the Postgres diagnostics."""
        return cls(
            str(exc) or type(exc).__name__,
            code=getattr(exc, "sqlstate", None),
            detail=getattr(exc, "detail", None),
            hint=getattr(exc, "hint", None),
            position=getattr(exc, "position", None),
        )

    def db_details(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "detail": self.detail,
            "hint": self.hint,
            "position": self.position,
        }


class QueryFailedError(QueryExecutionError):
    """Terminal failure after the retry budget is spent."""

    def __init__(
        self,
        message: str,
        sql: Optional[str],
        retry_count: int,
        original_error: Optional[str],
        code: Optional[str] = None,
        detail: Optional[str] = None,
        hint: Optional[str] = None,
        position: Optional[str] = None
    ):
        super().__init__(message, code=code, detail=detail, hint=hint, position=position)
        self.sql = sql
        self.retry_count = retry_count
        self.original_error = original_error


class SynthesisError(QueryPipelineError):
    """The answer could not be produced from a valid row set."""
