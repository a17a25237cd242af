from .sql_guard import SQLGuard, referenced_tables, sql_guard
from .sql_executor import SQLExecutor

__all__ = [
    "SQLGuard",
    "SQLExecutor",
    "referenced_tables",
    "sql_guard"
]
