import re
from typing import Dict, Iterable, List, Optional, Set
import structlog
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from agent.errors import SQLGuardError

logger = structlog.get_logger()


class SQLGuard:
    """Structural safety checks applied to every generated statement before execution."""

    FORBIDDEN_KEYWORDS = [
        'UPDATE', 'INSERT', 'DELETE', 'DROP', 'ALTER', 'TRUNCATE',
        'CREATE', 'GRANT', 'REVOKE', 'COPY', 'VACUUM', 'ANALYZE'
    ]

    COMMENT_MARKERS = ['--', '/*']
    ALLOWED_PREFIXES = ('SELECT', 'WITH')

    # update.cl_pool_hist is a schema-qualified table, drop.x is still DROP
    FORBIDDEN_PATTERN = re.compile(
        r'\b(UPDATE\b(?!"?\s*\.)|(?:'
        + '|'.join(k for k in FORBIDDEN_KEYWORDS if k != 'UPDATE')
        + r')\b)',
        re.IGNORECASE
    )
    LIMIT_PATTERN = re.compile(r'\blimit\s+(\d+)\b', re.IGNORECASE)
    QUOTED_PATTERN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")
    TRAILING_SEMICOLONS = re.compile(r';+\s*$')

    def __init__(self, max_limit: int = 500):
        self.max_limit = max_limit

    def guard(
        self,
        sql: str,
        max_limit: Optional[int] = None,
        allowed_tables: Optional[Iterable[str]] = None,
        cols_by_table: Optional[Dict[str, Set[str]]] = None
    ) -> str:
        """
        Validate and normalize a single read-only statement.

        Args:
            sql: Candidate statement produced by the planner
            max_limit: Upper bound for every LIMIT clause (defaults to the instance bound)
            allowed_tables: Accepted for API compatibility, not enforced
            cols_by_table: Accepted for API compatibility, not enforced

        Returns:
            The statement with trailing semicolons removed and every LIMIT clamped

        Raises:
            SQLGuardError: on the first rule the statement violates
        """
        max_limit = max_limit or self.max_limit

        if not sql or not sql.strip():
            raise SQLGuardError("Empty SQL.")

        sql = sql.strip()
        if ";" in sql:
            # A semicolon may only terminate the statement
            sql = self.TRAILING_SEMICOLONS.sub("", sql).strip()
            if ";" in sql:
                raise SQLGuardError("Multiple SQL statements are not allowed.")

        if not sql.upper().startswith(self.ALLOWED_PREFIXES):
            raise SQLGuardError("Only SELECT (or WITH ... SELECT) statements are allowed.")

        forbidden = self.FORBIDDEN_PATTERN.search(sql)
        if forbidden:
            logger.warning("Blocked SQL keyword", keyword=forbidden.group(1).upper())
            raise SQLGuardError(f"Destructive or administrative SQL keyword detected: {forbidden.group(1).upper()}")

        if any(marker in sql for marker in self.COMMENT_MARKERS):
            raise SQLGuardError("SQL comments are not allowed.")

        # Table/column allow-lists are an extension point; the schema filter already
        # narrows what the planner can see.
        if allowed_tables or cols_by_table:
            logger.debug("SQL guard allow-lists supplied but not enforced")

        return self.ensure_limit(sql, max_limit)

    def ensure_limit(self, sql: str, max_limit: Optional[int] = None) -> str:
        max_limit = max_limit or self.max_limit

        # LIMIT inside a quoted literal or identifier does not bound the statement
        masked = self.QUOTED_PATTERN.sub(lambda m: " " * len(m.group(0)), sql)
        parts = []
        end = 0
        outer_limit = False
        for match in self.LIMIT_PATTERN.finditer(masked):
            prefix = masked[:match.start()]
            outer_limit = outer_limit or prefix.count("(") == prefix.count(")")
            parts.append(sql[end:match.start()])
            parts.append(f"LIMIT {min(int(match.group(1)), max_limit)}")
            end = match.end()
        parts.append(sql[end:])
        sql = "".join(parts)

        if outer_limit:
            return sql
        return f"{sql.strip()}\nLIMIT {max_limit}"


def referenced_tables(sql: str) -> List[str]:
    """Qualified names of the tables a statement reads, CTE names excluded."""
    if not sql:
        return []

    try:
        tree = sqlglot.parse_one(sql, read="postgres")
    except SqlglotError as e:
        logger.debug("Could not parse SQL for table extraction", error=str(e))
        return []

    cte_names = {cte.alias_or_name for cte in tree.find_all(exp.CTE)}
    tables = []
    for table in tree.find_all(exp.Table):
        if table.name in cte_names and not table.db:
            continue
        name = f"{table.db}.{table.name}" if table.db else table.name
        if name not in tables:
            tables.append(name)
    return tables


sql_guard = SQLGuard()
