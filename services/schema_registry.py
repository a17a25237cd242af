import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import structlog
from pydantic import BaseModel, Field

from services.config import settings

logger = structlog.get_logger()

LIVE_COLUMNS_QUERY = """
    SELECT table_schema, table_name, column_name, ordinal_position
    FROM information_schema.columns
    WHERE (table_schema || '.' || table_name) = ANY($1::text[])
    ORDER BY table_schema, table_name, ordinal_position
"""


class TableEntry(BaseModel):
    description: str = ""
    columns: Dict[str, str] = Field(default_factory=dict)
    primary_key: List[str] = Field(default_factory=list)


def render_schema_doc(registry: Dict[str, TableEntry], table_names: Iterable[str]) -> str:
    """Render registry entries into the plain-text schema block given to the planner."""
    lines = []
    for fqtn in table_names:
        entry = registry.get(fqtn)
        if entry is None:
            continue

        lines.append(f"TABLE {fqtn}")
        if entry.description:
            lines.append(entry.description)
        lines.append("  columns:")
        for col, desc in entry.columns.items():
            lines.append(f"    - {col}: {desc}")
        if entry.primary_key:
            lines.append(f"  primary_key: [{', '.join(entry.primary_key)}]")
        lines.append("")

    return "\n".join(lines)


class SchemaRegistry:
    """
    Static catalog of queryable tables, read from a JSON file once and cached
    for the life of the instance.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.table_registry_path)
        self._tables: Optional[Dict[str, TableEntry]] = None
        self._full_doc: Optional[str] = None

    def load(self) -> Dict[str, TableEntry]:
        if self._tables is not None:
            return self._tables

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("Invalid table registry JSON: root must be an object")

        self._tables = {fqtn: TableEntry.model_validate(meta or {}) for fqtn, meta in raw.items()}
        logger.info("Table registry loaded", path=str(self.path), table_count=len(self._tables))
        return self._tables

    def table_names(self) -> List[str]:
        return list(self.load().keys())

    def full_doc(self) -> str:
        if self._full_doc is None:
            tables = self.load()
            self._full_doc = render_schema_doc(tables, tables.keys())
        return self._full_doc

    async def reconcile_live_columns(self, pool) -> Dict[str, Set[str]]:
        """
        Cross-check declared columns against information_schema.
        Returns fqtn -> lowercased column names, registry columns included.
        """
        tables = self.load()
        cols_by_table = {
            fqtn: {col.lower() for col in entry.columns}
            for fqtn, entry in tables.items()
        }
        if not tables:
            return cols_by_table

        conn = await pool.acquire()
        try:
            rows = await conn.fetch(LIVE_COLUMNS_QUERY, list(tables.keys()))
        finally:
            await pool.release(conn)

        live: Dict[str, Set[str]] = {}
        for row in rows:
            fqtn = f"{row['table_schema']}.{row['table_name']}"
            live.setdefault(fqtn, set()).add(row["column_name"].lower())

        for fqtn, columns in live.items():
            cols_by_table.setdefault(fqtn, set()).update(columns)
            stale = sorted(cols_by_table[fqtn] - columns)
            if stale:
                logger.warning("Registry declares columns missing from database", table=fqtn, columns=stale)

        logger.info(
            "Registry reconciled with live columns",
            live_column_rows=len(rows),
            missing_tables=sorted(set(tables) - set(live))
        )
        return cols_by_table


schema_registry = SchemaRegistry()
