"""
Schema context agent: turns live schema metadata into prompt grounding
"""

from typing import List, Optional

from ..database.adapters import DatabaseAdapter
from ..database.models import TableInfo
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ContextAgent:
    """Describe a connection's tables and columns as compact text"""

    def build_schema_context(self, adapter: DatabaseAdapter) -> str:
        """Introspect every table (per schema where the engine has schemas)"""
        parts: List[str] = [f"Database engine: {adapter.engine.value}"]

        schemas = adapter.list_schemas()
        if schemas:
            for schema in schemas:
                for table in adapter.list_tables(schema):
                    parts.append(self.format_table(table, schema, self._describe(adapter, table, schema)))
        else:
            for table in adapter.list_tables():
                parts.append(self.format_table(table, None, self._describe(adapter, table, None)))

        return "\n".join(parts)

    def _describe(self, adapter: DatabaseAdapter, table: str, schema: Optional[str]) -> Optional[TableInfo]:
        try:
            return adapter.get_table_info(table, schema)
        except Exception as e:
            logger.debug(f"Skipping column info for {table}: {e}")
            return None

    @staticmethod
    def format_table(table: str, schema: Optional[str], info: Optional[TableInfo]) -> str:
        full_name = f"{schema}.{table}" if schema else table
        if info is None:
            return f"Table: {full_name} (no column info)"

        lines = [f"Table: {full_name} (~{info.row_count} rows)"]
        for col in info.columns:
            flags = []
            if col.is_primary_key:
                flags.append('PK')
            if col.is_foreign_key:
                flags.append('FK')
            if not col.nullable:
                flags.append('NOT NULL')
            flag_text = f" [{', '.join(flags)}]" if flags else ''
            lines.append(f"  - {col.name}: {col.type}{flag_text}")
        return "\n".join(lines)
