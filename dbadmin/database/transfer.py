"""
Row-level data transfer between two registered connections
"""

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .adapters import DatabaseAdapter
from .manager import ConnectionManager
from .models import Engine, TransferResult
from ..errors import QueryError
from ..utils.logger import get_logger
from ..utils.schema_analyzer import SchemaAnalyzer

logger = get_logger(__name__)


def sql_literal(value: Any) -> str:
    """Serialize a Python value as a SQL literal"""
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def build_insert(target: DatabaseAdapter, table: str, row: Dict[str, Any]) -> str:
    columns = list(row.keys())
    column_list = ', '.join(target.quote_identifier(c) for c in columns)
    values = ', '.join(sql_literal(row[c]) for c in columns)
    return f"INSERT INTO {target.quote_identifier(table)} ({column_list}) VALUES ({values})"


class TransferEngine:
    """Copy table rows from a source adapter to a target adapter as INSERT statements"""

    def __init__(self, manager: ConnectionManager, page_size: Optional[int] = None):
        self.manager = manager
        self.page_size = page_size

    def transfer(self, source_id: str, target_id: str, tables: List[str],
                 respect_dependencies: bool = False) -> TransferResult:
        source = self.manager.get_driver(source_id)
        target = self.manager.get_driver(target_id)

        if source is None:
            return TransferResult(success=False, errors=['Source connection not found'])
        if target is None:
            return TransferResult(success=False, errors=['Target connection not found'])

        if respect_dependencies:
            tables = self._dependency_order(source, tables)

        result = TransferResult(success=False)
        for table in tables:
            try:
                self._transfer_table(source, target, table, result)
            except QueryError as e:
                result.errors.append(str(e))
            except Exception as e:
                result.errors.append(f"Error transferring {table}: {e}")

        result.success = not result.errors
        logger.info(
            f"Transfer {source_id} -> {target_id}: {result.tables_transferred} table(s), "
            f"{result.rows_transferred} row(s), {len(result.errors)} error(s)"
        )
        return result

    def _transfer_table(self, source: DatabaseAdapter, target: DatabaseAdapter,
                        table: str, result: TransferResult) -> None:
        # Read everything before the first insert; source and target may be the same table
        rows = self._read_rows(source, table)
        for row in rows:
            insert_result = target.execute_query(build_insert(target, table, row))
            if insert_result.error:
                result.errors.append(f"Error inserting into {table}: {insert_result.error}")
            else:
                result.rows_transferred += 1

        result.tables_transferred += 1

    def _read_query(self, source: DatabaseAdapter, table: str) -> str:
        """Full-table read in a stable order so pages neither skip nor repeat rows"""
        if source.engine == Engine.MONGODB:
            return json.dumps({'collection': table, 'sort': {'_id': 1}})

        query = f"SELECT * FROM {source.quote_identifier(table)}"
        try:
            primary_keys = source.get_table_info(table).primary_keys
        except Exception as e:
            logger.debug(f"No key order for {table}: {e}")
            primary_keys = []
        if primary_keys:
            query += " ORDER BY " + ', '.join(source.quote_identifier(c) for c in primary_keys)
        return query

    def _read_rows(self, source: DatabaseAdapter, table: str) -> List[Dict[str, Any]]:
        """Page through the source table until a short page"""
        query = self._read_query(source, table)
        page_size = self.page_size or source.default_page_size
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = source.execute_query(query, page_size, offset, with_total=False)
            if page.error:
                raise QueryError(f"Error reading {table}: {page.error}")
            rows.extend(page.rows)
            if len(page.rows) < page_size:
                return rows
            offset += page_size

    def _dependency_order(self, source: DatabaseAdapter, tables: List[str]) -> List[str]:
        schema = {}
        for table in tables:
            try:
                schema[table] = source.get_table_info(table)
            except Exception as e:
                logger.warning(f"Skipping dependency lookup for {table}: {e}")

        analyzer = SchemaAnalyzer()
        analyzer.build_graph(schema)
        ordered = analyzer.insertion_order(tables)
        if ordered != list(tables):
            logger.info(f"Transfer order adjusted for foreign keys: {ordered}")
        return ordered
