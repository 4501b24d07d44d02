"""
SQLAlchemy-backed session shared by the relational adapters
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine as SAEngine
from sqlalchemy.exc import NoSuchTableError

from ..models import ColumnInfo, ForeignKeyInfo, IndexInfo, QueryResult, TableInfo
from ...errors import classify_connect_error, NotFoundError, DatabaseError
from ...utils.logger import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = 'Query cancelled'

# (dbapi_connection, cursor) -> None
CancelHook = Callable[[Any, Any], None]


class SqlSession:
    """Owns one SQLAlchemy engine (pool) and tracks the in-flight raw cursor"""

    def __init__(self, engine_name: str, cancel_hook: Optional[CancelHook] = None):
        self.engine_name = engine_name
        self.cancel_hook = cancel_hook
        self.engine: Optional[SAEngine] = None
        self._connected = False
        self._lock = threading.Lock()
        self._active_connection = None
        self._active_cursor = None
        self._cancelled = False

    def open(self, url, check_sql: str = 'SELECT 1', on_connect: Optional[Callable] = None,
             **engine_kwargs) -> SAEngine:
        """Create the pool and run a check query; raise a classified error on failure"""
        try:
            self.engine = create_engine(url, **engine_kwargs)
            if on_connect is not None:
                event.listen(self.engine, 'connect', on_connect)
            with self.engine.connect() as conn:
                conn.execute(text(check_sql))
        except Exception as e:
            self.close()
            raise classify_connect_error(e, self.engine_name) from e

        self._connected = True
        logger.info(f"{self.engine_name} connected ({self.engine.url.render_as_string(hide_password=True)})")
        return self.engine

    def close(self) -> None:
        if self._active_cursor is not None:
            self.cancel()
        if self.engine is not None:
            try:
                self.engine.dispose()
            except Exception as e:
                logger.warning(f"{self.engine_name} dispose failed: {e}")
        self.engine = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected and self.engine is not None

    def require(self) -> SAEngine:
        if not self.connected:
            raise DatabaseError('Not connected')
        return self.engine

    def scalar(self, sql: str, params: Optional[Dict[str, Any]] = None):
        with self.require().connect() as conn:
            return conn.execute(text(sql), params or {}).scalar()

    def column(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Return the first column of every row"""
        with self.require().connect() as conn:
            return [row[0] for row in conn.execute(text(sql), params or {})]

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        inspector = inspect(self.require())
        names = inspector.get_table_names(schema=schema) + inspector.get_view_names(schema=schema)
        return sorted(set(names))

    def describe_table(self, table: str, schema: Optional[str], qualified_name: str) -> TableInfo:
        """Collect columns, keys, indexes and row count through the inspector"""
        inspector = inspect(self.require())
        if not inspector.has_table(table, schema=schema) and table not in inspector.get_view_names(schema=schema):
            location = f"{schema}.{table}" if schema else table
            raise NotFoundError(f"Table not found: {location}")

        try:
            raw_columns = inspector.get_columns(table, schema=schema)
        except NoSuchTableError as e:
            raise NotFoundError(f"Table not found: {table}") from e

        pk = inspector.get_pk_constraint(table, schema=schema) or {}
        primary_keys = set(pk.get('constrained_columns') or [])

        foreign_keys = []
        fk_columns = set()
        for fk in inspector.get_foreign_keys(table, schema=schema):
            referred = fk.get('referred_columns') or []
            for i, column in enumerate(fk.get('constrained_columns') or []):
                fk_columns.add(column)
                foreign_keys.append(ForeignKeyInfo(
                    column=column,
                    referenced_table=fk['referred_table'],
                    referenced_column=referred[i] if i < len(referred) else None,
                ))

        columns = []
        for col in raw_columns:
            default = col.get('default')
            columns.append(ColumnInfo(
                name=col['name'],
                type=str(col['type']),
                nullable=bool(col.get('nullable', True)),
                is_primary_key=col['name'] in primary_keys,
                is_foreign_key=col['name'] in fk_columns,
                default_value=str(default) if default is not None else None,
            ))

        indexes = []
        for idx in inspector.get_indexes(table, schema=schema):
            options = idx.get('dialect_options') or {}
            index_type = next((v for k, v in options.items() if k.endswith('_using')), None)
            indexes.append(IndexInfo(
                name=idx.get('name') or '',
                columns=[c for c in idx.get('column_names') or [] if c],
                unique=bool(idx.get('unique')),
                type=index_type or 'btree',
            ))
        if primary_keys:
            indexes.insert(0, IndexInfo(name=pk.get('name') or 'PRIMARY', columns=sorted(primary_keys), unique=True))

        try:
            row_count = int(self.scalar(f"SELECT COUNT(*) FROM {qualified_name}") or 0)
        except Exception as e:
            logger.warning(f"Row count failed for {qualified_name}: {e}")
            row_count = 0

        return TableInfo(
            name=table,
            columns=columns,
            indexes=indexes,
            foreign_keys=foreign_keys,
            row_count=row_count,
            schema=schema,
        )

    def execute(self, statement: str, fetch_cap: int, count_sql: Optional[str] = None) -> QueryResult:
        """Run one raw statement, fetching at most fetch_cap rows"""
        start = time.time()
        try:
            conn = self.require().raw_connection()
        except Exception as e:
            return QueryResult.failed(str(e), _elapsed_ms(start))

        cursor = conn.cursor()
        with self._lock:
            self._active_connection = conn
            self._active_cursor = cursor
            self._cancelled = False

        try:
            cursor.execute(statement)
            if cursor.description:
                columns = [desc[0] for desc in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchmany(fetch_cap)]
                affected = None
            else:
                columns, rows = [], []
                affected = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else None
            conn.commit()
            execution_time = _elapsed_ms(start)

            total_rows = None
            if count_sql:
                total_rows = self._count(conn, count_sql)

            return QueryResult(
                columns=columns,
                rows=rows,
                row_count=len(rows),
                execution_time=execution_time,
                total_rows=total_rows,
                affected_rows=affected,
            )
        except Exception as e:
            cancelled = self._cancelled
            try:
                conn.rollback()
            except Exception as rollback_error:
                logger.debug(f"Rollback failed: {rollback_error}")
            if cancelled:
                conn.invalidate()
                logger.info(f"{self.engine_name} query cancelled")
                return QueryResult.failed(CANCELLED_MESSAGE, _elapsed_ms(start))
            logger.warning(f"{self.engine_name} query failed: {e}")
            return QueryResult.failed(str(e), _elapsed_ms(start))
        finally:
            with self._lock:
                self._active_connection = None
                self._active_cursor = None
            try:
                cursor.close()
            except Exception as e:
                logger.debug(f"Cursor close failed: {e}")
            conn.close()

    def _count(self, conn, count_sql: str) -> Optional[int]:
        cursor = conn.cursor()
        try:
            cursor.execute(count_sql)
            row = cursor.fetchone()
            conn.commit()
            return int(row[0]) if row else None
        except Exception as e:
            logger.debug(f"Total row count skipped: {e}")
            try:
                conn.rollback()
            except Exception as rollback_error:
                logger.debug(f"Rollback failed: {rollback_error}")
            return None
        finally:
            cursor.close()

    def cancel(self) -> bool:
        """Ask the engine to abort the in-flight statement"""
        with self._lock:
            conn, cursor = self._active_connection, self._active_cursor
            if conn is None:
                return False
            self._cancelled = True

        if self.cancel_hook is None:
            return False
        try:
            self.cancel_hook(conn.dbapi_connection, cursor)
            return True
        except Exception as e:
            logger.warning(f"{self.engine_name} cancel failed: {e}")
            return False


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)
