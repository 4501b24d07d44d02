"""
SQLite adapter (sqlite3 through SQLAlchemy)
"""

import os
from typing import Dict, List, Optional, Any

from sqlalchemy.engine import URL

from .base import DatabaseAdapter
from .sql_session import SqlSession
from ..models import ConnectionConfig, Engine, TableInfo, QueryResult
from ...errors import DbConnectionError


def _enable_wal(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _interrupt(dbapi_connection, cursor):
    dbapi_connection.interrupt()


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter"""

    engine = Engine.SQLITE

    def __init__(self, settings=None):
        super().__init__(settings)
        self.session = SqlSession('SQLite', cancel_hook=_interrupt)
        self.file_path: Optional[str] = None

    def connect(self, config: ConnectionConfig) -> None:
        """Open a SQLite database file"""
        self.config = config
        file_path = config.file_path or config.database
        if not file_path and config.connection_string:
            file_path = self.parse_connection_string(config.connection_string)['file_path']
        if not file_path:
            raise DbConnectionError('SQLite requires a file path')

        self.file_path = os.path.expanduser(file_path)
        self.session.open(
            URL.create('sqlite', database=self.file_path),
            on_connect=_enable_wal,
            connect_args={
                'check_same_thread': False,
                'timeout': self.settings.connection.connect_timeout,
            },
        )

    def disconnect(self) -> None:
        self.session.close()

    def is_connected(self) -> bool:
        return self.session.connected

    def list_databases(self) -> List[str]:
        if not self.file_path:
            return []
        return [os.path.basename(self.file_path)]

    def list_schemas(self) -> List[str]:
        return ['main']

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return self.session.list_tables(schema)

    def get_table_info(self, table: str, schema: Optional[str] = None) -> TableInfo:
        return self.session.describe_table(table, schema, self.qualified_name(table, schema))

    def execute_query(self, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None, with_total: bool = True) -> QueryResult:
        """Execute SQLite query"""
        statement, fetch_cap, count_sql = self.prepare_statement(query, limit, offset, with_total)
        return self.session.execute(statement, fetch_cap, count_sql)

    def cancel_query(self) -> None:
        self.session.cancel()

    def get_default_port(self) -> int:
        return 0

    def parse_connection_string(self, uri: str) -> Dict[str, Any]:
        """A SQLite connection string is a file path, optionally prefixed"""
        file_path = uri
        for prefix in ('sqlite://', 'file://'):
            if file_path.startswith(prefix):
                file_path = file_path[len(prefix):]
                break
        file_path = file_path.split('?', 1)[0]

        return {
            'engine': self.engine,
            'file_path': file_path,
            'database': os.path.basename(file_path),
        }
