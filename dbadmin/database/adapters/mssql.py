"""
SQL Server adapter (pyodbc through a SQLAlchemy pool)
"""

import re
from typing import Dict, List, Optional, Any

from sqlalchemy.engine import URL

from .base import DatabaseAdapter, parse_url_connection_string
from .sql_session import SqlSession
from ..models import ConnectionConfig, Engine, TableInfo, QueryResult

_ORDER_BY = re.compile(r'ORDER\s+BY', re.IGNORECASE)


def _cancel_statement(dbapi_connection, cursor):
    cursor.cancel()


def parse_ado_connection_string(uri: str) -> Dict[str, str]:
    """Split Server=...;Database=...;User Id=...;Password=... into lowercase keys"""
    parts = {}
    for part in uri.split(';'):
        key, sep, value = part.partition('=')
        if key.strip() and sep:
            parts[key.strip().lower()] = value.strip()
    return parts


class MSSQLAdapter(DatabaseAdapter):
    """Microsoft SQL Server database adapter"""

    engine = Engine.MSSQL

    def __init__(self, settings=None):
        super().__init__(settings)
        self.session = SqlSession('MSSQL', cancel_hook=_cancel_statement)

    def _build_url(self, config: ConnectionConfig):
        driver = self.settings.connection.mssql_odbc_driver
        conn_str = config.connection_string

        if conn_str and '://' not in conn_str:
            if 'driver=' not in conn_str.lower():
                conn_str = f"DRIVER={{{driver}}};{conn_str}"
            return URL.create('mssql+pyodbc', query={'odbc_connect': conn_str})

        if conn_str:
            fields = self.parse_connection_string(conn_str)
            config = ConnectionConfig(**{**config.to_dict(), **fields, 'connection_string': None})

        return URL.create(
            'mssql+pyodbc',
            username=config.username,
            password=config.password,
            host=config.host or 'localhost',
            port=config.port or self.get_default_port(),
            database=config.database,
            query={
                'driver': driver,
                'Encrypt': 'yes' if config.ssl else 'no',
                'TrustServerCertificate': 'yes',
            },
        )

    def connect(self, config: ConnectionConfig) -> None:
        """Connect to SQL Server database"""
        self.config = config
        self.session.open(
            self._build_url(config),
            connect_args={'timeout': self.settings.connection.connect_timeout},
            pool_size=self.settings.connection.pool_size,
            pool_pre_ping=True,
        )

    def disconnect(self) -> None:
        self.session.close()

    def is_connected(self) -> bool:
        return self.session.connected

    def list_databases(self) -> List[str]:
        return self.session.column(
            "SELECT name FROM sys.databases WHERE state_desc = 'ONLINE' ORDER BY name"
        )

    def list_schemas(self) -> List[str]:
        return self.session.column(
            "SELECT DISTINCT TABLE_SCHEMA FROM INFORMATION_SCHEMA.TABLES ORDER BY TABLE_SCHEMA"
        )

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return self.session.list_tables(schema or 'dbo')

    def get_table_info(self, table: str, schema: Optional[str] = None) -> TableInfo:
        schema = schema or 'dbo'
        return self.session.describe_table(table, schema, self.qualified_name(table, schema))

    def paginate(self, sql: str, limit: int, offset: Optional[int] = None) -> str:
        """OFFSET/FETCH needs an ORDER BY clause"""
        if not _ORDER_BY.search(sql):
            sql = f"{sql} ORDER BY (SELECT NULL)"
        return f"{sql} OFFSET {int(offset or 0)} ROWS FETCH NEXT {int(limit)} ROWS ONLY"

    def execute_query(self, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None, with_total: bool = True) -> QueryResult:
        """Execute SQL Server query"""
        statement, fetch_cap, count_sql = self.prepare_statement(query, limit, offset, with_total)
        return self.session.execute(statement, fetch_cap, count_sql)

    def cancel_query(self) -> None:
        self.session.cancel()

    def get_default_port(self) -> int:
        return 1433

    def parse_connection_string(self, uri: str) -> Dict[str, Any]:
        if '://' in uri:
            return parse_url_connection_string(uri, self.engine, self.get_default_port(), ('encrypt',))

        parts = parse_ado_connection_string(uri)
        host = parts.get('server') or parts.get('data source')
        port = None
        if host:
            # Server=tcp:host,port
            host = host.split(':', 1)[-1] if host.lower().startswith('tcp:') else host
            if ',' in host:
                host, _, port_text = host.partition(',')
                port = int(port_text) if port_text.strip().isdigit() else None

        return {
            'engine': self.engine,
            'host': host or None,
            'port': port,
            'database': parts.get('database') or parts.get('initial catalog') or None,
            'username': parts.get('user id') or parts.get('uid') or None,
            'password': parts.get('password') or parts.get('pwd') or None,
        }

    def quote_identifier(self, name: str) -> str:
        return '[' + name.replace(']', ']]') + ']'
