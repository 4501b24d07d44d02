"""
PostgreSQL adapter (psycopg2 through a SQLAlchemy pool)
"""

from typing import Dict, List, Optional, Any

from sqlalchemy.engine import URL, make_url

from .base import DatabaseAdapter, parse_url_connection_string
from .sql_session import SqlSession
from ..models import ConnectionConfig, Engine, TableInfo, QueryResult


def _cancel_backend(dbapi_connection, cursor):
    # psycopg2 sends a cancel request over a separate socket
    dbapi_connection.cancel()


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL database adapter"""

    engine = Engine.POSTGRESQL

    def __init__(self, settings=None):
        super().__init__(settings)
        self.session = SqlSession('PostgreSQL', cancel_hook=_cancel_backend)

    def _build_url(self, config: ConnectionConfig):
        if config.connection_string:
            return make_url(config.connection_string).set(drivername='postgresql+psycopg2')
        return URL.create(
            'postgresql+psycopg2',
            username=config.username,
            password=config.password,
            host=config.host or 'localhost',
            port=config.port or self.get_default_port(),
            database=config.database,
        )

    def connect(self, config: ConnectionConfig) -> None:
        """Connect to PostgreSQL database"""
        self.config = config
        connect_args = {'connect_timeout': self.settings.connection.connect_timeout}
        if config.ssl:
            connect_args['sslmode'] = 'require'

        self.session.open(
            self._build_url(config),
            connect_args=connect_args,
            pool_size=self.settings.connection.pool_size,
            pool_pre_ping=True,
        )

    def disconnect(self) -> None:
        self.session.close()

    def is_connected(self) -> bool:
        return self.session.connected

    def list_databases(self) -> List[str]:
        return self.session.column(
            "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
        )

    def list_schemas(self) -> List[str]:
        return self.session.column(
            "SELECT schema_name FROM information_schema.schemata "
            "WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast') "
            "ORDER BY schema_name"
        )

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return self.session.list_tables(schema or 'public')

    def get_table_info(self, table: str, schema: Optional[str] = None) -> TableInfo:
        schema = schema or 'public'
        return self.session.describe_table(table, schema, self.qualified_name(table, schema))

    def execute_query(self, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None, with_total: bool = True) -> QueryResult:
        """Execute PostgreSQL query"""
        statement, fetch_cap, count_sql = self.prepare_statement(query, limit, offset, with_total)
        return self.session.execute(statement, fetch_cap, count_sql)

    def cancel_query(self) -> None:
        self.session.cancel()

    def get_default_port(self) -> int:
        return 5432

    def parse_connection_string(self, uri: str) -> Dict[str, Any]:
        return parse_url_connection_string(uri, self.engine, self.get_default_port(), ('sslmode',))
