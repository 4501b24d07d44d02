"""
MySQL adapter (PyMySQL through a SQLAlchemy pool)
"""

from typing import Dict, List, Optional, Any

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url

from .base import DatabaseAdapter, parse_url_connection_string
from .sql_session import SqlSession
from ..models import ConnectionConfig, Engine, TableInfo, QueryResult


class MySQLAdapter(DatabaseAdapter):
    """MySQL database adapter"""

    engine = Engine.MYSQL

    def __init__(self, settings=None):
        super().__init__(settings)
        self.session = SqlSession('MySQL', cancel_hook=self._kill_query)
        self.current_database: Optional[str] = None

    def _kill_query(self, dbapi_connection, cursor):
        # KILL QUERY has to come from another connection
        thread_id = dbapi_connection.thread_id()
        with self.session.require().connect() as conn:
            conn.execute(text(f"KILL QUERY {int(thread_id)}"))

    def _build_url(self, config: ConnectionConfig):
        if config.connection_string:
            url = make_url(config.connection_string).set(drivername='mysql+pymysql')
            return url.difference_update_query(['ssl'])
        return URL.create(
            'mysql+pymysql',
            username=config.username,
            password=config.password,
            host=config.host or 'localhost',
            port=config.port or self.get_default_port(),
            database=config.database,
        )

    def connect(self, config: ConnectionConfig) -> None:
        """Connect to MySQL database"""
        self.config = config
        url = self._build_url(config)
        self.current_database = url.database

        connect_args = {'connect_timeout': self.settings.connection.connect_timeout}
        if config.ssl:
            connect_args['ssl'] = {'check_hostname': False}

        self.session.open(
            url,
            connect_args=connect_args,
            pool_size=self.settings.connection.pool_size,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    def disconnect(self) -> None:
        self.session.close()

    def is_connected(self) -> bool:
        return self.session.connected

    def list_databases(self) -> List[str]:
        return self.session.column("SHOW DATABASES")

    def list_schemas(self) -> List[str]:
        # MySQL schemas are databases
        return self.list_databases()

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return self.session.list_tables(schema or self.current_database)

    def get_table_info(self, table: str, schema: Optional[str] = None) -> TableInfo:
        schema = schema or self.current_database
        return self.session.describe_table(table, schema, self.qualified_name(table, schema))

    def execute_query(self, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None, with_total: bool = True) -> QueryResult:
        """Execute MySQL query"""
        statement, fetch_cap, count_sql = self.prepare_statement(query, limit, offset, with_total)
        return self.session.execute(statement, fetch_cap, count_sql)

    def cancel_query(self) -> None:
        self.session.cancel()

    def get_default_port(self) -> int:
        return 3306

    def parse_connection_string(self, uri: str) -> Dict[str, Any]:
        return parse_url_connection_string(uri, self.engine, self.get_default_port(), ('ssl',))

    def quote_identifier(self, name: str) -> str:
        return '`' + name.replace('`', '``') + '`'
