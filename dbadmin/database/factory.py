"""
Database factory for creating appropriate database adapters
"""

from typing import Dict, Type

from .adapters import (
    DatabaseAdapter,
    PostgreSQLAdapter,
    MySQLAdapter,
    MSSQLAdapter,
    MongoDBAdapter,
    SQLiteAdapter,
)
from .models import Engine
from ..errors import UnsupportedEngineError


class DatabaseFactory:
    """Factory class to create appropriate database connector"""

    ADAPTERS: Dict[Engine, Type[DatabaseAdapter]] = {
        Engine.POSTGRESQL: PostgreSQLAdapter,
        Engine.MYSQL: MySQLAdapter,
        Engine.MSSQL: MSSQLAdapter,
        Engine.MONGODB: MongoDBAdapter,
        Engine.SQLITE: SQLiteAdapter,
    }

    def __init__(self, settings=None):
        self.settings = settings

    def create_connector(self, engine) -> DatabaseAdapter:
        """Create database adapter based on engine tag"""
        try:
            engine = Engine.parse(engine)
        except ValueError:
            raise UnsupportedEngineError(f"Unsupported database engine: {engine}")
        return self.ADAPTERS[engine](self.settings)
