"""
Engine-specific database adapters
"""

from .base import DatabaseAdapter, query_has_limit_clause
from .postgresql import PostgreSQLAdapter
from .mysql import MySQLAdapter
from .mssql import MSSQLAdapter
from .mongodb import MongoDBAdapter
from .sqlite import SQLiteAdapter

__all__ = [
    'DatabaseAdapter',
    'query_has_limit_clause',
    'PostgreSQLAdapter',
    'MySQLAdapter',
    'MSSQLAdapter',
    'MongoDBAdapter',
    'SQLiteAdapter'
]
