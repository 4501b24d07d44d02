"""
Database adapters, connection registry and data transfer
"""

from .models import (
    Engine,
    ConnectionConfig,
    TableInfo,
    QueryResult,
    BackupEntry,
    TransferResult,
)
from .adapters import DatabaseAdapter
from .factory import DatabaseFactory
from .manager import ConnectionManager
from .transfer import TransferEngine

__all__ = [
    'Engine',
    'ConnectionConfig',
    'TableInfo',
    'QueryResult',
    'BackupEntry',
    'TransferResult',
    'DatabaseAdapter',
    'DatabaseFactory',
    'ConnectionManager',
    'TransferEngine'
]
