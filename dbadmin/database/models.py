"""
Data models for connections, schema metadata, query results and backups
"""

from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import List, Dict, Any, Optional


class Engine(str, Enum):
    """Supported database engines"""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MSSQL = "mssql"
    MONGODB = "mongodb"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value) -> "Engine":
        """Accept an Engine, its tag, or a common alias"""
        if isinstance(value, cls):
            return value
        tag = str(value).strip().lower()
        aliases = {'postgres': 'postgresql', 'pg': 'postgresql', 'sqlserver': 'mssql', 'mongo': 'mongodb'}
        return cls(aliases.get(tag, tag))


# camelCase keys used by persisted connection documents and manifests
_CONFIG_KEYS = {
    'filePath': 'file_path',
    'connectionString': 'connection_string',
}


@dataclass
class ConnectionConfig:
    """Engine tag plus the engine-relevant connection fields"""
    engine: Engine
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    file_path: Optional[str] = None
    connection_string: Optional[str] = None
    ssl: bool = False

    def __post_init__(self):
        self.engine = Engine.parse(self.engine)
        if self.port is not None and self.port != '':
            self.port = int(self.port)
        else:
            self.port = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionConfig":
        """Build a config from a dict with snake_case or camelCase keys"""
        kwargs = {}
        for key, value in data.items():
            name = _CONFIG_KEYS.get(key, key)
            if name in cls.__dataclass_fields__:
                kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['engine'] = self.engine.value
        return data

    def with_password(self, password: Optional[str]) -> "ConnectionConfig":
        return replace(self, password=password)


@dataclass
class ColumnInfo:
    """Column descriptor"""
    name: str
    type: str
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    default_value: Optional[str] = None


@dataclass
class IndexInfo:
    """Index descriptor"""
    name: str
    columns: List[str]
    unique: bool = False
    type: str = 'btree'


@dataclass
class ForeignKeyInfo:
    """Foreign key reference from a column to another table"""
    column: str
    referenced_table: str
    referenced_column: Optional[str] = None


@dataclass
class TableInfo:
    """Information about a database table or collection"""
    name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    indexes: List[IndexInfo] = field(default_factory=list)
    foreign_keys: List[ForeignKeyInfo] = field(default_factory=list)
    row_count: int = 0
    schema: Optional[str] = None

    @property
    def primary_keys(self) -> List[str]:
        return [col.name for col in self.columns if col.is_primary_key]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueryResult:
    """Result of one executed statement or command document"""
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    execution_time: float = 0.0
    error: Optional[str] = None
    total_rows: Optional[int] = None
    affected_rows: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str, execution_time: float = 0.0) -> "QueryResult":
        return cls(error=error, execution_time=execution_time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BackupOptions:
    """Dump options translated to each tool's flags"""
    data_only: bool = False
    schema_only: bool = False
    tables: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BackupOptions":
        data = data or {}
        return cls(
            data_only=bool(data.get('dataOnly', data.get('data_only', False))),
            schema_only=bool(data.get('schemaOnly', data.get('schema_only', False))),
            tables=data.get('tables') or None,
        )


@dataclass
class BackupEntry:
    """One backup recorded in a connection's manifest"""
    id: str
    connection_id: str
    connection_name: str
    engine: Engine
    database: str
    timestamp: int
    file_path: str
    size: int
    data_only: bool = False
    schema_only: bool = False
    tables: Optional[List[str]] = None
    environment_tag: Optional[str] = None

    def __post_init__(self):
        self.engine = Engine.parse(self.engine)

    def to_dict(self) -> Dict[str, Any]:
        """Manifest document form (camelCase keys)"""
        data = {
            'id': self.id,
            'connectionId': self.connection_id,
            'connectionName': self.connection_name,
            'engine': self.engine.value,
            'database': self.database,
            'timestamp': self.timestamp,
            'filePath': self.file_path,
            'size': self.size,
            'dataOnly': self.data_only,
            'schemaOnly': self.schema_only,
        }
        if self.tables:
            data['tables'] = list(self.tables)
        if self.environment_tag:
            data['environmentTag'] = self.environment_tag
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupEntry":
        return cls(
            id=data['id'],
            connection_id=data.get('connectionId', data.get('connection_id', '')),
            connection_name=data.get('connectionName', data.get('connection_name', '')),
            engine=data['engine'],
            database=data.get('database', ''),
            timestamp=int(data.get('timestamp', 0)),
            file_path=data.get('filePath', data.get('file_path', '')),
            size=int(data.get('size', 0)),
            data_only=bool(data.get('dataOnly', data.get('data_only', False))),
            schema_only=bool(data.get('schemaOnly', data.get('schema_only', False))),
            tables=data.get('tables'),
            environment_tag=data.get('environmentTag', data.get('environment_tag')),
        )


@dataclass
class BackupManifest:
    """Per-connection index of backups"""
    version: int = 1
    entries: List[BackupEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'version': self.version, 'entries': [e.to_dict() for e in self.entries]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupManifest":
        return cls(
            version=int(data.get('version', 1)),
            entries=[BackupEntry.from_dict(e) for e in data.get('entries', [])],
        )


@dataclass
class BackupResult:
    success: bool
    file_path: Optional[str] = None
    size: Optional[int] = None
    entry: Optional[BackupEntry] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'filePath': self.file_path,
            'size': self.size,
            'entry': self.entry.to_dict() if self.entry else None,
            'error': self.error,
        }


@dataclass
class RestoreResult:
    success: bool
    warnings: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DeleteResult:
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TransferResult:
    """Outcome of a row-level transfer between two connections"""
    success: bool
    tables_transferred: int = 0
    rows_transferred: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
