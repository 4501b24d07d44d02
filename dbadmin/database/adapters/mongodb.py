"""
MongoDB adapter (pymongo)
"""

import threading
import time
from typing import Dict, List, Optional, Any
from urllib.parse import quote_plus, urlsplit, unquote, parse_qs

from bson import json_util, ObjectId, Decimal128
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .base import DatabaseAdapter
from ..models import ConnectionConfig, Engine, TableInfo, ColumnInfo, IndexInfo, QueryResult
from ...errors import classify_connect_error, DatabaseError, NotFoundError
from ...utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SAMPLE_SIZE = 100


def _value_type(value) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float, Decimal128)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, ObjectId):
        return 'objectId'
    if isinstance(value, dict):
        return 'object'
    return type(value).__name__


def _plain(value):
    """Render BSON values so rows stay JSON friendly"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _to_rows(docs: List[Dict[str, Any]]):
    rows = [_plain(doc) for doc in docs]
    columns = list(rows[0].keys()) if rows else []
    return columns, rows


class MongoDBAdapter(DatabaseAdapter):
    """MongoDB adapter: databases map to databases, collections to tables"""

    engine = Engine.MONGODB

    def __init__(self, settings=None):
        super().__init__(settings)
        self.client: Optional[MongoClient] = None
        self.db = None
        self._active_cursor = None
        self._lock = threading.Lock()
        self._cancelled = False

    def _build_uri(self, config: ConnectionConfig) -> str:
        if config.connection_string:
            return config.connection_string
        credentials = ''
        if config.username:
            credentials = f"{quote_plus(config.username)}:{quote_plus(config.password or '')}@"
        host = config.host or 'localhost'
        port = config.port or self.get_default_port()
        return f"mongodb://{credentials}{host}:{port}/{config.database or ''}"

    def connect(self, config: ConnectionConfig) -> None:
        """Connect to MongoDB and ping the selected database"""
        self.config = config
        timeout_ms = self.settings.connection.connect_timeout * 1000
        options = {
            'connectTimeoutMS': timeout_ms,
            'serverSelectionTimeoutMS': timeout_ms,
            'maxPoolSize': self.settings.connection.pool_size,
        }
        if config.ssl:
            options['tls'] = True

        try:
            self.client = MongoClient(self._build_uri(config), **options)
            if config.database:
                self.db = self.client[config.database]
            else:
                self.db = self.client.get_default_database(default='test')
            self.db.command('ping')
        except Exception as e:
            self.disconnect()
            raise classify_connect_error(e, 'MongoDB') from e

        logger.info(f"MongoDB connected (database {self.db.name})")

    def disconnect(self) -> None:
        if self.client is not None:
            try:
                self.client.close()
            except Exception as e:
                logger.warning(f"MongoDB close failed: {e}")
        self.client = None
        self.db = None

    def is_connected(self) -> bool:
        return self.client is not None and self.db is not None

    def _require_db(self):
        if self.db is None:
            raise DatabaseError('Not connected')
        return self.db

    def list_databases(self) -> List[str]:
        self._require_db()
        return sorted(self.client.list_database_names())

    def list_schemas(self) -> List[str]:
        # MongoDB has no schemas
        return []

    def list_tables(self, schema: Optional[str] = None) -> List[str]:
        return sorted(self._require_db().list_collection_names())

    def get_table_info(self, table: str, schema: Optional[str] = None) -> TableInfo:
        """Infer fields from a document sample"""
        db = self._require_db()
        if table not in db.list_collection_names():
            raise NotFoundError(f"Collection not found: {table}")

        collection = db[table]
        sample = list(collection.find().limit(SCHEMA_SAMPLE_SIZE))

        fields: Dict[str, Dict[str, Any]] = {}
        for doc in sample:
            for key, value in doc.items():
                info = fields.setdefault(key, {'types': [], 'count': 0})
                value_type = _value_type(value)
                if value_type not in info['types']:
                    info['types'].append(value_type)
                info['count'] += 1

        columns = [
            ColumnInfo(
                name=name,
                type=' | '.join(info['types']),
                nullable=info['count'] < len(sample),
                is_primary_key=name == '_id',
            )
            for name, info in fields.items()
        ]

        indexes = []
        for name, spec in collection.index_information().items():
            keys = spec.get('key', [])
            indexes.append(IndexInfo(
                name=name,
                columns=[field for field, _ in keys],
                unique=bool(spec.get('unique', False)),
                type='text' if any(direction == 'text' for _, direction in keys) else 'btree',
            ))

        try:
            row_count = collection.estimated_document_count()
        except PyMongoError as e:
            logger.warning(f"Document count failed for {table}: {e}")
            row_count = 0

        return TableInfo(name=table, columns=columns, indexes=indexes, row_count=row_count)

    def execute_query(self, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None, with_total: bool = True) -> QueryResult:
        """Run a command document or a bare collection name"""
        start = time.time()
        try:
            db = self._require_db()
            command = self._parse_command(query)
            collection = db[command['collection']]

            if isinstance(command.get('aggregate'), list):
                pipeline = list(command['aggregate'])
                if limit is not None:
                    pipeline.append({'$skip': int(offset or 0)})
                    pipeline.append({'$limit': int(limit)})
                else:
                    pipeline.append({'$limit': self.default_page_size})
                docs = self._consume(collection.aggregate(pipeline))
                total_rows = None
            else:
                query_filter = command.get('filter') or {}
                effective_limit = limit or command.get('limit') or self.default_page_size
                effective_offset = offset or command.get('offset') or 0
                cursor = collection.find(query_filter, projection=command.get('projection') or None)
                if command.get('sort'):
                    cursor = cursor.sort(list(command['sort'].items()))
                docs = self._consume(cursor.skip(int(effective_offset)).limit(int(effective_limit)))
                total_rows = self._count(collection, query_filter) if with_total else None

            columns, rows = _to_rows(docs)
            return QueryResult(
                columns=columns,
                rows=rows,
                row_count=len(rows),
                execution_time=_elapsed_ms(start),
                total_rows=total_rows,
            )
        except Exception as e:
            if self._cancelled:
                return QueryResult.failed('Query cancelled', _elapsed_ms(start))
            logger.warning(f"MongoDB query failed: {e}")
            return QueryResult.failed(str(e), _elapsed_ms(start))

    def _parse_command(self, query: str) -> Dict[str, Any]:
        text = query.strip()
        if not text.startswith('{'):
            return {'collection': text}
        command = json_util.loads(text)
        if not isinstance(command, dict) or not command.get('collection'):
            raise ValueError('Query must specify a "collection" field')
        return command

    def _consume(self, cursor) -> List[Dict[str, Any]]:
        with self._lock:
            self._active_cursor = cursor
            self._cancelled = False
        try:
            return list(cursor)
        finally:
            with self._lock:
                self._active_cursor = None

    def _count(self, collection, query_filter) -> Optional[int]:
        try:
            if query_filter:
                return collection.count_documents(query_filter)
            return collection.estimated_document_count()
        except PyMongoError as e:
            logger.debug(f"Total document count skipped: {e}")
            return None

    def cancel_query(self) -> None:
        with self._lock:
            cursor = self._active_cursor
            if cursor is None:
                return
            self._cancelled = True
        cursor.close()

    def get_default_port(self) -> int:
        return 27017

    def parse_connection_string(self, uri: str) -> Dict[str, Any]:
        try:
            parts = urlsplit(uri)
            port = parts.port
        except ValueError:
            return {'engine': self.engine, 'connection_string': uri}
        if not parts.netloc:
            return {'engine': self.engine, 'connection_string': uri}

        params = parse_qs(parts.query)
        ssl = params.get('tls', [''])[0] == 'true' or params.get('ssl', [''])[0] == 'true'
        return {
            'engine': self.engine,
            'connection_string': uri,
            'host': parts.hostname or 'localhost',
            'port': port or self.get_default_port(),
            'username': unquote(parts.username) if parts.username else None,
            'password': unquote(parts.password) if parts.password else None,
            'database': parts.path.lstrip('/') or None,
            'ssl': ssl,
        }

    def quote_identifier(self, name: str) -> str:
        return name


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)
