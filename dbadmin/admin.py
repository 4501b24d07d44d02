"""
Main database administration system: wires the connection registry,
backup/restore, transfer, credential vault and NL pipeline together
"""

from typing import Any, Dict, List, Optional, Union

from .agents.models import NlHistoryEntry, NlPermissions
from .backup import BackupOrchestrator, RestoreOrchestrator
from .config import load_settings
from .database import ConnectionManager, DatabaseFactory, TransferEngine
from .database.adapters import DatabaseAdapter
from .database.models import (
    BackupEntry,
    BackupOptions,
    BackupResult,
    ConnectionConfig,
    DeleteResult,
    QueryResult,
    RestoreResult,
    TableInfo,
    TransferResult,
)
from .errors import NotFoundError
from .utils.logger import get_logger
from .utils.vault import CredentialVault

logger = get_logger(__name__)

ConfigLike = Union[ConnectionConfig, Dict[str, Any]]


def as_config(config: ConfigLike) -> ConnectionConfig:
    if isinstance(config, ConnectionConfig):
        return config
    return ConnectionConfig.from_dict(config)


class DatabaseAdminSystem:
    """One process-wide set of admin services"""

    def __init__(self, settings=None, vault: Optional[CredentialVault] = None,
                 manager: Optional[ConnectionManager] = None,
                 backups: Optional[BackupOrchestrator] = None,
                 reasoning_client=None):
        self.settings = settings or load_settings()
        self.vault = vault or CredentialVault(settings=self.settings)
        self.manager = manager or ConnectionManager(DatabaseFactory(self.settings))
        self.transfer_engine = TransferEngine(self.manager)
        self.backups = backups or BackupOrchestrator(self.settings)
        self.restores = RestoreOrchestrator(self.backups)
        self._reasoning_client = reasoning_client
        self._nl = None

    @property
    def nl(self):
        """NL pipeline, created on first use so the reasoning client is optional"""
        if self._nl is None:
            from .agents.nl_pipeline import NlQueryPipeline
            self._nl = NlQueryPipeline(self.manager, self._reasoning_client, self.settings)
        return self._nl

    # ---- credentials ----

    def encrypt_config(self, config: ConfigLike) -> ConnectionConfig:
        """Return a copy of the config whose password is sealed for storage"""
        config = as_config(config)
        if not config.password:
            return config
        return config.with_password(self.vault.encrypt(config.password))

    def resolve_config(self, config: ConfigLike) -> ConnectionConfig:
        """Return a copy of the config with its stored password decrypted"""
        config = as_config(config)
        if not config.password:
            return config
        return config.with_password(self.vault.decrypt(config.password))

    # ---- connections ----

    def connect(self, connection_id: str, config: ConfigLike) -> DatabaseAdapter:
        return self.manager.connect(connection_id, self.resolve_config(config))

    def disconnect(self, connection_id: str) -> None:
        self.manager.disconnect(connection_id)

    def test_connection(self, config: ConfigLike) -> Dict[str, Any]:
        try:
            resolved = self.resolve_config(config)
        except Exception as e:
            return {'success': False, 'error': str(e)}
        return self.manager.test_connection(resolved)

    def driver(self, connection_id: str) -> DatabaseAdapter:
        adapter = self.manager.get_driver(connection_id)
        if adapter is None:
            raise NotFoundError(f"Connection not found: {connection_id}")
        return adapter

    def list_databases(self, connection_id: str) -> List[str]:
        return self.driver(connection_id).list_databases()

    def list_schemas(self, connection_id: str) -> List[str]:
        return self.driver(connection_id).list_schemas()

    def list_tables(self, connection_id: str, schema: Optional[str] = None) -> List[str]:
        return self.driver(connection_id).list_tables(schema)

    def get_table_info(self, connection_id: str, table: str, schema: Optional[str] = None) -> TableInfo:
        return self.driver(connection_id).get_table_info(table, schema)

    def execute_query(self, connection_id: str, query: str, limit: Optional[int] = None,
                      offset: Optional[int] = None) -> QueryResult:
        return self.driver(connection_id).execute_query(query, limit, offset)

    def cancel_query(self, connection_id: str) -> None:
        self.driver(connection_id).cancel_query()

    # ---- backup / restore ----

    def backup(self, connection_id: str, connection_name: str, config: ConfigLike,
               options: Optional[BackupOptions] = None,
               environment_tag: Optional[str] = None) -> BackupResult:
        try:
            resolved = self.resolve_config(config)
        except Exception as e:
            return BackupResult(success=False, error=str(e))
        return self.backups.backup(connection_id, connection_name, resolved, options, environment_tag)

    def list_backups(self, connection_id: str) -> List[BackupEntry]:
        return self.backups.list_backups(connection_id)

    def delete_backup(self, connection_id: str, backup_id: str) -> DeleteResult:
        return self.backups.delete_backup(connection_id, backup_id)

    def cancel_backup(self, connection_id: str) -> bool:
        return self.backups.cancel_backup(connection_id)

    def restore(self, connection_id: str, backup_id: str, target: ConfigLike) -> RestoreResult:
        entry = self.backups.manifests.find(connection_id, backup_id)
        if entry is None:
            return RestoreResult(success=False, error='Backup not found')
        try:
            resolved = self.resolve_config(target)
        except Exception as e:
            return RestoreResult(success=False, error=str(e))
        return self.restores.restore(entry, resolved)

    # ---- transfer ----

    def transfer(self, source_id: str, target_id: str, tables: List[str],
                 respect_dependencies: bool = False) -> TransferResult:
        return self.transfer_engine.transfer(source_id, target_id, tables, respect_dependencies)

    # ---- natural language ----

    def generate_sql(self, connection_id: str, prompt: str,
                     permissions: Optional[NlPermissions] = None,
                     history: Optional[List[NlHistoryEntry]] = None):
        return self.nl.generate_sql(connection_id, prompt, permissions, history)

    def execute_nl_query(self, connection_id: str, prompt: str,
                         permissions: Optional[NlPermissions] = None,
                         history: Optional[List[NlHistoryEntry]] = None):
        return self.nl.execute_nl_query(connection_id, prompt, permissions, history)

    def interpret_results(self, connection_id: str, question: str, sql: str, columns: List[str],
                          rows: List[Dict[str, Any]], row_count: int,
                          history: Optional[List[NlHistoryEntry]] = None):
        return self.nl.interpret_results(connection_id, question, sql, columns, rows, row_count, history)

    def cancel_nl(self, connection_id: str) -> bool:
        if self._nl is None:
            return False
        return self._nl.cancel(connection_id)

    def nl_execution_stats(self) -> Optional[Dict[str, Any]]:
        """Execution statistics of NL queries run so far; None before the pipeline exists"""
        if self._nl is None:
            return None
        return self._nl.execution_agent.get_execution_stats()

    def shutdown(self) -> None:
        if self._nl is not None:
            self._nl.shutdown()
        self.manager.disconnect_all()
        logger.info("Admin system shut down")
