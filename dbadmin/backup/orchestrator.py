"""
Backup and restore orchestration around external dump tools
"""

import os
import threading
import time
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .commands import ToolCommand, build_backup_command, build_restore_commands
from .manifest import ManifestStore
from ..database.models import (
    BackupEntry,
    BackupOptions,
    BackupResult,
    ConnectionConfig,
    DeleteResult,
    RestoreResult,
)
from ..errors import ExternalToolError, UnsupportedEngineError
from ..utils.logger import get_logger
from ..utils.process import ProcessHandle, ProcessResult

logger = get_logger(__name__)

BACKUP_CANCELLED = 'Backup cancelled'
RESTORE_CANCELLED = 'Restore cancelled'


@dataclass
class BackupLogEvent:
    """Progress event for a backup or restore (type: command, stderr, success, error)"""
    timestamp: int
    type: str
    message: str
    connection_name: str
    operation: str

    def to_dict(self) -> Dict:
        return asdict(self)


# (command, stdout_path) -> started handle
ToolRunner = Callable[[ToolCommand, Optional[str]], ProcessHandle]
EventListener = Callable[[BackupLogEvent], None]


def backup_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 timestamp with ':' and '.' replaced for use in file names"""
    now = now or datetime.now(timezone.utc)
    iso = now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"
    return iso.replace(':', '-').replace('.', '-')


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Operation:
    """Shared bookkeeping for one backup or restore run"""

    def __init__(self, orchestrator: "BackupOrchestrator", connection_name: str, operation: str):
        self.orchestrator = orchestrator
        self.connection_name = connection_name
        self.operation = operation

    def emit(self, event_type: str, message: str) -> None:
        self.orchestrator.emit(BackupLogEvent(
            timestamp=_now_ms(),
            type=event_type,
            message=message,
            connection_name=self.connection_name,
            operation=self.operation,
        ))


class BackupOrchestrator:
    """Runs engine dump tools and keeps a manifest per connection"""

    def __init__(self, settings=None, runner: Optional[ToolRunner] = None,
                 listener: Optional[EventListener] = None):
        if settings is None:
            from ..config import load_settings
            settings = load_settings()
        self.settings = settings
        self.manifests = ManifestStore(settings.backup.backups_root)
        self.runner = runner or self._spawn
        self.listener = listener
        self._running: Dict[str, ProcessHandle] = {}
        self._running_lock = threading.Lock()

    def _spawn(self, command: ToolCommand, stdout_path: Optional[str] = None) -> ProcessHandle:
        return ProcessHandle(
            command.tool,
            command.args,
            env=command.env,
            tool_paths=self.settings.backup.tool_paths,
            stdin_path=command.stdin_path,
            stdout_path=stdout_path,
        ).start()

    def emit(self, event: BackupLogEvent) -> None:
        log = logger.error if event.type == 'error' else logger.info
        log(f"[{event.operation}] {event.connection_name}: {event.type}: {event.message}")
        if self.listener is not None:
            try:
                self.listener(event)
            except Exception as e:
                logger.warning(f"Backup event listener failed: {e}")

    def run_tool(self, connection_id: str, command: ToolCommand, op: _Operation,
                 stdout_path: Optional[str] = None) -> ProcessResult:
        """Run one tool to completion; raise ExternalToolError on non-zero exit"""
        op.emit('command', command.render(redact=True))
        handle = self.runner(command, stdout_path)
        with self._running_lock:
            self._running[connection_id] = handle
        try:
            result = handle.wait()
        finally:
            with self._running_lock:
                if self._running.get(connection_id) is handle:
                    del self._running[connection_id]

        if result.stderr:
            op.emit('stderr', result.stderr.strip())
        if not result.cancelled and result.returncode != 0:
            message = result.stderr.strip() or f"{command.tool} exited with code {result.returncode}"
            raise ExternalToolError(command.tool, message, result.returncode, result.stderr)
        return result

    def _output_path(self, connection_id: str, database: str, ext: str) -> str:
        directory = self.manifests.connection_dir(connection_id)
        base = f"{database}_{backup_timestamp()}"
        candidate = os.path.join(directory, base + ext)
        suffix = 1
        while os.path.exists(candidate):
            candidate = os.path.join(directory, f"{base}_{suffix}{ext}")
            suffix += 1
        return candidate

    def backup(self, connection_id: str, connection_name: str, config: ConnectionConfig,
               options: Optional[BackupOptions] = None,
               environment_tag: Optional[str] = None) -> BackupResult:
        """Dump a database into ``<backups_root>/<connection_id>/`` and record it"""
        options = options or BackupOptions()
        op = _Operation(self, connection_name, 'backup')
        database = config.database or 'backup'
        output_file = None

        try:
            command = build_backup_command(config, options)
            output_file = self._output_path(connection_id, database, command.ext)
            result = self.run_tool(connection_id, command, op, stdout_path=output_file)

            if result.cancelled:
                _remove_quietly(output_file)
                op.emit('error', BACKUP_CANCELLED)
                return BackupResult(success=False, error=BACKUP_CANCELLED)

            size = os.path.getsize(output_file)
            entry = BackupEntry(
                id=str(uuid.uuid4()),
                connection_id=connection_id,
                connection_name=connection_name,
                engine=config.engine,
                database=database,
                timestamp=_now_ms(),
                file_path=os.path.abspath(output_file),
                size=size,
                data_only=options.data_only,
                schema_only=options.schema_only,
                tables=options.tables,
                environment_tag=environment_tag,
            )
            self.manifests.append(connection_id, entry)

            op.emit('success', f"Backup saved: {entry.file_path} ({size} bytes)")
            return BackupResult(success=True, file_path=entry.file_path, size=size, entry=entry)
        except Exception as e:
            if output_file:
                _remove_quietly(output_file)
            op.emit('error', str(e))
            return BackupResult(success=False, error=str(e))

    def list_backups(self, connection_id: str) -> List[BackupEntry]:
        """Manifest entries whose file still exists, newest first"""
        return self.manifests.existing_entries(connection_id)

    def delete_backup(self, connection_id: str, backup_id: str) -> DeleteResult:
        try:
            with self.manifests.lock(connection_id):
                entry = self.manifests.find(connection_id, backup_id)
                if entry is None:
                    return DeleteResult(success=False, error='Backup not found')
                if os.path.exists(entry.file_path):
                    os.remove(entry.file_path)
                self.manifests.remove(connection_id, backup_id)
            logger.info(f"Deleted backup {backup_id} of {connection_id}")
            return DeleteResult(success=True)
        except OSError as e:
            logger.error(f"Deleting backup {backup_id} failed: {e}")
            return DeleteResult(success=False, error=str(e))

    def cancel_backup(self, connection_id: str) -> bool:
        """Terminate the running dump or restore for a connection"""
        with self._running_lock:
            handle = self._running.get(connection_id)
        if handle is None:
            return False
        return handle.cancel()


class RestoreOrchestrator:
    """Replays backup files into a target connection"""

    def __init__(self, backups: BackupOrchestrator):
        self.backups = backups

    def restore(self, entry: BackupEntry, target: ConnectionConfig) -> RestoreResult:
        op = _Operation(self.backups, entry.connection_name, 'restore')

        try:
            commands = build_restore_commands(entry, target)
        except UnsupportedEngineError as e:
            op.emit('error', str(e))
            return RestoreResult(success=False, error=str(e))

        if not os.path.exists(entry.file_path):
            op.emit('error', 'Backup file not found')
            return RestoreResult(success=False, error='Backup file not found')

        try:
            stderr = []
            for command in commands:
                result = self.backups.run_tool(entry.connection_id, command, op)
                if result.cancelled:
                    op.emit('error', RESTORE_CANCELLED)
                    return RestoreResult(success=False, error=RESTORE_CANCELLED)
                stderr.append(result.stderr)
        except Exception as e:
            op.emit('error', str(e))
            return RestoreResult(success=False, error=str(e))

        # psql keeps going after failed statements and reports them as ERROR: lines
        warnings = sum(
            1 for text in stderr for line in text.splitlines() if line.startswith('ERROR:')
        )
        if warnings:
            op.emit('success', f"Restore completed with {warnings} warning(s)")
        else:
            op.emit('success', 'Restore completed successfully')
        return RestoreResult(success=True, warnings=warnings)


def _remove_quietly(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
