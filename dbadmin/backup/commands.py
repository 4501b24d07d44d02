"""
Dump and restore command lines for each engine's external tools
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import quote_plus

from ..database.models import BackupEntry, BackupOptions, ConnectionConfig, Engine
from ..errors import UnsupportedEngineError

SECRET_ENV_VARS = ('PGPASSWORD', 'MYSQL_PWD')

_URI_PASSWORD = re.compile(r'(://[^:/@\s]+:)[^@\s]+@')

MSSQL_BACKUP_ERROR = ('MSSQL backup requires SQL Server tools. '
                      'Use the query editor with BACKUP DATABASE command.')
MSSQL_RESTORE_ERROR = 'MSSQL restore requires SQL Server tools.'


@dataclass
class ToolCommand:
    """One external tool invocation; secrets travel in env, not argv, where the tool allows it"""
    tool: str
    args: List[str]
    env: Dict[str, str] = field(default_factory=dict)
    ext: str = ''
    stdin_path: Optional[str] = None

    def render(self, redact: bool = True) -> str:
        """Shell-like rendering for logs"""
        parts = []
        for name, value in self.env.items():
            shown = '***' if redact and name in SECRET_ENV_VARS else shlex.quote(value)
            parts.append(f"{name}={shown}")
        parts.append(self.tool)
        parts.extend(shlex.quote(arg) for arg in self.args)
        if self.stdin_path:
            parts.append(f"< {shlex.quote(self.stdin_path)}")
        line = ' '.join(parts)
        if redact:
            line = _URI_PASSWORD.sub(r'\1***@', line)
        return line

    def __str__(self):
        return self.render()


def _pg_connection(config: ConnectionConfig):
    args = [
        '-h', config.host or 'localhost',
        '-p', str(config.port or 5432),
    ]
    if config.username:
        args += ['-U', config.username]
    env = {}
    if config.ssl:
        env['PGSSLMODE'] = 'require'
    if config.password:
        env['PGPASSWORD'] = config.password
    return args, env


def _mysql_connection(config: ConnectionConfig):
    args = [
        '-h', config.host or 'localhost',
        '-P', str(config.port or 3306),
    ]
    if config.username:
        args += ['-u', config.username]
    env = {'MYSQL_PWD': config.password} if config.password else {}
    return args, env


def _mongo_uri(config: ConnectionConfig) -> str:
    if config.connection_string:
        return config.connection_string
    credentials = ''
    if config.username:
        credentials = f"{quote_plus(config.username)}:{quote_plus(config.password or '')}@"
    return f"mongodb://{credentials}{config.host or 'localhost'}:{config.port or 27017}"


def _sqlite_file(config: ConnectionConfig) -> str:
    return config.file_path or config.database or ''


def build_backup_command(config: ConnectionConfig, options: Optional[BackupOptions] = None) -> ToolCommand:
    """Translate a connection and dump options into the engine's dump tool invocation"""
    options = options or BackupOptions()
    db_name = config.database or 'backup'

    if config.engine == Engine.POSTGRESQL:
        args, env = _pg_connection(config)
        if options.data_only:
            args.append('--data-only')
        elif options.schema_only:
            args.append('--schema-only')
        if not options.data_only:
            # DROP ... IF EXISTS before each CREATE keeps restores repeatable
            args += ['--clean', '--if-exists']
        for table in options.tables or []:
            args += ['-t', table]
        args += ['--no-owner', '--no-acl', db_name]
        return ToolCommand('pg_dump', args, env, ext='.sql')

    if config.engine == Engine.MYSQL:
        args, env = _mysql_connection(config)
        if options.data_only:
            args.append('--no-create-info')
        elif options.schema_only:
            args.append('--no-data')
        args.append(db_name)
        args += list(options.tables or [])
        return ToolCommand('mysqldump', args, env, ext='.sql')

    if config.engine == Engine.MONGODB:
        args = [f"--uri={_mongo_uri(config)}", f"--db={db_name}", '--archive']
        tables = options.tables or []
        if len(tables) > 1:
            raise UnsupportedEngineError('mongodump can only limit a backup to a single collection')
        if tables:
            args.append(f"--collection={tables[0]}")
        return ToolCommand('mongodump', args, ext='.archive')

    if config.engine == Engine.SQLITE:
        return ToolCommand('sqlite3', [_sqlite_file(config), '.dump'], ext='.sql')

    raise UnsupportedEngineError(MSSQL_BACKUP_ERROR)


def build_restore_commands(entry: BackupEntry, target: ConnectionConfig) -> List[ToolCommand]:
    """Commands replaying a backup file into the target, run in order"""
    if Engine.MSSQL in (entry.engine, target.engine):
        raise UnsupportedEngineError(MSSQL_RESTORE_ERROR)
    if entry.engine != target.engine:
        raise UnsupportedEngineError(
            f"Cannot restore a {entry.engine.value} backup into a {target.engine.value} database"
        )
    db_name = target.database or entry.database

    if entry.engine == Engine.POSTGRESQL:
        args, env = _pg_connection(target)
        reset = ToolCommand('psql', args + [db_name, '-c', 'DROP SCHEMA public CASCADE; CREATE SCHEMA public;'], env)
        replay = ToolCommand('psql', args + [db_name], dict(env), stdin_path=entry.file_path)
        return [reset, replay]

    if entry.engine == Engine.MYSQL:
        args, env = _mysql_connection(target)
        return [ToolCommand('mysql', args + [db_name], env, stdin_path=entry.file_path)]

    if entry.engine == Engine.MONGODB:
        args = [f"--uri={_mongo_uri(target)}", f"--nsInclude={entry.database}.*"]
        if db_name != entry.database:
            args += [f"--nsFrom={entry.database}.*", f"--nsTo={db_name}.*"]
        args += ['--drop', f"--archive={entry.file_path}"]
        return [ToolCommand('mongorestore', args)]

    if entry.engine == Engine.SQLITE:
        return [ToolCommand('sqlite3', [_sqlite_file(target)], stdin_path=entry.file_path)]

    raise UnsupportedEngineError(MSSQL_RESTORE_ERROR)
