"""
Application settings and configuration
"""

import os
import sys
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _default_tool_paths() -> List[str]:
    """Common install locations for pg_dump, mysqldump, mongodump and sqlite3"""
    if sys.platform == 'win32':
        return [
            'C:\\Program Files\\PostgreSQL\\17\\bin',
            'C:\\Program Files\\PostgreSQL\\16\\bin',
            'C:\\Program Files\\PostgreSQL\\15\\bin',
            'C:\\Program Files\\PostgreSQL\\14\\bin',
            'C:\\Program Files\\MySQL\\MySQL Server 8.0\\bin',
            'C:\\Program Files\\MongoDB\\Tools\\100\\bin',
            'C:\\ProgramData\\chocolatey\\bin',
        ]
    return [
        '/opt/homebrew/bin',
        '/opt/homebrew/opt/postgresql@17/bin',
        '/opt/homebrew/opt/postgresql@16/bin',
        '/opt/homebrew/opt/postgresql@15/bin',
        '/opt/homebrew/opt/libpq/bin',
        '/opt/homebrew/opt/mysql-client/bin',
        '/opt/homebrew/opt/mongodb-database-tools/bin',
        '/opt/homebrew/opt/sqlite/bin',
        '/usr/local/bin',
        '/usr/local/opt/postgresql@16/bin',
        '/usr/local/opt/libpq/bin',
        '/usr/local/opt/mysql-client/bin',
        '/usr/lib/postgresql/16/bin',
        '/usr/bin',
    ]


class ConnectionSettings:
    """Driver connection configuration."""

    def __init__(self):
        self.connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", "10"))
        self.default_page_size = int(os.getenv("DB_DEFAULT_PAGE_SIZE", "1000"))
        self.pool_size = int(os.getenv("DB_POOL_SIZE", "5"))
        self.mssql_odbc_driver = os.getenv("MSSQL_ODBC_DRIVER", "ODBC Driver 18 for SQL Server")


class BackupSettings:
    """Backup/restore configuration."""

    def __init__(self):
        self.home_dir = os.path.expanduser(os.getenv("DBADMIN_HOME", os.path.join("~", ".dbadmin")))
        self.backups_root = os.path.expanduser(
            os.getenv("DBADMIN_BACKUPS_DIR", os.path.join(self.home_dir, "databases", "backups"))
        )
        extra = os.getenv("DBADMIN_TOOL_PATHS", "")
        self.tool_paths = [p for p in extra.split(os.pathsep) if p] + _default_tool_paths()


class VaultSettings:
    """Credential vault configuration."""

    def __init__(self):
        self.secret = os.getenv("DBADMIN_VAULT_SECRET")
        self.salt = os.getenv("DBADMIN_VAULT_SALT", "dbadmin-vault-salt")


class LLMSettings:
    """Reasoning service configuration."""

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API")
        self.primary_model = os.getenv("NL_PRIMARY_MODEL", "gemini-2.5-flash")
        self.fallback_model = os.getenv("NL_FALLBACK_MODEL", "gemini-1.5-flash")
        self.ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        self.request_timeout = int(os.getenv("NL_REQUEST_TIMEOUT", "120"))
        self.result_limit = int(os.getenv("NL_RESULT_LIMIT", "100"))
        self.sample_rows = int(os.getenv("NL_SAMPLE_ROWS", "10"))


class ServerSettings:
    """HTTP server configuration."""

    def __init__(self):
        self.port = int(os.getenv("PORT", "8080"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()


class Settings:
    """Application configuration class."""

    def __init__(self):
        self.connection = ConnectionSettings()
        self.backup = BackupSettings()
        self.vault = VaultSettings()
        self.llm = LLMSettings()
        self.server = ServerSettings()


def load_settings() -> Settings:
    """Build a fresh settings object from the current environment"""
    return Settings()
