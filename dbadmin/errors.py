"""
Error taxonomy surfaced by adapters and orchestrators
"""

from typing import Optional


class DatabaseError(Exception):
    """Base class for every error raised by this package"""


class DbConnectionError(DatabaseError, ConnectionError):
    """Connection could not be established (carries the engine's native text)"""


class AuthenticationError(DbConnectionError):
    """Credentials were rejected by the engine"""


class NetworkError(DbConnectionError):
    """Timeout, DNS failure, refused or unreachable server"""


class NotFoundError(DatabaseError):
    """Connection, database, table or backup does not exist"""


class UnsupportedEngineError(DatabaseError, ValueError):
    """Engine tag is unknown, or the engine lacks the requested capability"""


class QueryError(DatabaseError):
    """Statement failed inside the engine; message is passed through verbatim"""


class QueryCancelledError(DatabaseError):
    """A query or natural-language request was cancelled"""


class PermissionDeniedError(DatabaseError):
    """Generated statement is outside the caller-declared permissions"""

    def __init__(self, message: str, sql: Optional[str] = None):
        super().__init__(message)
        self.sql = sql


class ExternalToolError(DatabaseError):
    """A spawned dump/restore tool is missing or exited non-zero"""

    def __init__(self, tool: str, message: str, returncode: Optional[int] = None, stderr: str = ''):
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


_AUTH_MARKERS = (
    'password authentication failed',
    'authentication failed',
    'access denied',
    'login failed',
    'no password supplied',
    'bad auth',
)

_NETWORK_MARKERS = (
    'timeout',
    'timed out',
    'could not connect',
    'connection refused',
    "can't connect",
    'could not translate host name',
    'name or service not known',
    'nodename nor servname',
    'no route to host',
    'network is unreachable',
    'server selection',
    'unable to open database file',
    'login timeout expired',
)

# Native error codes: MySQL 1045, MSSQL 18456, MongoDB 18, SQLSTATE 28xxx
_AUTH_CODES = {1045, 18456, 18, '28000', '28P01'}


def _native_code(exc: BaseException):
    orig = getattr(exc, 'orig', None) or exc
    pgcode = getattr(orig, 'pgcode', None)
    if pgcode:
        return pgcode
    code = getattr(orig, 'code', None)
    if code is not None:
        return code
    args = getattr(orig, 'args', ())
    if args and isinstance(args[0], (int, str)):
        return args[0]
    return None


def classify_connect_error(exc: BaseException, engine: str = '') -> DbConnectionError:
    """Map a driver exception raised while connecting to the taxonomy"""
    if isinstance(exc, DbConnectionError):
        return exc

    message = str(getattr(exc, 'orig', None) or exc)
    prefix = f"{engine} connection failed: " if engine else ''
    lowered = message.lower()

    if _native_code(exc) in _AUTH_CODES or any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthenticationError(prefix + message)
    if isinstance(exc, (TimeoutError, OSError)) or any(marker in lowered for marker in _NETWORK_MARKERS):
        return NetworkError(prefix + message)
    return DbConnectionError(prefix + message)
