import time
from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import BaseModel, Field
import uvicorn
from typing import Any, Dict, List, Optional

from dbadmin import __version__
from dbadmin.agents.models import NlHistoryEntry, NlPermissions
from dbadmin.database.models import BackupOptions
from dbadmin.utils.logger import get_logger

load_dotenv()

logger = get_logger("dbadmin.server")

app = FastAPI(title="Database Admin Server", version=__version__)

# Shared admin system
_admin_system_instance = None


def get_admin_system():
    global _admin_system_instance
    if _admin_system_instance is None:
        from dbadmin.admin import DatabaseAdminSystem
        _admin_system_instance = DatabaseAdminSystem()
    return _admin_system_instance


def set_admin_system(system) -> None:
    """Replace the shared system (None resets it to a lazily built default)"""
    global _admin_system_instance
    _admin_system_instance = system


def _failure(e: Exception) -> Dict[str, Any]:
    logger.error(f"Request failed: {e}")
    return {"success": False, "error": str(e)}


# Request Models
class ConnectRequest(BaseModel):
    config: Dict[str, Any]


class QueryRequest(BaseModel):
    query: str
    limit: Optional[int] = None
    offset: Optional[int] = None


class BackupRequest(BaseModel):
    connection_name: str
    config: Dict[str, Any]
    options: Dict[str, Any] = Field(default_factory=dict)
    environment_tag: Optional[str] = None


class RestoreRequest(BaseModel):
    target: Dict[str, Any]


class TransferRequest(BaseModel):
    source_id: str
    target_id: str
    tables: List[str]
    respect_dependencies: bool = False


class PermissionsModel(BaseModel):
    can_read: bool = True
    can_update: bool = False
    can_delete: bool = False


class HistoryItem(BaseModel):
    role: str
    content: str
    sql: Optional[str] = None


class NlRequest(BaseModel):
    prompt: str
    permissions: PermissionsModel = Field(default_factory=PermissionsModel)
    history: List[HistoryItem] = Field(default_factory=list)


class InterpretRequest(BaseModel):
    question: str
    sql: str
    columns: List[str]
    rows: List[Dict[str, Any]]
    row_count: int
    history: List[HistoryItem] = Field(default_factory=list)


class EncryptRequest(BaseModel):
    value: str


def _permissions(model: PermissionsModel) -> NlPermissions:
    return NlPermissions(can_read=model.can_read, can_update=model.can_update, can_delete=model.can_delete)


def _history(items: List[HistoryItem]) -> List[NlHistoryEntry]:
    return [NlHistoryEntry(role=item.role, content=item.content, sql=item.sql) for item in items]


@app.get("/status")
def status():
    """Get system status"""
    system = get_admin_system()
    return {
        "status": "running",
        "connections": system.manager.connection_ids(),
        "encryption_available": system.vault.is_encryption_available(),
        "nl_executions": system.nl_execution_stats(),
        "timestamp": time.time()
    }


# ---- connections ----

@app.post("/connections/test")
def test_connection(req: ConnectRequest):
    return get_admin_system().test_connection(req.config)


@app.post("/connections/{connection_id}/connect")
def connect(connection_id: str, req: ConnectRequest):
    try:
        get_admin_system().connect(connection_id, req.config)
        return {"success": True}
    except Exception as e:
        return _failure(e)


@app.delete("/connections/{connection_id}")
def disconnect(connection_id: str):
    try:
        get_admin_system().disconnect(connection_id)
        return {"success": True}
    except Exception as e:
        return _failure(e)


@app.get("/connections/{connection_id}/databases")
def list_databases(connection_id: str):
    try:
        return {"success": True, "databases": get_admin_system().list_databases(connection_id)}
    except Exception as e:
        return _failure(e)


@app.get("/connections/{connection_id}/schemas")
def list_schemas(connection_id: str):
    try:
        return {"success": True, "schemas": get_admin_system().list_schemas(connection_id)}
    except Exception as e:
        return _failure(e)


@app.get("/connections/{connection_id}/tables")
def list_tables(connection_id: str, schema: Optional[str] = None):
    try:
        return {"success": True, "tables": get_admin_system().list_tables(connection_id, schema)}
    except Exception as e:
        return _failure(e)


@app.get("/connections/{connection_id}/tables/{table}")
def get_table_info(connection_id: str, table: str, schema: Optional[str] = None):
    try:
        info = get_admin_system().get_table_info(connection_id, table, schema)
        return {"success": True, "table": info.to_dict()}
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/query")
def execute_query(connection_id: str, req: QueryRequest):
    try:
        result = get_admin_system().execute_query(connection_id, req.query, req.limit, req.offset)
        return {"success": result.success, "error": result.error, "result": result.to_dict()}
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/cancel")
def cancel_query(connection_id: str):
    try:
        get_admin_system().cancel_query(connection_id)
        return {"success": True}
    except Exception as e:
        return _failure(e)


# ---- backups ----

@app.post("/connections/{connection_id}/backups")
def create_backup(connection_id: str, req: BackupRequest):
    result = get_admin_system().backup(
        connection_id,
        req.connection_name,
        req.config,
        BackupOptions.from_dict(req.options),
        req.environment_tag,
    )
    return result.to_dict()


@app.get("/connections/{connection_id}/backups")
def list_backups(connection_id: str):
    try:
        entries = get_admin_system().list_backups(connection_id)
        return {"success": True, "backups": [entry.to_dict() for entry in entries]}
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/backups/cancel")
def cancel_backup(connection_id: str):
    return {"success": True, "cancelled": get_admin_system().cancel_backup(connection_id)}


@app.delete("/connections/{connection_id}/backups/{backup_id}")
def delete_backup(connection_id: str, backup_id: str):
    return get_admin_system().delete_backup(connection_id, backup_id).to_dict()


@app.post("/connections/{connection_id}/backups/{backup_id}/restore")
def restore_backup(connection_id: str, backup_id: str, req: RestoreRequest):
    return get_admin_system().restore(connection_id, backup_id, req.target).to_dict()


# ---- transfer ----

@app.post("/transfer")
def transfer(req: TransferRequest):
    result = get_admin_system().transfer(req.source_id, req.target_id, req.tables, req.respect_dependencies)
    return result.to_dict()


# ---- natural language ----

@app.post("/connections/{connection_id}/nl/generate")
def nl_generate(connection_id: str, req: NlRequest):
    try:
        response = get_admin_system().generate_sql(
            connection_id, req.prompt, _permissions(req.permissions), _history(req.history)
        )
        return response.to_dict()
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/nl/execute")
def nl_execute(connection_id: str, req: NlRequest):
    try:
        response = get_admin_system().execute_nl_query(
            connection_id, req.prompt, _permissions(req.permissions), _history(req.history)
        )
        return response.to_dict()
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/nl/interpret")
def nl_interpret(connection_id: str, req: InterpretRequest):
    try:
        response = get_admin_system().interpret_results(
            connection_id, req.question, req.sql, req.columns, req.rows, req.row_count,
            _history(req.history)
        )
        return response.to_dict()
    except Exception as e:
        return _failure(e)


@app.post("/connections/{connection_id}/nl/cancel")
def nl_cancel(connection_id: str):
    return {"success": True, "cancelled": get_admin_system().cancel_nl(connection_id)}


@app.get("/connections/{connection_id}/nl/state")
def nl_state(connection_id: str):
    try:
        return {"success": True, "state": get_admin_system().nl.get_state(connection_id).value}
    except Exception as e:
        return _failure(e)


# ---- credentials ----

@app.post("/credentials/encrypt")
def encrypt_credential(req: EncryptRequest):
    try:
        return {"success": True, "value": get_admin_system().vault.encrypt(req.value)}
    except Exception as e:
        return _failure(e)


@app.on_event("shutdown")
def shutdown():
    if _admin_system_instance is not None:
        _admin_system_instance.shutdown()


def run():
    """Run the admin server"""
    from dbadmin.config import load_settings
    settings = load_settings().server
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
