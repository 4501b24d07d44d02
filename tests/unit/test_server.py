"""
HTTP surface tests using FastAPI's TestClient.
"""
import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

import server
from dbadmin.admin import DatabaseAdminSystem


@pytest.fixture
def reasoning():
    return Mock()


@pytest.fixture
def client(settings, reasoning):
    system = DatabaseAdminSystem(settings, reasoning_client=reasoning)
    server.set_admin_system(system)
    try:
        yield TestClient(server.app)
    finally:
        system.shutdown()
        server.set_admin_system(None)


class TestServerEndpoints:

    def test_status(self, client):
        data = client.get("/status").json()
        assert data["status"] == "running"
        assert data["connections"] == []
        assert data["encryption_available"] is False
        assert data["nl_executions"] is None

    def test_connect_and_browse(self, client, sqlite_path):
        config = {"engine": "sqlite", "filePath": sqlite_path}
        assert client.post("/connections/shop/connect", json={"config": config}).json() == {"success": True}

        assert client.get("/connections/shop/schemas").json()["schemas"] == ["main"]
        assert client.get("/connections/shop/tables").json()["tables"] == ["customers", "orders"]

        table = client.get("/connections/shop/tables/orders").json()["table"]
        assert table["row_count"] == 20
        assert [c["name"] for c in table["columns"]] == ["id", "customer_id", "total"]

    def test_query_with_limit(self, client, sqlite_path):
        client.post("/connections/shop/connect", json={"config": {"engine": "sqlite", "filePath": sqlite_path}})

        data = client.post("/connections/shop/query", json={"query": "SELECT id FROM customers", "limit": 3}).json()

        assert data["success"] is True
        assert data["result"]["rows"] == [{"id": 1}, {"id": 2}, {"id": 3}]
        assert data["result"]["total_rows"] == 100

    def test_unknown_connection(self, client):
        data = client.get("/connections/ghost/tables").json()
        assert data == {"success": False, "error": "Connection not found: ghost"}

    def test_test_connection_failure_is_reported(self, client, tmp_path):
        missing = str(tmp_path / "nope" / "missing.db")
        data = client.post("/connections/test", json={"config": {"engine": "sqlite", "filePath": missing}}).json()
        assert data["success"] is False
        assert data["error"]

    def test_nl_execute(self, client, reasoning, sqlite_path):
        client.post("/connections/shop/connect", json={"config": {"engine": "sqlite", "filePath": sqlite_path}})
        reasoning.generate.return_value = json.dumps({"sql": "SELECT COUNT(*) AS n FROM orders"})

        data = client.post("/connections/shop/nl/execute", json={"prompt": "how many orders?"}).json()

        assert data["success"] is True
        assert data["result"]["rows"] == [{"n": 20}]
        assert data["explanation"] == "1 result(s)"
        assert client.get("/connections/shop/nl/state").json()["state"] == "done"

        executions = client.get("/status").json()["nl_executions"]
        assert executions["total_executions"] == 1
        assert executions["successful_executions"] == 1

    def test_nl_generate_denied(self, client, reasoning, sqlite_path):
        client.post("/connections/shop/connect", json={"config": {"engine": "sqlite", "filePath": sqlite_path}})
        reasoning.generate.return_value = json.dumps({"sql": "DROP TABLE orders"})

        data = client.post("/connections/shop/nl/generate", json={
            "prompt": "drop orders",
            "permissions": {"can_read": True, "can_update": True},
        }).json()

        assert data["success"] is False
        assert data["sql"] == "DROP TABLE orders"
        assert data["error"] == "Permission denied: DROP queries are not allowed on this connection"

    def test_nl_cancel_when_idle(self, client):
        assert client.post("/connections/shop/nl/cancel").json() == {"success": True, "cancelled": False}

    def test_backups_listing_for_new_connection(self, client):
        assert client.get("/connections/new/backups").json() == {"success": True, "backups": []}

    def test_restore_unknown_backup(self, client):
        data = client.post("/connections/c/backups/missing/restore", json={"target": {"engine": "sqlite"}}).json()
        assert data == {"success": False, "warnings": 0, "error": "Backup not found"}

    def test_transfer_without_connections(self, client):
        data = client.post("/transfer", json={"source_id": "a", "target_id": "b", "tables": ["t"]}).json()
        assert data["success"] is False
        assert data["errors"] == ["Source connection not found"]

    def test_encrypt_without_secret_uses_base64(self, client):
        data = client.post("/credentials/encrypt", json={"value": "pw"}).json()
        assert data == {"success": True, "value": "B64:cHc="}
