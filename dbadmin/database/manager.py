"""
Registry of live adapters keyed by caller-chosen connection identifiers
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Any

from .adapters import DatabaseAdapter
from .factory import DatabaseFactory
from .models import ConnectionConfig
from ..utils.keyed_lock import KeyedLocks
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Owns at most one live adapter per connection identifier"""

    def __init__(self, factory: Optional[DatabaseFactory] = None, settings=None):
        self.factory = factory or DatabaseFactory(settings)
        self._connections: Dict[str, DatabaseAdapter] = {}
        self._map_lock = threading.Lock()
        self._id_locks = KeyedLocks()

    def connect(self, connection_id: str, config: ConnectionConfig) -> DatabaseAdapter:
        """Connect and register an adapter, replacing any previous one.

        If connecting fails the previous mapping is dropped and the error
        propagates to the caller.
        """
        with self._id_locks.hold(connection_id):
            with self._map_lock:
                existing = self._connections.pop(connection_id, None)

            if existing is not None and existing.is_connected():
                logger.info(f"Replacing live connection {connection_id}")
                existing.disconnect()

            adapter = self.factory.create_connector(config.engine)
            try:
                adapter.connect(config)
            except Exception:
                adapter.disconnect()
                raise

            with self._map_lock:
                self._connections[connection_id] = adapter
            logger.info(f"Connection {connection_id} registered ({config.engine.value})")
            return adapter

    def disconnect(self, connection_id: str) -> None:
        with self._id_locks.hold(connection_id):
            with self._map_lock:
                adapter = self._connections.pop(connection_id, None)
            if adapter is not None:
                adapter.disconnect()
                logger.info(f"Connection {connection_id} closed")

    def disconnect_all(self) -> None:
        """Disconnect everything; individual failures are logged, never raised"""
        with self._map_lock:
            adapters = list(self._connections.items())
            self._connections.clear()

        if not adapters:
            return

        with ThreadPoolExecutor(max_workers=len(adapters)) as pool:
            futures = {pool.submit(adapter.disconnect): cid for cid, adapter in adapters}
        for future, connection_id in futures.items():
            error = future.exception()
            if error is not None:
                logger.warning(f"Disconnect of {connection_id} failed: {error}")

        logger.info(f"Closed {len(adapters)} connection(s)")

    def get_driver(self, connection_id: str) -> Optional[DatabaseAdapter]:
        with self._map_lock:
            return self._connections.get(connection_id)

    def connection_ids(self) -> List[str]:
        with self._map_lock:
            return list(self._connections)

    def test_connection(self, config: ConnectionConfig) -> Dict[str, Any]:
        """Connect a throw-away adapter and close it again"""
        adapter = None
        try:
            adapter = self.factory.create_connector(config.engine)
            adapter.connect(config)
            return {'success': True}
        except Exception as e:
            logger.info(f"Connection test failed: {e}")
            return {'success': False, 'error': str(e)}
        finally:
            if adapter is not None:
                adapter.disconnect()

    def __len__(self):
        return len(self._connections)
