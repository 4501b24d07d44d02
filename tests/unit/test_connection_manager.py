"""
Unit tests for ConnectionManager and DatabaseFactory.
"""
import threading
from unittest.mock import MagicMock, Mock

import pytest

from dbadmin.database import ConnectionManager, DatabaseFactory
from dbadmin.database.adapters import (
    MongoDBAdapter,
    MSSQLAdapter,
    MySQLAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
)
from dbadmin.database.models import ConnectionConfig, Engine
from dbadmin.errors import AuthenticationError, UnsupportedEngineError
from dbadmin.utils.keyed_lock import KeyedLocks


def make_adapter(connected=True, connect_error=None, disconnect_error=None):
    adapter = MagicMock()
    adapter.is_connected.return_value = connected
    if connect_error is not None:
        adapter.connect.side_effect = connect_error
    if disconnect_error is not None:
        adapter.disconnect.side_effect = disconnect_error
    return adapter


class TestDatabaseFactory:

    def setup_method(self):
        self.factory = DatabaseFactory()

    @pytest.mark.parametrize("engine,expected", [
        ('postgresql', PostgreSQLAdapter),
        ('mysql', MySQLAdapter),
        ('mssql', MSSQLAdapter),
        ('mongodb', MongoDBAdapter),
        ('sqlite', SQLiteAdapter),
        (Engine.SQLITE, SQLiteAdapter),
    ])
    def test_creates_adapter_for_engine(self, engine, expected):
        assert isinstance(self.factory.create_connector(engine), expected)

    def test_unknown_engine_is_rejected(self):
        with pytest.raises(UnsupportedEngineError) as exc_info:
            self.factory.create_connector('oracle')
        assert 'Unsupported database engine: oracle' in str(exc_info.value)

    def test_each_call_returns_a_fresh_adapter(self):
        assert self.factory.create_connector('sqlite') is not self.factory.create_connector('sqlite')


class TestConnectionManager:
    """Test registry semantics with mocked adapters."""

    def setup_method(self):
        self.factory = Mock()
        self.manager = ConnectionManager(factory=self.factory)
        self.config = ConnectionConfig(engine='postgresql', host='localhost', database='app')

    def test_connect_registers_adapter(self):
        adapter = make_adapter()
        self.factory.create_connector.return_value = adapter

        result = self.manager.connect('c1', self.config)

        assert result is adapter
        adapter.connect.assert_called_once_with(self.config)
        assert self.manager.get_driver('c1') is adapter
        assert self.manager.connection_ids() == ['c1']

    def test_reconnect_replaces_and_closes_previous(self):
        first, second = make_adapter(), make_adapter()
        self.factory.create_connector.side_effect = [first, second]

        self.manager.connect('c1', self.config)
        self.manager.connect('c1', self.config)

        first.disconnect.assert_called_once()
        assert self.manager.get_driver('c1') is second
        assert len(self.manager) == 1

    def test_reconnect_skips_disconnect_of_dead_previous_adapter(self):
        dead, fresh = make_adapter(connected=False), make_adapter()
        self.factory.create_connector.side_effect = [dead, fresh]

        self.manager.connect('c1', self.config)
        self.manager.connect('c1', self.config)

        dead.disconnect.assert_not_called()
        assert self.manager.get_driver('c1') is fresh

    def test_failed_connect_drops_old_mapping_and_raises(self):
        old = make_adapter()
        failing = make_adapter(connect_error=AuthenticationError('password authentication failed'))
        self.factory.create_connector.side_effect = [old, failing]

        self.manager.connect('c1', self.config)
        with pytest.raises(AuthenticationError):
            self.manager.connect('c1', self.config)

        assert self.manager.get_driver('c1') is None
        old.disconnect.assert_called_once()
        failing.disconnect.assert_called_once()

    def test_disconnect_unknown_id_is_noop(self):
        self.manager.disconnect('missing')
        assert self.manager.get_driver('missing') is None

    def test_disconnect_removes_mapping(self):
        adapter = make_adapter()
        self.factory.create_connector.return_value = adapter
        self.manager.connect('c1', self.config)

        self.manager.disconnect('c1')

        adapter.disconnect.assert_called_once()
        assert self.manager.get_driver('c1') is None
        assert 'c1' not in self.manager._id_locks
        assert len(self.manager._id_locks) == 0

    def test_disconnect_all_tolerates_failures(self):
        good = make_adapter()
        bad = make_adapter(disconnect_error=RuntimeError('socket closed'))
        other = make_adapter()
        self.factory.create_connector.side_effect = [good, bad, other]
        for cid in ('a', 'b', 'c'):
            self.manager.connect(cid, self.config)

        self.manager.disconnect_all()

        assert self.manager.connection_ids() == []
        good.disconnect.assert_called_once()
        other.disconnect.assert_called_once()

    def test_test_connection_does_not_register(self):
        adapter = make_adapter()
        self.factory.create_connector.return_value = adapter

        assert self.manager.test_connection(self.config) == {'success': True}
        adapter.disconnect.assert_called_once()
        assert len(self.manager) == 0

    def test_test_connection_reports_error(self):
        self.factory.create_connector.return_value = make_adapter(connect_error=RuntimeError('refused'))
        result = self.manager.test_connection(self.config)
        assert result['success'] is False
        assert 'refused' in result['error']

    def test_concurrent_connects_for_same_id_leave_one_adapter(self):
        adapters = [make_adapter() for _ in range(8)]
        self.factory.create_connector.side_effect = adapters

        threads = [threading.Thread(target=self.manager.connect, args=('same', self.config)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        live = self.manager.get_driver('same')
        assert live in adapters
        closed = [a for a in adapters if a.disconnect.called]
        assert len(closed) == 7
        assert live not in closed


class TestConnectionManagerWithSQLite:

    def test_connect_and_query_real_file(self, settings, sqlite_config):
        manager = ConnectionManager(settings=settings)
        manager.connect('local', sqlite_config)
        try:
            driver = manager.get_driver('local')
            assert driver.execute_query("SELECT COUNT(*) AS n FROM customers").rows == [{'n': 100}]
        finally:
            manager.disconnect_all()
        assert manager.get_driver('local') is None


class TestKeyedLocks:

    def test_entry_is_dropped_after_release(self):
        locks = KeyedLocks()
        with locks.hold('c1'):
            assert 'c1' in locks
        assert 'c1' not in locks
        assert len(locks) == 0

    def test_waiter_shares_the_held_lock(self):
        locks = KeyedLocks()
        order = []
        waiter_started = threading.Event()

        def waiter():
            waiter_started.set()
            with locks.hold('c1'):
                order.append('waiter')

        with locks.hold('c1'):
            thread = threading.Thread(target=waiter)
            thread.start()
            waiter_started.wait(1)
            thread.join(0.1)
            order.append('holder')
        thread.join(1)

        assert order == ['holder', 'waiter']
        assert len(locks) == 0

    def test_reentrant_factory(self):
        locks = KeyedLocks(threading.RLock)
        with locks.hold('c1'):
            with locks.hold('c1'):
                assert len(locks) == 1
        assert len(locks) == 0
