"""
Unit tests for DatabaseAdminSystem wiring.
"""
from unittest.mock import MagicMock

import pytest

from dbadmin.admin import DatabaseAdminSystem
from dbadmin.database.models import ConnectionConfig
from dbadmin.errors import NotFoundError
from dbadmin.utils.vault import CredentialVault, FernetSecureStorage


class TestDatabaseAdminSystem:

    @pytest.fixture(autouse=True)
    def _setup(self, settings):
        self.vault = CredentialVault(FernetSecureStorage('admin-secret'))
        self.manager = MagicMock()
        self.system = DatabaseAdminSystem(settings, vault=self.vault, manager=self.manager)

    def test_connect_decrypts_stored_password(self):
        stored = self.system.encrypt_config({'engine': 'postgres', 'host': 'db', 'password': 'pw'})
        assert stored.password.startswith('ENC:')

        self.system.connect('c1', stored)

        connection_id, config = self.manager.connect.call_args.args
        assert connection_id == 'c1'
        assert config.password == 'pw'
        assert config.host == 'db'

    def test_plain_password_passes_through(self):
        self.system.connect('c1', ConnectionConfig(engine='mysql', password='plain'))
        assert self.manager.connect.call_args.args[1].password == 'plain'

    def test_unreadable_password_fails_test_connection(self):
        sealed = CredentialVault(FernetSecureStorage('other')).encrypt('pw')
        result = self.system.test_connection({'engine': 'mysql', 'password': sealed})
        assert result['success'] is False
        self.manager.test_connection.assert_not_called()

    def test_missing_connection(self):
        self.manager.get_driver.return_value = None
        with pytest.raises(NotFoundError, match='Connection not found: c9'):
            self.system.list_tables('c9')

    def test_cancel_nl_before_first_use(self):
        assert self.system.cancel_nl('c1') is False
        assert self.system._nl is None

    def test_nl_execution_stats_before_first_use(self):
        assert self.system.nl_execution_stats() is None
        assert self.system._nl is None

    def test_shutdown_closes_connections(self):
        self.system.shutdown()
        self.manager.disconnect_all.assert_called_once()
