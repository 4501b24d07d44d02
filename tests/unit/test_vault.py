"""
Unit tests for CredentialVault.
"""
import base64

import pytest

from dbadmin.errors import DatabaseError
from dbadmin.utils.vault import CredentialVault, FernetSecureStorage


class TestCredentialVaultWithKey:

    def setup_method(self):
        self.vault = CredentialVault(FernetSecureStorage('correct horse battery staple'))

    def test_encryption_available(self):
        assert self.vault.is_encryption_available() is True

    def test_encrypt_uses_enc_prefix(self):
        stored = self.vault.encrypt('s3cret!')
        assert stored.startswith('ENC:')
        assert 's3cret!' not in stored

    def test_round_trip(self):
        assert self.vault.decrypt(self.vault.encrypt('pässwörd')) == 'pässwörd'

    def test_empty_string_round_trip(self):
        stored = self.vault.encrypt('')
        assert stored.startswith('ENC:')
        assert self.vault.decrypt(stored) == ''

    def test_wrong_key_raises(self):
        stored = self.vault.encrypt('s3cret!')
        other = CredentialVault(FernetSecureStorage('another secret'))
        with pytest.raises(DatabaseError):
            other.decrypt(stored)

    def test_b64_values_still_decode(self):
        legacy = 'B64:' + base64.b64encode(b'old-password').decode('ascii')
        assert self.vault.decrypt(legacy) == 'old-password'


class TestCredentialVaultWithoutKey:

    def setup_method(self):
        self.vault = CredentialVault(FernetSecureStorage(None))

    def test_encryption_unavailable(self):
        assert self.vault.is_encryption_available() is False

    def test_falls_back_to_base64(self):
        stored = self.vault.encrypt('hunter2')
        assert stored == 'B64:' + base64.b64encode(b'hunter2').decode('ascii')
        assert self.vault.decrypt(stored) == 'hunter2'

    def test_empty_string_round_trip(self):
        stored = self.vault.encrypt('')
        assert stored == 'B64:'
        assert self.vault.decrypt(stored) == ''

    def test_untagged_value_is_returned_unchanged(self):
        assert self.vault.decrypt('plain-text-password') == 'plain-text-password'

    def test_enc_value_cannot_be_read(self):
        sealed = CredentialVault(FernetSecureStorage('k')).encrypt('x')
        with pytest.raises(DatabaseError):
            self.vault.decrypt(sealed)


class TestCredentialVaultSettings:

    def test_secret_comes_from_environment(self, monkeypatch):
        from dbadmin.config import load_settings

        monkeypatch.setenv('DBADMIN_VAULT_SECRET', 'env-secret')
        vault = CredentialVault(settings=load_settings())
        assert vault.encrypt('pw').startswith('ENC:')
