"""
Credential protection for stored connection secrets
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import DatabaseError
from .logger import get_logger

logger = get_logger(__name__)

ENCRYPTED_PREFIX = 'ENC:'
FALLBACK_PREFIX = 'B64:'


class FernetSecureStorage:
    """Platform primitive: Fernet with a key derived from the vault secret via PBKDF2"""

    def __init__(self, secret: Optional[str], salt: str = 'dbadmin-vault-salt'):
        self._fernet = None
        if secret:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt.encode(),
                iterations=100_000,
            )
            key = base64.urlsafe_b64encode(kdf.derive(secret.encode()))
            self._fernet = Fernet(key)

    def is_encryption_available(self) -> bool:
        return self._fernet is not None

    def encrypt_string(self, plaintext: str) -> bytes:
        return self._fernet.encrypt(plaintext.encode('utf-8'))

    def decrypt_string(self, token: bytes) -> str:
        return self._fernet.decrypt(token).decode('utf-8')


class CredentialVault:
    """Encrypts secrets as ENC:<base64>, or B64:<base64> when no key is configured"""

    def __init__(self, storage: Optional[FernetSecureStorage] = None, settings=None):
        if storage is None:
            if settings is None:
                from ..config import load_settings
                settings = load_settings()
            storage = FernetSecureStorage(settings.vault.secret, settings.vault.salt)
        self.storage = storage

    def is_encryption_available(self) -> bool:
        return self.storage.is_encryption_available()

    def encrypt(self, plaintext: str) -> str:
        if self.storage.is_encryption_available():
            token = self.storage.encrypt_string(plaintext)
            return ENCRYPTED_PREFIX + base64.b64encode(token).decode('ascii')
        return FALLBACK_PREFIX + base64.b64encode(plaintext.encode('utf-8')).decode('ascii')

    def decrypt(self, stored: str) -> str:
        """Decode a stored secret; untagged legacy values are returned unchanged"""
        if stored.startswith(ENCRYPTED_PREFIX):
            if not self.storage.is_encryption_available():
                raise DatabaseError('Cannot decrypt credential: DBADMIN_VAULT_SECRET is not set')
            try:
                return self.storage.decrypt_string(base64.b64decode(stored[len(ENCRYPTED_PREFIX):]))
            except InvalidToken as e:
                logger.error("Stored credential could not be decrypted with the current vault secret")
                raise DatabaseError('Cannot decrypt credential: vault secret does not match') from e
        if stored.startswith(FALLBACK_PREFIX):
            return base64.b64decode(stored[len(FALLBACK_PREFIX):]).decode('utf-8')
        return stored
