"""
Per-connection backup manifest files
"""

import json
import os
import tempfile
import threading
from typing import List, Optional

from ..database.models import BackupEntry, BackupManifest
from ..utils.keyed_lock import KeyedLocks
from ..utils.logger import get_logger

logger = get_logger(__name__)

MANIFEST_FILE = 'manifest.json'


class ManifestStore:
    """Reads and writes ``<root>/<connection_id>/manifest.json``"""

    def __init__(self, root: str):
        self.root = root
        self._locks = KeyedLocks(threading.RLock)

    def lock(self, connection_id: str):
        """Serialize manifest edits of one connection; reentrant"""
        return self._locks.hold(connection_id)

    def connection_dir(self, connection_id: str) -> str:
        directory = os.path.join(self.root, connection_id)
        os.makedirs(directory, exist_ok=True)
        return directory

    def path(self, connection_id: str) -> str:
        return os.path.join(self.connection_dir(connection_id), MANIFEST_FILE)

    def read(self, connection_id: str) -> BackupManifest:
        manifest_path = self.path(connection_id)
        if not os.path.exists(manifest_path):
            return BackupManifest()
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                return BackupManifest.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable manifest {manifest_path}, starting empty: {e}")
            return BackupManifest()

    def write(self, connection_id: str, manifest: BackupManifest) -> None:
        """Replace the manifest atomically"""
        directory = self.connection_dir(connection_id)
        fd, tmp_path = tempfile.mkstemp(prefix='.manifest-', suffix='.json', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(manifest.to_dict(), f, indent=2)
            os.replace(tmp_path, os.path.join(directory, MANIFEST_FILE))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def append(self, connection_id: str, entry: BackupEntry) -> None:
        with self.lock(connection_id):
            manifest = self.read(connection_id)
            manifest.entries.append(entry)
            self.write(connection_id, manifest)

    def find(self, connection_id: str, backup_id: str) -> Optional[BackupEntry]:
        for entry in self.read(connection_id).entries:
            if entry.id == backup_id:
                return entry
        return None

    def remove(self, connection_id: str, backup_id: str) -> Optional[BackupEntry]:
        """Drop an entry and return it, or None when the id is unknown"""
        with self.lock(connection_id):
            manifest = self.read(connection_id)
            kept = [e for e in manifest.entries if e.id != backup_id]
            if len(kept) == len(manifest.entries):
                return None
            removed = next(e for e in manifest.entries if e.id == backup_id)
            manifest.entries = kept
            self.write(connection_id, manifest)
            return removed

    def existing_entries(self, connection_id: str) -> List[BackupEntry]:
        """Entries whose file is still on disk, newest first"""
        entries = [e for e in self.read(connection_id).entries if os.path.exists(e.file_path)]
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)
