"""
Backup and restore through engine dump tools
"""

from .commands import ToolCommand, build_backup_command, build_restore_commands
from .manifest import ManifestStore
from .orchestrator import BackupOrchestrator, RestoreOrchestrator, BackupLogEvent

__all__ = [
    'ToolCommand',
    'build_backup_command',
    'build_restore_commands',
    'ManifestStore',
    'BackupOrchestrator',
    'RestoreOrchestrator',
    'BackupLogEvent'
]
