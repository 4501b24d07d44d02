"""
Utility functions and helper classes
"""

from .logger import get_logger
from .process import ProcessHandle, ProcessResult
from .vault import CredentialVault

__all__ = [
    'get_logger',
    'ProcessHandle',
    'ProcessResult',
    'CredentialVault'
]
