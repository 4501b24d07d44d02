"""
Multi-engine database administration core
"""

__version__ = "1.0.0"
