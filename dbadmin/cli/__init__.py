"""
Command-line interface
"""
