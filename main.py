#!/usr/bin/env python3
"""
Main entry point for the multi-engine database admin shell
"""

from dbadmin.cli.main_cli import main

if __name__ == "__main__":
    main()
