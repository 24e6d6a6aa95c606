#!/usr/bin/env python3
"""
Entry point for the admin CLI.

Run with: python -m admin_tool
"""

from .cli import cli

if __name__ == '__main__':
    cli()
