"""
CLI command modules.
"""

from geeked_cli.commands import constants, solve

__all__ = ["constants", "solve"]
