"""
Constants Module

Self-updating extraction and storage of versioned protocol constants.
"""

from .decoder import decode_script, decrypt_table, parse_abo, replace_lookups
from .extractor import ConstantExtractor
from .store import BoundStore, ConstantStore, entry_filename

__all__ = [
    "decode_script",
    "decrypt_table",
    "parse_abo",
    "replace_lookups",
    "ConstantExtractor",
    "BoundStore",
    "ConstantStore",
    "entry_filename",
]
