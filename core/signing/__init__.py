"""
Signing Module

Lot-number derivation and the per-round signature document.
"""

from .lot_parser import LotParser, get_lot_parser, parse_pattern
from .signature import RoundState, SignatureBuilder

__all__ = [
    "LotParser",
    "get_lot_parser",
    "parse_pattern",
    "RoundState",
    "SignatureBuilder",
]
