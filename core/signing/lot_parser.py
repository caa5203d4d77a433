"""
Lot Parser

Derives the lot-number dictionary that every signature document carries.

A mapping looks like::

    {"(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])":"n[13:18]"}

The key pattern is a list of groups separated by ``+.+``; each group
concatenates inclusive slices ``n[a:b]`` of the lot number. Group strings
are joined with ``.`` and split again into nested dictionary keys. The
value pattern builds the innermost value the same way.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

from core.schemas.errors import CryptoError


_MAPPING_DOUBLE = re.compile(r'"([^"]+)":"([^"]+)"')
_MAPPING_MIXED = re.compile(r'"([^"]+)":\'([^\']+)\'')
_SLICE = re.compile(r"\[(\d+):(\d+)\]")

Pattern = list[list[tuple[int, int]]]


def parse_pattern(pattern: str) -> Pattern:
    """Split a pattern into groups of ``(start, end)`` slice bounds."""
    groups: Pattern = []
    for part in pattern.split("+.+"):
        group = []
        for sub in part.split("+"):
            m = _SLICE.search(sub)
            if m:
                group.append((int(m.group(1)), int(m.group(2))))
        if group:
            groups.append(group)
    return groups


def build_string(groups: Pattern, lot_number: str) -> str:
    return ".".join(
        "".join(lot_number[start:end + 1] for start, end in group)
        for group in groups
    )


class LotParser:
    """
    Compiled form of a mapping string.

    Raises CryptoError on construction if the mapping is malformed: a
    mapping that cannot be parsed means the constant set is corrupt.
    """

    def __init__(self, mapping: str) -> None:
        m = _MAPPING_DOUBLE.search(mapping) or _MAPPING_MIXED.search(mapping)
        if not m:
            raise CryptoError(
                "Invalid lot mapping format",
                details={"mapping": mapping[:200]},
            )
        self.key_pattern = m.group(1)
        self.value_pattern = m.group(2)
        self.lot = parse_pattern(self.key_pattern)
        self.lot_res = parse_pattern(self.value_pattern)
        if not self.lot or not self.lot_res:
            raise CryptoError(
                "Lot mapping has no slice groups",
                details={"mapping": mapping[:200]},
            )

    def get_dict(self, lot_number: str) -> dict[str, Any]:
        """
        Nested dictionary for one lot number.

        Example:
            >>> LotParser('{"(n[13:15]+n[3:5])+.+(n[1:3]+n[26:28])+.+(n[20:27])":"n[13:18]"}') \\
            ...     .get_dict("f4744c44df4541b3be48c5c270ced20b")
            {'1b344c': {'474ced': {'c5c270ce': '1b3be4'}}}
        """
        keys = build_string(self.lot, lot_number).split(".")
        value = build_string(self.lot_res, lot_number)

        result: dict[str, Any] = {}
        current = result
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value
        return result


@lru_cache(maxsize=32)
def get_lot_parser(mapping: str) -> LotParser:
    """Memoized LotParser; one per distinct mapping string."""
    return LotParser(mapping)
