"""
Script Decoder

Pure, pattern-based decoding of the service's obfuscated script.

Identifiers and literal encodings change between releases; call-site
structure does not. Every value is therefore located by a structural
marker, never by an identifier name:

    decodeURI("...")             percent-encoded string table
    }}}("...")}                  XOR key for the string table
    _xxxx(<n>)                   lookup into the decoded table
    ['_lib']={...},              magic key/value pairs ("abo")
    ['_abo']=...}()              lot-number mapping
    ['options']['deviceId']='..' device id (optional)
    ['setPublic']('<n>','<e>')   RSA public key (optional)

A missing required marker raises DeobfuscationFailed naming the marker.
The same script always decodes to the same constants.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Optional
from urllib.parse import unquote

from pydantic import ValidationError

from core.schemas.constants import ProtocolConstants, RsaKeyMaterial
from core.schemas.errors import CryptoError, DeobfuscationFailed
from core.signing.lot_parser import LotParser


logger = logging.getLogger(__name__)


TABLE_RE = re.compile(r'decodeURI\("([^"]+)"\)')
XOR_KEY_RE = re.compile(r'\}\}\}\("([^"]+)"\)\}')
LOOKUP_RE = re.compile(r"(_.{4})\((\d+?)\)")
ABO_RE = re.compile(r"\['_lib'\]=(\{[^}]+\}),")
MAPPING_RE = re.compile(r"\['_abo'\]=(.+?)\}\(\)")
DEVICE_ID_RE = re.compile(r"\['options'\]\['deviceId'\]='([^']*)'")
PUBLIC_KEY_RE = re.compile(r"\['setPublic'\]\('([0-9A-Fa-f]+)','([0-9A-Fa-f]+)'\)")
_BARE_KEY_RE = re.compile(r"([{,])\s*([A-Za-z0-9_]+)\s*:")


def _require(pattern: re.Pattern, text: str, marker: str, version: str) -> re.Match:
    m = pattern.search(text)
    if m is None:
        raise DeobfuscationFailed(
            f"Marker {marker!r} not found in script {version}",
            marker=marker,
            version=version,
        )
    return m


def decrypt_table(encrypted: str, key: str) -> list[str]:
    """XOR each character's low byte with the cycled key, then split on '^'."""
    key_bytes = key.encode("utf-8")
    decrypted = "".join(
        chr((ord(c) & 0xFF) ^ key_bytes[i % len(key_bytes)])
        for i, c in enumerate(encrypted)
    )
    return decrypted.split("^")


def replace_lookups(script: str, table: list[str]) -> str:
    """Inline ``_xxxx(n)`` table lookups as quoted strings. Out-of-range calls stay."""
    def _sub(m: re.Match) -> str:
        index = int(m.group(2))
        if index < len(table):
            return f"'{table[index]}'"
        return m.group(0)

    return LOOKUP_RE.sub(_sub, script)


def parse_abo(literal: str) -> dict[str, str]:
    """Turn a JS object literal with single quotes / bare keys into a dict."""
    cleaned = literal.replace("'", '"')
    as_json = _BARE_KEY_RE.sub(r'\1"\2":', cleaned)
    data = json.loads(as_json)
    if not isinstance(data, dict):
        raise ValueError("abo literal is not an object")
    return {str(k): str(v) for k, v in data.items()}


def extract_string_table(script: str, version: str = "") -> list[str]:
    encrypted = unquote(_require(TABLE_RE, script, "decodeURI", version).group(1))
    key = _require(XOR_KEY_RE, script, "}}}(key)}", version).group(1)
    return decrypt_table(encrypted, key)


def extract_abo(text: str, version: str = "") -> dict[str, str]:
    literal = _require(ABO_RE, text, "_lib", version).group(1)
    try:
        return parse_abo(literal)
    except ValueError as e:
        raise DeobfuscationFailed(
            f"Cannot parse '_lib' object: {e}",
            marker="_lib",
            version=version,
        ) from e


def extract_mapping(text: str, version: str = "") -> str:
    mapping = _require(MAPPING_RE, text, "_abo", version).group(1)
    try:
        LotParser(mapping)
    except CryptoError as e:
        raise DeobfuscationFailed(
            f"'_abo' mapping is not a lot pattern: {e.message}",
            marker="_abo",
            version=version,
        ) from e
    return mapping


def extract_device_id(text: str) -> str:
    m = DEVICE_ID_RE.search(text)
    return m.group(1) if m else ""


def extract_public_key(text: str) -> Optional[RsaKeyMaterial]:
    m = PUBLIC_KEY_RE.search(text)
    if m is None:
        return None
    return RsaKeyMaterial(modulus=m.group(1), exponent=m.group(2))


def decode_script(script: str, version: str) -> ProtocolConstants:
    """
    Decode one script release into a complete constant set.

    Raises:
        DeobfuscationFailed: If any required marker is missing or unusable.
    """
    table = extract_string_table(script, version)
    text = replace_lookups(script, table)

    abo = extract_abo(text, version)
    mapping = extract_mapping(text, version)
    device_id = extract_device_id(text)
    public_key = extract_public_key(text)

    fields = {
        "version": version,
        "mapping": mapping,
        "abo": abo,
        "device_id": device_id,
    }
    if public_key is not None:
        fields["public_key"] = public_key

    try:
        constants = ProtocolConstants(**fields)
    except ValidationError as e:
        raise DeobfuscationFailed(
            f"Decoded constants are inconsistent: {e}",
            version=version,
        ) from e

    logger.debug(
        f"Decoded script {version}: table={len(table)} entries, "
        f"abo={len(abo)} keys, device_id={'set' if device_id else 'empty'}"
    )
    return constants
