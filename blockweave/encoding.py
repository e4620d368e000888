# blockweave/encoding.py
"""
Content hashes and identities.

A data hash is exactly 32 bytes; the all-zero value is reserved to mean
"absent". An identity is a 20-byte address written as lowercase
0x-prefixed hex; the all-zero address is the null identity.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Union

from .errors import InvalidAddress, InvalidHash

HASH_SIZE = 32
ADDRESS_SIZE = 20

ZERO_HASH = bytes(HASH_SIZE)
NULL_ADDRESS = "0x" + "00" * ADDRESS_SIZE

HashLike = Union[bytes, bytearray, str]


def _strip_0x(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def to_hash(value: HashLike) -> bytes:
    """
    Normalize a data hash to 32 raw bytes.

    Accepts raw bytes or hex text (with or without 0x prefix).

    Raises:
        InvalidHash: wrong length, not hex, or the zero sentinel
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        try:
            raw = bytes.fromhex(_strip_0x(value.strip()))
        except ValueError:
            raise InvalidHash(f"Data hash is not hex: {value!r}")
    else:
        raise InvalidHash(f"Unsupported data hash type: {type(value).__name__}")

    if len(raw) != HASH_SIZE:
        raise InvalidHash(f"Data hash must be {HASH_SIZE} bytes, got {len(raw)}")
    if raw == ZERO_HASH:
        raise InvalidHash("Data hash must be non-zero")
    return raw


def hash_hex(value: bytes) -> str:
    """Render a hash as 0x-prefixed hex."""
    return "0x" + value.hex()


def to_address(value: str) -> str:
    """
    Normalize an identity to lowercase 0x-prefixed hex.

    The null address passes through; callers that must reject it use
    require_address().

    Raises:
        InvalidAddress: not a 20-byte hex address
    """
    if not isinstance(value, str):
        raise InvalidAddress(f"Address must be a string, got {type(value).__name__}")
    body = _strip_0x(value.strip()).lower()
    if len(body) != ADDRESS_SIZE * 2:
        raise InvalidAddress(f"Address must be {ADDRESS_SIZE} bytes: {value!r}")
    try:
        bytes.fromhex(body)
    except ValueError:
        raise InvalidAddress(f"Address is not hex: {value!r}")
    return "0x" + body


def require_address(value: str) -> str:
    """Normalize an identity and reject the null address."""
    address = to_address(value)
    if address == NULL_ADDRESS:
        raise InvalidAddress("Address must not be the null identity")
    return address


def address_from_bytes(data: bytes) -> str:
    """Derive an address: last 20 bytes of the SHA3-256 digest of data."""
    return "0x" + hashlib.sha3_256(data).digest()[-ADDRESS_SIZE:].hex()


def content_hash(data: bytes) -> bytes:
    """SHA3-256 digest of raw content, usable as a node data hash."""
    return hashlib.sha3_256(data).digest()


def file_hash(path: Path | str) -> bytes:
    """
    Compute the SHA3-256 content hash of a file.

    Args:
        path: File to hash

    Returns:
        32-byte digest
    """
    hasher = hashlib.sha3_256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.digest()


def canonical_json(data: Any) -> str:
    """JSON with sorted keys and no whitespace, for hashing and signing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"))
