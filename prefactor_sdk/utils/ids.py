"""
Partitioned identifiers (PFID).

A PFID is 32 lowercase hex characters::

    [ 12 hex ms timestamp ][ 8 hex partition ][ 12 hex random ]

The timestamp prefix keeps ids sortable by creation time; the partition lets
every id minted by one tracer share a common, extractable component.
"""

from __future__ import annotations

import re
import secrets
import time

PFID_LENGTH = 32

_PFID_RE = re.compile(r"^[0-9a-f]{32}$")
_PARTITION_RE = re.compile(r"^[0-9a-f]{8}$")


def generate_partition() -> str:
    """Return a fresh random 8-hex-digit partition."""
    return secrets.token_hex(4)


def generate(partition: str) -> str:
    """Mint a new PFID within *partition*."""
    partition = partition.lower()
    if not _PARTITION_RE.match(partition):
        raise ValueError(f"invalid partition: {partition!r}")
    millis = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    return f"{millis:012x}{partition}{secrets.token_hex(6)}"


def is_pfid(value: object) -> bool:
    return isinstance(value, str) and bool(_PFID_RE.match(value))


def extract_partition(pfid: str) -> str:
    """Return the partition component of *pfid*.

    Raises:
        ValueError: *pfid* is not a well-formed PFID.
    """
    if not is_pfid(pfid):
        raise ValueError(f"not a PFID: {pfid!r}")
    return pfid[12:20]
