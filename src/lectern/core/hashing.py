from __future__ import annotations

import hashlib


def sha256_hex(data: bytes) -> str:
    """Content checksum used for upload dedup and blob keys."""
    return hashlib.sha256(data).hexdigest()
