"""Content fingerprints used as the identity of a submitted image."""

from __future__ import annotations

import hashlib
import string

FINGERPRINT_ALGORITHM = "sha256"


def fingerprint(image_bytes: bytes) -> str:
    """Return the hex SHA-256 digest of the raw image bytes.

    Only the bytes matter: filename, upload path, time and user never feed into
    the digest, so identical content always maps to the same fingerprint.
    """

    if not isinstance(image_bytes, (bytes, bytearray, memoryview)):
        raise TypeError("fingerprint() requires raw image bytes")
    return hashlib.new(FINGERPRINT_ALGORITHM, bytes(image_bytes)).hexdigest()


def is_fingerprint(value: str) -> bool:
    if not isinstance(value, str) or len(value) != 64:
        return False
    return all(char in string.hexdigits for char in value)


__all__ = ["FINGERPRINT_ALGORITHM", "fingerprint", "is_fingerprint"]
