"""
Content fingerprinting.

A document's fingerprint is the SHA-256 hex digest of its raw bytes.
Two uploads with the same fingerprint are the same document.
"""

import hashlib

FINGERPRINT_LENGTH = 64


def fingerprint(content: bytes) -> str:
    """
    Compute the fingerprint of file content.

    Args:
        content: Raw file bytes

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(content).hexdigest()
