"""
CASL Key ID generation.

IDs have the form ``CK`` followed by five characters drawn from an alphabet
without easily confused glyphs (no O/0, I/1/l).
"""

from __future__ import annotations

import hashlib
import re
import secrets
from typing import Final, Optional

CASL_KEY_ALPHABET: Final[str] = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CASL_KEY_PREFIX: Final[str] = "CK"
CASL_KEY_LENGTH: Final[int] = 5

CASL_KEY_REGEX: Final = re.compile(rf"^{CASL_KEY_PREFIX}[{CASL_KEY_ALPHABET}]{{{CASL_KEY_LENGTH}}}$")


def generate_casl_key_id(seed: Optional[str] = None) -> str:
    """
    Generate a CASL Key ID.

    Args:
        seed: Optional stable seed. The same seed always yields the same ID,
              which makes identity lookups idempotent.

    Returns:
        ID string such as ``CK7QX2M``
    """
    if seed is None:
        chars = "".join(secrets.choice(CASL_KEY_ALPHABET) for _ in range(CASL_KEY_LENGTH))
        return CASL_KEY_PREFIX + chars

    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    chars = "".join(
        CASL_KEY_ALPHABET[byte % len(CASL_KEY_ALPHABET)] for byte in digest[:CASL_KEY_LENGTH]
    )
    return CASL_KEY_PREFIX + chars


def identity_seed(email: str, phone: str) -> str:
    """Build a normalised seed from the identity fields that define a guest."""
    clean_email = email.strip().lower()
    clean_phone = re.sub(r"[^\d+]", "", phone)
    return f"{clean_email}|{clean_phone}"


def is_valid_casl_key_id(value: str) -> bool:
    """Check if a string is a well-formed CASL Key ID."""
    return bool(value) and bool(CASL_KEY_REGEX.match(value))
