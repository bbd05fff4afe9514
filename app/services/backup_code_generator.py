"""
Backup code generation.

Three formats are supported:
- words: BIP-39 English words joined by "-" (e.g. "ocean-tribe-lamp-velvet")
- alphanumeric: fixed-length uppercase letters and digits, without look-alikes
- numeric: "XXXX-XXXX-XXXX-XXXX-CCC" where CCC is the digit sum mod 1000

Codes come from `secrets`; only scrypt hashes of the normalized form are stored.
"""

import re
import secrets
from typing import List, Tuple

from mnemonic import Mnemonic

from app.core.auth_config import BackupCodeFormat, BackupCodePolicy
from app.core.security import hash_code

# No 0/O or 1/I/L
ALPHANUMERIC_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

NUMERIC_GROUPS = 4
NUMERIC_GROUP_LENGTH = 4
NUMERIC_PATTERN = re.compile(r"^(\d{4})-(\d{4})-(\d{4})-(\d{4})-(\d{3})$")

_wordlist = Mnemonic("english").wordlist


def _words_code(word_count: int) -> str:
    return "-".join(secrets.choice(_wordlist) for _ in range(word_count))


def _alphanumeric_code(length: int) -> str:
    return "".join(secrets.choice(ALPHANUMERIC_ALPHABET) for _ in range(length))


def numeric_checksum(digits: str) -> str:
    return f"{sum(int(d) for d in digits) % 1000:03d}"


def _numeric_code() -> str:
    groups = [
        "".join(secrets.choice("0123456789") for _ in range(NUMERIC_GROUP_LENGTH))
        for _ in range(NUMERIC_GROUPS)
    ]
    return "-".join(groups + [numeric_checksum("".join(groups))])


def generate_code(policy: BackupCodePolicy) -> str:
    if policy.format == BackupCodeFormat.WORDS:
        return _words_code(policy.word_count)
    if policy.format == BackupCodeFormat.ALPHANUMERIC:
        return _alphanumeric_code(policy.alphanumeric_length)
    return _numeric_code()


def generate_codes(policy: BackupCodePolicy) -> List[str]:
    """A batch of distinct plaintext codes."""
    codes: List[str] = []
    while len(codes) < policy.count:
        code = generate_code(policy)
        if code not in codes:
            codes.append(code)
    return codes


def normalize(code: str) -> str:
    """Case-insensitive; runs of whitespace count as a separator."""
    return re.sub(r"\s+", "-", code.strip().lower())


def has_valid_checksum(code: str) -> bool:
    """
    False only for codes shaped like numeric codes whose checksum is wrong.

    Anything not in numeric shape is left to the hash comparison.
    """
    match = NUMERIC_PATTERN.match(normalize(code))
    if not match:
        return True
    digits = "".join(match.groups()[:NUMERIC_GROUPS])
    return numeric_checksum(digits) == match.group(5)


def hash_codes(codes: List[str]) -> List[Tuple[str, str]]:
    """(code_hash, salt) for each code, each with its own salt."""
    return [hash_code(normalize(code)) for code in codes]
