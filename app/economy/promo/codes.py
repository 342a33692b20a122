from __future__ import annotations

import re
import secrets

from app.db.models.promo_codes import PROMO_CODE_LENGTH

# Uppercase letters and digits without L, O and 0.
CODE_ALPHABET = "ABCDEFGHIJKMNPQRSTUVWXYZ123456789"
DISPLAY_SEPARATOR = "-"
_NON_ALNUM_PATTERN = re.compile(r"[^0-9A-Za-z]+")


def generate_promo_code(length: int = PROMO_CODE_LENGTH) -> str:
    """Draw a code from the OS CSPRNG.

    Each byte is mapped with ``byte % len(CODE_ALPHABET)``. 256 is not a
    multiple of the alphabet size, so the first ``256 % 33`` symbols are
    slightly more likely (8/256 vs 7/256). Codes are single-use bearer tokens
    checked against the store, so the bias does not affect correctness.
    """
    if length <= 0:
        raise ValueError("length must be positive")
    alphabet_size = len(CODE_ALPHABET)
    return "".join(CODE_ALPHABET[byte % alphabet_size] for byte in secrets.token_bytes(length))


def format_promo_code(code: str) -> str:
    split_at = PROMO_CODE_LENGTH // 2
    return f"{code[:split_at]}{DISPLAY_SEPARATOR}{code[split_at:]}"


def normalize_promo_code(raw_code: str) -> str:
    return _NON_ALNUM_PATTERN.sub("", raw_code).upper()


def is_valid_promo_code(normalized_code: str) -> bool:
    if len(normalized_code) != PROMO_CODE_LENGTH:
        return False
    return all(char in CODE_ALPHABET for char in normalized_code)
