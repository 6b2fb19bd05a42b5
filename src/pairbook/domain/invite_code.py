"""Invite code generation and normalization."""

import secrets

INVITE_CODE_LENGTH = 8
INVITE_CODE_MAX_ATTEMPTS = 10

# Uppercase letters and digits without look-alikes (0/O, 1/I/L).
INVITE_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_invite_code(raw: str | None) -> str | None:
    """Return the trimmed, uppercased code, or None if empty.

    Codes are compared case-insensitively, so every lookup goes through here.
    """
    if raw is None:
        return None
    code = str(raw).strip().upper()
    return code or None
