from __future__ import annotations

import secrets

KEY_BYTES = 32
RULE = "=" * 80


def generate_encryption_key() -> str:
    """Return 32 random bytes hex-encoded (64 characters)."""

    return secrets.token_hex(KEY_BYTES)


def render_instructions(key: str) -> str:
    return "\n".join(
        [
            RULE,
            "ENCRYPTION KEY GENERATED",
            RULE,
            "",
            key,
            "",
            RULE,
            "1. Add it to your .env file as:",
            f"   ENCRYPTION_KEY={key}",
            "2. Use the SAME key everywhere the account store is read",
            "3. Never commit this key to version control",
            "4. Store a backup in a password manager",
            "",
            "If this key is lost or changed, existing account secrets cannot be decrypted.",
            RULE,
        ]
    )
