from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_CODE_LENGTH = 50

_CODE_NORMALIZE_PATTERN = re.compile(r"\s+")


def normalize_redemption_code(raw_code: str) -> str:
    return _CODE_NORMALIZE_PATTERN.sub("", raw_code).upper()


def normalize_code_prefix(prefix: str) -> str:
    return normalize_redemption_code(prefix)


def generate_raw_codes(
    *,
    count: int,
    token_length: int = 8,
    prefix: str = "",
    existing_codes: set[str] | None = None,
) -> list[str]:
    if count <= 0:
        raise ValueError("count must be positive")
    if token_length <= 0:
        raise ValueError("token_length must be positive")
    if len(prefix) + token_length > MAX_CODE_LENGTH:
        raise ValueError("prefix and token_length exceed the maximum code length")

    existing = existing_codes if existing_codes is not None else set()
    generated: list[str] = []
    attempts = 0
    max_attempts = max(100, count * 50)

    while len(generated) < count:
        attempts += 1
        if attempts > max_attempts:
            raise RuntimeError("unable to generate unique redemption codes")

        token = "".join(secrets.choice(CODE_ALPHABET) for _ in range(token_length))
        raw_code = f"{prefix}{token}"
        if raw_code in existing:
            continue

        existing.add(raw_code)
        generated.append(raw_code)

    return generated


def parse_utc_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
