"""Map identity-provider user IDs to internal UUIDs."""

from __future__ import annotations

import hashlib
import re

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    """Check whether value is formatted as a UUID."""
    return bool(UUID_PATTERN.match(value))


def external_to_uuid(external_id: str) -> str:
    """Derive a stable UUID string from an identity-provider user ID.

    IDs such as ``user_2wwXyz`` become the MD5 digest of the ID formatted
    as 8-4-4-4-12 hex groups. Values that already are UUIDs are returned
    unchanged.

    Raises:
        ValueError: If external_id is empty
    """
    if not external_id:
        raise ValueError("external_id must not be empty")

    if is_uuid(external_id):
        return external_id

    digest = hashlib.md5(external_id.encode("utf-8")).hexdigest()
    return "-".join(
        (digest[0:8], digest[8:12], digest[12:16], digest[16:20], digest[20:32])
    )
