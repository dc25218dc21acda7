"""Parsing helpers for list-valued query parameters."""

import uuid

from fastapi import HTTPException


def parse_id_list(raw: str | None, label: str = "client") -> list[str] | None:
    """Split a comma-separated ``?ids=`` value into canonical UUID strings.

    Blank entries are skipped and duplicates collapse to the first
    occurrence. Returns None when nothing usable remains, so callers can
    treat "no filter" and "empty filter" the same way.

    Raises:
        HTTPException: 400 naming the first value that is not a UUID.
    """
    if not raw:
        return None
    ids: list[str] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = str(uuid.UUID(part))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid {label} ID format: {part}")
        if value not in ids:
            ids.append(value)
    return ids or None


def parse_client_ids(client_ids: str | None) -> list[str] | None:
    return parse_id_list(client_ids, "client")
