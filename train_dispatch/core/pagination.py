import base64
from dataclasses import dataclass
from datetime import datetime


@dataclass
class Cursor:
    created_at: datetime
    job_id: str


@dataclass
class Page:
    limit: int
    after: Cursor | None


def decode_cursor(cursor: str | None) -> Cursor | None:
    """Cursors are opaque to clients; a malformed one restarts from the beginning."""
    if not cursor:
        return None
    try:
        value = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
        created_at, job_id = value.split("|", 1)
        return Cursor(created_at=datetime.fromisoformat(created_at), job_id=job_id)
    except ValueError:
        return None


def encode_cursor(after: Cursor | None) -> str | None:
    if after is None:
        return None
    raw = f"{after.created_at.isoformat()}|{after.job_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("utf-8")


def paginate(limit: int, cursor: str | None, default_limit: int, max_limit: int) -> Page:
    clamped_limit = min(max(limit or default_limit, 1), max_limit)
    return Page(limit=clamped_limit, after=decode_cursor(cursor))
