from datetime import datetime, timezone

from train_dispatch.core.pagination import Cursor, decode_cursor, encode_cursor, paginate


def test_cursor_roundtrip():
    after = Cursor(created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc), job_id="abc")
    assert decode_cursor(encode_cursor(after)) == after


def test_malformed_cursor_restarts():
    assert decode_cursor("not-a-cursor") is None
    assert decode_cursor(None) is None


def test_paginate_bounds():
    page = paginate(limit=1000, cursor=None, default_limit=20, max_limit=50)
    assert page.limit == 50
    assert page.after is None
