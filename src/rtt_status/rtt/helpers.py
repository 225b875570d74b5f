"""Helpers for building RTT requests and summarizing responses."""

from __future__ import annotations

import base64
from urllib.parse import quote

from rtt_status.rtt.constants import MAX_RESPONSE_BODY_LENGTH


def encode_basic_auth(username: str, password: str) -> str:
    """Encode ``username:password`` for an HTTP Basic ``Authorization`` header."""
    return base64.b64encode(f"{username}:{password}".encode()).decode("ascii")


def build_search_url(
    base_url: str,
    origin: str,
    destination: str,
    date_path: str,
) -> str:
    """Build the RTT location search URL for one origin/destination/date."""
    base = base_url.rstrip("/")
    return (
        f"{base}/search/{quote(origin, safe='')}/to/{quote(destination, safe='')}"
        f"/{date_path}"
    )


def excerpt(text: str | None, *, limit: int = MAX_RESPONSE_BODY_LENGTH) -> str | None:
    """Truncate a response body to the size kept on error objects."""
    if text is None:
        return None
    return text[:limit]
