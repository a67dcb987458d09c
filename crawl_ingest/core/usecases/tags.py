"""Tags derived from a page URL."""

from __future__ import annotations

from urllib.parse import urlsplit


def path_tags(url: str) -> list[str]:
    """Return the non-empty path segments of `url`, or [] if it is not a URL."""
    try:
        parsed = urlsplit((url or "").strip())
    except ValueError:
        return []
    if not parsed.scheme:
        return []
    return [part for part in parsed.path.split("/") if part]
