"""Target URL normalization and validation."""

from urllib.parse import urlsplit

import validators

__all__ = ["normalize_url", "is_valid_url"]


def normalize_url(url: str) -> str:
    """Trim and add an https scheme when the URL has none."""
    trimmed = url.strip()
    if not trimmed.startswith(("http://", "https://")):
        return f"https://{trimmed}"
    return trimmed


def is_valid_url(url: str | None) -> bool:
    if url is None or not url.strip():
        return False
    normalized = normalize_url(url)
    try:
        host = urlsplit(normalized).hostname
    except ValueError:
        return False
    # localhost is the only single-label host accepted.
    return bool(validators.url(normalized, simple_host=host == "localhost"))
