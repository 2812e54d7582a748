"""URL helpers for redirect and checkout targets."""
from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode


def with_query(base_url: str, params: Mapping[str, Any]) -> str:
    """Append query parameters, keeping any already present on base_url."""
    query = urlencode({k: "" if v is None else str(v) for k, v in params.items()})
    if not query:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"
