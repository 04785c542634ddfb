"""URL helpers."""

from __future__ import annotations

import urllib.parse
from typing import Any


def append_query(base_url: str, params: dict[str, Any]) -> str:
    """Append ``params`` to ``base_url``, keeping any query it already has."""
    if not params:
        return base_url
    separator = "&" if "?" in base_url else "?"
    if base_url.endswith(("?", "&")):
        separator = ""
    query_string = urllib.parse.urlencode(params)
    return f"{base_url}{separator}{query_string}"
