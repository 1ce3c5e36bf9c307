"""Rewrite shared-file links into directly downloadable URLs."""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

_DL_FLAG = re.compile(r"(^|&)dl=[^&]*")


def _is_dropbox(host: str) -> bool:
    host = host.lower()
    return host == "dropbox.com" or host.endswith(".dropbox.com")


def resolve_source_url(url: str) -> str:
    """Return a directly fetchable form of *url*.

    Dropbox share links serve an HTML preview unless ``dl=1`` is set, so the
    flag is forced on whether it was absent, ``0`` or already ``1``.  Any
    other URL, malformed ones included, is returned verbatim.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
    except ValueError:
        return url

    if not _is_dropbox(host):
        return url

    if _DL_FLAG.search(parts.query):
        query = _DL_FLAG.sub(lambda m: f"{m.group(1)}dl=1", parts.query, count=1)
    elif parts.query:
        query = f"{parts.query}&dl=1"
    else:
        query = "dl=1"

    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
