"""URL canonicalization helpers used by every crawl component."""
import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from .patterns import TRACKING_PARAMS

_ALLOWED_SCHEMES = ("http", "https")


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` to bare host input such as ``example.com/about``."""
    trimmed = (url or "").strip()
    if not trimmed:
        return trimmed
    if re.match(r"^[a-z][a-z0-9+.\-]*://", trimmed, re.IGNORECASE):
        return trimmed
    return "https://" + trimmed.lstrip("/")


def normalize(url: Optional[str], base: Optional[str] = None,
              tracking_params: Iterable[str] = TRACKING_PARAMS) -> Optional[str]:
    """Canonical form of ``url`` resolved against ``base``, or None.

    Drops the fragment and tracking query parameters, lowercases scheme and
    host, and gives an empty path a single slash. Returns None for malformed
    input and for anything that is not http(s).
    """
    if not url or not isinstance(url, str):
        return None
    candidate = url.strip()
    if not candidate:
        return None
    try:
        absolute = urljoin(base, candidate) if base else candidate
        parts = urlsplit(absolute)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES or not host:
        return None

    netloc = host
    if ":" in host:
        netloc = f"[{host}]"
    if port is not None:
        netloc = f"{netloc}:{port}"
    if parts.username:
        userinfo = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{userinfo}@{netloc}"

    dropped = {p.lower() for p in tracking_params}
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
             if k.lower() not in dropped]

    return urlunsplit((scheme, netloc, parts.path or "/", urlencode(query, doseq=True), ""))


def origin(url: str) -> Optional[tuple]:
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    return parts.scheme.lower(), host


def same_origin(a: str, b: str) -> bool:
    """True when both URLs share scheme and host."""
    left = origin(a)
    return left is not None and left == origin(b)
