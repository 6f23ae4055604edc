"""URL normalization and resolution helpers for crawl db keys and outlinks."""

from __future__ import annotations

import posixpath
import re
from typing import Sequence
from urllib.parse import (
    parse_qsl,
    quote,
    urlencode,
    urljoin,
    urlsplit,
    urlunsplit,
)


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")
TRACKING_QUERY_PARAM_PREFIXES = ("utm_",)
TRACKING_QUERY_PARAMS = {
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
}


def host_from_url(url: str) -> str:
    """Extract the lowercased host of a URL, without a `www.` prefix."""

    host = (urlsplit(url).hostname or "").strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host.strip(".")


def is_http_url(url: str, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True if URL is absolute and has an allowed HTTP-like scheme."""

    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        return False
    return parsed.scheme.lower() in {scheme.lower() for scheme in allowed_schemes}


def _normalize_netloc(parsed_url, *, strip_default_port: bool) -> str:
    host = (parsed_url.hostname or "").lower()
    if not host:
        return parsed_url.netloc.lower()

    userinfo = ""
    if parsed_url.username:
        userinfo = quote(parsed_url.username, safe="")
        if parsed_url.password:
            userinfo += ":" + quote(parsed_url.password, safe="")
        userinfo += "@"

    try:
        port = parsed_url.port
    except ValueError:
        port = None

    scheme = parsed_url.scheme.lower()
    is_default = (scheme == "http" and port == 80) or (scheme == "https" and port == 443)
    if port is not None and not (strip_default_port and is_default):
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def _normalize_path(path: str) -> str:
    if not path:
        return "/"

    collapsed = re.sub(r"/{2,}", "/", path)
    normalized = posixpath.normpath(collapsed)
    if collapsed.startswith("/") and not normalized.startswith("/"):
        normalized = "/" + normalized
    if normalized in {"", "."}:
        return "/"
    # normpath drops a meaningful trailing slash
    if collapsed.endswith("/") and not normalized.endswith("/"):
        normalized += "/"
    return normalized


def _is_tracking_query_key(key: str) -> bool:
    normalized = key.strip().lower()
    if normalized in TRACKING_QUERY_PARAMS:
        return True
    return any(normalized.startswith(prefix) for prefix in TRACKING_QUERY_PARAM_PREFIXES)


def normalize_url(
    url: str | None,
    *,
    strip_fragment: bool = True,
    strip_default_port: bool = True,
    strip_tracking_params: bool = True,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Canonicalize an absolute URL so it can be used as a crawl db key.

    Returns `None` for URLs that are invalid or outside allowed schemes.
    """

    if not url:
        return None

    raw = url.strip()
    if not raw:
        return None

    parsed = urlsplit(raw)
    if not parsed.scheme or not parsed.netloc:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in {item.lower() for item in allowed_schemes}:
        return None

    netloc = _normalize_netloc(parsed, strip_default_port=strip_default_port)
    if not netloc:
        return None

    query = parsed.query
    if query and strip_tracking_params:
        pairs = [
            (key, value)
            for key, value in parse_qsl(query, keep_blank_values=True)
            if not _is_tracking_query_key(key)
        ]
        query = urlencode(pairs, doseq=True)

    fragment = "" if strip_fragment else parsed.fragment
    return urlunsplit((scheme, netloc, _normalize_path(parsed.path), query, fragment))


def resolve_url(
    base_url: str,
    href: str | None,
    *,
    normalize: bool = True,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Resolve a possibly relative link against a base URL and validate scheme."""

    if href is None:
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    absolute = urljoin(base_url, candidate)
    if normalize:
        return normalize_url(absolute, allowed_schemes=allowed_schemes)

    if is_http_url(absolute, allowed_schemes=allowed_schemes):
        return absolute
    return None


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "host_from_url",
    "is_http_url",
    "normalize_url",
    "resolve_url",
]
